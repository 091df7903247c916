"""Adapters that turn vendor payloads into contracts."""
