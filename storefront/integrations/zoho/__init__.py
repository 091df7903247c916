"""Zoho OAuth, endpoint capabilities and the per-surface HTTP client."""
