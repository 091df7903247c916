"""Signed webhook intake from Zoho and Stripe."""
