"""Checkout: validation, totals, item mapping and the order saga."""
