"""
Integrations layer.

Everything that talks to Zoho (Commerce, Inventory, CRM, Desk) or Stripe
lives here:
- zoho/: OAuth token manager, per-surface HTTP client, endpoint capabilities
- clients/real_http/: the Stripe payments client
- clients/mocks/: in-memory stand-ins used in development and tests
- policy/: adapters that turn vendor payloads into contracts

Key rule:
- Catalog, checkout and webhook code never builds vendor URLs itself.

Switching implementations:
- Mock vs real clients are selected in ONE place (storefront/api/dependencies.py).
"""
