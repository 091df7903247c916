"""
Real HTTP integration clients.

Zoho surfaces are served by storefront.integrations.zoho.client.ZohoClient;
this package holds the Stripe client. Each real client implements the same
interface as its mock under storefront.integrations.clients.mocks.

Switching:
The selection of mock vs real clients happens in storefront/api/dependencies.py only.
"""
