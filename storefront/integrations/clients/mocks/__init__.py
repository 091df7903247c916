"""
Mock integration clients.

In-memory stand-ins for Zoho Inventory and Stripe. They are used when:
- no vendor credentials are configured (local development)
- tests exercise flows end-to-end without network access

Important:
- Mock clients follow the SAME interface as the real clients.
"""
