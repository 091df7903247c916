"""Pytest fixtures: in-memory store, mock vendors and a wired app."""

import pytest
from fastapi.testclient import TestClient

from storefront.api.dependencies import build_services
from storefront.database.redis import RedisCache
from storefront.integrations.clients.mocks.inventory import MockInventoryClient
from storefront.integrations.clients.mocks.payments import MockPaymentsClient
from storefront.notifications.ops_alerts import OpsAlerter
from storefront.utils.config_loader import StorefrontSettings


@pytest.fixture
def settings():
    return StorefrontSettings(
        sync_secret="sync-secret",
        zoho_webhook_secret="zoho-secret",
        stripe_webhook_secret="whsec_test",
        payment_link_secret="link-secret",
        public_base_url="https://shop.example.com",
        admin_email="ops@example.com",
        integrations_mode="mock",
    )


@pytest.fixture
def store():
    """In-memory RedisCache stub for tests."""
    return RedisCache()


@pytest.fixture
def inventory():
    return MockInventoryClient()


@pytest.fixture
def payments():
    return MockPaymentsClient(webhook_secret="whsec_test")


@pytest.fixture
def alerter():
    return OpsAlerter()


@pytest.fixture
def services(settings, store, inventory, payments, alerter):
    return build_services(settings, store=store, inventory=inventory, payments=payments, alerter=alerter)


@pytest.fixture
def client(services):
    from storefront.api.main import create_app

    return TestClient(create_app(services))


@pytest.fixture
def checkout_payload():
    return {
        "customerInfo": {"email": "Ada@Example.com", "firstName": "Ada", "lastName": "Lovelace", "phone": "555-0100"},
        "shippingAddress": {
            "address1": "12 Analytical Way",
            "city": "Austin",
            "state": "TX",
            "zipCode": "73301",
            "country": "US",
        },
        "cartItems": [
            {"productId": "4600000000001", "sku": "SHOE-TRAIL-01", "name": "Trail Running Shoe", "price": 50, "quantity": 2},
        ],
        "orderNotes": "Leave at the door",
    }
