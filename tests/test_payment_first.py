import json

import pytest

from storefront.checkout.payment_first import (
    MAX_KEY_LENGTH,
    MAX_KEYS,
    MAX_VALUE_LENGTH,
    PaymentFirstCheckout,
    build_metadata,
    checkout_from_metadata,
)
from storefront.checkout.totals import compute_totals
from storefront.checkout.validation import parse_checkout
from storefront.errors import CheckoutValidationError
from storefront.integrations.contracts.interfaces import CheckoutType


def _big_cart(count):
    return [
        {"productId": f"46{i:011d}", "sku": f"SKU-{i:04d}", "name": f"Very descriptive product name number {i}", "price": 12.5, "quantity": 1}
        for i in range(count)
    ]


def test_metadata_respects_stripe_limits(settings, checkout_payload):
    checkout_payload["cartItems"] = _big_cart(40)
    checkout_payload["orderNotes"] = "x" * 900
    request = parse_checkout(checkout_payload, "req-pf-1")

    metadata = build_metadata(request, compute_totals(request.cart_items, settings.pricing), "USD")

    assert len(metadata) <= MAX_KEYS
    assert all(len(k) <= MAX_KEY_LENGTH for k in metadata)
    assert all(len(v) <= MAX_VALUE_LENGTH for v in metadata.values())
    assert int(metadata["cart_chunks"]) > 1


def test_cart_survives_the_metadata_trip(settings, checkout_payload):
    checkout_payload["cartItems"] = _big_cart(25)
    request = parse_checkout(checkout_payload, "req-pf-2")
    metadata = build_metadata(request, compute_totals(request.cart_items, settings.pricing), "USD")

    rebuilt = checkout_from_metadata(metadata)

    assert rebuilt.request_id == "req-pf-2"
    assert rebuilt.customer == request.customer
    assert rebuilt.cart_items == request.cart_items


def test_oversized_cart_is_rejected(settings, checkout_payload):
    checkout_payload["cartItems"] = _big_cart(400)
    request = parse_checkout(checkout_payload, "req-pf-3")

    with pytest.raises(CheckoutValidationError):
        build_metadata(request, compute_totals(request.cart_items, settings.pricing), "USD")


def test_account_password_never_reaches_metadata(settings, checkout_payload):
    checkout_payload.update({"checkoutType": "create_account", "customerPassword": "hunter2-secret"})
    request = parse_checkout(checkout_payload, "req-pf-4")

    metadata = build_metadata(request, compute_totals(request.cart_items, settings.pricing), "USD")

    assert "hunter2-secret" not in json.dumps(metadata)
    assert checkout_from_metadata(metadata).checkout_type == CheckoutType.CREATE_ACCOUNT


@pytest.mark.asyncio
async def test_create_payment_intent_charges_order_total(settings, store, payments, checkout_payload):
    flow = PaymentFirstCheckout(payments, settings, store=store)

    created = await flow.create_payment_intent(parse_checkout(checkout_payload, "req-pf-5"))

    intent = payments.intents[created["payment_intent_id"]]
    assert intent["amount"] == 10875
    assert intent["currency"] == "usd"
    assert intent["receipt_email"] == "ada@example.com"
    assert created["client_secret"].startswith(created["payment_intent_id"])
    record = store.get_order_record(f"pi:{created['payment_intent_id']}")
    assert record["status"] == "awaiting_payment"
    assert record["totals"]["total"] == 108.75
