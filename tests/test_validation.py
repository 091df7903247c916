from decimal import Decimal

import pytest

from storefront.checkout.validation import parse_checkout
from storefront.errors import CheckoutValidationError
from storefront.integrations.contracts.interfaces import CheckoutType


def _details(payload):
    with pytest.raises(CheckoutValidationError) as exc_info:
        parse_checkout(payload, "req-1")
    return exc_info.value.details


def test_valid_payload_is_normalized(checkout_payload):
    request = parse_checkout(checkout_payload, "req-1")

    assert request.customer.email == "ada@example.com"
    assert request.customer.full_name == "Ada Lovelace"
    assert request.shipping_address.zip_code == "73301"
    assert request.cart_items[0].unit_price == Decimal("50")
    assert request.cart_items[0].sku == "SHOE-TRAIL-01"
    assert request.checkout_type == CheckoutType.GUEST
    assert request.order_notes == "Leave at the door"


def test_snake_case_keys_are_accepted():
    payload = {
        "customer_info": {"email": "b@example.com", "first_name": "B", "last_name": "C"},
        "shipping_address": {"address1": "1 Road", "city": "Reno", "state": "NV", "zip_code": "89501"},
        "cart_items": [{"product_id": "9", "name": "Widget", "price": "4.50", "quantity": "3"}],
    }

    request = parse_checkout(payload, "req-2")

    assert request.cart_items[0].quantity == 3
    assert request.shipping_address.country == "US"


def test_invalid_email_and_empty_cart_report_both_errors(checkout_payload):
    checkout_payload["customerInfo"]["email"] = "not-an-email"
    checkout_payload["cartItems"] = []

    details = _details(checkout_payload)

    assert "Valid email address is required" in details
    assert "Cart is empty" in details


def test_every_missing_field_is_reported():
    details = _details({"customerInfo": {}, "shippingAddress": {}, "cartItems": []})

    assert details == [
        "Email is required",
        "First name is required",
        "Last name is required",
        "Shipping address is required",
        "City is required",
        "State is required",
        "ZIP code is required",
        "Cart is empty",
    ]


@pytest.mark.parametrize(
    "item, message",
    [
        ({"name": "A", "price": 0, "quantity": 1}, "Item 1: price must be greater than 0"),
        ({"name": "A", "price": "abc", "quantity": 1}, "Item 1: price must be greater than 0"),
        ({"name": "A", "price": 5, "quantity": 0}, "Item 1: quantity must be a positive whole number"),
        ({"name": "A", "price": 5, "quantity": 1.5}, "Item 1: quantity must be a positive whole number"),
        ({"name": "A", "price": 5, "quantity": float("inf")}, "Item 1: quantity must be a positive whole number"),
        ({"name": "A", "price": 5, "quantity": float("nan")}, "Item 1: quantity must be a positive whole number"),
        ({"name": "A", "price": 5, "quantity": 1000}, "Item 1: quantity cannot exceed 999"),
        ({"price": 5, "quantity": 1}, "Item 1: name or product id is required"),
    ],
)
def test_cart_item_rules(checkout_payload, item, message):
    checkout_payload["cartItems"] = [item]

    assert message in _details(checkout_payload)


def test_account_creation_needs_password(checkout_payload):
    checkout_payload["checkoutType"] = "create_account"

    assert _details(checkout_payload) == ["Password is required for account creation"]


def test_existing_customer_needs_id(checkout_payload):
    checkout_payload["checkoutType"] = "existing_customer"

    assert _details(checkout_payload) == ["Existing customer id is required"]


def test_unknown_checkout_type(checkout_payload):
    checkout_payload["checkoutType"] = "wholesale"

    assert _details(checkout_payload) == ["Unsupported checkout type 'wholesale'"]
