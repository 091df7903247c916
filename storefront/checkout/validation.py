"""Validation of checkout submissions.

The storefront posts the checkout body as camelCase JSON. `parse_checkout`
checks every field before any vendor call is made and returns a
`CheckoutRequest`; on failure it raises `CheckoutValidationError` whose
`details` list is returned to the client with HTTP 400.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from storefront.errors import CheckoutValidationError
from storefront.integrations.contracts.checkout import (
    CartItem,
    CheckoutRequest,
    CustomerInfo,
    ShippingAddress,
)
from storefront.integrations.contracts.interfaces import CheckoutType

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_QUANTITY = 999


def _strip(v: Any) -> str:
    return "" if v is None else str(v).strip()


def _section(payload: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _pick(data: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = _strip(data.get(key))
        if value:
            return value
    return ""


def _parse_item(raw: Any, index: int, errors: List[str]) -> Optional[CartItem]:
    label = f"Item {index + 1}"
    if not isinstance(raw, dict):
        errors.append(f"{label}: invalid cart item")
        return None

    product_id = _pick(raw, "productId", "product_id", "item_id", "id")
    name = _pick(raw, "name", "product_name")
    sku = _pick(raw, "sku") or None
    if not name and not product_id:
        errors.append(f"{label}: name or product id is required")

    try:
        price = Decimal(str(raw.get("price", raw.get("unit_price"))))
        if not price.is_finite() or price <= 0:
            raise InvalidOperation
    except (InvalidOperation, ValueError):
        errors.append(f"{label}: price must be greater than 0")
        price = None

    quantity_raw = raw.get("quantity")
    quantity = None
    if isinstance(quantity_raw, bool):
        quantity_raw = None
    try:
        quantity = int(quantity_raw)
        if quantity != float(quantity_raw) or quantity <= 0:
            raise ValueError
        if quantity > MAX_QUANTITY:
            errors.append(f"{label}: quantity cannot exceed {MAX_QUANTITY}")
    except (TypeError, ValueError, OverflowError):
        errors.append(f"{label}: quantity must be a positive whole number")
        quantity = None

    if price is None or quantity is None:
        return None
    return CartItem(product_id=product_id or None, name=name or product_id, unit_price=price, quantity=quantity, sku=sku)


def parse_checkout(payload: Dict[str, Any], request_id: str) -> CheckoutRequest:
    errors: List[str] = []
    customer = _section(payload, "customerInfo", "customer_info", "customer")
    address = _section(payload, "shippingAddress", "shipping_address")

    email = _pick(customer, "email")
    first_name = _pick(customer, "firstName", "first_name")
    last_name = _pick(customer, "lastName", "last_name")
    phone = _pick(customer, "phone") or None

    if not email:
        errors.append("Email is required")
    elif not EMAIL_RE.match(email):
        errors.append("Valid email address is required")
    if not first_name:
        errors.append("First name is required")
    if not last_name:
        errors.append("Last name is required")

    address1 = _pick(address, "address1", "address", "street")
    city = _pick(address, "city")
    state = _pick(address, "state")
    zip_code = _pick(address, "zipCode", "zip_code", "zip", "postalCode")
    if not address1:
        errors.append("Shipping address is required")
    if not city:
        errors.append("City is required")
    if not state:
        errors.append("State is required")
    if not zip_code:
        errors.append("ZIP code is required")

    raw_items = payload.get("cartItems", payload.get("cart_items"))
    items: List[CartItem] = []
    if not isinstance(raw_items, list) or not raw_items:
        errors.append("Cart is empty")
    else:
        for index, raw in enumerate(raw_items):
            item = _parse_item(raw, index, errors)
            if item is not None:
                items.append(item)

    checkout_type_raw = _pick(payload, "checkoutType", "checkout_type") or CheckoutType.GUEST.value
    try:
        checkout_type = CheckoutType(checkout_type_raw)
    except ValueError:
        errors.append(f"Unsupported checkout type '{checkout_type_raw}'")
        checkout_type = CheckoutType.GUEST

    password = _strip(payload.get("customerPassword", payload.get("customer_password"))) or None
    existing_id = _pick(payload, "existingCustomerId", "existing_customer_id") or None
    if checkout_type == CheckoutType.CREATE_ACCOUNT and not password:
        errors.append("Password is required for account creation")
    if checkout_type == CheckoutType.EXISTING_CUSTOMER and not existing_id:
        errors.append("Existing customer id is required")

    if errors:
        raise CheckoutValidationError(errors)

    return CheckoutRequest(
        customer=CustomerInfo(email=email.lower(), first_name=first_name, last_name=last_name, phone=phone),
        shipping_address=ShippingAddress(
            address1=address1,
            address2=_pick(address, "address2", "apartment") or None,
            city=city,
            state=state,
            zip_code=zip_code,
            country=_pick(address, "country") or "US",
        ),
        cart_items=items,
        request_id=request_id,
        order_notes=_strip(payload.get("orderNotes", payload.get("order_notes"))) or None,
        checkout_type=checkout_type,
        customer_password=password,
        existing_customer_id=existing_id,
    )
