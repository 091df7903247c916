"""
Payment-first checkout.

The customer pays through a Stripe PaymentIntent before any Zoho record
exists. Everything needed to rebuild the order travels in the intent's
metadata; the `payment_intent.succeeded` webhook turns it back into a
CheckoutRequest and runs the saga.

Stripe metadata limits: 50 keys, 40-character keys, 500-character values.
The cart is serialised compactly and split across `cart_0`, `cart_1`, ...
so no value is ever cut mid-JSON.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from storefront.checkout.totals import compute_totals, to_cents
from storefront.checkout.validation import parse_checkout
from storefront.errors import CheckoutValidationError
from storefront.integrations.contracts.checkout import CheckoutRequest, OrderTotals
from storefront.integrations.contracts.interfaces import CheckoutType
from storefront.utils.config_loader import StorefrontSettings

logger = logging.getLogger(__name__)

MAX_KEYS = 50
MAX_KEY_LENGTH = 40
MAX_VALUE_LENGTH = 500
CART_PREFIX = "cart_"


def truncate(value: Any, limit: int = MAX_VALUE_LENGTH) -> str:
    text = "" if value is None else str(value)
    return text[:limit]


def _cart_chunks(request: CheckoutRequest) -> List[str]:
    rows = [
        [item.product_id or "", item.sku or "", item.name[:80], str(item.unit_price), item.quantity]
        for item in request.cart_items
    ]
    encoded = json.dumps(rows, separators=(",", ":"))
    return [encoded[i:i + MAX_VALUE_LENGTH] for i in range(0, len(encoded), MAX_VALUE_LENGTH)]


def build_metadata(request: CheckoutRequest, totals: OrderTotals, currency: str) -> Dict[str, str]:
    customer = request.customer
    address = request.shipping_address
    metadata = {
        "request_id": request.request_id,
        "checkout_type": request.checkout_type.value,
        "customer_email": customer.email,
        "customer_first_name": customer.first_name,
        "customer_last_name": customer.last_name,
        "customer_phone": customer.phone or "",
        "existing_customer_id": request.existing_customer_id or "",
        "shipping_address1": address.address1,
        "shipping_address2": address.address2 or "",
        "shipping_city": address.city,
        "shipping_state": address.state,
        "shipping_zip": address.zip_code,
        "shipping_country": address.country,
        "order_notes": request.order_notes or "",
        "subtotal": str(totals.subtotal),
        "tax": str(totals.tax),
        "shipping": str(totals.shipping),
        "total": str(totals.total),
        "currency": currency,
    }
    metadata = {k[:MAX_KEY_LENGTH]: truncate(v) for k, v in metadata.items()}

    chunks = _cart_chunks(request)
    if len(metadata) + len(chunks) + 1 > MAX_KEYS:
        raise CheckoutValidationError(["Cart is too large for card checkout; please split the order"])
    metadata["cart_chunks"] = str(len(chunks))
    for index, chunk in enumerate(chunks):
        metadata[f"{CART_PREFIX}{index}"] = chunk
    return metadata


def checkout_from_metadata(metadata: Dict[str, Any]) -> CheckoutRequest:
    """Rebuild the CheckoutRequest stored by `build_metadata`."""
    try:
        count = int(metadata.get("cart_chunks") or 0)
        rows = json.loads("".join(metadata.get(f"{CART_PREFIX}{i}", "") for i in range(count)) or "[]")
    except (TypeError, ValueError) as e:
        raise CheckoutValidationError(["Payment metadata has no readable cart"]) from e

    payload = {
        "customerInfo": {
            "email": metadata.get("customer_email"),
            "firstName": metadata.get("customer_first_name"),
            "lastName": metadata.get("customer_last_name"),
            "phone": metadata.get("customer_phone"),
        },
        "shippingAddress": {
            "address1": metadata.get("shipping_address1"),
            "address2": metadata.get("shipping_address2"),
            "city": metadata.get("shipping_city"),
            "state": metadata.get("shipping_state"),
            "zipCode": metadata.get("shipping_zip"),
            "country": metadata.get("shipping_country"),
        },
        "cartItems": [
            {"productId": pid, "sku": sku, "name": name, "price": price, "quantity": qty}
            for pid, sku, name, price, qty in rows
        ],
        "orderNotes": metadata.get("order_notes"),
        "existingCustomerId": metadata.get("existing_customer_id"),
    }
    checkout_type = metadata.get("checkout_type") or "guest"
    # The account password is never sent to Stripe; portal access is enabled without it.
    payload["checkoutType"] = "guest" if checkout_type == "create_account" else checkout_type
    request = parse_checkout(payload, request_id=metadata.get("request_id") or "")
    if checkout_type == "create_account":
        request.checkout_type = CheckoutType.CREATE_ACCOUNT
    return request


class PaymentFirstCheckout:
    def __init__(self, payments_client, settings: StorefrontSettings, store=None) -> None:
        self.payments = payments_client
        self.settings = settings
        self.store = store

    async def create_payment_intent(self, request: CheckoutRequest) -> Dict[str, Any]:
        totals = compute_totals(request.cart_items, self.settings.pricing)
        currency = self.settings.pricing.currency
        metadata = build_metadata(request, totals, currency)

        intent = await self.payments.create_payment_intent(
            to_cents(totals.total),
            currency,
            metadata,
            receipt_email=request.customer.email,
            idempotency_key=request.request_id,
        )
        logger.info("Payment intent %s created for checkout %s", intent["id"], request.request_id)

        if self.store is not None:
            self.store.set_order_record(
                f"pi:{intent['id']}",
                {
                    "request_id": request.request_id,
                    "payment_intent_id": intent["id"],
                    "status": "awaiting_payment",
                    "currency": currency,
                    "totals": totals.as_floats(),
                    "customer": {
                        "email": request.customer.email,
                        "first_name": request.customer.first_name,
                        "last_name": request.customer.last_name,
                    },
                    "shipping_state": request.shipping_address.state,
                    "items": [
                        {"name": i.name, "sku": i.sku, "quantity": i.quantity, "price": float(i.unit_price)}
                        for i in request.cart_items
                    ],
                },
            )

        return {
            "client_secret": intent.get("client_secret"),
            "payment_intent_id": intent["id"],
            "totals": totals,
        }
