"""Order lookup for the checkout confirmation page."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, Optional

from storefront.checkout.payment_links import verify_payment_token
from storefront.checkout.totals import to_money
from storefront.errors import OrderNotFoundError, PaymentTokenError, VendorApiError
from storefront.integrations.policy.response_wrappers import normalize_sales_order

logger = logging.getLogger(__name__)

EXPEDITED_STATES = {"CA", "NY", "TX", "FL", "WA", "IL"}


def estimate_delivery(state: Optional[str], start: date) -> Optional[date]:
    """Add 2 business days for major states, 3 otherwise, skipping weekends."""
    if not state:
        return None
    business_days = 2 if state.upper() in EXPEDITED_STATES else 3
    day = start
    added = 0
    while added < business_days:
        day += timedelta(days=1)
        if day.weekday() < 5:
            added += 1
    return day


def _payment_status(intent_status: Optional[str]) -> str:
    return {
        "succeeded": "paid",
        "processing": "processing",
        "requires_payment_method": "awaiting_payment",
        "requires_confirmation": "awaiting_payment",
        "requires_action": "awaiting_payment",
        "canceled": "cancelled",
    }.get(intent_status or "", intent_status or "unknown")


class CheckoutVerifier:
    def __init__(
        self,
        payments_client,
        inventory_client,
        store,
        today: Callable[[], date] = date.today,
        payment_link_secret: str = "",
    ) -> None:
        self.payments = payments_client
        self.inventory = inventory_client
        self.store = store
        self._today = today
        self.payment_link_secret = payment_link_secret

    async def verify(
        self,
        *,
        payment_intent_id: Optional[str] = None,
        order_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if payment_intent_id:
            return await self._by_payment_intent(payment_intent_id)
        if order_id:
            return await self._by_order_id(order_id)
        if session_id:
            session = await self.payments.retrieve_checkout_session(session_id)
            if not session:
                raise OrderNotFoundError(f"Checkout session {session_id} not found")
            intent_id = session.get("payment_intent")
            if intent_id:
                return await self._by_payment_intent(str(intent_id))
            return self._view({"status": session.get("status") or "unknown", "payment_session_id": session_id})
        raise ValueError("paymentIntentId, orderId or sessionId is required")

    async def verify_payment_link(self, *, order_id: str, invoice_id: str, amount, token: str) -> Dict[str, Any]:
        """Check the token of a self-hosted payment link, then look the order up."""
        if not self.payment_link_secret:
            raise PaymentTokenError("Payment links are not enabled")
        if not verify_payment_token(self.payment_link_secret, token, order_id, invoice_id, amount):
            logger.warning("Rejected payment link token for order %s invoice %s", order_id, invoice_id)
            raise PaymentTokenError("Payment link is invalid")

        view = await self._by_order_id(order_id)
        view["invoiceId"] = invoice_id
        view["amountDue"] = float(to_money(amount))
        return view

    async def _by_payment_intent(self, intent_id: str) -> Dict[str, Any]:
        record = self.store.get_order_record(f"pi:{intent_id}")
        intent = await self.payments.retrieve_payment_intent(intent_id)
        if record is None and intent is None:
            raise OrderNotFoundError(f"Payment {intent_id} not found")

        record = dict(record or {})
        if intent is not None:
            record.setdefault("currency", str(intent.get("currency") or "usd").upper())
            if record.get("status") not in {"materialized", "paid"}:
                record["status"] = _payment_status(intent.get("status"))
            record["payment"] = {"id": intent_id, "status": intent.get("status"), "amount": (intent.get("amount") or 0) / 100}
            if not record.get("customer"):
                meta = intent.get("metadata") or {}
                record["customer"] = {
                    "email": meta.get("customer_email"),
                    "first_name": meta.get("customer_first_name"),
                    "last_name": meta.get("customer_last_name"),
                }
                record["shipping_state"] = meta.get("shipping_state")
                record.setdefault("totals", {"total": (intent.get("amount") or 0) / 100})
        return self._view(record)

    async def _by_order_id(self, order_id: str) -> Dict[str, Any]:
        record = self.store.get_order_record(f"so:{order_id}")
        if record is not None:
            return self._view(record)

        try:
            raw = await self.inventory.request("GET", self.inventory.path("get_sales_order", salesorder_id=order_id))
        except VendorApiError as e:
            if e.status == 404:
                raise OrderNotFoundError(f"Order {order_id} not found") from e
            raise
        order = normalize_sales_order(raw)
        data = raw["salesorder"]
        shipping = data.get("shipping_address") or {}
        return self._view(
            {
                "order_id": order.salesorder_id,
                "order_number": order.salesorder_number,
                "status": data.get("status") or "unknown",
                "currency": data.get("currency_code") or "USD",
                "totals": {
                    "subtotal": data.get("sub_total"),
                    "tax": data.get("tax_total"),
                    "shipping": data.get("shipping_charge"),
                    "total": data.get("total"),
                },
                "customer": {"email": data.get("email"), "name": data.get("customer_name")},
                "shipping_state": shipping.get("state"),
                "items": [
                    {"name": li.get("name"), "quantity": li.get("quantity"), "price": li.get("rate")}
                    for li in data.get("line_items") or []
                ],
            }
        )

    def _view(self, record: Dict[str, Any]) -> Dict[str, Any]:
        totals = record.get("totals") or {}
        delivery = estimate_delivery(record.get("shipping_state"), self._today())
        return {
            "orderId": record.get("order_id"),
            "orderNumber": record.get("order_number"),
            "invoiceNumber": record.get("invoice_number"),
            "status": record.get("status") or "unknown",
            "total": totals.get("total"),
            "subtotal": totals.get("subtotal"),
            "tax": totals.get("tax"),
            "shipping": totals.get("shipping"),
            "currency": record.get("currency") or "USD",
            "customer": record.get("customer") or {},
            "items": record.get("items") or [],
            "payment": record.get("payment") or {"url": record.get("payment_url")},
            "estimatedDelivery": delivery.isoformat() if delivery else None,
        }
