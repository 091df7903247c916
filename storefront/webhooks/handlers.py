"""
Side effects for each webhook event type.

Handlers are independent: each one receives the normalized WebhookEvent
and may raise; the receiver logs the failure and still acknowledges the
delivery.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional

from storefront.checkout.payment_first import checkout_from_metadata
from storefront.checkout.saga import order_record
from storefront.checkout.totals import to_money
from storefront.integrations.contracts.interfaces import WebhookEvent

logger = logging.getLogger(__name__)

Handler = Callable[[WebhookEvent], Awaitable[Optional[Dict[str, Any]]]]

LOW_STOCK_THRESHOLD = 5


def _customer_email(data: Dict[str, Any]) -> Optional[str]:
    customer = data.get("customer") or {}
    return customer.get("email") or data.get("email") or data.get("customer_email")


def _order_number(data: Dict[str, Any]) -> str:
    return str(data.get("order_number") or data.get("salesorder_number") or data.get("order_id") or "?")


class WebhookHandlers:
    def __init__(self, notifier, *, saga=None, store=None, alerter=None, low_stock_threshold: int = LOW_STOCK_THRESHOLD):
        self.notifier = notifier
        self.saga = saga
        self.store = store
        self.alerter = alerter
        self.low_stock_threshold = low_stock_threshold

    def table(self) -> Dict[str, Handler]:
        return {
            "order.created": self.order_created,
            "order.updated": self.order_updated,
            "order.shipped": self.order_shipped,
            "order.delivered": self.order_delivered,
            "order.cancelled": self.order_cancelled,
            "payment.succeeded": self.payment_succeeded,
            "payment.failed": self.payment_failed,
            "inventory.updated": self.inventory_updated,
            "checkout.completed": self.checkout_completed,
        }

    # --- orders ----------------------------------------------------------------

    async def order_created(self, event: WebhookEvent):
        data = event.data
        await self.notifier.send("order_confirmation", _customer_email(data), {"order_number": _order_number(data), **data})
        logger.info("Order created: %s", _order_number(data))

    async def order_updated(self, event: WebhookEvent):
        data = event.data
        await self.notifier.send("order_updated", _customer_email(data), {"order_number": _order_number(data), "status": data.get("status")})

    async def order_shipped(self, event: WebhookEvent):
        data = event.data
        await self.notifier.send(
            "shipping_notification",
            _customer_email(data),
            {
                "order_number": _order_number(data),
                "tracking_number": data.get("tracking_number"),
                "carrier": data.get("carrier") or data.get("shipping_carrier"),
            },
        )
        logger.info("Order shipped: %s", _order_number(data))

    async def order_delivered(self, event: WebhookEvent):
        data = event.data
        await self.notifier.send("delivery_confirmation", _customer_email(data), {"order_number": _order_number(data)})

    async def order_cancelled(self, event: WebhookEvent):
        data = event.data
        await self.notifier.send(
            "cancellation_notice",
            _customer_email(data),
            {"order_number": _order_number(data), "reason": data.get("reason") or data.get("cancellation_reason")},
        )
        logger.info("Order cancelled: %s", _order_number(data))

    # --- payments --------------------------------------------------------------

    async def payment_succeeded(self, event: WebhookEvent):
        data = event.data
        if event.vendor == "stripe" and (data.get("metadata") or {}).get("request_id"):
            return await self._materialize_payment_first(data)
        await self.notifier.send(
            "payment_confirmation",
            _customer_email(data),
            {"order_number": _order_number(data), "amount": data.get("amount"), "invoice_id": data.get("invoice_id")},
        )
        return None

    async def _materialize_payment_first(self, intent: Dict[str, Any]) -> Dict[str, Any]:
        intent_id = intent["id"]
        key = f"pi:{intent_id}"
        existing = self.store.get_order_record(key) if self.store is not None else None
        if existing and existing.get("status") == "materialized":
            logger.info("Payment %s already materialized as %s", intent_id, existing.get("order_number"))
            return existing

        if self.saga is None:
            raise RuntimeError("No checkout saga configured for payment-first orders")

        request = checkout_from_metadata(intent.get("metadata") or {})
        result = await self.saga.run(request, generate_payment_link=False)
        amount = to_money(Decimal(str(intent.get("amount_received") or intent.get("amount") or 0)) / 100)
        # Items that could not be mapped are not invoiced; the difference needs a refund.
        applied = min(amount, result.totals.total)
        if amount != result.totals.total:
            logger.warning("Payment %s of %s differs from invoice total %s", intent_id, amount, result.totals.total)
            if self.alerter is not None:
                self.alerter.alert(
                    "payment",
                    f"Payment {intent_id} of {amount} differs from invoice total {result.totals.total}",
                    {"request_id": request.request_id, "invoice_id": result.invoice.invoice_id, "warnings": result.warnings},
                    thread_key=request.request_id,
                )
        await self.saga.record_payment(
            result.contact.contact_id,
            result.invoice.invoice_id,
            applied,
            reference=intent_id,
        )
        amount = float(amount)

        record = order_record(request, result, currency=str(intent.get("currency") or "usd").upper(), status="materialized")
        record["payment_intent_id"] = intent_id
        record["payment"] = {"id": intent_id, "status": "succeeded", "amount": amount}
        if self.store is not None:
            self.store.set_order_record(key, record)
            self.store.set_order_record(f"so:{result.sales_order.salesorder_id}", record)

        await self.notifier.send(
            "payment_confirmation",
            request.customer.email,
            {
                "order_number": result.sales_order.salesorder_number,
                "invoice_id": result.invoice.invoice_id,
                "amount": amount,
            },
        )
        logger.info("Materialized payment %s as order %s", intent_id, result.sales_order.salesorder_number)
        return record

    async def payment_failed(self, event: WebhookEvent):
        data = event.data
        meta = data.get("metadata") or {}
        email = _customer_email(data) or meta.get("customer_email")
        if self.store is not None and data.get("id"):
            record = self.store.get_order_record(f"pi:{data['id']}")
            if record is not None and record.get("status") != "materialized":
                record["status"] = "payment_failed"
                self.store.set_order_record(f"pi:{data['id']}", record)
        error = (data.get("last_payment_error") or {}).get("message") or data.get("error")
        await self.notifier.send("payment_failed", email, {"order_number": _order_number(data), "error": error})
        logger.warning("Payment failed for %s: %s", data.get("id") or _order_number(data), error)

    async def checkout_completed(self, event: WebhookEvent):
        data = event.data
        if (data.get("metadata") or {}).get("request_id") and data.get("payment_intent"):
            intent = dict(data, id=data["payment_intent"], amount=data.get("amount_total"))
            return await self._materialize_payment_first(intent)
        logger.info("Checkout session %s completed without order metadata", data.get("id"))
        return None

    # --- inventory -------------------------------------------------------------

    async def inventory_updated(self, event: WebhookEvent):
        data = event.data
        stock = data.get("stock_on_hand", data.get("stock"))
        try:
            stock_value = float(stock)
        except (TypeError, ValueError):
            logger.info("Inventory update for %s without stock level", data.get("item_id"))
            return None
        if stock_value <= self.low_stock_threshold:
            name = data.get("name") or data.get("item_name") or data.get("item_id")
            await self.notifier.send("low_stock_alert", None, {"item_name": name, "stock": stock_value})
            if self.alerter is not None:
                self.alerter.alert("inventory", f"Low stock: {name} ({stock_value:g} left)", {"item_id": data.get("item_id")})
        return None
