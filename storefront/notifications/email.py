"""
Customer notification emails triggered by order and payment webhooks.

Delivery goes through the invoice/sales-order email endpoints of Zoho
Inventory where a document exists; everything else is recorded in the log
so support can follow up.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

logger = logging.getLogger(__name__)

TEMPLATES = {
    "order_confirmation": "Your order {order_number} has been received",
    "order_updated": "Your order {order_number} has been updated",
    "payment_confirmation": "Payment received for order {order_number}",
    "payment_failed": "Payment failed for order {order_number}",
    "shipping_notification": "Your order {order_number} has shipped",
    "delivery_confirmation": "Your order {order_number} has been delivered",
    "cancellation_notice": "Your order {order_number} has been cancelled",
    "low_stock_alert": "Low stock: {item_name} ({stock} left)",
}


@dataclass
class EmailMessage:
    template: str
    to: str
    subject: str
    data: Dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EmailNotifier:
    def __init__(self, inventory_client=None, admin_email: str = "", outbox_size: int = 200):
        self.inventory_client = inventory_client
        self.admin_email = admin_email
        # Recent messages only, for the admin view and tests.
        self.outbox: Deque[EmailMessage] = deque(maxlen=outbox_size)

    async def send(self, template: str, to: Optional[str], data: Dict[str, Any]) -> Optional[EmailMessage]:
        if template not in TEMPLATES:
            raise ValueError(f"Unknown email template '{template}'")
        recipient = to or self.admin_email
        if not recipient:
            logger.warning("Skipping %s email: no recipient", template)
            return None

        subject = TEMPLATES[template].format_map(_Defaulting(data))
        message = EmailMessage(template=template, to=recipient, subject=subject, data=dict(data))

        invoice_id = data.get("invoice_id")
        if self.inventory_client is not None and invoice_id and template in {"order_confirmation", "payment_confirmation"}:
            await self.inventory_client.request(
                "POST",
                self.inventory_client.path("email_invoice", invoice_id=str(invoice_id)),
                body={"to_mail_ids": [recipient], "subject": subject},
            )

        self.outbox.append(message)
        logger.info("Email %s queued for %s: %s", template, _mask(recipient), subject)
        return message


class _Defaulting(dict):
    def __missing__(self, key):
        return "?"


def _mask(email: str) -> str:
    name, _, domain = email.partition("@")
    return f"{name[:2]}***@{domain}" if domain else "***"
