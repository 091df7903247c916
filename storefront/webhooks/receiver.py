"""
Webhook intake.

Verifies the delivery signature, normalizes the envelope into a
WebhookEvent and dispatches it to the handler registered for its type.
A delivery that passes verification is always acknowledged, even when the
handler fails; handler errors go to the log and the ops channel.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping

from storefront.errors import WebhookConfigurationError, WebhookPayloadError, WebhookSignatureError
from storefront.integrations.contracts.interfaces import WebhookAck, WebhookEvent
from storefront.utils.config_loader import StorefrontSettings
from storefront.webhooks.signatures import verify_zoho_signature

logger = logging.getLogger(__name__)

ZOHO_SIGNATURE_HEADER = "x-zoho-signature"
STRIPE_SIGNATURE_HEADER = "stripe-signature"

STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": "payment.succeeded",
    "payment_intent.payment_failed": "payment.failed",
    "checkout.session.completed": "checkout.completed",
}

SUPPORTED_VENDORS = ("zoho", "stripe")


class WebhookReceiver:
    def __init__(self, settings: StorefrontSettings, handlers: Dict[str, Any], *, payments_client=None, store=None, alerter=None):
        self.settings = settings
        self.handlers = handlers
        self.payments = payments_client
        self.store = store
        self.alerter = alerter

    async def handle(self, vendor: str, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        vendor = vendor.lower()
        if vendor not in SUPPORTED_VENDORS:
            raise WebhookPayloadError(f"Unsupported webhook vendor '{vendor}'")
        headers = {k.lower(): v for k, v in headers.items()}

        if vendor == "zoho":
            event = self._zoho_event(raw_body, headers)
        else:
            event = self._stripe_event(raw_body, headers)

        ack = WebhookAck(received=True, event_type=event.event_type)
        handler = self.handlers.get(event.event_type)
        if handler is None:
            logger.info("Unhandled %s webhook type: %s", vendor, event.event_type)
        else:
            try:
                await handler(event)
                ack.handled = True
            except Exception as e:
                logger.exception("Webhook handler for %s failed", event.event_type)
                ack.errors.append(f"{e.__class__.__name__}: {e}")
                if self.alerter is not None:
                    self.alerter.alert(
                        "webhook",
                        f"Handler for {event.event_type} failed: {e}",
                        {"vendor": vendor, "event_id": event.event_id},
                    )

        self._log_event(event, ack)
        return ack

    # --- verification ----------------------------------------------------------

    def _require_secret(self, secret: str, vendor: str) -> bool:
        """True when the delivery must be verified; raises when it cannot be."""
        if secret:
            return True
        if self.settings.allow_unsigned_webhooks:
            logger.warning("Accepting UNSIGNED %s webhook (ALLOW_UNSIGNED_WEBHOOKS is set)", vendor)
            return False
        raise WebhookConfigurationError(f"{vendor} webhook secret is not configured")

    def _zoho_event(self, raw_body: bytes, headers: Dict[str, str]) -> WebhookEvent:
        secret = self.settings.zoho_webhook_secret
        if self._require_secret(secret, "zoho"):
            if not verify_zoho_signature(secret, raw_body, headers.get(ZOHO_SIGNATURE_HEADER, "")):
                logger.warning("Rejected zoho webhook with invalid signature")
                raise WebhookSignatureError("Invalid signature")

        payload = _parse_json(raw_body)
        event_type = payload.get("event_type") or payload.get("type") or payload.get("event")
        if not event_type:
            raise WebhookPayloadError("Webhook has no event_type")
        data = payload.get("data")
        return WebhookEvent(
            vendor="zoho",
            event_type=str(event_type),
            event_id=payload.get("event_id") or payload.get("id"),
            data=data if isinstance(data, dict) else {},
        )

    def _stripe_event(self, raw_body: bytes, headers: Dict[str, str]) -> WebhookEvent:
        secret = self.settings.stripe_webhook_secret
        if self._require_secret(secret, "stripe"):
            if self.payments is None:
                raise WebhookConfigurationError("No payments client configured")
            signature = headers.get(STRIPE_SIGNATURE_HEADER, "")
            if not signature:
                raise WebhookSignatureError("Missing Stripe-Signature header")
            try:
                payload = self.payments.construct_event(raw_body, signature)
            except WebhookSignatureError:
                logger.warning("Rejected stripe webhook with invalid signature")
                raise
        else:
            payload = _parse_json(raw_body)

        raw_type = str(payload.get("type") or "")
        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        return WebhookEvent(
            vendor="stripe",
            event_type=STRIPE_EVENT_TYPES.get(raw_type, raw_type),
            event_id=payload.get("id"),
            data=obj if isinstance(obj, dict) else {},
        )

    def _log_event(self, event: WebhookEvent, ack: WebhookAck) -> None:
        if self.store is None:
            return
        self.store.append_webhook_event(
            {
                "vendor": event.vendor,
                "event_id": event.event_id,
                "event_type": event.event_type,
                "received_at": event.received_at.isoformat(),
                "handled": ack.handled,
                "errors": ack.errors,
            }
        )


def _parse_json(raw_body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WebhookPayloadError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")
    return payload
