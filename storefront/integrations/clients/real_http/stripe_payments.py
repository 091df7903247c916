"""
Stripe payments client.

Used when STRIPE_SECRET_KEY is configured. The Stripe SDK is synchronous,
so every call runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import stripe

from storefront.errors import VendorApiError, WebhookSignatureError

logger = logging.getLogger(__name__)


def _plain(obj: Any) -> Dict[str, Any]:
    """StripeObject -> plain dict (str() renders the object as JSON)."""
    if obj is None:
        return {}
    return json.loads(str(obj))


class StripePaymentsClient:
    def __init__(self, secret_key: str, webhook_secret: str = "") -> None:
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured.")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        *,
        receipt_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
            "api_key": self.secret_key,
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent create failed: %s", e.user_message or e.__class__.__name__)
            raise VendorApiError(
                f"Payment provider error: {e.user_message or e.__class__.__name__}",
                status=e.http_status or 502,
                vendor_code=e.code,
            ) from e
        return _plain(intent)

    async def retrieve_payment_intent(self, intent_id: str) -> Optional[Dict[str, Any]]:
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=self.secret_key)
        except stripe.InvalidRequestError:
            return None
        except stripe.StripeError as e:
            raise VendorApiError(f"Payment provider error: {e.__class__.__name__}", status=e.http_status or 502) from e
        return _plain(intent)

    async def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.retrieve, session_id, api_key=self.secret_key)
        except stripe.InvalidRequestError:
            return None
        except stripe.StripeError as e:
            raise VendorApiError(f"Payment provider error: {e.__class__.__name__}", status=e.http_status or 502) from e
        return _plain(session)

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid Stripe signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid Stripe payload") from e
        return _plain(event)
