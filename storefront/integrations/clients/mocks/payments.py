"""
Stripe MOCK client.

Same interface as StripePaymentsClient. Payment intents live in memory;
webhook events are "signed" with an HMAC of the raw body so the receiver's
signature path can be exercised without the Stripe SDK's header format.
"""

import hashlib
import hmac
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from storefront.errors import WebhookSignatureError

logger = logging.getLogger(__name__)


class MockPaymentsClient:
    def __init__(self, webhook_secret: str = "whsec_mock") -> None:
        self.webhook_secret = webhook_secret
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        *,
        receipt_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:8]}",
            "receipt_email": receipt_email,
        }
        self.intents[intent_id] = intent
        self.created.append(intent)
        logger.info("[MOCK] Created payment intent %s for %s cents", intent_id, amount_cents)
        return dict(intent)

    async def retrieve_payment_intent(self, intent_id: str) -> Optional[Dict[str, Any]]:
        intent = self.intents.get(intent_id)
        return dict(intent) if intent else None

    async def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.sessions.get(session_id)
        return dict(session) if session else None

    def mark_succeeded(self, intent_id: str) -> Dict[str, Any]:
        intent = self.intents[intent_id]
        intent["status"] = "succeeded"
        return dict(intent)

    # --- webhooks --------------------------------------------------------------

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise WebhookSignatureError("Invalid Stripe signature")
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise WebhookSignatureError("Invalid Stripe payload") from e
