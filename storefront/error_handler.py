"""Error payloads and remediation hints for failed checkouts and syncs."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from storefront.errors import (
    AuthenticationError,
    CheckoutValidationError,
    MalformedResponseError,
    MappingError,
    RateLimitedError,
    SagaStepError,
    StorefrontError,
    VendorApiError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_RETRY_AFTER = 60

# (needle, hint); first match on the lower-cased error message wins.
SUGGESTIONS: List[Tuple[str, str]] = [
    ("rate limit", "Zoho is throttling requests. Wait 60 seconds before retrying."),
    ("too many requests", "Zoho is throttling requests. Wait 60 seconds before retrying."),
    ("organization", "Check the ZOHO_INVENTORY_ORGANIZATION_ID environment variable."),
    ("json", "The vendor returned a malformed response. Retry; if it persists check the Zoho service status."),
    ("100 characters", "An address field is too long for Zoho. Shorten the street or apartment line."),
    ("payment terms", "Check INVOICE_PAYMENT_TERMS_DAYS; Zoho expects a whole number of days (0 = due on receipt)."),
    ("authentication", "Check the Zoho OAuth client id, secret and refresh token."),
    ("token", "Check the Zoho OAuth client id, secret and refresh token."),
    ("no cart items could be mapped", "Products in the cart do not exist in Zoho Inventory. Check their SKUs."),
    ("item", "Check that the cart products exist in Zoho Inventory with matching SKUs."),
    ("address id", "The contact was saved without an address. Check the contact record in Zoho Inventory."),
    ("contact", "Contact creation failed. Check the customer information format."),
    ("sales order", "Sales order creation failed. Check line items and pricing."),
    ("invoice", "Invoice creation failed. Check that the sales order exists and is valid."),
    ("payment", "Payment link generation failed. Check PAYMENT_LINK_SECRET and the Zoho payment gateway settings."),
]

DEFAULT_SUGGESTION = "Check the Zoho Inventory API configuration and organization settings."


def suggestion_for(message: Optional[str]) -> str:
    text = (message or "").lower()
    for needle, hint in SUGGESTIONS:
        if needle in text:
            return hint
    return DEFAULT_SUGGESTION


def _error_type(exc: Exception) -> str:
    if isinstance(exc, RateLimitedError):
        return "rate_limit"
    if isinstance(exc, AuthenticationError):
        return "authentication"
    if isinstance(exc, MalformedResponseError):
        return "malformed_response"
    if isinstance(exc, MappingError):
        return "item_mapping"
    if isinstance(exc, VendorApiError):
        return "vendor_api"
    return "internal"


class ErrorHandler:
    def checkout_failure(self, exc: SagaStepError, request_id: str) -> Tuple[int, Dict[str, Any]]:
        cause = exc.cause
        message = str(cause) or cause.__class__.__name__
        suggestion = suggestion_for(message)
        if suggestion == DEFAULT_SUGGESTION:
            suggestion = suggestion_for(exc.step.replace("_", " "))
        payload: Dict[str, Any] = {
            "success": False,
            "error": f"Checkout failed during {exc.step.replace('_', ' ')}",
            "details": message,
            "type": _error_type(cause),
            "progress": exc.progress.to_dict(),
            "suggestion": suggestion,
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if isinstance(cause, RateLimitedError):
            payload["retry_after"] = cause.retry_after or RATE_LIMIT_RETRY_AFTER
        if isinstance(cause, MappingError):
            payload["failed_items"] = [f.item_name for f in cause.failures]
        return exc.status_code, payload

    def validation_failure(self, exc: CheckoutValidationError, request_id: str) -> Tuple[int, Dict[str, Any]]:
        return 400, {"success": False, "error": "Validation failed", "details": exc.details, "request_id": request_id}

    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Tuple[int, Dict[str, Any]]:
        if isinstance(exc, StorefrontError):
            logger.error("Request failed: %s", exc)
            status = exc.status_code
            message = exc.message
        else:
            logger.error("Unhandled exception: %s", exc, exc_info=True)
            status = 500
            message = "An internal error occurred while processing your request. Please try again later."
        payload = {
            "success": False,
            "error": message,
            "type": _error_type(exc),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if isinstance(exc, RateLimitedError):
            payload["retry_after"] = exc.retry_after
        if context:
            payload["context"] = context
        return status, payload
