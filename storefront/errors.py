"""Domain exceptions shared by the catalog, checkout and webhook layers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base class for every error the storefront raises on purpose."""

    status_code = 500

    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}


class CheckoutValidationError(StorefrontError):
    status_code = 400

    def __init__(self, details: List[str]) -> None:
        super().__init__("Validation failed", payload={"details": list(details)})
        self.details = list(details)


class AuthenticationError(StorefrontError):
    status_code = 401


class VendorApiError(StorefrontError):
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        vendor_message: Optional[str] = None,
        vendor_code: Optional[Any] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, payload=payload)
        self.status = status
        self.vendor_message = vendor_message
        self.vendor_code = vendor_code


class RateLimitedError(VendorApiError):
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: int = 60, **kwargs: Any) -> None:
        kwargs.setdefault("status", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class MalformedResponseError(StorefrontError):
    status_code = 502

    def __init__(self, message: str, *, status: Optional[int] = None, preview: str = "", payload=None) -> None:
        super().__init__(message, payload=payload)
        self.status = status
        self.preview = preview


class MappingError(StorefrontError):
    """No cart item could be resolved to a vendor item."""

    def __init__(self, message: str, *, failures: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.failures = list(failures or [])


class SagaStepError(StorefrontError):
    def __init__(self, step: str, progress: Any, cause: Exception) -> None:
        super().__init__(str(cause) or cause.__class__.__name__)
        self.step = step
        self.progress = progress
        self.cause = cause

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 429 if isinstance(self.cause, RateLimitedError) else 500


class WebhookSignatureError(StorefrontError):
    status_code = 401


class WebhookConfigurationError(StorefrontError):
    status_code = 503


class OrderNotFoundError(StorefrontError):
    status_code = 404


class WebhookPayloadError(StorefrontError):
    status_code = 400


class PaymentTokenError(StorefrontError):
    """A self-hosted payment link whose token does not match its order."""

    status_code = 403
