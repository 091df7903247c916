"""
Contracts (data models).

Request/response shapes shared by the catalog cache, the checkout saga and
the webhook receiver. Both the mock and the real clients return these types
so flows never depend on raw vendor dictionaries.
"""

from .interfaces import AccessToken, CheckoutType, Surface, WebhookAck, WebhookEvent
from .catalog import CacheStats, CatalogProduct, CatalogSnapshot, SyncResult
from .checkout import (
    CartItem,
    CheckoutRequest,
    CheckoutResult,
    Contact,
    CustomerInfo,
    Invoice,
    LineItem,
    MappedItem,
    MappingFailure,
    MappingResult,
    MappingWarning,
    OrderTotals,
    PaymentLink,
    SagaProgress,
    SalesOrder,
    ShippingAddress,
)

__all__ = [
    # interfaces
    "AccessToken", "CheckoutType", "Surface", "WebhookAck", "WebhookEvent",
    # catalog
    "CacheStats", "CatalogProduct", "CatalogSnapshot", "SyncResult",
    # checkout
    "CartItem", "CheckoutRequest", "CheckoutResult", "Contact", "CustomerInfo",
    "Invoice", "LineItem", "MappedItem", "MappingFailure", "MappingResult",
    "MappingWarning", "OrderTotals", "PaymentLink", "SagaProgress", "SalesOrder",
    "ShippingAddress",
]
