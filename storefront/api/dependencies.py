"""
Service wiring and request dependencies.

Mock vs real integrations and in-memory vs Redis storage are decided here,
once, when the app is built:
- INTEGRATIONS_MODE=real|mock (defaults to real when Zoho credentials exist)
- REDIS_URL set -> Redis store, otherwise the in-memory store
- STRIPE_SECRET_KEY set -> Stripe, otherwise the mock payments client
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Header, HTTPException, Request, status

from storefront.catalog.product_cache import ProductCache
from storefront.checkout.payment_first import PaymentFirstCheckout
from storefront.checkout.saga import CheckoutSaga
from storefront.checkout.verification import CheckoutVerifier
from storefront.database.redis import RedisCache as MemoryCache
from storefront.database.redis_real import RedisCache
from storefront.error_handler import ErrorHandler
from storefront.integrations.clients.mocks.inventory import MockInventoryClient
from storefront.integrations.clients.mocks.payments import MockPaymentsClient
from storefront.integrations.clients.real_http.stripe_payments import StripePaymentsClient
from storefront.integrations.contracts.interfaces import Surface
from storefront.integrations.zoho.capabilities import load_capabilities
from storefront.integrations.zoho.client import build_zoho_clients
from storefront.integrations.zoho.token_manager import TokenManager
from storefront.notifications.email import EmailNotifier
from storefront.notifications.ops_alerts import OpsAlerter
from storefront.utils.config_loader import StorefrontSettings
from storefront.webhooks.handlers import WebhookHandlers
from storefront.webhooks.receiver import WebhookReceiver

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: StorefrontSettings
    store: Any
    inventory: Any
    payments: Any
    token_manager: Optional[TokenManager]
    alerter: OpsAlerter
    notifier: EmailNotifier
    product_cache: ProductCache
    saga: CheckoutSaga
    payment_first: PaymentFirstCheckout
    verifier: CheckoutVerifier
    receiver: WebhookReceiver
    error_handler: ErrorHandler


def build_services(
    settings: StorefrontSettings,
    *,
    store=None,
    inventory=None,
    payments=None,
    alerter: Optional[OpsAlerter] = None,
) -> Services:
    if store is None:
        store = RedisCache(settings.redis_url) if settings.redis_url else MemoryCache()

    token_manager = None
    if inventory is None:
        if settings.use_real_integrations:
            token_manager = TokenManager(settings)
            clients = build_zoho_clients(settings, load_capabilities(), token_manager)
            inventory = clients[Surface.INVENTORY]
        else:
            logger.warning("Using MOCK Zoho Inventory client")
            inventory = MockInventoryClient()

    if payments is None:
        if settings.stripe_secret_key:
            payments = StripePaymentsClient(settings.stripe_secret_key, settings.stripe_webhook_secret)
        else:
            logger.warning("Using MOCK payments client")
            payments = MockPaymentsClient(settings.stripe_webhook_secret or "whsec_mock")

    alerter = alerter or OpsAlerter(settings.slack_token, settings.slack_channel)
    notifier = EmailNotifier(inventory, admin_email=settings.admin_email)
    saga = CheckoutSaga(inventory, settings, store=store, alerter=alerter)
    handlers = WebhookHandlers(notifier, saga=saga, store=store, alerter=alerter)

    return Services(
        settings=settings,
        store=store,
        inventory=inventory,
        payments=payments,
        token_manager=token_manager,
        alerter=alerter,
        notifier=notifier,
        product_cache=ProductCache(
            inventory,
            store,
            display_labels=settings.display_filter_labels,
            ttl_seconds=settings.cache_ttl_seconds,
            stale_after_hours=settings.stale_after_hours,
            alerter=alerter,
        ),
        saga=saga,
        payment_first=PaymentFirstCheckout(payments, settings, store=store),
        verifier=CheckoutVerifier(payments, inventory, store, payment_link_secret=settings.payment_link_secret),
        receiver=WebhookReceiver(settings, handlers.table(), payments_client=payments, store=store, alerter=alerter),
        error_handler=ErrorHandler(),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def require_sync_secret(
    request: Request,
    authorization: str = Header(default=None),
):
    settings: StorefrontSettings = request.app.state.services.settings
    if not settings.sync_secret:
        logger.error("Sync requested but SYNC_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"success": False, "error": "Sync secret is not configured"},
        )

    candidate = (authorization or "").strip()
    if candidate.lower().startswith("bearer "):
        candidate = candidate[7:].strip()

    ok = bool(candidate) and hmac.compare_digest(candidate, settings.sync_secret)
    if not ok:
        logger.warning("Rejected sync request: path=%s header_present=%s", request.url.path, bool(authorization))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"success": False, "error": "Unauthorized"},
        )
