"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.dependencies import Services, build_services
from storefront.api.endpoints.checkout import router as checkout_router
from storefront.api.endpoints.products import router as products_router
from storefront.api.endpoints.sync import router as sync_router
from storefront.api.endpoints.webhooks import router as webhooks_router
from storefront.utils.config_loader import load_settings

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    if services is None:
        services = build_services(load_settings())

    app = FastAPI(
        title="Storefront API",
        description="Product catalog, checkout and webhooks backed by Zoho Inventory and Stripe",
        version="1.0.0",
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (products_router, sync_router, checkout_router, webhooks_router):
        app.include_router(router, prefix="/api/v1")
        app.include_router(router, prefix="/api")  # same routes under /api

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Liveness plus store and token status."""
        svc: Services = request.app.state.services
        stats = svc.product_cache.get_cache_stats()
        return {
            "status": "healthy",
            "store": {"backend": "redis" if svc.settings.redis_url else "memory", "connected": svc.store.ping()},
            "integrations": "real" if svc.token_manager is not None else "mock",
            "tokens": svc.token_manager.status() if svc.token_manager is not None else {},
            "catalog": {"productCount": stats.product_count, "healthy": stats.healthy},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    logger.info("Storefront API ready")
    return app


app = create_app()
