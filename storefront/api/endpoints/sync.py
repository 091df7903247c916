import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from storefront.api.dependencies import Services, get_services, require_sync_secret
from storefront.errors import StorefrontError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sync", tags=["Sync"], dependencies=[Depends(require_sync_secret)])
@router.get("/cron/sync-products", tags=["Sync"], dependencies=[Depends(require_sync_secret)])
async def sync_products(services: Services = Depends(get_services)):
    """Rebuild the product snapshot from Zoho Inventory. Called by the scheduler."""
    try:
        result = await services.product_cache.sync_products()
    except StorefrontError as e:
        logger.warning("Sync request failed: %s", e.__class__.__name__)
        status_code, payload = services.error_handler.handle_exception(e)
        headers = {"Retry-After": str(payload["retry_after"])} if "retry_after" in payload else None
        return JSONResponse(status_code=status_code, content=payload, headers=headers)

    return {
        "success": True,
        "productCount": result.product_count,
        "durationMs": result.duration_ms,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
