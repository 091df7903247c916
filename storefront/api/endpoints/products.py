from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response

from storefront.api.dependencies import Services, get_services
from storefront.errors import StorefrontError, VendorApiError

router = APIRouter()

IMAGE_MAX_AGE_SECONDS = 86400


@router.get("/products", tags=["Products"])
async def list_products(services: Services = Depends(get_services)):
    products = services.product_cache.get_all_products()
    return {"success": True, "products": [p.to_dict() for p in products], "count": len(products)}


@router.get("/products/sku/{sku}", tags=["Products"])
async def get_product_by_sku(sku: str, services: Services = Depends(get_services)):
    product = services.product_cache.get_product_by_sku(sku)
    if product is None:
        raise HTTPException(status_code=404, detail={"success": False, "error": f"Product with SKU {sku} not found"})
    return {"success": True, "product": product.to_dict()}


@router.get("/products/{product_id}", tags=["Products"])
async def get_product(product_id: str, services: Services = Depends(get_services)):
    product = services.product_cache.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail={"success": False, "error": f"Product {product_id} not found"})
    return {"success": True, "product": product.to_dict()}


@router.get("/cache-status", tags=["Products"])
async def cache_status(services: Services = Depends(get_services)):
    stats = services.product_cache.get_cache_stats()
    recommendations: List[str] = []
    if stats.product_count == 0:
        recommendations.append("Cache is empty. Run a product sync.")
    elif stats.resync_recommended:
        recommendations.append("Cache is older than 24 hours. Run a product sync.")
    sync_status = stats.sync_status or {}
    if sync_status.get("status") == "failed":
        recommendations.append(f"Last sync failed: {sync_status.get('error')}")

    return {
        "success": True,
        "healthy": stats.healthy,
        "productCount": stats.product_count,
        "lastSync": stats.last_sync.isoformat() if stats.last_sync else None,
        "cacheAgeMs": stats.cache_age_ms,
        "cacheAgeHours": round(stats.cache_age_ms / 3_600_000, 2) if stats.cache_age_ms is not None else None,
        "resyncRecommended": stats.resync_recommended,
        "syncStatus": stats.sync_status,
        "recommendations": recommendations,
    }


@router.get("/categories", tags=["Products"])
async def list_categories(services: Services = Depends(get_services)):
    categories = services.product_cache.get_categories()
    return {
        "success": True,
        "categories": [
            {"id": c["id"], "name": c["name"], "slug": c["slug"], "productCount": c["product_count"]}
            for c in categories
        ],
        "count": len(categories),
    }


@router.get("/images/{item_id}", tags=["Products"])
async def item_image(item_id: str, services: Services = Depends(get_services)):
    """Stream the Zoho Inventory image of an item; product records link here."""
    inventory = services.inventory
    try:
        content, content_type = await inventory.download(inventory.path("get_item_image", item_id=item_id))
    except StorefrontError as e:
        if isinstance(e, VendorApiError) and e.status == 404:
            raise HTTPException(status_code=404, detail={"success": False, "error": "Image not found"})
        status_code, payload = services.error_handler.handle_exception(e)
        return JSONResponse(status_code=status_code, content=payload)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Cache-Control": f"public, max-age={IMAGE_MAX_AGE_SECONDS}", "ETag": f'"{item_id}"'},
    )
