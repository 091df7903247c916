import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from storefront.api.dependencies import Services, get_services
from storefront.errors import StorefrontError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/{vendor}", tags=["Webhooks"])
async def receive_webhook(vendor: str, request: Request, services: Services = Depends(get_services)):
    """
    Signed webhook intake for Zoho (X-Zoho-Signature) and Stripe (Stripe-Signature).
    Verified deliveries are always acknowledged with 200.
    """
    raw_body = await request.body()
    try:
        ack = await services.receiver.handle(vendor, raw_body, request.headers)
    except StorefrontError as e:
        return JSONResponse(status_code=e.status_code, content={"received": False, "error": e.message})

    return {"received": True, "eventType": ack.event_type, "handled": ack.handled}
