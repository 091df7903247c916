import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from storefront.api.dependencies import Services, get_services
from storefront.checkout.validation import parse_checkout
from storefront.errors import (
    CheckoutValidationError,
    OrderNotFoundError,
    PaymentTokenError,
    SagaStepError,
    StorefrontError,
)
from storefront.integrations.contracts.interfaces import CheckoutType

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutBody(BaseModel):
    """Loose envelope; field-level checks happen in parse_checkout so clients get a 400 with details."""

    model_config = ConfigDict(extra="allow")

    customerInfo: Optional[Dict[str, Any]] = None
    shippingAddress: Optional[Dict[str, Any]] = None
    cartItems: Optional[List[Any]] = None
    orderNotes: Optional[str] = None
    checkoutType: Optional[str] = None
    customerPassword: Optional[str] = None
    existingCustomerId: Optional[str] = None


class VerifyBody(BaseModel):
    paymentIntentId: Optional[str] = Field(default=None, description="Stripe PaymentIntent id")
    orderId: Optional[str] = Field(default=None, description="Zoho sales order id")
    sessionId: Optional[str] = Field(default=None, description="Stripe Checkout session id")
    invoiceId: Optional[str] = Field(default=None, description="Zoho invoice id of a self-hosted payment link")
    amount: Optional[Decimal] = Field(default=None, description="Amount carried by the payment link")
    token: Optional[str] = Field(default=None, description="Payment link token")
    payment_intent: Optional[str] = None
    order_id: Optional[str] = None
    session_id: Optional[str] = None


def new_request_id(prefix: str = "guest") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _request_prefix(checkout_type: Optional[str]) -> str:
    try:
        return CheckoutType(checkout_type or CheckoutType.GUEST.value).value
    except ValueError:
        return CheckoutType.GUEST.value


def _parse(body: CheckoutBody, services: Services):
    payload = body.model_dump(exclude_none=True)
    request_id = new_request_id(_request_prefix(payload.get("checkoutType")))
    try:
        return parse_checkout(payload, request_id), request_id, None
    except CheckoutValidationError as e:
        logger.info("Checkout %s rejected: %s", request_id, e.details)
        status_code, content = services.error_handler.validation_failure(e, request_id)
        return None, request_id, JSONResponse(status_code=status_code, content=content)


def _money(value) -> float:
    return float(value)


@router.post("/checkout", tags=["Checkout"])
async def checkout(body: CheckoutBody, services: Services = Depends(get_services)):
    request, request_id, rejection = _parse(body, services)
    if rejection is not None:
        return rejection

    try:
        result = await services.saga.run(request)
    except SagaStepError as e:
        status_code, content = services.error_handler.checkout_failure(e, request_id)
        headers = {"Retry-After": str(content["retry_after"])} if "retry_after" in content else None
        return JSONResponse(status_code=status_code, content=content, headers=headers)

    totals = result.totals
    return {
        "success": True,
        "request_id": request_id,
        "order": {
            "orderId": result.sales_order.salesorder_id,
            "orderNumber": result.sales_order.salesorder_number,
            "invoiceId": result.invoice.invoice_id,
            "invoiceNumber": result.invoice.invoice_number,
            "contactId": result.contact.contact_id,
            "subtotal": _money(totals.subtotal),
            "tax": _money(totals.tax),
            "shipping": _money(totals.shipping),
            "total": _money(totals.total),
            "currency": services.settings.pricing.currency,
        },
        "payment": {"url": result.payment_link.url, "source": result.payment_link.source},
        "warnings": result.warnings,
    }


@router.post("/checkout/payment-intent", tags=["Checkout"])
async def create_payment_intent(body: CheckoutBody, services: Services = Depends(get_services)):
    request, request_id, rejection = _parse(body, services)
    if rejection is not None:
        return rejection

    try:
        created = await services.payment_first.create_payment_intent(request)
    except CheckoutValidationError as e:
        status_code, content = services.error_handler.validation_failure(e, request_id)
        return JSONResponse(status_code=status_code, content=content)
    except StorefrontError as e:
        status_code, content = services.error_handler.handle_exception(e, {"request_id": request_id})
        return JSONResponse(status_code=status_code, content=content)

    totals = created["totals"]
    return {
        "success": True,
        "request_id": request_id,
        "order": {
            "subtotal": _money(totals.subtotal),
            "tax": _money(totals.tax),
            "shipping": _money(totals.shipping),
            "total": _money(totals.total),
            "currency": services.settings.pricing.currency,
        },
        "payment": {"clientSecret": created["client_secret"], "paymentIntentId": created["payment_intent_id"]},
    }


@router.post("/checkout/verify", tags=["Checkout"])
async def verify_checkout(body: VerifyBody, services: Services = Depends(get_services)):
    intent_id = body.paymentIntentId or body.payment_intent
    order_id = body.orderId or body.order_id
    session_id = body.sessionId or body.session_id
    if body.token is not None:
        return await _verify_payment_link(body, order_id, services)
    if not (intent_id or order_id or session_id):
        raise HTTPException(status_code=400, detail={"error": "paymentIntentId, orderId or sessionId is required"})

    try:
        order = await services.verifier.verify(payment_intent_id=intent_id, order_id=order_id, session_id=session_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": e.message})
    except StorefrontError as e:
        status_code, content = services.error_handler.handle_exception(e)
        return JSONResponse(status_code=status_code, content=content)
    return {"success": True, "order": order}


async def _verify_payment_link(body: VerifyBody, order_id: Optional[str], services: Services):
    if not (order_id and body.invoiceId and body.amount is not None):
        raise HTTPException(status_code=400, detail={"error": "orderId, invoiceId, amount and token are required"})
    try:
        order = await services.verifier.verify_payment_link(
            order_id=order_id, invoice_id=body.invoiceId, amount=body.amount, token=body.token
        )
    except PaymentTokenError as e:
        raise HTTPException(status_code=403, detail={"error": e.message})
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": e.message})
    except StorefrontError as e:
        status_code, content = services.error_handler.handle_exception(e)
        return JSONResponse(status_code=status_code, content=content)
    return {"success": True, "order": order}
