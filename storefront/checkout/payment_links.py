"""Self-hosted payment links used when Zoho cannot issue one for an invoice."""

import hashlib
import hmac
from decimal import Decimal
from urllib.parse import urlencode

from storefront.checkout.totals import to_money


def _message(order_id: str, invoice_id: str, amount) -> bytes:
    return f"{order_id}:{invoice_id}:{to_money(amount)}".encode("utf-8")


def sign_payment_token(secret: str, order_id: str, invoice_id: str, amount) -> str:
    if not secret:
        raise ValueError("PAYMENT_LINK_SECRET is not configured.")
    return hmac.new(secret.encode("utf-8"), _message(order_id, invoice_id, amount), hashlib.sha256).hexdigest()


def verify_payment_token(secret: str, token: str, order_id: str, invoice_id: str, amount) -> bool:
    if not secret or not token:
        return False
    expected = sign_payment_token(secret, order_id, invoice_id, amount)
    return hmac.compare_digest(expected, token)


def build_self_hosted_url(
    base_url: str,
    secret: str,
    *,
    order_id: str,
    invoice_id: str,
    invoice_number: str,
    amount: Decimal,
    currency: str,
    request_id: str,
) -> str:
    query = {
        "order_id": order_id,
        "invoice_number": invoice_number,
        "amount": str(to_money(amount)),
        "currency": currency,
        "request_id": request_id,
        "token": sign_payment_token(secret, order_id, invoice_id, amount),
    }
    return f"{base_url.rstrip('/')}/payment/invoice/{invoice_id}?{urlencode(query)}"
