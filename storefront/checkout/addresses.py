"""
Inline address payloads for Zoho contacts.

Zoho rejects a billing or shipping address whose fields add up to more
than 100 characters. Each field is clipped to its own limit first; if the
address is still too long, the least useful fields are shortened in
ADDRESS_TRIM_ORDER until it fits.
"""

from typing import Dict, Optional

from storefront.integrations.contracts.checkout import CheckoutRequest

ADDRESS_TOTAL_LIMIT = 100

ADDRESS_FIELD_LIMITS = {
    "attention": 30,
    "address": 35,
    "street2": 25,
    "city": 20,
    "state": 20,
    "zip": 10,
    "country": 3,
    "phone": 15,
}

# (field, shortest length it may be cut to), first entry is cut first.
ADDRESS_TRIM_ORDER = (
    ("phone", 0),
    ("street2", 0),
    ("country", 2),
    ("attention", 8),
    ("zip", 5),
    ("state", 2),
    ("city", 6),
    ("address", 15),
)


def _clip(value: Optional[str], limit: int) -> str:
    return (value or "").strip()[:limit].rstrip()


def fit_address(fields: Dict[str, Optional[str]]) -> Dict[str, str]:
    address = {key: _clip(fields.get(key), limit) for key, limit in ADDRESS_FIELD_LIMITS.items()}
    excess = sum(len(v) for v in address.values()) - ADDRESS_TOTAL_LIMIT
    for key, floor in ADDRESS_TRIM_ORDER:
        if excess <= 0:
            break
        value = address[key]
        cut = min(excess, max(len(value) - floor, 0))
        if cut:
            address[key] = value[: len(value) - cut].rstrip()
            excess -= len(value) - len(address[key])
    return address


def contact_address(request: CheckoutRequest) -> Dict[str, str]:
    addr = request.shipping_address
    return fit_address(
        {
            "attention": request.customer.full_name,
            "address": addr.address1,
            "street2": addr.address2,
            "city": addr.city,
            "state": addr.state,
            "zip": addr.zip_code,
            "country": addr.country,
            "phone": request.customer.phone,
        }
    )
