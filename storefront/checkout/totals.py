from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from storefront.integrations.contracts.checkout import CartItem, OrderTotals
from storefront.utils.config_loader import PricingConfig

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Decimal rounded half-up to cents. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    return int(to_money(value) * 100)


def compute_totals(items: Iterable[CartItem], pricing: PricingConfig) -> OrderTotals:
    subtotal = to_money(sum((Decimal(item.unit_price) * item.quantity for item in items), Decimal("0")))
    tax = to_money(subtotal * Decimal(str(pricing.tax_rate)))
    if subtotal >= Decimal(str(pricing.free_shipping_threshold)):
        shipping = Decimal("0.00")
    else:
        shipping = to_money(pricing.flat_shipping_fee)
    return OrderTotals(subtotal=subtotal, tax=tax, shipping=shipping, total=subtotal + tax + shipping)
