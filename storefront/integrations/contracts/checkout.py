from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .interfaces import CheckoutType


# ---------------------------------------------------------------------------
# Checkout input
# ---------------------------------------------------------------------------

@dataclass
class CustomerInfo:
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class ShippingAddress:
    address1: str
    city: str
    state: str
    zip_code: str
    address2: Optional[str] = None
    country: str = "US"


@dataclass
class CartItem:
    product_id: Optional[str]
    name: str
    unit_price: Decimal
    quantity: int
    sku: Optional[str] = None


@dataclass
class CheckoutRequest:
    customer: CustomerInfo
    shipping_address: ShippingAddress
    cart_items: List[CartItem]
    request_id: str
    order_notes: Optional[str] = None
    checkout_type: CheckoutType = CheckoutType.GUEST
    customer_password: Optional[str] = None
    existing_customer_id: Optional[str] = None


@dataclass
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_floats(self) -> Dict[str, float]:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
        }


# ---------------------------------------------------------------------------
# Vendor records created by the saga
# ---------------------------------------------------------------------------

@dataclass
class Contact:
    contact_id: str
    email: str
    billing_address_id: Optional[str] = None
    shipping_address_id: Optional[str] = None
    created: bool = False


@dataclass
class SalesOrder:
    salesorder_id: str
    salesorder_number: str
    line_items: List["LineItem"] = field(default_factory=list)
    reused: bool = False


@dataclass
class Invoice:
    invoice_id: str
    invoice_number: str
    reused: bool = False


@dataclass
class PaymentLink:
    url: str
    source: str  # "vendor" or "self_hosted"


# ---------------------------------------------------------------------------
# Item mapping
# ---------------------------------------------------------------------------

@dataclass
class LineItem:
    """Exactly the fields the vendor accepts on a sales order line."""

    item_id: str
    name: str
    description: str
    rate: float
    quantity: int
    unit: str = "qty"
    item_order: int = 1

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MappingWarning:
    item_name: str
    method: str
    message: str


@dataclass
class MappingFailure:
    item_name: str
    sku: Optional[str]
    product_id: Optional[str]
    reason: str


@dataclass
class MappedItem:
    line_item: LineItem
    method: str  # "sku", "name" or "id"
    warning: Optional[MappingWarning] = None
    cart_item: Optional[CartItem] = None


@dataclass
class MappingResult:
    mapped: List[MappedItem] = field(default_factory=list)
    failures: List[MappingFailure] = field(default_factory=list)

    @property
    def line_items(self) -> List[LineItem]:
        return [m.line_item for m in self.mapped]

    @property
    def cart_items(self) -> List[CartItem]:
        return [m.cart_item for m in self.mapped if m.cart_item is not None]

    @property
    def warnings(self) -> List[MappingWarning]:
        return [m.warning for m in self.mapped if m.warning is not None]


# ---------------------------------------------------------------------------
# Saga bookkeeping
# ---------------------------------------------------------------------------

@dataclass
class SagaProgress:
    contact_created: bool = False
    address_ids_captured: bool = False
    sales_order_created: bool = False
    invoice_created: bool = False
    payment_link_created: bool = False
    failed_step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contactCreated": self.contact_created,
            "addressIdsCaptured": self.address_ids_captured,
            "salesOrderCreated": self.sales_order_created,
            "invoiceCreated": self.invoice_created,
            "paymentLinkCreated": self.payment_link_created,
            "failedStep": self.failed_step,
        }


@dataclass
class CheckoutResult:
    request_id: str
    contact: Contact
    sales_order: SalesOrder
    invoice: Invoice
    totals: OrderTotals
    payment_link: Optional[PaymentLink] = None
    warnings: List[str] = field(default_factory=list)
    items: List[CartItem] = field(default_factory=list)
