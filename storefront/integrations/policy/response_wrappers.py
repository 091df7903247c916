from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from storefront.errors import MalformedResponseError
from storefront.integrations.contracts.catalog import CatalogProduct
from storefront.integrations.contracts.checkout import Contact, Invoice, SalesOrder

IMAGE_FILE_TYPES = {"jpg", "jpeg", "png", "gif", "webp"}


class ContactRecordModel(BaseModel):
    contact_id: str
    email: str = ""
    billing_address_id: Optional[str] = None
    shipping_address_id: Optional[str] = None


class SalesOrderRecordModel(BaseModel):
    salesorder_id: str
    salesorder_number: str


class InvoiceRecordModel(BaseModel):
    invoice_id: str
    invoice_number: str


# ---------------------------------------------------------------------------
# Inventory items
# ---------------------------------------------------------------------------

def normalize_item_page(raw: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
    """Items of one `GET /items` page and whether another page follows."""
    items = raw.get("items")
    if not isinstance(items, list):
        raise MalformedResponseError("Item list response has no 'items' array", payload=raw)
    page_context = raw.get("page_context") or {}
    return [i for i in items if isinstance(i, dict)], bool(page_context.get("has_more_page"))


def normalize_item(raw: Dict[str, Any]) -> Dict[str, Any]:
    item = raw.get("item")
    if not isinstance(item, dict) or not item.get("item_id"):
        raise MalformedResponseError("Item response has no 'item' object", payload=raw)
    return item


def normalize_flag_key(value: str) -> str:
    key = (value or "").strip().lower().replace(" ", "_")
    return key[3:] if key.startswith("cf_") else key


def extract_custom_flags(item: Dict[str, Any]) -> Dict[str, Any]:
    """Custom field values keyed by normalized label (lowercase, no `cf_` prefix) and by customfield_id."""
    flags: Dict[str, Any] = {}
    for key, value in item.items():
        if key.startswith("cf_") and not key.endswith("_unformatted"):
            unformatted = item.get(f"{key}_unformatted")
            flags[normalize_flag_key(key)] = unformatted if unformatted is not None else value

    fields = item.get("custom_fields") or []
    if not isinstance(fields, list):
        raise MalformedResponseError("Item 'custom_fields' is not a list", payload=item)
    for field in fields:
        if not isinstance(field, dict):
            continue
        for name_key in ("label", "field_name", "api_name"):
            name = field.get(name_key)
            if name:
                flags[normalize_flag_key(str(name))] = field.get("value")
        if field.get("customfield_id"):
            flags[str(field["customfield_id"])] = field.get("value")
    return flags


def _parse_stock(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _collect_images(item: Dict[str, Any]) -> Tuple[str, ...]:
    images: List[str] = []
    if item.get("image_id"):
        images.append(f"/api/images/{item['item_id']}")
    for doc in item.get("documents") or []:
        if not isinstance(doc, dict):
            continue
        if str(doc.get("file_type") or "").lower() in IMAGE_FILE_TYPES:
            url = doc.get("file_url") or doc.get("download_url")
            if url:
                images.append(url)
    return tuple(images)


def normalize_inventory_product(item: Dict[str, Any], *, synced_at: Optional[str] = None) -> CatalogProduct:
    item_id = _first_non_empty(item, "item_id")
    try:
        price = float(item.get("rate") or item.get("min_rate") or 0)
    except (TypeError, ValueError) as exc:
        raise MalformedResponseError(f"Invalid item rate: {item.get('rate')!r}", payload=item) from exc

    return CatalogProduct(
        id=str(item_id),
        name=str(item.get("name") or ""),
        price=price,
        sku=str(item.get("sku") or ""),
        stock_count=_parse_stock(item.get("stock_on_hand")),
        category_id=item.get("category_id"),
        category_name=item.get("category_name") or item.get("group_name"),
        description=str(item.get("description") or ""),
        images=_collect_images(item),
        custom_flags=MappingProxyType(extract_custom_flags(item)),
        status=str(item.get("status") or "active"),
        last_synced_at=synced_at,
    )


# ---------------------------------------------------------------------------
# Contacts, sales orders, invoices
# ---------------------------------------------------------------------------

def normalize_record_list(raw: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    """Entries of a list/search response such as `{"salesorders": [...]}`."""
    records = raw.get(key)
    if not isinstance(records, list):
        raise MalformedResponseError(f"Search response has no '{key}' array", payload=raw)
    return [r for r in records if isinstance(r, dict)]


def normalize_contact_list(raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    return normalize_record_list(raw, "contacts")


def normalize_contact(raw: Dict[str, Any], *, created: bool = False) -> Contact:
    contact = raw.get("contact", raw)
    if not isinstance(contact, dict):
        raise MalformedResponseError("Contact response has no 'contact' object", payload=raw)

    billing = contact.get("billing_address") or {}
    shipping = contact.get("shipping_address") or {}
    model = _build_model(
        ContactRecordModel,
        {
            "contact_id": str(_first_non_empty(contact, "contact_id")),
            "email": contact.get("email") or "",
            "billing_address_id": _address_id(billing),
            "shipping_address_id": _address_id(shipping),
        },
        raw,
    )
    return Contact(
        contact_id=model.contact_id,
        email=model.email,
        billing_address_id=model.billing_address_id,
        shipping_address_id=model.shipping_address_id,
        created=created,
    )


def normalize_sales_order(raw: Dict[str, Any]) -> SalesOrder:
    order = raw.get("salesorder")
    if not isinstance(order, dict):
        raise MalformedResponseError("Sales order response has no 'salesorder' object", payload=raw)
    model = _build_model(
        SalesOrderRecordModel,
        {
            "salesorder_id": str(_first_non_empty(order, "salesorder_id")),
            "salesorder_number": str(_first_non_empty(order, "salesorder_number", default="")),
        },
        raw,
    )
    return SalesOrder(salesorder_id=model.salesorder_id, salesorder_number=model.salesorder_number)


def normalize_invoice(raw: Dict[str, Any]) -> Invoice:
    invoice = raw.get("invoice")
    if not isinstance(invoice, dict):
        raise MalformedResponseError("Invoice response has no 'invoice' object", payload=raw)
    model = _build_model(
        InvoiceRecordModel,
        {
            "invoice_id": str(_first_non_empty(invoice, "invoice_id")),
            "invoice_number": str(_first_non_empty(invoice, "invoice_number", default="")),
        },
        raw,
    )
    return Invoice(invoice_id=model.invoice_id, invoice_number=model.invoice_number)


def normalize_payment_link(raw: Dict[str, Any]) -> str:
    link = raw.get("payment_link")
    url = None
    if isinstance(link, dict):
        url = link.get("payment_link_url") or link.get("url")
    elif isinstance(link, str):
        url = link
    if not url:
        raise MalformedResponseError("Payment link response has no URL", payload=raw)
    return str(url)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _address_id(address: Any) -> Optional[str]:
    if not isinstance(address, dict):
        return None
    value = address.get("address_id")
    return str(value) if value else None


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise MalformedResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise MalformedResponseError(f"Response validation failed: {exc}", payload=raw) from exc
