"""
Zoho Inventory MOCK client.

In-memory stand-in for storefront.integrations.zoho.client.ZohoClient on
the Inventory surface. It answers the same paths with the same response
shapes (including `code: 0`), records every call, and can be told to fail a
named endpoint via `fail_on` so tests can drive the checkout saga into each
failure step.
"""

import itertools
import logging
import re
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

from storefront.errors import VendorApiError

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "list_items": "/items",
    "get_item": "/items/{item_id}",
    "get_item_image": "/items/{item_id}/image",
    "search_contacts": "/contacts",
    "get_contact": "/contacts/{contact_id}",
    "create_contact": "/contacts",
    "enable_portal": "/contacts/{contact_id}/portal/enable",
    "search_sales_orders": "/salesorders",
    "create_sales_order": "/salesorders",
    "get_sales_order": "/salesorders/{salesorder_id}",
    "search_invoices": "/invoices",
    "create_invoice": "/invoices",
    "get_invoice": "/invoices/{invoice_id}",
    "invoice_payment_link": "/invoices/{invoice_id}/paymentlink",
    "email_invoice": "/invoices/{invoice_id}/email",
    "record_payment": "/customerpayments",
}


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def _flag(value: Any) -> List[Dict[str, Any]]:
    return [{"customfield_id": "cf1", "label": "Display in App", "api_name": "cf_display_in_app", "value": value}]


SEED_ITEMS: List[Dict[str, Any]] = [
    {
        "item_id": "4600000000001",
        "name": "Trail Running Shoe",
        "sku": "SHOE-TRAIL-01",
        "rate": 89.5,
        "status": "active",
        "stock_on_hand": 14,
        "category_id": "cat-shoes",
        "category_name": "Shoes",
        "image_id": "img-1",
        "custom_fields": _flag(True),
    },
    {
        "item_id": "4600000000002",
        "name": "Merino Hiking Sock",
        "sku": "SOCK-MERINO",
        "rate": 15.0,
        "status": "active",
        "stock_on_hand": "120",
        "category_id": "cat-socks",
        "category_name": "Socks",
        "custom_fields": _flag("true"),
    },
    {
        "item_id": "4600000000003",
        "name": "Internal Packaging Box",
        "sku": "BOX-INT",
        "rate": 1.0,
        "status": "active",
        "stock_on_hand": 900,
        "custom_fields": _flag(False),
    },
    {
        "item_id": "4600000000004",
        "name": "Discontinued Rain Jacket",
        "sku": "JKT-RAIN-OLD",
        "rate": 120.0,
        "status": "inactive",
        "stock_on_hand": 0,
        "custom_fields": _flag(True),
    },
]


# 1x1 transparent PNG served for every item that has an image_id.
MOCK_IMAGE_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000100e527de"
    "fc0000000049454e44ae426082"
)


class MockInventoryClient:
    def __init__(
        self,
        items: Optional[List[Dict[str, Any]]] = None,
        *,
        payment_links_enabled: bool = True,
        fail_on: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.items: List[Dict[str, Any]] = deepcopy(SEED_ITEMS if items is None else items)
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.sales_orders: Dict[str, Dict[str, Any]] = {}
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self.payments: List[Dict[str, Any]] = []
        self.emails: List[Dict[str, Any]] = []
        self.portal_enabled: List[str] = []
        self.payment_links_enabled = payment_links_enabled
        self.fail_on: Dict[str, Exception] = dict(fail_on or {})
        self.calls: List[Tuple[str, str, Any, Dict[str, Any]]] = []
        self._ids = itertools.count(1)
        self._routes = [
            (method, name, re.compile("^" + re.sub(r"\{[^}]+\}", r"([^/]+)", tpl) + "$"))
            for method, name, tpl in self._route_table()
        ]

    @staticmethod
    def _route_table():
        methods = {
            "list_items": "GET",
            "get_item": "GET",
            "get_item_image": "GET",
            "search_contacts": "GET",
            "get_contact": "GET",
            "create_contact": "POST",
            "enable_portal": "POST",
            "search_sales_orders": "GET",
            "create_sales_order": "POST",
            "get_sales_order": "GET",
            "search_invoices": "GET",
            "create_invoice": "POST",
            "get_invoice": "GET",
            "invoice_payment_link": "GET",
            "email_invoice": "POST",
            "record_payment": "POST",
        }
        return [(methods[name], name, tpl) for name, tpl in ENDPOINTS.items()]

    def path(self, name: str, **params: str) -> str:
        return ENDPOINTS[name].format(**params)

    def calls_to(self, name: str) -> int:
        return sum(1 for method, path, _, _ in self.calls if self._match(method, path)[0] == name)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    def _match(self, method: str, path: str) -> Tuple[Optional[str], Tuple[str, ...]]:
        for route_method, name, pattern in self._routes:
            m = pattern.match(path)
            if m and route_method == method.upper():
                return name, m.groups()
        return None, ()

    async def request(self, method: str, path: str, body: Any = None, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = dict(query or {})
        self.calls.append((method.upper(), path, deepcopy(body), query))
        name, args = self._match(method, path)
        if name is None:
            raise VendorApiError(f"Zoho API error (404): no route for {method} {path}", status=404)
        if name in self.fail_on:
            raise self.fail_on[name]
        handler = getattr(self, f"_handle_{name}")
        return handler(*args, body=body, query=query)

    async def download(self, path: str) -> Tuple[bytes, str]:
        self.calls.append(("GET", path, None, {}))
        name, args = self._match("GET", path)
        if name != "get_item_image":
            raise VendorApiError(f"Zoho API error (404): no download at {path}", status=404)
        if name in self.fail_on:
            raise self.fail_on[name]
        item = next((i for i in self.items if i["item_id"] == args[0]), None)
        if item is None or not item.get("image_id"):
            raise VendorApiError("Zoho API error (404): Item has no image.", status=404)
        return MOCK_IMAGE_BYTES, "image/png"

    # --- items -----------------------------------------------------------------

    def _handle_list_items(self, *, body, query):
        items = self.items
        if query.get("sku"):
            items = [i for i in items if i.get("sku") == query["sku"]]
        if query.get("item_name"):
            needle = str(query["item_name"]).lower()
            items = [i for i in items if needle in str(i.get("name", "")).lower()]
        page = int(query.get("page", 1))
        per_page = int(query.get("per_page", 200))
        start = (page - 1) * per_page
        chunk = items[start:start + per_page]
        return {
            "code": 0,
            "message": "success",
            "items": deepcopy(chunk),
            "page_context": {"page": page, "per_page": per_page, "has_more_page": start + per_page < len(items)},
        }

    def _handle_get_item(self, item_id, *, body, query):
        for item in self.items:
            if item["item_id"] == item_id:
                return {"code": 0, "message": "success", "item": deepcopy(item)}
        raise VendorApiError("Zoho API error (404): Item does not exist.", status=404, vendor_code=1002)

    # --- contacts --------------------------------------------------------------

    def _handle_search_contacts(self, *, body, query):
        email = str(query.get("email") or "").lower()
        found = [
            # List views carry no address objects.
            {"contact_id": c["contact_id"], "contact_name": c["contact_name"], "email": c["email"]}
            for c in self.contacts.values()
            if not email or c["email"].lower() == email
        ]
        return {"code": 0, "message": "success", "contacts": found}

    def _handle_get_contact(self, contact_id, *, body, query):
        contact = self.contacts.get(contact_id)
        if contact is None:
            raise VendorApiError("Zoho API error (404): Contact does not exist.", status=404)
        return {"code": 0, "message": "success", "contact": deepcopy(contact)}

    def _handle_create_contact(self, *, body, query):
        contact_id = self._next_id("46000001")
        contact = dict(body or {})
        contact["contact_id"] = contact_id
        for kind in ("billing_address", "shipping_address"):
            if isinstance(contact.get(kind), dict):
                contact[kind] = dict(contact[kind], address_id=self._next_id("addr"))
        self.contacts[contact_id] = contact
        return {"code": 0, "message": "The contact has been added.", "contact": deepcopy(contact)}

    def _handle_enable_portal(self, contact_id, *, body, query):
        self.portal_enabled.append(contact_id)
        return {"code": 0, "message": "Client portal preferences have been updated"}

    # --- orders / invoices / payments ------------------------------------------

    def _handle_create_sales_order(self, *, body, query):
        order_id = self._next_id("46000002")
        order = dict(body or {}, salesorder_id=order_id, salesorder_number=f"SO-{len(self.sales_orders) + 1:05d}")
        self.sales_orders[order_id] = order
        return {"code": 0, "message": "Sales Order has been created.", "salesorder": deepcopy(order)}

    def _handle_search_sales_orders(self, *, body, query):
        reference = query.get("reference_number")
        found = [
            {k: o.get(k) for k in ("salesorder_id", "salesorder_number", "reference_number", "customer_id", "total")}
            for o in self.sales_orders.values()
            if not reference or o.get("reference_number") == reference
        ]
        return {"code": 0, "message": "success", "salesorders": found}

    def _handle_get_sales_order(self, salesorder_id, *, body, query):
        order = self.sales_orders.get(salesorder_id)
        if order is None:
            raise VendorApiError("Zoho API error (404): Sales order does not exist.", status=404)
        return {"code": 0, "message": "success", "salesorder": deepcopy(order)}

    def _handle_create_invoice(self, *, body, query):
        invoice_id = self._next_id("46000003")
        invoice = dict(body or {}, invoice_id=invoice_id, invoice_number=f"INV-{len(self.invoices) + 1:05d}", status="sent")
        self.invoices[invoice_id] = invoice
        return {"code": 0, "message": "The invoice has been created.", "invoice": deepcopy(invoice)}

    def _handle_search_invoices(self, *, body, query):
        reference = query.get("reference_number")
        found = [
            {k: i.get(k) for k in ("invoice_id", "invoice_number", "reference_number", "status", "total")}
            for i in self.invoices.values()
            if not reference or i.get("reference_number") == reference
        ]
        return {"code": 0, "message": "success", "invoices": found}

    def _handle_get_invoice(self, invoice_id, *, body, query):
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise VendorApiError("Zoho API error (404): Invoice does not exist.", status=404)
        return {"code": 0, "message": "success", "invoice": deepcopy(invoice)}

    def _handle_invoice_payment_link(self, invoice_id, *, body, query):
        if not self.payment_links_enabled:
            raise VendorApiError("Zoho API error: Payment gateway not configured", status=400, vendor_code=9013)
        return {
            "code": 0,
            "message": "success",
            "payment_link": {"payment_link_url": f"https://payments.zoho.com/mock/invoice/{invoice_id}"},
        }

    def _handle_email_invoice(self, invoice_id, *, body, query):
        self.emails.append({"invoice_id": invoice_id, **(body or {})})
        return {"code": 0, "message": "Your invoice has been sent."}

    def _handle_record_payment(self, *, body, query):
        payment = dict(body or {}, payment_id=self._next_id("46000004"))
        self.payments.append(payment)
        for applied in payment.get("invoices", []):
            invoice = self.invoices.get(applied.get("invoice_id"))
            if invoice is not None:
                invoice["status"] = "paid"
        return {"code": 0, "message": "The payment has been recorded.", "payment": deepcopy(payment)}
