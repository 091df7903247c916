"""
Checkout orchestration against Zoho Inventory.

A checkout is a fixed sequence of vendor writes:

    validate -> find or create contact -> capture address ids
             -> sales order -> invoice -> payment link

Steps run strictly in order. When one fails the caller receives a
SagaStepError carrying the step name and which records already exist, so
support can finish or clean up the order by hand. Created records are not
rolled back. Every create step searches first (contact by email, sales
order by the request id, invoice by the sales order number), so running
the same request again reuses what already exists.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from storefront.checkout.addresses import contact_address
from storefront.checkout.item_mapping import ItemMapper
from storefront.checkout.payment_links import build_self_hosted_url
from storefront.checkout.totals import compute_totals, to_money
from storefront.errors import MalformedResponseError, SagaStepError, StorefrontError
from storefront.integrations.contracts.checkout import (
    CheckoutRequest,
    CheckoutResult,
    Contact,
    Invoice,
    LineItem,
    MappingResult,
    OrderTotals,
    PaymentLink,
    SagaProgress,
    SalesOrder,
)
from storefront.integrations.contracts.interfaces import CheckoutType
from storefront.integrations.policy.response_wrappers import (
    normalize_contact,
    normalize_contact_list,
    normalize_invoice,
    normalize_payment_link,
    normalize_record_list,
    normalize_sales_order,
)
from storefront.utils.config_loader import StorefrontSettings

logger = logging.getLogger(__name__)

SHIPMENT_LEAD_DAYS = 3

STEP_CONTACT = "contact_creation"
STEP_ADDRESS_IDS = "address_id_extraction"
STEP_SALES_ORDER = "sales_order_creation"
STEP_INVOICE = "invoice_creation"
STEP_PAYMENT_LINK = "payment_link_generation"


class CheckoutSaga:
    def __init__(
        self,
        inventory_client,
        settings: StorefrontSettings,
        *,
        item_mapper: Optional[ItemMapper] = None,
        store=None,
        alerter=None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.client = inventory_client
        self.settings = settings
        self.item_mapper = item_mapper or ItemMapper(inventory_client)
        self.store = store
        self.alerter = alerter
        self._today = today

    # --- entry point -----------------------------------------------------------

    async def run(self, request: CheckoutRequest, *, generate_payment_link: bool = True) -> CheckoutResult:
        progress = SagaProgress()
        warnings: List[str] = []
        logger.info(
            "Checkout %s started: type=%s items=%d",
            request.request_id,
            request.checkout_type.value,
            len(request.cart_items),
        )

        try:
            contact = await self._step(STEP_CONTACT, progress, self.find_or_create_contact(request, warnings))
            progress.contact_created = True

            contact = await self._step(STEP_ADDRESS_IDS, progress, self.ensure_address_ids(contact))
            progress.address_ids_captured = True

            mapping = await self._step(STEP_SALES_ORDER, progress, self.map_cart(request, warnings))
            # Only mapped items are ordered, so only they are invoiced and charged.
            totals = compute_totals(mapping.cart_items, self.settings.pricing)
            sales_order = await self._step(
                STEP_SALES_ORDER, progress, self.create_sales_order(request, contact, mapping.line_items, totals)
            )
            progress.sales_order_created = True

            invoice = await self._step(
                STEP_INVOICE, progress, self.create_invoice(request, contact, sales_order, totals, warnings)
            )
            progress.invoice_created = True

            payment_link = None
            if generate_payment_link:
                payment_link = await self._step(
                    STEP_PAYMENT_LINK, progress, self.generate_payment_link(request, sales_order, invoice, totals)
                )
                progress.payment_link_created = True
        except SagaStepError as e:
            logger.error(
                "Checkout %s failed at %s: %s (progress=%s)",
                request.request_id,
                e.step,
                e,
                e.progress.to_dict(),
            )
            if self.alerter is not None:
                self.alerter.alert(
                    "checkout",
                    f"Checkout failed at {e.step}: {e}",
                    {"request_id": request.request_id, "progress": e.progress.to_dict()},
                    thread_key=request.request_id,
                )
            raise

        result = CheckoutResult(
            request_id=request.request_id,
            contact=contact,
            sales_order=sales_order,
            invoice=invoice,
            totals=totals,
            payment_link=payment_link,
            warnings=warnings,
            items=mapping.cart_items,
        )
        self._remember(request, result)
        logger.info(
            "Checkout %s completed: order=%s invoice=%s total=%s",
            request.request_id,
            sales_order.salesorder_number,
            invoice.invoice_number,
            totals.total,
        )
        return result

    async def _step(self, name: str, progress: SagaProgress, work: Awaitable[Any]) -> Any:
        try:
            return await work
        except SagaStepError:
            raise
        except StorefrontError as e:
            progress.failed_step = name
            raise SagaStepError(name, progress, e) from e
        except Exception as e:
            logger.exception("Unexpected error in checkout step %s", name)
            progress.failed_step = name
            raise SagaStepError(name, progress, e) from e

    # --- contact ---------------------------------------------------------------

    async def find_contact_by_email(self, email: str) -> Optional[Contact]:
        raw = await self.client.request("GET", self.client.path("search_contacts"), query={"email": email})
        for entry in normalize_contact_list(raw):
            if str(entry.get("email") or "").lower() == email.lower():
                return normalize_contact(entry)
        return None

    async def get_contact(self, contact_id: str) -> Contact:
        raw = await self.client.request("GET", self.client.path("get_contact", contact_id=contact_id))
        return normalize_contact(raw)

    async def create_contact(self, request: CheckoutRequest) -> Contact:
        customer = request.customer
        address = contact_address(request)
        body = {
            "contact_name": customer.full_name,
            "contact_type": "customer",
            "customer_sub_type": "individual",
            "email": customer.email,
            "phone": customer.phone or "",
            "billing_address": address,
            "shipping_address": address,
            "contact_persons": [
                {
                    "first_name": customer.first_name,
                    "last_name": customer.last_name,
                    "email": customer.email,
                    "phone": customer.phone or "",
                    "is_primary_contact": True,
                }
            ],
        }
        raw = await self.client.request("POST", self.client.path("create_contact"), body=body)
        contact = normalize_contact(raw, created=True)
        logger.info("Created contact %s for checkout %s", contact.contact_id, request.request_id)
        return contact

    async def find_or_create_contact(self, request: CheckoutRequest, warnings: List[str]) -> Contact:
        if request.checkout_type == CheckoutType.EXISTING_CUSTOMER:
            return await self.get_contact(request.existing_customer_id)

        contact = await self.find_contact_by_email(request.customer.email)
        if contact is None:
            contact = await self.create_contact(request)
        else:
            logger.info("Reusing contact %s for checkout %s", contact.contact_id, request.request_id)

        if request.checkout_type == CheckoutType.CREATE_ACCOUNT:
            await self._enable_portal(contact, warnings)
        return contact

    async def _enable_portal(self, contact: Contact, warnings: List[str]) -> None:
        try:
            await self.client.request("POST", self.client.path("enable_portal", contact_id=contact.contact_id))
        except StorefrontError as e:
            logger.warning("Could not enable portal for contact %s: %s", contact.contact_id, e)
            warnings.append(f"Customer portal access could not be enabled: {e}")

    async def ensure_address_ids(self, contact: Contact) -> Contact:
        if not contact.billing_address_id:
            # List views omit addresses; the full record carries them.
            full = await self.get_contact(contact.contact_id)
            full.created = contact.created
            contact = full
        if not contact.billing_address_id:
            raise MalformedResponseError(f"Contact {contact.contact_id} has no billing address id")
        if not contact.shipping_address_id:
            contact.shipping_address_id = contact.billing_address_id
        return contact

    # --- sales order / invoice -------------------------------------------------

    async def map_cart(self, request: CheckoutRequest, warnings: List[str]) -> MappingResult:
        mapping = await self.item_mapper.map_items(request.cart_items)
        warnings.extend(w.message for w in mapping.warnings)
        warnings.extend(f"Item '{f.item_name}' was not added to the order: {f.reason}" for f in mapping.failures)
        return mapping

    async def find_sales_order(self, request_id: str) -> Optional[SalesOrder]:
        raw = await self.client.request(
            "GET", self.client.path("search_sales_orders"), query={"reference_number": request_id}
        )
        for entry in normalize_record_list(raw, "salesorders"):
            if entry.get("reference_number") == request_id and entry.get("status") != "void":
                order = normalize_sales_order({"salesorder": entry})
                order.reused = True
                return order
        return None

    async def create_sales_order(
        self, request: CheckoutRequest, contact: Contact, line_items: List[LineItem], totals: OrderTotals
    ) -> SalesOrder:
        existing = await self.find_sales_order(request.request_id)
        if existing is not None:
            logger.info("Reusing sales order %s for checkout %s", existing.salesorder_number, request.request_id)
            existing.line_items = list(line_items)
            return existing

        today = self._today()
        body = {
            "customer_id": contact.contact_id,
            "billing_address_id": contact.billing_address_id,
            "shipping_address_id": contact.shipping_address_id,
            "date": today.isoformat(),
            "shipment_date": (today + timedelta(days=SHIPMENT_LEAD_DAYS)).isoformat(),
            "reference_number": request.request_id,
            "line_items": [self._line_payload(line) for line in line_items],
            "shipping_charge": float(totals.shipping),
            "notes": request.order_notes or "",
            "sub_total": float(totals.subtotal),
            "tax_total": float(totals.tax),
            "total": float(totals.total),
        }
        raw = await self.client.request("POST", self.client.path("create_sales_order"), body=body)
        order = normalize_sales_order(raw)
        order.line_items = list(line_items)
        logger.info("Created sales order %s for checkout %s", order.salesorder_number, request.request_id)
        return order

    def _line_payload(self, line: LineItem) -> Dict[str, Any]:
        payload = line.to_payload()
        if self.settings.zoho_tax_id:
            payload["tax_id"] = self.settings.zoho_tax_id
        return payload

    async def find_invoice(self, sales_order: SalesOrder) -> Optional[Invoice]:
        raw = await self.client.request(
            "GET", self.client.path("search_invoices"), query={"reference_number": sales_order.salesorder_number}
        )
        for entry in normalize_record_list(raw, "invoices"):
            if entry.get("status") == "void" or entry.get("reference_number") != sales_order.salesorder_number:
                continue
            if str(entry.get("salesorder_id") or sales_order.salesorder_id) != sales_order.salesorder_id:
                continue
            invoice = normalize_invoice({"invoice": entry})
            invoice.reused = True
            return invoice
        return None

    async def create_invoice(
        self,
        request: CheckoutRequest,
        contact: Contact,
        sales_order: SalesOrder,
        totals: OrderTotals,
        warnings: List[str],
    ) -> Invoice:
        if sales_order.reused and sales_order.salesorder_number:
            existing = await self.find_invoice(sales_order)
            if existing is not None:
                logger.info("Reusing invoice %s for checkout %s", existing.invoice_number, request.request_id)
                return existing

        today = self._today()
        terms = self.settings.invoice_payment_terms_days
        body = {
            "customer_id": contact.contact_id,
            "salesorder_id": sales_order.salesorder_id,
            "billing_address_id": contact.billing_address_id,
            "shipping_address_id": contact.shipping_address_id,
            "reference_number": sales_order.salesorder_number or request.request_id,
            "date": today.isoformat(),
            "payment_terms": terms,
            "payment_terms_label": "Due on Receipt" if terms == 0 else f"Net {terms}",
            "due_date": (today + timedelta(days=terms)).isoformat(),
            "line_items": [self._line_payload(line) for line in sales_order.line_items],
            "shipping_charge": float(totals.shipping),
            "sub_total": float(totals.subtotal),
            "tax_total": float(totals.tax),
            "total": float(totals.total),
            "notes": request.order_notes or "",
            "send_invoice": False,
        }
        raw = await self.client.request("POST", self.client.path("create_invoice"), body=body)
        invoice = normalize_invoice(raw)
        logger.info("Created invoice %s for checkout %s", invoice.invoice_number, request.request_id)

        if self.settings.send_invoice_email:
            try:
                await self.client.request(
                    "POST",
                    self.client.path("email_invoice", invoice_id=invoice.invoice_id),
                    body={"to_mail_ids": [request.customer.email]},
                )
            except StorefrontError as e:
                logger.warning("Invoice email for %s failed: %s", invoice.invoice_number, e)
                warnings.append(f"Invoice email could not be sent: {e}")
        return invoice

    # --- payment link ----------------------------------------------------------

    async def generate_payment_link(
        self, request: CheckoutRequest, sales_order: SalesOrder, invoice: Invoice, totals: OrderTotals
    ) -> PaymentLink:
        try:
            raw = await self.client.request(
                "GET", self.client.path("invoice_payment_link", invoice_id=invoice.invoice_id)
            )
            return PaymentLink(url=normalize_payment_link(raw), source="vendor")
        except StorefrontError as e:
            logger.warning("Vendor payment link unavailable for %s, using self-hosted: %s", invoice.invoice_number, e)

        url = build_self_hosted_url(
            self.settings.public_base_url,
            self.settings.payment_link_secret,
            order_id=sales_order.salesorder_id,
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            amount=totals.total,
            currency=self.settings.pricing.currency,
            request_id=request.request_id,
        )
        return PaymentLink(url=url, source="self_hosted")

    # --- payments --------------------------------------------------------------

    async def record_payment(
        self, contact_id: str, invoice_id: str, amount, reference: str, payment_mode: str = "creditcard"
    ) -> Dict[str, Any]:
        amount = float(to_money(amount))
        body = {
            "customer_id": contact_id,
            "payment_mode": payment_mode,
            "amount": amount,
            "date": self._today().isoformat(),
            "reference_number": reference,
            "invoices": [{"invoice_id": invoice_id, "amount_applied": amount}],
        }
        raw = await self.client.request("POST", self.client.path("record_payment"), body=body)
        logger.info("Recorded payment %s against invoice %s", reference, invoice_id)
        return raw.get("payment") or {}

    # --- bookkeeping -----------------------------------------------------------

    def _remember(self, request: CheckoutRequest, result: CheckoutResult) -> None:
        if self.store is None:
            return
        record = order_record(request, result, currency=self.settings.pricing.currency)
        self.store.set_order_record(f"so:{result.sales_order.salesorder_id}", record)
        self.store.set_order_record(f"request:{request.request_id}", record)


def order_record(request: CheckoutRequest, result: CheckoutResult, *, currency: str, status: str = "pending_payment") -> Dict[str, Any]:
    return {
        "request_id": request.request_id,
        "order_id": result.sales_order.salesorder_id,
        "order_number": result.sales_order.salesorder_number,
        "invoice_id": result.invoice.invoice_id,
        "invoice_number": result.invoice.invoice_number,
        "contact_id": result.contact.contact_id,
        "status": status,
        "currency": currency,
        "totals": result.totals.as_floats(),
        "customer": {
            "email": request.customer.email,
            "first_name": request.customer.first_name,
            "last_name": request.customer.last_name,
        },
        "shipping_state": request.shipping_address.state,
        "items": [
            {"name": i.name, "sku": i.sku, "quantity": i.quantity, "price": float(i.unit_price)}
            for i in (result.items or request.cart_items)
        ],
        "payment_url": result.payment_link.url if result.payment_link else None,
    }
