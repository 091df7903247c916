import json

import pytest

from storefront.checkout.payment_first import PaymentFirstCheckout
from storefront.checkout.validation import parse_checkout
from storefront.errors import WebhookConfigurationError, WebhookPayloadError, WebhookSignatureError
from storefront.notifications.email import EmailNotifier
from storefront.webhooks.handlers import WebhookHandlers
from storefront.webhooks.receiver import WebhookReceiver
from storefront.webhooks.signatures import compute_zoho_signature


def _zoho_body(event_type, **data):
    return json.dumps({"event_id": "evt-1", "event_type": event_type, "data": data}).encode()


def _zoho_headers(body, secret="zoho-secret"):
    return {"X-Zoho-Signature": compute_zoho_signature(secret, body)}


def _receiver(settings, handlers, **kwargs):
    return WebhookReceiver(settings, handlers, **kwargs)


@pytest.mark.asyncio
async def test_valid_zoho_signature_dispatches(settings, store):
    seen = []

    async def on_shipped(event):
        seen.append(event)

    receiver = _receiver(settings, {"order.shipped": on_shipped}, store=store)
    body = _zoho_body("order.shipped", order_number="SO-1", tracking_number="1Z999")

    ack = await receiver.handle("zoho", body, _zoho_headers(body))

    assert ack.received and ack.handled
    assert seen[0].data["tracking_number"] == "1Z999"
    assert store.get_webhook_events(1)[0]["event_type"] == "order.shipped"


@pytest.mark.asyncio
async def test_bad_zoho_signature_is_rejected_before_dispatch(settings, store):
    seen = []

    async def on_created(event):
        seen.append(event)

    receiver = _receiver(settings, {"order.created": on_created}, store=store)
    body = _zoho_body("order.created", order_number="SO-1")

    with pytest.raises(WebhookSignatureError):
        await receiver.handle("zoho", body, _zoho_headers(body, secret="wrong"))
    with pytest.raises(WebhookSignatureError):
        await receiver.handle("zoho", body, {})

    assert seen == []
    assert store.get_webhook_events() == []


@pytest.mark.asyncio
async def test_missing_secret_fails_closed(settings):
    settings.zoho_webhook_secret = ""
    receiver = _receiver(settings, {})

    with pytest.raises(WebhookConfigurationError):
        await receiver.handle("zoho", _zoho_body("order.created"), {})


@pytest.mark.asyncio
async def test_unsigned_allowed_when_explicitly_enabled(settings):
    settings.zoho_webhook_secret = ""
    settings.allow_unsigned_webhooks = True
    seen = []

    async def on_created(event):
        seen.append(event)

    receiver = _receiver(settings, {"order.created": on_created})

    ack = await receiver.handle("zoho", _zoho_body("order.created", order_number="SO-2"), {})

    assert ack.handled and seen


@pytest.mark.asyncio
async def test_handler_failure_is_still_acknowledged(settings, store, alerter):
    async def broken(event):
        raise RuntimeError("smtp down")

    receiver = _receiver(settings, {"order.cancelled": broken}, store=store, alerter=alerter)
    body = _zoho_body("order.cancelled", order_number="SO-3")

    ack = await receiver.handle("zoho", body, _zoho_headers(body))

    assert ack.received is True
    assert ack.handled is False
    assert "smtp down" in ack.errors[0]
    assert alerter.sent[-1]["category"] == "webhook"


@pytest.mark.asyncio
async def test_unknown_event_type_is_acknowledged(settings):
    receiver = _receiver(settings, {})
    body = _zoho_body("contact.merged")

    ack = await receiver.handle("zoho", body, _zoho_headers(body))

    assert ack.received and not ack.handled


@pytest.mark.asyncio
async def test_unsupported_vendor_and_bad_json(settings):
    receiver = _receiver(settings, {})

    with pytest.raises(WebhookPayloadError):
        await receiver.handle("shopify", b"{}", {})

    body = b"not json"
    with pytest.raises(WebhookPayloadError):
        await receiver.handle("zoho", body, _zoho_headers(body))


@pytest.mark.asyncio
async def test_shipping_notification_email(settings):
    notifier = EmailNotifier()
    handlers = WebhookHandlers(notifier)
    receiver = _receiver(settings, handlers.table())
    body = _zoho_body("order.shipped", order_number="SO-9", email="ada@example.com", tracking_number="1Z", carrier="UPS")

    await receiver.handle("zoho", body, _zoho_headers(body))

    message = notifier.outbox[0]
    assert message.template == "shipping_notification"
    assert message.to == "ada@example.com"
    assert message.subject == "Your order SO-9 has shipped"


@pytest.mark.asyncio
async def test_low_stock_alert_goes_to_admin(settings, alerter):
    notifier = EmailNotifier(admin_email="ops@example.com")
    handlers = WebhookHandlers(notifier, alerter=alerter)
    receiver = _receiver(settings, handlers.table())
    body = _zoho_body("inventory.updated", item_id="1", name="Trail Running Shoe", stock_on_hand=2)

    await receiver.handle("zoho", body, _zoho_headers(body))

    assert notifier.outbox[0].to == "ops@example.com"
    assert alerter.sent[-1]["category"] == "inventory"


def _stripe_delivery(payments, event_type, obj):
    body = json.dumps({"id": "evt_stripe_1", "type": event_type, "data": {"object": obj}}).encode()
    return body, {"Stripe-Signature": payments.sign(body)}


@pytest.mark.asyncio
async def test_stripe_payment_materializes_order_once(services, checkout_payload):
    flow = PaymentFirstCheckout(services.payments, services.settings, store=services.store)
    created = await flow.create_payment_intent(parse_checkout(checkout_payload, "req-wh-1"))
    intent = services.payments.mark_succeeded(created["payment_intent_id"])
    intent["amount_received"] = intent["amount"]
    body, headers = _stripe_delivery(services.payments, "payment_intent.succeeded", intent)

    ack = await services.receiver.handle("stripe", body, headers)
    again = await services.receiver.handle("stripe", body, headers)

    assert ack.event_type == "payment.succeeded"
    assert ack.handled and again.handled
    inventory = services.inventory
    assert len(inventory.sales_orders) == 1
    assert inventory.calls_to("invoice_payment_link") == 0
    payment = inventory.payments[0]
    assert payment["reference_number"] == intent["id"]
    assert payment["amount"] == 108.75
    record = services.store.get_order_record(f"pi:{intent['id']}")
    assert record["status"] == "materialized"
    assert record["order_number"] == next(iter(inventory.sales_orders.values()))["salesorder_number"]



@pytest.mark.asyncio
async def test_charge_above_invoice_total_is_capped_and_alerted(services, checkout_payload):
    checkout_payload["cartItems"].append({"name": "Ghost Widget", "price": 40, "quantity": 1})
    flow = PaymentFirstCheckout(services.payments, services.settings, store=services.store)
    created = await flow.create_payment_intent(parse_checkout(checkout_payload, "req-wh-3"))
    intent = services.payments.mark_succeeded(created["payment_intent_id"])
    intent["amount_received"] = intent["amount"]
    body, headers = _stripe_delivery(services.payments, "payment_intent.succeeded", intent)

    ack = await services.receiver.handle("stripe", body, headers)

    assert ack.handled
    assert intent["amount"] == 15225
    assert services.inventory.payments[0]["amount"] == 108.75
    alert = services.alerter.sent[-1]
    assert alert["category"] == "payment"
    assert "152.25" in alert["message"]
    assert services.store.get_order_record(f"pi:{intent['id']}")["payment"]["amount"] == 152.25


@pytest.mark.asyncio
async def test_unsigned_stripe_event_with_malformed_data(settings):
    settings.stripe_webhook_secret = ""
    settings.allow_unsigned_webhooks = True
    seen = []

    async def on_succeeded(event):
        seen.append(event.data)

    receiver = _receiver(settings, {"payment.succeeded": on_succeeded})
    body = json.dumps({"id": "evt_2", "type": "payment_intent.succeeded", "data": "oops"}).encode()

    ack = await receiver.handle("stripe", body, {})

    assert ack.received and ack.handled
    assert seen == [{}]

@pytest.mark.asyncio
async def test_stripe_bad_signature(services):
    body = json.dumps({"id": "evt", "type": "payment_intent.succeeded", "data": {"object": {}}}).encode()

    with pytest.raises(WebhookSignatureError):
        await services.receiver.handle("stripe", body, {"Stripe-Signature": "deadbeef"})


@pytest.mark.asyncio
async def test_stripe_payment_failure_marks_record(services, checkout_payload):
    flow = PaymentFirstCheckout(services.payments, services.settings, store=services.store)
    created = await flow.create_payment_intent(parse_checkout(checkout_payload, "req-wh-2"))
    intent = dict(
        services.payments.intents[created["payment_intent_id"]],
        status="requires_payment_method",
        last_payment_error={"message": "Your card was declined."},
    )
    body, headers = _stripe_delivery(services.payments, "payment_intent.payment_failed", intent)

    ack = await services.receiver.handle("stripe", body, headers)

    assert ack.handled
    assert services.store.get_order_record(f"pi:{intent['id']}")["status"] == "payment_failed"
    assert services.notifier.outbox[-1].template == "payment_failed"
