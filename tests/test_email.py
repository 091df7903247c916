import pytest

from storefront.notifications.email import EmailNotifier


@pytest.mark.asyncio
async def test_payment_confirmation_emails_the_invoice(inventory):
    notifier = EmailNotifier(inventory)

    message = await notifier.send("payment_confirmation", "ada@example.com", {"order_number": "SO-1", "invoice_id": "inv-1"})

    assert message.subject == "Payment received for order SO-1"
    assert inventory.emails == [{"invoice_id": "inv-1", "to_mail_ids": ["ada@example.com"], "subject": message.subject}]


@pytest.mark.asyncio
async def test_missing_recipient_falls_back_to_admin_or_skips():
    assert await EmailNotifier().send("order_updated", None, {"order_number": "SO-2"}) is None

    message = await EmailNotifier(admin_email="ops@example.com").send("order_updated", None, {})
    assert message.to == "ops@example.com"
    assert message.subject == "Your order ? has been updated"


@pytest.mark.asyncio
async def test_unknown_template():
    with pytest.raises(ValueError):
        await EmailNotifier().send("newsletter", "a@example.com", {})


@pytest.mark.asyncio
async def test_outbox_keeps_only_recent_messages():
    notifier = EmailNotifier(outbox_size=2)

    for number in ("SO-1", "SO-2", "SO-3"):
        await notifier.send("order_updated", "ada@example.com", {"order_number": number})

    assert [m.subject for m in notifier.outbox] == ["Your order SO-2 has been updated", "Your order SO-3 has been updated"]
