"""
Periodic jobs: abandoned-cart reminder stages, review requests, campaign hand-off.

Guards against:
1. A cart getting the same stage twice (or two stages in one tick)
2. Reminders after recovery
3. A provider failure silently skipping a stage
"""
import asyncio
from datetime import datetime, timedelta

from notifier.config import get_settings
from notifier.connectors.whatsapp import MessagingProviderError
from notifier.models.campaign import Campaign
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shop import AutomationSettings
from notifier.models.shopify import AbandonedCart, Order
from notifier.services.notification_service import NotificationDispatcher
from notifier.services.reminder_service import (
    REMINDER_STAGES,
    claim_cart,
    process_abandoned_carts,
    process_review_requests,
    process_scheduled_campaigns,
)
from notifier.services.webhook_service import process_webhook

from conftest import PHONE, SHOP, FakeWhatsAppClient


def _checkout_payload(checkout_id="ck_1"):
    return {
        "id": checkout_id,
        "token": "tok_1",
        "email": "ana@example.com",
        "customer": {"first_name": "Ana", "phone": PHONE},
        "billing_address": {"first_name": "Ana"},
        "total_price": "49.99",
        "currency": "USD",
        "line_items": [{"title": "Shirt", "quantity": 1, "price": "49.99"}],
        "abandoned_checkout_url": f"https://{SHOP}/checkouts/{checkout_id}",
    }


def _tracked_cart(db, dispatcher, checkout_id="ck_1"):
    outcome = asyncio.run(process_webhook(db, dispatcher, "checkouts/create", SHOP, _checkout_payload(checkout_id)))
    assert outcome.action == "cart_tracked"
    return db.query(AbandonedCart).filter(AbandonedCart.checkout_id == checkout_id).one()


def test_stage_table_walks_counts_in_order():
    assert [s.reminder_count for s in REMINDER_STAGES] == [0, 1, 2]
    assert [s.hours for s in REMINDER_STAGES] == [1, 24, 48]


def test_first_reminder_after_an_hour(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    created = cart.created_at

    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=created + timedelta(minutes=61)))

    assert counts["sent"] == 1
    db.refresh(cart)
    assert cart.reminder_count == 1
    assert cart.last_reminder_at is not None
    message = db.query(Message).one()
    assert message.message_type == "abandoned_cart_1h"
    assert message.checkout_id == "ck_1"
    assert f"https://{SHOP}/checkouts/ck_1" in client.sent[0][1]


def test_nameless_cart_greets_without_storing_a_name(db, shop, client, dispatcher):
    db.add(AbandonedCart(shop_domain=SHOP, checkout_id="ck_2", customer_phone=PHONE, cart_value=12.0,
                         currency="USD", checkout_url=f"https://{SHOP}/checkouts/ck_2"))
    db.commit()

    asyncio.run(process_abandoned_carts(db, dispatcher, now=datetime.utcnow() + timedelta(minutes=61)))

    assert "Hi there!" in client.sent[0][1]
    assert db.query(Customer).one().first_name is None
    assert db.query(Message).one().customer_name is None


def test_cart_younger_than_an_hour_is_left_alone(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=cart.created_at + timedelta(minutes=30)))
    assert counts["sent"] == 0
    assert client.sent == []


def test_repeated_tick_does_not_resend(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    now = cart.created_at + timedelta(minutes=61)

    asyncio.run(process_abandoned_carts(db, dispatcher, now=now))
    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=now))

    assert counts["sent"] == 0
    assert len(client.sent) == 1


def test_old_cart_gets_one_stage_per_tick(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    late = cart.created_at + timedelta(hours=50)

    asyncio.run(process_abandoned_carts(db, dispatcher, now=late))
    db.refresh(cart)
    assert cart.reminder_count == 1

    asyncio.run(process_abandoned_carts(db, dispatcher, now=late))
    asyncio.run(process_abandoned_carts(db, dispatcher, now=late))
    asyncio.run(process_abandoned_carts(db, dispatcher, now=late))
    db.refresh(cart)
    assert cart.reminder_count == 3

    types = [m.message_type for m in db.query(Message).order_by(Message.id)]
    assert types == ["abandoned_cart_1h", "abandoned_cart_24h", "abandoned_cart_final"]


def test_recovered_cart_gets_no_reminder(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    asyncio.run(process_webhook(
        db, dispatcher, "checkouts/update", SHOP,
        dict(_checkout_payload(), completed_at="2024-05-01T10:00:00Z"),
    ))

    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=cart.created_at + timedelta(hours=2)))

    assert counts["sent"] == 0
    assert client.sent == []


def test_claim_is_compare_and_set(db, shop, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    now = datetime.utcnow()
    assert claim_cart(db, cart.id, 0, now)
    assert not claim_cart(db, cart.id, 0, now)


def test_failed_send_releases_claim(db, shop):
    dispatcher = NotificationDispatcher(db, FakeWhatsAppClient(error=MessagingProviderError("down")))
    cart = _tracked_cart(db, dispatcher)

    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=cart.created_at + timedelta(minutes=61)))

    assert counts["failed"] == 1
    db.refresh(cart)
    assert cart.reminder_count == 0


def test_failed_send_can_advance_when_configured(db, shop, monkeypatch):
    monkeypatch.setattr(get_settings(), "cart_reminder_advance_on_error", True)
    dispatcher = NotificationDispatcher(db, FakeWhatsAppClient(error=MessagingProviderError("down")))
    cart = _tracked_cart(db, dispatcher)

    asyncio.run(process_abandoned_carts(db, dispatcher, now=cart.created_at + timedelta(minutes=61)))

    db.refresh(cart)
    assert cart.reminder_count == 1


def test_inactive_shop_is_skipped(db, shop, client, dispatcher):
    cart = _tracked_cart(db, dispatcher)
    shop.is_active = False
    db.commit()

    counts = asyncio.run(process_abandoned_carts(db, dispatcher, now=cart.created_at + timedelta(hours=2)))

    assert counts["shops"] == 0
    assert client.sent == []


def _delivered_order(db, updated_at):
    order = Order(
        shop_domain=SHOP,
        order_id="5001",
        order_number="#1001",
        customer_phone=PHONE,
        customer_name="Ana Silva",
        main_product="Linen Shirt",
        delivered_sent=True,
        review_requested=False,
        updated_at=updated_at,
    )
    db.add(order)
    db.commit()
    return order


def test_review_request_after_delay(db, shop, client, dispatcher):
    db.add(AutomationSettings(shop_domain=SHOP, review_request_enabled=True))
    db.commit()
    now = datetime.utcnow()
    order = _delivered_order(db, now - timedelta(days=4))

    counts = asyncio.run(process_review_requests(db, dispatcher, now=now))

    assert counts["sent"] == 1
    db.refresh(order)
    assert order.review_requested
    assert "Linen Shirt" in client.sent[0][1]

    again = asyncio.run(process_review_requests(db, dispatcher, now=now))
    assert again["sent"] == 0


def test_recent_delivery_is_not_asked_yet(db, shop, client, dispatcher):
    now = datetime.utcnow()
    _delivered_order(db, now - timedelta(days=1))
    counts = asyncio.run(process_review_requests(db, dispatcher, now=now))
    assert counts == {"sent": 0, "skipped": 0, "failed": 0}


def test_due_campaigns_are_marked_running_and_handed_off(db, shop):
    now = datetime.utcnow()
    due = Campaign(shop_domain=SHOP, campaign_name="Spring", status="scheduled", scheduled_at=now - timedelta(minutes=1))
    later = Campaign(shop_domain=SHOP, campaign_name="Summer", status="scheduled", scheduled_at=now + timedelta(days=1))
    db.add_all([due, later])
    db.commit()

    started = []

    async def runner(campaign):
        started.append(campaign.campaign_name)

    counts = asyncio.run(process_scheduled_campaigns(db, runner, now=now))

    assert counts == {"due": 1, "started": 1, "failed": 0}
    assert started == ["Spring"]
    db.refresh(due)
    db.refresh(later)
    assert due.status == "running"
    assert due.started_at == now
    assert later.status == "scheduled"

    assert asyncio.run(process_scheduled_campaigns(db, runner, now=now))["due"] == 0


def test_campaign_runner_failure_is_counted(db, shop):
    now = datetime.utcnow()
    db.add(Campaign(shop_domain=SHOP, campaign_name="Spring", status="scheduled", scheduled_at=now))
    db.commit()

    def runner(campaign):
        raise RuntimeError("boom")

    counts = asyncio.run(process_scheduled_campaigns(db, runner, now=now))
    assert counts["failed"] == 1
