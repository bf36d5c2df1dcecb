"""
Inbound WhatsApp: command replies, opt-out / opt-in, delivery-status callbacks.
"""
import asyncio

from notifier.models.analytics import DailyAnalytics
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shopify import AbandonedCart
from notifier.services.inbound_service import (
    DEFAULT_REPLY,
    handle_inbound_message,
    match_command,
    update_delivery_status,
)

from conftest import PHONE, SHOP

SENDER = f"whatsapp:{PHONE}"


def _known_customer(db, opted_in=True):
    customer = Customer(shop_domain=SHOP, customer_phone=PHONE, first_name="Ana", opted_in=opted_in)
    db.add(customer)
    db.commit()
    return customer


def _inbound(db, client, body, message_id=None, sender_name=None):
    return asyncio.run(handle_inbound_message(
        db, client, SENDER, to="whatsapp:+14155238886", body=body,
        sender_name=sender_name, message_id=message_id,
    ))


def test_command_matching_is_trimmed_and_case_insensitive():
    assert match_command("  Stop ") == "stop"
    assert match_command("HELLO") == "hello"
    assert match_command("stop please") is None
    assert match_command(None) is None


def test_stop_opts_customer_out(db, shop, client):
    _known_customer(db)

    result = _inbound(db, client, "STOP", message_id="SMin1")

    assert result["command"] == "stop"
    assert result["shop_domain"] == SHOP
    assert result["reply_sent"]
    assert "unsubscribed" in client.sent[0][1]
    customer = db.query(Customer).one()
    assert not customer.opted_in
    assert customer.opt_out_date is not None


def test_start_opts_back_in(db, shop, client):
    _known_customer(db, opted_in=False)
    _inbound(db, client, "start")
    assert db.query(Customer).one().opted_in


def test_help_uses_sender_name(db, shop, client):
    _known_customer(db)
    result = _inbound(db, client, "help", sender_name="Ana")
    assert result["reply"].startswith("Hi Ana!")


def test_unknown_text_gets_default_reply(db, shop, client):
    _known_customer(db)
    result = _inbound(db, client, "where is my parcel?")
    assert result["command"] is None
    assert result["reply"] == DEFAULT_REPLY


def test_inbound_and_reply_are_logged(db, shop, client):
    _known_customer(db)
    _inbound(db, client, "support", message_id="SMin1")

    rows = db.query(Message).order_by(Message.id).all()
    assert [(m.direction, m.message_type) for m in rows] == [("inbound", "inbound"), ("outbound", "auto_reply")]
    assert rows[0].provider_message_id == "SMin1"
    assert rows[0].message_body == "support"


def test_duplicate_message_sid_is_skipped(db, shop, client):
    _known_customer(db)
    _inbound(db, client, "help", message_id="SMin1")
    again = _inbound(db, client, "help", message_id="SMin1")

    assert again["duplicate"]
    assert len(client.sent) == 1


def test_cart_command_links_open_checkout(db, shop, client):
    _known_customer(db)
    db.add(AbandonedCart(
        shop_domain=SHOP, checkout_id="ck_1", customer_phone=PHONE, cart_value=49.99,
        currency="USD", items_count=2, checkout_url="https://demo-store.myshopify.com/checkouts/ck_1",
    ))
    db.commit()

    result = _inbound(db, client, "cart")
    assert "https://demo-store.myshopify.com/checkouts/ck_1" in result["reply"]


def test_unknown_sender_without_default_shop(db, client):
    result = _inbound(db, client, "STOP")
    assert result["shop_domain"] is None
    assert result["reply"].startswith("Unable to process")
    assert db.query(Message).count() == 0


def _outbound(db, status="queued"):
    message = Message(
        shop_domain=SHOP, customer_phone=PHONE, message_type="order_placed",
        provider_message_id="SMout1", provider_status=status,
    )
    db.add(message)
    db.commit()
    return message


def test_delivered_then_read_fill_timestamps(db, shop):
    _outbound(db)

    delivered = update_delivery_status(db, "SMout1", "delivered")
    assert delivered.provider_status == "delivered"
    assert delivered.delivered_at is not None
    assert delivered.read_at is None

    read = update_delivery_status(db, "SMout1", "read")
    assert read.provider_status == "read"
    assert read.read_at is not None


def test_late_status_does_not_regress(db, shop):
    _outbound(db, status="read")
    assert update_delivery_status(db, "SMout1", "sent").provider_status == "read"


def test_failure_is_terminal_and_keeps_error(db, shop):
    _outbound(db)
    failed = update_delivery_status(db, "SMout1", "failed", error_code="63016", error_message="Outside window")
    assert failed.error_code == "63016"

    assert update_delivery_status(db, "SMout1", "delivered").provider_status == "failed"
    late = update_delivery_status(db, "SMout1", "read")
    assert late.delivered_at is None
    assert late.read_at is None
    assert db.query(DailyAnalytics).count() == 0


def test_unknown_message_status_is_ignored(db):
    assert update_delivery_status(db, "SMnope", "delivered") is None
