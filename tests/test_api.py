"""
HTTP surface: webhooks, Twilio callbacks, merchant API, flows, Basic Auth gate.
"""
import base64

import pytest
from fastapi.testclient import TestClient

from notifier.config import get_settings
from notifier.connectors.whatsapp import get_whatsapp_client
from notifier.main import app
from notifier.models.base import get_db
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shopify import AbandonedCart

from conftest import PHONE, SHOP, FakeWhatsAppClient


@pytest.fixture
def api(db, client):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_client] = lambda: client
    yield TestClient(app)
    app.dependency_overrides.clear()


ORDER = {
    "id": 5001,
    "name": "#1001",
    "customer": {"first_name": "Ana", "phone": PHONE},
    "total_price": "25.00",
    "currency": "USD",
    "financial_status": "pending",
    "line_items": [{"title": "Linen Shirt", "quantity": 1, "price": "25.00"}],
}


def test_health_is_open(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["x-robots-tag"] == "noindex, nofollow"


def test_status_reports_messaging(api):
    body = api.get("/status").json()
    assert body["messaging_configured"] is True
    assert body["scheduler_running"] is False


def test_topic_header_webhook(api, shop, client):
    response = api.post(
        "/webhooks",
        json=ORDER,
        headers={"X-Shopify-Topic": "orders/create", "X-Shopify-Shop-Domain": SHOP},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["action"] == "order_created"
    assert data["notifications"][0]["notification_type"] == "order_placed"
    assert len(client.sent) == 1


def test_webhook_rejects_non_object_body(api, shop):
    response = api.post(
        "/webhooks",
        content=b"[1, 2, 3]",
        headers={"X-Shopify-Topic": "orders/create", "X-Shopify-Shop-Domain": SHOP, "Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_unhandled_topic_still_acknowledged(api, shop):
    response = api.post(
        "/webhooks",
        json={"id": 1},
        headers={"X-Shopify-Topic": "products/create", "X-Shopify-Shop-Domain": SHOP},
    )
    assert response.status_code == 200
    assert response.json()["data"]["handled"] is False


def test_legacy_alias_path_with_shop_query(api, shop, db):
    checkout = {
        "id": "ck_1",
        "phone": PHONE,
        "total_price": "49.99",
        "currency": "USD",
        "line_items": [{"title": "Shirt", "quantity": 1, "price": "49.99"}],
    }
    response = api.post(f"/webhooks/checkout-created?shop={SHOP}", json=checkout)

    assert response.status_code == 200
    assert response.json()["data"]["action"] == "cart_tracked"
    assert db.query(AbandonedCart).count() == 1


def test_unknown_alias_path_is_404(api, shop):
    assert api.post(f"/webhooks/nothing-here?shop={SHOP}", json={}).status_code == 404


def test_inbound_whatsapp_stop(api, shop, db, client):
    db.add(Customer(shop_domain=SHOP, customer_phone=PHONE, opted_in=True))
    db.commit()

    response = api.post("/whatsapp/webhook", data={
        "From": f"whatsapp:{PHONE}",
        "To": "whatsapp:+14155238886",
        "Body": "STOP",
        "ProfileName": "Ana",
        "MessageSid": "SMin1",
    })

    assert response.status_code == 200
    assert response.text == "OK"
    assert db.query(Customer).one().opted_in is False
    assert "unsubscribed" in client.sent[0][1]


def test_status_callback(api, shop, db):
    db.add(Message(shop_domain=SHOP, customer_phone=PHONE, message_type="order_placed",
                   provider_message_id="SMout1", provider_status="queued"))
    db.commit()

    response = api.post("/whatsapp/status", data={"MessageSid": "SMout1", "MessageStatus": "delivered"})

    assert response.text == "OK"
    message = db.query(Message).one()
    db.refresh(message)
    assert message.provider_status == "delivered"


def test_send_message_unconfigured_is_503(api, shop):
    app.dependency_overrides[get_whatsapp_client] = lambda: FakeWhatsAppClient(configured=False)
    response = api.post("/api/send-message", json={"shop": SHOP, "phone": PHONE, "message": "Hi"})
    assert response.status_code == 503


def test_send_message(api, shop, client):
    response = api.post(
        "/api/send-message",
        json={"shop": SHOP, "phone": PHONE, "message": "Hi", "orderNumber": "#1001"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["phone"] == PHONE
    assert client.sent == [(PHONE, "Hi")]


def test_send_message_invalid_phone_is_400(api, shop):
    response = api.post("/api/send-message", json={"shop": SHOP, "phone": "12", "message": "Hi"})
    assert response.status_code == 400


def test_automation_settings_round_trip(api, shop):
    defaults = api.get("/api/automation-settings", params={"shop": SHOP}).json()["data"]
    assert defaults["abandoned_cart_enabled"] is True
    assert defaults["review_request_enabled"] is False

    saved = api.post(
        "/api/automation-settings",
        params={"shop": SHOP},
        json={"review_request_enabled": True},
    ).json()["data"]
    assert saved["review_request_enabled"] is True
    assert saved["abandoned_cart_enabled"] is True


def test_trigger_single_cart_sends_next_stage_now(api, shop, db, client):
    db.add(AbandonedCart(shop_domain=SHOP, checkout_id="ck_1", customer_phone=PHONE, cart_value=49.99,
                         currency="USD", checkout_url=f"https://{SHOP}/checkouts/ck_1"))
    db.commit()

    response = api.post("/api/trigger-abandoned-cart", json={"shop": SHOP, "checkout_id": "ck_1"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["notification_type"] == "abandoned_cart_1h"
    assert data["outcome"] == "sent"
    assert len(client.sent) == 1


def test_trigger_unknown_cart_is_404(api, shop):
    assert api.post("/api/trigger-abandoned-cart", json={"checkout_id": "nope"}).status_code == 404


def test_test_notification(api, shop, client):
    response = api.post("/api/test-notifications/order_placed", json={"shop": SHOP, "phone": PHONE})
    assert response.status_code == 200
    assert "Test Customer" in client.sent[0][1]

    assert api.post("/api/test-notifications/bogus", json={"shop": SHOP, "phone": PHONE}).status_code == 404


def test_flow_crud(api, shop):
    created = api.post("/api/whatsapp-flows", json={
        "shop": SHOP,
        "flow_name": "Welcome",
        "flow_type": "welcome",
        "message_content": "Hi {{first_name}}",
    })
    assert created.status_code == 200
    flow_id = created.json()["data"]["id"]

    listed = api.get("/api/whatsapp-flows", params={"shop": SHOP}).json()["data"]
    assert listed["count"] == 1

    updated = api.put(f"/api/whatsapp-flows/{flow_id}", params={"shop": SHOP}, json={"footer_text": "Reply STOP"})
    assert updated.json()["data"]["footer_text"] == "Reply STOP"
    assert updated.json()["data"]["message_content"] == "Hi {{first_name}}"

    toggled = api.post(f"/api/whatsapp-flows/{flow_id}/toggle", params={"shop": SHOP}).json()["data"]
    assert toggled["is_active"] is False
    active = api.get("/api/whatsapp-flows", params={"shop": SHOP, "active_only": True}).json()["data"]
    assert active["count"] == 0

    assert api.get(f"/api/whatsapp-flows/{flow_id}", params={"shop": "other.myshopify.com"}).status_code == 404
    assert api.delete(f"/api/whatsapp-flows/{flow_id}", params={"shop": SHOP}).status_code == 200
    assert api.get(f"/api/whatsapp-flows/{flow_id}", params={"shop": SHOP}).status_code == 404


def test_flow_update_cannot_null_required_fields(api, shop):
    created = api.post("/api/whatsapp-flows", json={
        "shop": SHOP, "flow_name": "Welcome", "flow_type": "welcome", "message_content": "Hi",
    }).json()["data"]

    response = api.put(f"/api/whatsapp-flows/{created['id']}", params={"shop": SHOP}, json={"message_content": None})

    assert response.status_code == 400
    assert "message_content" in response.json()["detail"]
    flow = api.get(f"/api/whatsapp-flows/{created['id']}", params={"shop": SHOP}).json()["data"]
    assert flow["message_content"] == "Hi"


def test_flow_with_unknown_type_is_400(api, shop):
    response = api.post("/api/whatsapp-flows", json={
        "shop": SHOP, "flow_name": "X", "flow_type": "nonsense", "message_content": "x",
    })
    assert response.status_code == 400


def test_basic_auth_gates_merchant_api_only(api, shop, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "dash_user", "admin")
    monkeypatch.setattr(settings, "dash_pass", "s3cret")

    assert api.get("/api/automation-settings", params={"shop": SHOP}).status_code == 401
    assert api.get("/health").status_code == 200

    token = base64.b64encode(b"admin:s3cret").decode()
    response = api.get(
        "/api/automation-settings",
        params={"shop": SHOP},
        headers={"Authorization": f"Basic {token}"},
    )
    assert response.status_code == 200


def test_history_and_stats_after_order(api, shop):
    api.post(
        "/webhooks",
        json=ORDER,
        headers={"X-Shopify-Topic": "orders/create", "X-Shopify-Shop-Domain": SHOP},
    )

    history = api.get(f"/api/whatsapp-history/{PHONE}", params={"shop": SHOP}).json()["data"]
    assert [m["message_type"] for m in history["messages"]] == ["order_placed"]

    stats = api.get("/api/stats", params={"shop": SHOP}).json()["data"]
    assert stats["messages"]["total_messages"] == 1
    assert stats["orders_tracked"] == 1
    assert stats["summary"]["orders_created"] == 1

    orders = api.get("/api/orders", params={"shop": SHOP}).json()["data"]
    assert orders["orders"][0]["order_number"] == "#1001"

    assert api.get("/api/whatsapp-history/12", params={"shop": SHOP}).status_code == 400


def test_order_paid_alias_replay_sends_once(api, shop, client):
    paid = dict(ORDER, financial_status="paid")
    api.post(f"/webhooks/order-created?shop={SHOP}", json=ORDER)
    api.post(f"/webhooks/order-paid?shop={SHOP}", json=paid)
    api.post(f"/webhooks/order-paid?shop={SHOP}", json=paid)

    assert [body.splitlines()[0] for _, body in client.sent] == ["🎉 Order Confirmed!", "💳 Payment Confirmed!"]
