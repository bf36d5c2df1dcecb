"""
Merchant API

Shop install, automation settings, tracked carts / orders / customers,
dashboard stats, message history and manual sends.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from notifier.connectors.whatsapp import MessagingProviderError, TwilioWhatsAppClient, get_whatsapp_client
from notifier.models.base import get_db
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shopify import AbandonedCart, Order
from notifier.services import shop_service
from notifier.services.analytics_service import get_dashboard
from notifier.services.notification_service import NotificationDispatcher
from notifier.services.reminder_service import REMINDER_STAGES, process_abandoned_carts, send_cart_reminder
from notifier.services.templates import is_known_notification_type
from notifier.utils.helpers import model_to_dict, models_to_dicts
from notifier.utils.logger import log
from notifier.utils.phone import normalize_phone

router = APIRouter(prefix="/api", tags=["merchant"])

NOT_CONFIGURED = 'WhatsApp messaging not configured'


class ShopInstall(BaseModel):
    shop_domain: str
    access_token: Optional[str] = None
    shop_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    scope: Optional[str] = None


class AutomationSettingsUpdate(BaseModel):
    abandoned_cart_enabled: Optional[bool] = None
    order_confirmation_enabled: Optional[bool] = None
    shipping_updates_enabled: Optional[bool] = None
    welcome_message_enabled: Optional[bool] = None
    review_request_enabled: Optional[bool] = None
    birthday_messages_enabled: Optional[bool] = None
    back_in_stock_enabled: Optional[bool] = None


class SendMessageRequest(BaseModel):
    shop: str
    phone: str
    message: str
    order_number: Optional[str] = Field(None, alias='orderNumber')

    model_config = {'populate_by_name': True}


class TriggerCartRequest(BaseModel):
    shop: Optional[str] = None
    checkout_id: Optional[str] = None


class TestNotificationRequest(BaseModel):
    shop: str
    phone: str
    language: str = 'en'
    data: Dict[str, Any] = Field(default_factory=dict)


def _dispatcher(db: Session, client: TwilioWhatsAppClient) -> NotificationDispatcher:
    return NotificationDispatcher(db, client)


# ── Shops & settings ─────────────────────────────────────

@router.post("/shops")
async def install_shop(request: ShopInstall, db: Session = Depends(get_db)):
    """Register or refresh a shop after OAuth / token exchange"""
    try:
        shop = shop_service.install_shop(db, **request.model_dump())
        return {"success": True, "data": model_to_dict(shop, exclude=('access_token',))}
    except Exception as e:
        db.rollback()
        log.error(f"Error installing shop {request.shop_domain}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/automation-settings")
async def get_automation_settings(shop: str = Query(...), db: Session = Depends(get_db)):
    try:
        return {"success": True, "data": shop_service.get_automation_settings(db, shop)}
    except Exception as e:
        log.error(f"Error loading automation settings for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/automation-settings")
async def save_automation_settings(
    update: AutomationSettingsUpdate,
    shop: str = Query(...),
    db: Session = Depends(get_db)
):
    try:
        values = update.model_dump(exclude_none=True)
        return {"success": True, "data": shop_service.save_automation_settings(db, shop, values)}
    except Exception as e:
        db.rollback()
        log.error(f"Error saving automation settings for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ── Tracked data ─────────────────────────────────────────

@router.get("/abandoned-carts")
async def list_abandoned_carts(
    shop: str = Query(...),
    include_recovered: bool = Query(False),
    limit: int = Query(50, le=500),
    db: Session = Depends(get_db)
):
    """Carts newest first"""
    try:
        query = db.query(AbandonedCart).filter(AbandonedCart.shop_domain == shop)
        if not include_recovered:
            query = query.filter(AbandonedCart.recovered.is_(False))
        carts = query.order_by(AbandonedCart.created_at.desc()).limit(limit).all()
        return {"success": True, "data": {"carts": models_to_dicts(carts), "count": len(carts)}}
    except Exception as e:
        log.error(f"Error listing abandoned carts for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/orders")
async def list_orders(
    shop: str = Query(...),
    limit: int = Query(50, le=500),
    db: Session = Depends(get_db)
):
    try:
        orders = (
            db.query(Order)
            .filter(Order.shop_domain == shop)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )
        return {"success": True, "data": {"orders": models_to_dicts(orders), "count": len(orders)}}
    except Exception as e:
        log.error(f"Error listing orders for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/customers")
async def list_customers(
    shop: str = Query(...),
    opted_in: Optional[bool] = Query(None),
    limit: int = Query(100, le=1000),
    db: Session = Depends(get_db)
):
    try:
        query = db.query(Customer).filter(Customer.shop_domain == shop)
        if opted_in is not None:
            query = query.filter(Customer.opted_in.is_(opted_in))
        customers = query.order_by(Customer.created_at.desc()).limit(limit).all()
        return {"success": True, "data": {"customers": models_to_dicts(customers), "count": len(customers)}}
    except Exception as e:
        log.error(f"Error listing customers for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats")
async def get_stats(
    shop: str = Query(...),
    days: int = Query(30, description="Number of days to analyze"),
    db: Session = Depends(get_db)
):
    """Dashboard numbers: messages, carts, customers, daily rollup"""
    try:
        return {"success": True, "data": get_dashboard(db, shop, days)}
    except Exception as e:
        log.error(f"Error generating stats for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/whatsapp-history/{phone}")
async def whatsapp_history(
    phone: str,
    shop: str = Query(...),
    limit: int = Query(100, le=1000),
    db: Session = Depends(get_db)
):
    """Conversation with one customer, oldest first"""
    normalized = normalize_phone(phone)
    if not normalized:
        raise HTTPException(status_code=400, detail=f"Invalid phone number: {phone}")
    try:
        messages = (
            db.query(Message)
            .filter(Message.shop_domain == shop, Message.customer_phone == normalized)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
            .all()
        )
        return {"success": True, "data": {"phone": normalized, "messages": models_to_dicts(messages)}}
    except Exception as e:
        log.error(f"Error loading history for {normalized}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ── Sends ────────────────────────────────────────────────

@router.post("/send-message")
async def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """Manual message from the merchant; configuration problems are reported, not hidden"""
    dispatcher = _dispatcher(db, client)
    if not dispatcher.messaging_configured:
        raise HTTPException(status_code=503, detail=NOT_CONFIGURED)

    try:
        result = await dispatcher.send_custom_message(request.shop, request.phone, request.message, request.order_number)
    except Exception as e:
        db.rollback()
        log.error(f"Error sending manual message for {request.shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if not result['success']:
        raise HTTPException(status_code=400, detail=result['error'])
    return {"success": True, "data": result}


@router.post("/trigger-abandoned-cart")
async def trigger_abandoned_cart(
    request: TriggerCartRequest,
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """
    Run the abandoned-cart check now

    With a checkout_id, sends that cart's next reminder immediately regardless of age.
    """
    dispatcher = _dispatcher(db, client)

    if not request.checkout_id:
        try:
            counts = await process_abandoned_carts(db, dispatcher)
            return {"success": True, "data": counts}
        except Exception as e:
            db.rollback()
            log.error(f"Error running abandoned cart check: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))

    query = db.query(AbandonedCart).filter(AbandonedCart.checkout_id == request.checkout_id)
    if request.shop:
        query = query.filter(AbandonedCart.shop_domain == request.shop)
    cart = query.first()
    if not cart:
        raise HTTPException(status_code=404, detail=f"Cart {request.checkout_id} not found")
    if cart.recovered:
        raise HTTPException(status_code=409, detail=f"Cart {request.checkout_id} already recovered")

    stage = next((s for s in REMINDER_STAGES if s.reminder_count == cart.reminder_count), None)
    if not stage:
        raise HTTPException(status_code=409, detail=f"Cart {request.checkout_id} has received every reminder")

    outcome = await send_cart_reminder(db, dispatcher, cart, stage, datetime.utcnow())
    return {
        "success": outcome == 'sent',
        "data": {"checkout_id": request.checkout_id, "notification_type": stage.notification_type, "outcome": outcome}
    }


@router.post("/test-notifications/{notification_type}")
async def test_notification(
    notification_type: str,
    request: TestNotificationRequest,
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """Send one notification of any known type with caller-supplied data"""
    if not is_known_notification_type(notification_type):
        raise HTTPException(status_code=404, detail=f"Unknown notification type: {notification_type}")

    data = {'customer_name': 'Test Customer', 'order_number': 'TEST', **request.data}
    try:
        result = await _dispatcher(db, client).send(
            request.shop, request.phone, notification_type, data, request.language
        )
    except MessagingProviderError as e:
        db.rollback()
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        db.rollback()
        log.error(f"Error sending test {notification_type}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"success": result.sent, "data": result.to_dict()}
