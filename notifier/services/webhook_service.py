"""
Webhook Service
Applies Shopify webhook events: database bookkeeping first, then any
notification the event triggers.

Every entry point (the topic-header endpoint and the per-topic aliases)
goes through WEBHOOK_ACTIONS, the single event -> action table.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from notifier.config import get_settings
from notifier.models.customer import Customer
from notifier.models.shop import Shop
from notifier.models.shopify import AbandonedCart, Order
from notifier.services.analytics_service import safe_record_daily
from notifier.services.interpolation import CustomerPayload, LineItem, OrderPayload
from notifier.services.notification_service import NotificationDispatcher, shop_display_name
from notifier.services.reminder_service import mark_cart_recovered
from notifier.services.shop_service import uninstall_shop
from notifier.utils.logger import log
from notifier.utils.phone import normalize_phone


@dataclass
class OrderState:
    """Stored order status before the current event was applied"""
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    cancelled: bool = False


@dataclass(frozen=True)
class NotificationStage:
    """
    One order lifecycle notification

    `flag` is the Order column that records the stage has fired; `is_due`
    receives the event payload and the previous state (None for a new order).
    """
    notification_type: str
    flag: str
    is_due: Callable[[Dict[str, Any], Optional[OrderState]], bool]


ORDER_PLACED = NotificationStage(
    'order_placed', 'confirmation_sent',
    lambda payload, previous: True,
)
ORDER_PAID = NotificationStage(
    'order_paid', 'payment_sent',
    lambda payload, previous: payload.get('financial_status') == 'paid' and (
        previous is None or previous.financial_status != 'paid'
    ),
)
ORDER_FULFILLED = NotificationStage(
    'order_fulfilled', 'shipping_sent',
    lambda payload, previous: payload.get('fulfillment_status') == 'fulfilled',
)
ORDER_CANCELLED = NotificationStage(
    'order_cancelled', 'cancellation_sent',
    lambda payload, previous: bool(payload.get('cancelled_at')),
)
ORDER_DELIVERED = NotificationStage(
    'order_delivered', 'delivered_sent',
    lambda payload, previous: payload.get('shipment_status') == 'delivered',
)


@dataclass
class WebhookOutcome:
    """What one webhook delivery did; webhook endpoints log it and answer 200"""
    topic: str
    shop_domain: Optional[str]
    handled: bool = True
    action: Optional[str] = None
    notifications: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic': self.topic,
            'shop_domain': self.shop_domain,
            'handled': self.handled,
            'action': self.action,
            'notifications': self.notifications,
            'errors': self.errors,
        }


Handler = Callable[[Session, NotificationDispatcher, str, Dict[str, Any], "WebhookAction", WebhookOutcome], Awaitable[None]]


@dataclass(frozen=True)
class WebhookAction:
    handler: Handler
    stages: Tuple[NotificationStage, ...] = ()


# ── Payload helpers ──────────────────────────────────────

def _parse_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _first(values: Any) -> Dict[str, Any]:
    if isinstance(values, list) and values and isinstance(values[0], dict):
        return values[0]
    return {}


def extract_phone(payload: Dict[str, Any]) -> Optional[str]:
    """
    Best phone for an order / checkout / customer payload, normalized

    Malformed numbers come back as None so only the phone-dependent
    behavior is dropped.
    """
    customer = payload.get('customer') or {}
    candidates = (
        customer.get('phone'),
        payload.get('phone'),
        (payload.get('shipping_address') or {}).get('phone'),
        (payload.get('billing_address') or {}).get('phone'),
    )
    for raw in candidates:
        if not raw:
            continue
        phone = normalize_phone(raw)
        if phone:
            return phone
        log.warning(f"Ignoring malformed phone number {raw!r}")
    return None


def extract_customer_name(payload: Dict[str, Any]) -> Optional[str]:
    customer = payload.get('customer') or {}
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    if name:
        return name
    billing = payload.get('billing_address') or {}
    return billing.get('first_name') or None


def line_items(payload: Dict[str, Any]) -> List[LineItem]:
    return [
        LineItem(
            name=item.get('name') or item.get('title') or '',
            quantity=item.get('quantity') or 1,
            price=str(item.get('price') or ''),
        )
        for item in (payload.get('line_items') or [])
        if isinstance(item, dict)
    ]


def order_total(payload: Dict[str, Any]) -> float:
    return round(_parse_float(payload.get('current_total_price') or payload.get('total_price')), 2)


# ── Orders ───────────────────────────────────────────────

def upsert_order(db: Session, shop_domain: str, payload: Dict[str, Any]) -> Tuple[Order, Optional[OrderState]]:
    """Insert or refresh an order row; returns it with its previous state (None when new)"""
    order_id = str(payload['id'])
    order = db.query(Order).filter(Order.order_id == order_id).first()

    previous = None
    if order:
        previous = OrderState(
            financial_status=order.financial_status,
            fulfillment_status=order.fulfillment_status,
            cancelled=order.cancelled_at is not None,
        )
    else:
        order = Order(shop_domain=shop_domain, order_id=order_id)
        db.add(order)

    first_item = _first(payload.get('line_items'))
    order.order_number = payload.get('name') or order.order_number or str(payload.get('order_number') or '')
    order.checkout_id = str(payload['checkout_id']) if payload.get('checkout_id') else order.checkout_id
    order.customer_email = (payload.get('customer') or {}).get('email') or payload.get('email') or order.customer_email
    order.customer_phone = extract_phone(payload) or order.customer_phone
    order.customer_name = extract_customer_name(payload) or order.customer_name
    order.total_price = order_total(payload)
    order.currency = payload.get('currency') or order.currency
    order.financial_status = payload.get('financial_status') or order.financial_status
    order.fulfillment_status = payload.get('fulfillment_status') or order.fulfillment_status
    order.cancelled_at = _parse_datetime(payload.get('cancelled_at')) or order.cancelled_at
    order.main_product = first_item.get('name') or first_item.get('title') or order.main_product
    order.order_status_url = (
        payload.get('order_status_url') or order.order_status_url or f"https://{shop_domain}/orders/{order_id}"
    )
    db.commit()
    return order, previous


def update_customer_from_order(db: Session, order: Order) -> None:
    """Purchase aggregates for the ordering customer; new order rows only"""
    if not order.customer_phone:
        return
    customer = db.query(Customer).filter(
        Customer.shop_domain == order.shop_domain,
        Customer.customer_phone == order.customer_phone
    ).first()
    if not customer:
        names = (order.customer_name or '').split()
        customer = Customer(
            shop_domain=order.shop_domain,
            customer_phone=order.customer_phone,
            customer_email=order.customer_email,
            first_name=names[0] if names else None,
            last_name=' '.join(names[1:]) or None,
            opted_in=True,
            total_orders=0,
            total_spent=0.0,
        )
        db.add(customer)
    customer.total_orders = (customer.total_orders or 0) + 1
    customer.total_spent = round((customer.total_spent or 0) + (order.total_price or 0), 2)
    customer.last_order_date = datetime.utcnow()
    db.commit()


def order_notification_data(order: Order, payload: Dict[str, Any], fulfillment: Optional[Dict[str, Any]] = None) -> OrderPayload:
    settings = get_settings()
    customer = payload.get('customer') or {}
    fulfillment = fulfillment if fulfillment is not None else _first(payload.get('fulfillments'))
    tracking_urls = fulfillment.get('tracking_urls') or []
    first_name = customer.get('first_name') or (order.customer_name or '').split(' ')[0] or None

    return OrderPayload(
        customer_name=first_name,
        order_number=(order.order_number or '').lstrip('#'),
        currency=order.currency or 'USD',
        total_price=f"{(order.total_price or 0):.2f}",
        items=line_items(payload),
        shipping_address=payload.get('shipping_address'),
        delivery_estimate=settings.default_delivery_estimate,
        order_status_url=order.order_status_url,
        carrier=fulfillment.get('tracking_company') or 'Our shipping partner',
        tracking_number=fulfillment.get('tracking_number') or '',
        tracking_url=(tracking_urls[0] if tracking_urls else fulfillment.get('tracking_url')) or '',
        delivery_date=settings.default_delivery_estimate,
        refund_amount=f"{(order.total_price or 0):.2f}",
        support_phone=settings.support_phone,
    )


async def run_order_stages(
    db: Session,
    dispatcher: NotificationDispatcher,
    order: Order,
    stages: Tuple[NotificationStage, ...],
    payload: Dict[str, Any],
    previous: Optional[OrderState],
    outcome: WebhookOutcome,
    data: Optional[OrderPayload] = None
) -> None:
    """Fire every due stage whose flag is still unset; set the flag once dispatch returns"""
    for stage in stages:
        if getattr(order, stage.flag):
            log.info(f"{stage.notification_type} already sent for order {order.order_number}, skipping")
            continue
        if not stage.is_due(payload, previous):
            continue
        if not order.customer_phone:
            log.info(f"Order {order.order_number} has no phone number, skipping {stage.notification_type}")
            continue

        try:
            result = await dispatcher.send(
                order.shop_domain,
                order.customer_phone,
                stage.notification_type,
                data or order_notification_data(order, payload),
                order_id=order.order_id,
            )
        except Exception as e:
            db.rollback()
            log.error(f"Failed to send {stage.notification_type} for order {order.order_number}: {str(e)}")
            outcome.errors.append(f"{stage.notification_type}: {str(e)}")
            continue

        setattr(order, stage.flag, True)
        db.commit()
        outcome.notifications.append(result.to_dict())


async def handle_order_event(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    if payload.get('id') is None:
        outcome.errors.append('order payload has no id')
        log.error(f"Order webhook {outcome.topic} without id from {shop_domain}")
        return

    order, previous = upsert_order(db, shop_domain, payload)
    outcome.action = 'order_created' if previous is None else 'order_updated'

    if previous is None:
        update_customer_from_order(db, order)
        safe_record_daily(db, shop_domain, orders_created=1)
        if order.checkout_id:
            recover_cart(db, shop_domain, order.checkout_id, order.total_price or 0.0)

    await run_order_stages(db, dispatcher, order, action.stages, payload, previous, outcome)


async def handle_fulfillment_event(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    """fulfillments/update carries the fulfillment; the order comes from our own table"""
    order_id = payload.get('order_id')
    order = db.query(Order).filter(Order.order_id == str(order_id)).first() if order_id else None
    if not order:
        outcome.action = 'order_unknown'
        log.info(f"Fulfillment update for unknown order {order_id} from {shop_domain}")
        return

    outcome.action = f"shipment_{payload.get('shipment_status') or 'updated'}"
    data = order_notification_data(order, {}, fulfillment=payload)
    await run_order_stages(db, dispatcher, order, action.stages, payload, None, outcome, data=data)


# ── Checkouts ────────────────────────────────────────────

def upsert_cart(db: Session, shop_domain: str, payload: Dict[str, Any], phone: str) -> Tuple[AbandonedCart, bool]:
    checkout_id = str(payload['id'])
    cart = db.query(AbandonedCart).filter(AbandonedCart.checkout_id == checkout_id).first()
    created = cart is None
    if created:
        cart = AbandonedCart(shop_domain=shop_domain, checkout_id=checkout_id, reminder_count=0, recovered=False)
        db.add(cart)

    items = payload.get('line_items') or []
    cart.checkout_token = payload.get('token') or cart.checkout_token
    cart.customer_email = payload.get('email') or cart.customer_email
    cart.customer_phone = phone
    cart.customer_name = (
        (payload.get('billing_address') or {}).get('first_name')
        or (payload.get('customer') or {}).get('first_name')
        or cart.customer_name
    )
    cart.cart_value = order_total(payload)
    cart.currency = payload.get('currency') or cart.currency
    cart.items_count = len(items)
    cart.line_items = items
    cart.checkout_url = payload.get('abandoned_checkout_url') or cart.checkout_url
    db.commit()
    return cart, created


def recover_cart(db: Session, shop_domain: str, checkout_id: str, value: float) -> bool:
    was_open = db.query(AbandonedCart).filter(
        AbandonedCart.checkout_id == checkout_id,
        AbandonedCart.recovered.is_(False)
    ).count() > 0
    cart = mark_cart_recovered(db, checkout_id, value)
    if not cart or not was_open:
        return False

    shop = db.query(Shop).filter(Shop.shop_domain == shop_domain).first()
    if shop:
        shop.total_revenue_generated = round((shop.total_revenue_generated or 0) + value, 2)
        db.commit()
    safe_record_daily(db, shop_domain, carts_recovered=1, revenue_generated=value)
    log.info(f"Cart {checkout_id} recovered ({value:.2f})")
    return True


async def handle_checkout_create(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    if payload.get('id') is None:
        outcome.errors.append('checkout payload has no id')
        return
    phone = extract_phone(payload)
    if not phone:
        outcome.action = 'checkout_ignored_no_phone'
        log.info(f"Checkout {payload.get('id')} has no usable phone, not tracking")
        return

    cart, created = upsert_cart(db, shop_domain, payload, phone)
    outcome.action = 'cart_tracked' if created else 'cart_refreshed'
    if created:
        safe_record_daily(db, shop_domain, carts_abandoned=1)
    log.info(f"Abandoned cart tracked for {phone} ({cart.checkout_id})")


async def handle_checkout_update(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    if payload.get('id') is None:
        outcome.errors.append('checkout payload has no id')
        return
    checkout_id = str(payload['id'])

    # Completion only updates the cart; order_placed covers the customer message
    if payload.get('completed_at'):
        recovered = recover_cart(db, shop_domain, checkout_id, order_total(payload))
        outcome.action = 'cart_recovered' if recovered else 'cart_completed'
        return

    phone = extract_phone(payload)
    exists = db.query(AbandonedCart).filter(AbandonedCart.checkout_id == checkout_id).count() > 0
    if not phone and not exists:
        outcome.action = 'checkout_ignored_no_phone'
        return
    if not phone:
        phone = db.query(AbandonedCart.customer_phone).filter(AbandonedCart.checkout_id == checkout_id).scalar()
    upsert_cart(db, shop_domain, payload, phone)
    outcome.action = 'cart_refreshed' if exists else 'cart_tracked'


# ── Customers ────────────────────────────────────────────

def upsert_customer(db: Session, shop_domain: str, payload: Dict[str, Any], phone: str) -> Tuple[Customer, bool]:
    customer = db.query(Customer).filter(
        Customer.shop_domain == shop_domain,
        Customer.customer_phone == phone
    ).first()
    created = customer is None
    if created:
        customer = Customer(shop_domain=shop_domain, customer_phone=phone, opted_in=True, opt_in_date=datetime.utcnow())
        db.add(customer)

    customer.customer_email = payload.get('email') or customer.customer_email
    customer.first_name = payload.get('first_name') or customer.first_name
    customer.last_name = payload.get('last_name') or customer.last_name
    if isinstance(payload.get('tags'), str) and payload['tags']:
        customer.tags = [tag.strip() for tag in payload['tags'].split(',') if tag.strip()]
    db.commit()
    if created:
        safe_record_daily(db, shop_domain, new_customers=1)
    return customer, created


async def handle_customer_event(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    phone = extract_phone(payload)
    if not phone:
        outcome.action = 'customer_ignored_no_phone'
        log.info(f"Customer {payload.get('email')} has no usable phone, not storing")
        return

    customer, created = upsert_customer(db, shop_domain, payload, phone)
    outcome.action = 'customer_created' if created else 'customer_updated'

    if outcome.topic != 'customers/create':
        return

    settings = get_settings()
    data = CustomerPayload(
        customer_name=payload.get('first_name'),
        shop_name=shop_display_name(shop_domain),
        shop_url=f"https://{shop_domain}",
        free_shipping_threshold=settings.free_shipping_threshold,
    )
    try:
        result = await dispatcher.send(shop_domain, phone, 'welcome_customer', data)
    except Exception as e:
        db.rollback()
        log.error(f"Failed to send welcome message to {phone}: {str(e)}")
        outcome.errors.append(f"welcome_customer: {str(e)}")
        return
    outcome.notifications.append(result.to_dict())


# ── App lifecycle ────────────────────────────────────────

async def handle_app_uninstalled(db, dispatcher, shop_domain, payload, action, outcome) -> None:
    summary = uninstall_shop(db, shop_domain)
    outcome.action = f"shop_{summary['shop']}"
    outcome.errors.extend(f"{table}: {error}" for table, error in summary['errors'].items())


WEBHOOK_ACTIONS: Dict[str, WebhookAction] = {
    'orders/create': WebhookAction(handle_order_event, (ORDER_PLACED,)),
    'orders/paid': WebhookAction(handle_order_event, (ORDER_PAID,)),
    'orders/updated': WebhookAction(handle_order_event, (ORDER_PAID, ORDER_FULFILLED, ORDER_CANCELLED)),
    'orders/fulfilled': WebhookAction(handle_order_event, (ORDER_FULFILLED,)),
    'orders/cancelled': WebhookAction(handle_order_event, (ORDER_CANCELLED,)),
    'fulfillments/update': WebhookAction(handle_fulfillment_event, (ORDER_DELIVERED,)),
    'checkouts/create': WebhookAction(handle_checkout_create),
    'checkouts/update': WebhookAction(handle_checkout_update),
    'customers/create': WebhookAction(handle_customer_event),
    'customers/update': WebhookAction(handle_customer_event),
    'app/uninstalled': WebhookAction(handle_app_uninstalled),
}

# Legacy per-topic endpoints, e.g. POST /webhooks/checkout-created
TOPIC_PATH_ALIASES = {
    'checkout-created': 'checkouts/create',
    'checkout-updated': 'checkouts/update',
    'order-created': 'orders/create',
    'order-paid': 'orders/paid',
    'order-updated': 'orders/updated',
    'order-fulfilled': 'orders/fulfilled',
    'order-cancelled': 'orders/cancelled',
    'customer-created': 'customers/create',
    'customer-updated': 'customers/update',
    'app-uninstalled': 'app/uninstalled',
}


def topic_for_path(topic_path: str) -> Optional[str]:
    """Map a URL segment ("orders-create", "checkout-created") to a webhook topic"""
    topic_path = topic_path.strip('/').lower()
    if topic_path in TOPIC_PATH_ALIASES:
        return TOPIC_PATH_ALIASES[topic_path]
    candidate = topic_path.replace('-', '/', 1)
    return candidate if candidate in WEBHOOK_ACTIONS else None


async def process_webhook(
    db: Session,
    dispatcher: NotificationDispatcher,
    topic: Optional[str],
    shop_domain: Optional[str],
    payload: Dict[str, Any]
) -> WebhookOutcome:
    """
    Apply one webhook delivery

    Never raises: failures are logged and reported in the outcome, since
    Shopify would otherwise retry the whole delivery.
    """
    topic = (topic or '').strip()
    log.info(f"Webhook received: {topic} from {shop_domain}")

    action = WEBHOOK_ACTIONS.get(topic)
    if not action:
        log.info(f"Unhandled webhook: {topic}")
        return WebhookOutcome(topic=topic, shop_domain=shop_domain, handled=False)

    outcome = WebhookOutcome(topic=topic, shop_domain=shop_domain)
    if not shop_domain:
        log.error(f"Webhook {topic} without shop domain")
        outcome.errors.append('missing shop domain')
        return outcome

    try:
        await action.handler(db, dispatcher, shop_domain, payload, action, outcome)
    except Exception as e:
        db.rollback()
        log.error(f"Error processing {topic} webhook for {shop_domain}: {str(e)}")
        outcome.errors.append(str(e))

    return outcome
