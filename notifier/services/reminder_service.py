"""
Reminder Service
Periodic jobs: abandoned-cart reminder sequence, post-delivery review
requests, and hand-off of due marketing campaigns.
"""
import inspect
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from notifier.config import get_settings
from notifier.models.campaign import Campaign
from notifier.models.shop import Shop
from notifier.models.shopify import AbandonedCart, Order
from notifier.services.interpolation import CartPayload, LineItem, ReviewPayload
from notifier.services.notification_service import NotificationDispatcher, shop_display_name
from notifier.utils.logger import log


@dataclass(frozen=True)
class ReminderStage:
    """One step of the abandoned-cart sequence"""
    hours: int
    reminder_count: int  # count a cart must have to be due for this stage
    notification_type: str


REMINDER_STAGES = (
    ReminderStage(hours=1, reminder_count=0, notification_type='abandoned_cart_1h'),
    ReminderStage(hours=24, reminder_count=1, notification_type='abandoned_cart_24h'),
    ReminderStage(hours=48, reminder_count=2, notification_type='abandoned_cart_final'),
)


# ── Abandoned carts ──────────────────────────────────────

def get_active_shops(db: Session) -> List[Shop]:
    return db.query(Shop).filter(Shop.is_active.is_(True)).order_by(Shop.id).all()


def find_due_carts(db: Session, shop_domain: str, stage: ReminderStage, now: datetime) -> List[AbandonedCart]:
    """Unrecovered carts with a phone, at this stage's count, at least `stage.hours` old"""
    cutoff = now - timedelta(hours=stage.hours)
    return (
        db.query(AbandonedCart)
        .filter(
            AbandonedCart.shop_domain == shop_domain,
            AbandonedCart.recovered.is_(False),
            AbandonedCart.reminder_count == stage.reminder_count,
            AbandonedCart.created_at <= cutoff,
            AbandonedCart.customer_phone.isnot(None),
        )
        .order_by(AbandonedCart.created_at)
        .all()
    )


def claim_cart(db: Session, cart_id: int, from_count: int, now: datetime) -> bool:
    """
    Advance reminder_count from `from_count` to the next stage, compare-and-set

    Returns False when another worker already advanced the cart or it was
    recovered in the meantime.
    """
    updated = (
        db.query(AbandonedCart)
        .filter(
            AbandonedCart.id == cart_id,
            AbandonedCart.reminder_count == from_count,
            AbandonedCart.recovered.is_(False),
        )
        .update(
            {AbandonedCart.reminder_count: from_count + 1, AbandonedCart.last_reminder_at: now},
            synchronize_session=False
        )
    )
    db.commit()
    return updated == 1


def release_cart(db: Session, cart_id: int, to_count: int) -> None:
    """Undo a claim so the stage is retried on the next tick"""
    db.query(AbandonedCart).filter(
        AbandonedCart.id == cart_id,
        AbandonedCart.reminder_count == to_count + 1,
    ).update({AbandonedCart.reminder_count: to_count}, synchronize_session=False)
    db.commit()


def cart_payload(cart: AbandonedCart) -> CartPayload:
    items = [
        LineItem(
            name=item.get('name') or item.get('title') or '',
            quantity=item.get('quantity') or 1,
            price=str(item.get('price') or ''),
        )
        for item in (cart.line_items or [])
        if isinstance(item, dict)
    ]
    return CartPayload(
        customer_name=cart.customer_name,
        items=items,
        currency=cart.currency,
        total_price=f"{(cart.cart_value or 0):.2f}",
        checkout_url=cart.checkout_url,
        shop_name=shop_display_name(cart.shop_domain),
    )


async def send_cart_reminder(
    db: Session,
    dispatcher: NotificationDispatcher,
    cart: AbandonedCart,
    stage: ReminderStage,
    now: datetime
) -> str:
    """
    Claim the cart for this stage, then dispatch

    Returns one of: sent, skipped, failed, claimed (someone else got it first).
    """
    cart_id = cart.id
    payload = cart_payload(cart)
    shop_domain = cart.shop_domain
    phone = cart.customer_phone
    checkout_id = cart.checkout_id

    if not claim_cart(db, cart_id, stage.reminder_count, now):
        log.info(f"Cart {checkout_id} already advanced past stage {stage.reminder_count}, skipping")
        return 'claimed'

    try:
        result = await dispatcher.send(
            shop_domain,
            phone,
            stage.notification_type,
            payload,
            checkout_id=checkout_id,
        )
    except Exception as e:
        db.rollback()
        log.error(f"Error sending {stage.notification_type} for cart {checkout_id}: {str(e)}")
        if not get_settings().cart_reminder_advance_on_error:
            release_cart(db, cart_id, stage.reminder_count)
        return 'failed'

    return 'sent' if result.sent else 'skipped'


async def process_abandoned_carts(
    db: Session,
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None
) -> Dict[str, int]:
    """
    One tick of the abandoned-cart sequence

    Shops and carts are processed one at a time. Due carts for all stages are
    collected before any is sent, so a cart receives at most one reminder per tick.
    """
    now = now or datetime.utcnow()
    counts = {'shops': 0, 'sent': 0, 'skipped': 0, 'failed': 0, 'claimed': 0}

    for shop in get_active_shops(db):
        shop_domain = shop.shop_domain
        counts['shops'] += 1
        try:
            due = [
                (stage, cart)
                for stage in REMINDER_STAGES
                for cart in find_due_carts(db, shop_domain, stage, now)
            ]
        except Exception as e:
            db.rollback()
            log.error(f"Error loading abandoned carts for {shop_domain}: {str(e)}")
            continue

        for stage, cart in due:
            outcome = await send_cart_reminder(db, dispatcher, cart, stage, now)
            counts[outcome] += 1

    return counts


def mark_cart_recovered(db: Session, checkout_id: str, recovery_value: float) -> Optional[AbandonedCart]:
    """Absorbing transition: a recovered cart never receives another reminder"""
    cart = db.query(AbandonedCart).filter(AbandonedCart.checkout_id == checkout_id).first()
    if not cart or cart.recovered:
        return cart
    cart.recovered = True
    cart.recovered_at = datetime.utcnow()
    cart.recovery_value = recovery_value
    db.commit()
    return cart


# ── Review requests ──────────────────────────────────────

def find_orders_for_review(db: Session, now: datetime, delay_days: int) -> List[Order]:
    cutoff = now - timedelta(days=delay_days)
    return (
        db.query(Order)
        .filter(
            Order.delivered_sent.is_(True),
            Order.review_requested.is_(False),
            Order.updated_at <= cutoff,
            Order.customer_phone.isnot(None),
        )
        .order_by(Order.id)
        .all()
    )


async def process_review_requests(
    db: Session,
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None
) -> Dict[str, int]:
    """Ask for a review on orders delivered more than review_request_delay_days ago"""
    settings = get_settings()
    now = now or datetime.utcnow()
    counts = {'sent': 0, 'skipped': 0, 'failed': 0}

    for order in find_orders_for_review(db, now, settings.review_request_delay_days):
        order_id = order.order_id
        payload = ReviewPayload(
            customer_name=order.customer_name,
            product_name=order.main_product or 'purchase',
            order_number=(order.order_number or '').lstrip('#'),
            review_url=f"https://{order.shop_domain}/reviews/new?order={order_id}",
        )
        try:
            result = await dispatcher.send(
                order.shop_domain,
                order.customer_phone,
                'review_request',
                payload,
                order_id=order_id,
            )
        except Exception as e:
            db.rollback()
            log.error(f"Error sending review request for order {order_id}: {str(e)}")
            counts['failed'] += 1
            continue

        order.review_requested = True
        db.commit()
        counts['sent' if result.sent else 'skipped'] += 1

    return counts


# ── Scheduled campaigns ──────────────────────────────────

CampaignRunner = Callable[[Campaign], Any]


async def process_scheduled_campaigns(
    db: Session,
    runner: Optional[CampaignRunner] = None,
    now: Optional[datetime] = None
) -> Dict[str, int]:
    """
    Start campaigns whose scheduled time has passed

    Each campaign is marked running before it is handed to `runner`, so a
    later tick never picks it up twice. Execution belongs to the runner.
    """
    now = now or datetime.utcnow()
    due = (
        db.query(Campaign)
        .filter(
            Campaign.status == 'scheduled',
            Campaign.scheduled_at <= now,
            Campaign.started_at.is_(None),
        )
        .order_by(Campaign.scheduled_at)
        .all()
    )
    counts = {'due': len(due), 'started': 0, 'failed': 0}

    for campaign in due:
        campaign.status = 'running'
        campaign.started_at = now
        db.commit()
        counts['started'] += 1

        if runner is None:
            log.info(f"Campaign {campaign.id} ({campaign.campaign_name}) is due; no campaign runner configured")
            continue

        try:
            outcome = runner(campaign)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            db.rollback()
            counts['failed'] += 1
            log.error(f"Campaign runner failed for campaign {campaign.id}: {str(e)}")

    return counts
