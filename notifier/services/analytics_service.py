"""
Analytics Service
Daily counters and dashboard aggregates per shop
"""
from datetime import datetime, date, timedelta
from typing import Any, Dict, Optional
from sqlalchemy import func, case
from sqlalchemy.orm import Session

from notifier.models.analytics import DailyAnalytics, ANALYTICS_COUNTERS
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shopify import AbandonedCart, Order
from notifier.utils.helpers import safe_divide
from notifier.utils.logger import log


def record_daily(db: Session, shop_domain: str, day: Optional[date] = None, **metrics) -> DailyAnalytics:
    """
    Increment today's counters for a shop, creating the row on first use

    Unknown metric names raise ValueError. Commits.
    """
    unknown = set(metrics) - set(ANALYTICS_COUNTERS)
    if unknown:
        raise ValueError(f"Unknown analytics counters: {', '.join(sorted(unknown))}")

    day = day or datetime.utcnow().date()
    row = db.query(DailyAnalytics).filter(
        DailyAnalytics.shop_domain == shop_domain,
        DailyAnalytics.date == day
    ).first()

    if not row:
        row = DailyAnalytics(shop_domain=shop_domain, date=day)
        for counter in ANALYTICS_COUNTERS:
            setattr(row, counter, 0)
        db.add(row)

    for counter, amount in metrics.items():
        setattr(row, counter, (getattr(row, counter) or 0) + (amount or 0))

    db.commit()
    return row


def safe_record_daily(db: Session, shop_domain: str, **metrics) -> None:
    """record_daily that logs instead of raising; analytics never block a send"""
    try:
        record_daily(db, shop_domain, **metrics)
    except Exception as e:
        db.rollback()
        log.error(f"Failed to record analytics for {shop_domain}: {str(e)}")


def get_message_stats(db: Session, shop_domain: str, days: int = 30) -> Dict[str, Any]:
    """Message volume, delivery and cost over the last `days` days"""
    since = datetime.utcnow() - timedelta(days=days)
    row = db.query(
        func.count(Message.id),
        func.count(func.distinct(Message.customer_phone)),
        func.sum(case((Message.provider_status == 'delivered', 1), else_=0)),
        func.sum(case((Message.provider_status == 'read', 1), else_=0)),
        func.sum(case((Message.provider_status == 'failed', 1), else_=0)),
        func.sum(case((Message.message_type.like('abandoned_cart%'), 1), else_=0)),
        func.sum(case((Message.message_type.like('order_%'), 1), else_=0)),
        func.sum(Message.cost),
    ).filter(
        Message.shop_domain == shop_domain,
        Message.direction == 'outbound',
        Message.created_at >= since
    ).one()

    return {
        'total_messages': row[0] or 0,
        'unique_customers': row[1] or 0,
        'delivered': row[2] or 0,
        'read': row[3] or 0,
        'failed': row[4] or 0,
        'cart_messages': row[5] or 0,
        'order_messages': row[6] or 0,
        'total_cost': round(float(row[7] or 0), 2),
    }


def get_cart_stats(db: Session, shop_domain: str, days: int = 30) -> Dict[str, Any]:
    """Abandoned vs recovered carts and recovered revenue"""
    since = datetime.utcnow() - timedelta(days=days)
    row = db.query(
        func.count(AbandonedCart.id),
        func.sum(case((AbandonedCart.recovered.is_(True), 1), else_=0)),
        func.sum(case((AbandonedCart.recovered.is_(True), AbandonedCart.recovery_value), else_=0)),
        func.sum(AbandonedCart.cart_value),
    ).filter(
        AbandonedCart.shop_domain == shop_domain,
        AbandonedCart.created_at >= since
    ).one()

    total = row[0] or 0
    recovered = row[1] or 0
    return {
        'abandoned_carts': total,
        'recovered_carts': recovered,
        'recovery_rate': round(safe_divide(recovered * 100.0, total), 1),
        'recovered_revenue': round(float(row[2] or 0), 2),
        'abandoned_value': round(float(row[3] or 0), 2),
    }


def get_customer_segments(db: Session, shop_domain: str) -> Dict[str, Any]:
    at_risk_cutoff = datetime.utcnow() - timedelta(days=60)
    row = db.query(
        func.count(Customer.id),
        func.sum(case((Customer.opted_in.is_(True), 1), else_=0)),
        func.sum(case((Customer.total_spent > 500, 1), else_=0)),
        func.sum(case((Customer.total_orders >= 2, 1), else_=0)),
        func.sum(case((Customer.total_orders == 1, 1), else_=0)),
        func.sum(case((Customer.last_order_date < at_risk_cutoff, 1), else_=0)),
    ).filter(Customer.shop_domain == shop_domain).one()

    return {
        'total_customers': row[0] or 0,
        'opted_in': row[1] or 0,
        'vip_customers': row[2] or 0,
        'repeat_customers': row[3] or 0,
        'one_time_customers': row[4] or 0,
        'at_risk': row[5] or 0,
    }


def get_analytics_summary(db: Session, shop_domain: str, days: int = 30) -> Dict[str, Any]:
    since = datetime.utcnow().date() - timedelta(days=days)
    row = db.query(
        func.sum(DailyAnalytics.messages_sent),
        func.sum(DailyAnalytics.messages_delivered),
        func.sum(DailyAnalytics.carts_abandoned),
        func.sum(DailyAnalytics.carts_recovered),
        func.sum(DailyAnalytics.orders_created),
        func.sum(DailyAnalytics.revenue_generated),
        func.sum(DailyAnalytics.total_cost),
    ).filter(
        DailyAnalytics.shop_domain == shop_domain,
        DailyAnalytics.date > since
    ).one()

    return {
        'total_messages': row[0] or 0,
        'total_delivered': row[1] or 0,
        'total_abandoned': row[2] or 0,
        'total_recovered': row[3] or 0,
        'orders_created': row[4] or 0,
        'total_revenue': round(float(row[5] or 0), 2),
        'total_cost': round(float(row[6] or 0), 2),
    }


def get_dashboard(db: Session, shop_domain: str, days: int = 30) -> Dict[str, Any]:
    """Everything the merchant dashboard header shows"""
    orders = db.query(func.count(Order.id)).filter(Order.shop_domain == shop_domain).scalar() or 0
    return {
        'shop_domain': shop_domain,
        'period_days': days,
        'messages': get_message_stats(db, shop_domain, days),
        'carts': get_cart_stats(db, shop_domain, days),
        'customers': get_customer_segments(db, shop_domain),
        'summary': get_analytics_summary(db, shop_domain, days),
        'orders_tracked': orders,
    }
