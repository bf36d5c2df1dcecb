"""
Daily aggregated messaging analytics
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, UniqueConstraint
from datetime import datetime

from notifier.models.base import Base


class DailyAnalytics(Base):
    """One row per shop per day; counters are incremented in place"""
    __tablename__ = "analytics"
    __table_args__ = (
        UniqueConstraint('shop_domain', 'date', name='uq_analytics_shop_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    messages_sent = Column(Integer, default=0)
    messages_delivered = Column(Integer, default=0)
    messages_read = Column(Integer, default=0)
    messages_replied = Column(Integer, default=0)
    carts_abandoned = Column(Integer, default=0)
    carts_recovered = Column(Integer, default=0)
    orders_created = Column(Integer, default=0)
    revenue_generated = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)
    new_customers = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)


# Counters record_daily() knows how to increment
ANALYTICS_COUNTERS = (
    'messages_sent', 'messages_delivered', 'messages_read', 'messages_replied',
    'carts_abandoned', 'carts_recovered', 'orders_created',
    'revenue_generated', 'total_cost', 'new_customers',
)
