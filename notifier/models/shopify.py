"""
Shopify Data Models

Orders and checkouts mirrored from Shopify webhooks, carrying the flags that
make notification triggering idempotent.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, Boolean
from datetime import datetime

from notifier.models.base import Base


class Order(Base):
    """
    Shopify order as seen through orders/* webhooks

    The *_sent flags only ever go from False to True; each one gates a single
    lifecycle notification against duplicate or out-of-order deliveries.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)

    # Shopify IDs
    order_id = Column(String, unique=True, index=True, nullable=False)
    order_number = Column(String, nullable=True)  # "#1001"
    checkout_id = Column(String, index=True, nullable=True)

    # Customer
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, index=True, nullable=True)
    customer_name = Column(String, nullable=True)

    # Amounts / status
    total_price = Column(Float, default=0.0)
    currency = Column(String, default='USD')
    financial_status = Column(String, index=True, nullable=True)  # pending, paid, refunded
    fulfillment_status = Column(String, index=True, nullable=True)  # fulfilled, partial, null
    cancelled_at = Column(DateTime, nullable=True)
    main_product = Column(String, nullable=True)  # First line item title, used by review requests
    order_status_url = Column(String, nullable=True)

    # Notification gates
    confirmation_sent = Column(Boolean, default=False)
    payment_sent = Column(Boolean, default=False)
    shipping_sent = Column(Boolean, default=False)
    delivered_sent = Column(Boolean, default=False)
    cancellation_sent = Column(Boolean, default=False)
    review_requested = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)


class AbandonedCart(Base):
    """
    Checkout that has not (yet) been completed

    reminder_count walks 0 -> 1 -> 2 -> 3; 3 is terminal, and recovered=True
    stops reminders regardless of the count.
    """
    __tablename__ = "abandoned_carts"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)
    checkout_id = Column(String, unique=True, index=True, nullable=False)
    checkout_token = Column(String, nullable=True)

    # Customer contact
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, index=True, nullable=True)
    customer_name = Column(String, nullable=True)

    # Cart contents
    cart_value = Column(Float, default=0.0)
    currency = Column(String, default='USD')
    items_count = Column(Integer, default=0)
    line_items = Column(JSON)  # [{name, quantity, price}, ...]
    checkout_url = Column(String, nullable=True)

    # Reminder sequence
    reminder_count = Column(Integer, default=0, index=True)
    last_reminder_at = Column(DateTime, nullable=True)

    # Recovery
    recovered = Column(Boolean, default=False, index=True)
    recovered_at = Column(DateTime, nullable=True)
    recovery_value = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
