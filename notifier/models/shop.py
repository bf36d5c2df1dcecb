"""
Shop (tenant) models

A shop is the tenant boundary: every other table is keyed by shop_domain.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text
from datetime import datetime

from notifier.models.base import Base


class Shop(Base):
    """
    Installed Shopify store

    Created on installation, refreshed on every OAuth / token-exchange
    completion, deleted or deactivated on app/uninstalled.
    """
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, unique=True, index=True, nullable=False)  # store.myshopify.com
    access_token = Column(String, nullable=True)
    shop_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    # Plan & usage
    plan = Column(String, default='free')
    is_active = Column(Boolean, default=True, index=True)
    monthly_message_count = Column(Integer, default=0)
    message_limit = Column(Integer, default=50)
    total_revenue_generated = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ShopSession(Base):
    """Session credential stored on behalf of the Shopify SDK"""
    __tablename__ = "shop_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, unique=True, index=True, nullable=False)
    shop_domain = Column(String, index=True, nullable=False)
    access_token = Column(Text, nullable=True)
    scope = Column(String, nullable=True)
    is_online = Column(Boolean, default=False)
    expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class AutomationSettings(Base):
    """
    Per-shop automation toggles

    A disabled category turns every notification type mapped to it into a no-op.
    """
    __tablename__ = "automation_settings"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, unique=True, index=True, nullable=False)

    abandoned_cart_enabled = Column(Boolean, default=True)
    order_confirmation_enabled = Column(Boolean, default=True)
    shipping_updates_enabled = Column(Boolean, default=True)
    welcome_message_enabled = Column(Boolean, default=True)
    review_request_enabled = Column(Boolean, default=False)
    birthday_messages_enabled = Column(Boolean, default=False)
    back_in_stock_enabled = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Column defaults, used when a shop has no automation_settings row yet
AUTOMATION_DEFAULTS = {
    'abandoned_cart_enabled': True,
    'order_confirmation_enabled': True,
    'shipping_updates_enabled': True,
    'welcome_message_enabled': True,
    'review_request_enabled': False,
    'birthday_messages_enabled': False,
    'back_in_stock_enabled': False,
}
