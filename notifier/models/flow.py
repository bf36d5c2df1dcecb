"""
Merchant-authored WhatsApp flows (message overrides)
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON
from datetime import datetime

from notifier.models.base import Base


class WhatsAppFlow(Base):
    """
    Custom message for one flow category in one language

    Read-only to the dispatcher; authored through the admin API.
    """
    __tablename__ = "whatsapp_flows"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)

    flow_name = Column(String, nullable=False)
    flow_type = Column(String, index=True, nullable=False)  # abandoned_cart, order_confirmation, welcome, ...
    flow_example = Column(String, nullable=True)
    language = Column(String, default='en')
    trigger_delay_minutes = Column(Integer, default=15)

    # Message
    message_content = Column(Text, nullable=False)  # body with {{placeholders}}
    footer_text = Column(String, nullable=True)
    discount_code = Column(String, nullable=True)
    image_type = Column(String, default='dynamic')
    image_url = Column(String, nullable=True)
    button_text = Column(String, default='Complete Your Order')
    quick_replies = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
