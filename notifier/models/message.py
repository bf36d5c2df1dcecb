"""
WhatsApp message log

Append-only: rows are only updated by delivery-status callbacks keyed by
the provider message id.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text
from datetime import datetime

from notifier.models.base import Base


class Message(Base):
    """One inbound or outbound WhatsApp message"""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)
    customer_phone = Column(String, index=True, nullable=False)
    customer_name = Column(String, nullable=True)

    message_type = Column(String, index=True, nullable=False)  # order_placed, abandoned_cart_1h, inbound, custom
    message_body = Column(Text, nullable=True)
    direction = Column(String, default='outbound')  # outbound, inbound

    # Provider (Twilio) tracking
    provider_message_id = Column(String, unique=True, index=True, nullable=True)
    provider_status = Column(String, default='pending')  # queued, sent, delivered, read, failed, mock
    error_code = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    cost = Column(Float, default=0.0)

    # Optional linkage to the commerce object that triggered the send
    order_id = Column(String, index=True, nullable=True)
    checkout_id = Column(String, index=True, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    delivered_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
