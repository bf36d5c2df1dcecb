"""
Customer data models
WhatsApp contacts per shop, with the opt-in flag that gates every outbound send
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON, UniqueConstraint
from datetime import datetime

from notifier.models.base import Base


class Customer(Base):
    """Shop customer reachable over WhatsApp"""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint('shop_domain', 'customer_phone', name='uq_customers_shop_phone'),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)
    customer_phone = Column(String, index=True, nullable=False)  # E.164, e.g. +15551234567
    customer_email = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    # Consent
    opted_in = Column(Boolean, default=True, index=True)
    opt_in_date = Column(DateTime, default=datetime.utcnow)
    opt_out_date = Column(DateTime, nullable=True)
    language = Column(String, default='en')

    # Purchase behavior
    total_orders = Column(Integer, default=0)
    total_spent = Column(Float, default=0.0)
    last_order_date = Column(DateTime, nullable=True)
    last_interaction = Column(DateTime, nullable=True, index=True)
    vip_status = Column(Boolean, default=False)
    tags = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
