"""
Marketing campaign models
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text
from datetime import datetime

from notifier.models.base import Base


class Campaign(Base):
    """Broadcast campaign; execution is handed to an external runner"""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=False)

    campaign_name = Column(String, nullable=False)
    campaign_type = Column(String, default='manual')
    message_template = Column(Text, nullable=True)
    target_audience = Column(String, default='all')

    # Lifecycle
    status = Column(String, default='draft', index=True)  # draft, scheduled, running, completed
    scheduled_at = Column(DateTime, nullable=True, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Results
    total_recipients = Column(Integer, default=0)
    sent_count = Column(Integer, default=0)
    delivered_count = Column(Integer, default=0)
    read_count = Column(Integer, default=0)
    response_count = Column(Integer, default=0)
    conversion_count = Column(Integer, default=0)
    revenue_generated = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
