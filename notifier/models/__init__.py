"""Database models for the WhatsApp notification relay"""

from notifier.models.shop import Shop, ShopSession, AutomationSettings

from notifier.models.customer import Customer

from notifier.models.message import Message

from notifier.models.shopify import Order, AbandonedCart

from notifier.models.flow import WhatsAppFlow

from notifier.models.campaign import Campaign

from notifier.models.analytics import DailyAnalytics

__all__ = [
    'Shop',
    'ShopSession',
    'AutomationSettings',
    'Customer',
    'Message',
    'Order',
    'AbandonedCart',
    'WhatsAppFlow',
    'Campaign',
    'DailyAnalytics',
]
