"""
Custom flow resolution

Finds the merchant-authored override for a notification. Merchants often
author a flow in only one language, so lookup cascades:
requested language -> English -> any active language -> none.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from notifier.models.flow import WhatsAppFlow
from notifier.utils.logger import log

FALLBACK_LANGUAGE = 'en'

# Fine-grained notification type -> flow category (several types share one)
NOTIFICATION_FLOW_TYPES = {
    'order_placed': 'order_confirmation',
    'order_paid': 'order_confirmation',
    'order_processing': 'order_confirmation',
    'order_fulfilled': 'shipping_update',
    'order_out_for_delivery': 'shipping_update',
    'shipping_label_created': 'shipping_update',
    'shipping_delayed': 'shipping_update',
    'shipping_exception': 'shipping_update',
    'order_delivered': 'delivery_confirmation',
    'order_cancelled': 'order_cancellation',
    'order_refunded': 'order_cancellation',
    'checkout_started': 'abandoned_cart',
    'abandoned_cart_1h': 'abandoned_cart',
    'abandoned_cart_24h': 'abandoned_cart',
    'abandoned_cart_final': 'abandoned_cart',
    'welcome_customer': 'welcome',
    'customer_birthday': 'birthday',
    'vip_status_achieved': 'vip',
    'back_in_stock': 'back_in_stock',
    'price_drop': 'promotion',
    'flash_sale': 'promotion',
    'exclusive_offer': 'promotion',
    'review_request': 'review_request',
    'review_reminder': 'review_request',
}


def flow_category(notification_type: str) -> Optional[str]:
    return NOTIFICATION_FLOW_TYPES.get(notification_type)


def get_active_flows(db: Session, shop_domain: str) -> List[WhatsAppFlow]:
    return (
        db.query(WhatsAppFlow)
        .filter(
            WhatsAppFlow.shop_domain == shop_domain,
            WhatsAppFlow.is_active.is_(True),
        )
        .order_by(WhatsAppFlow.id)
        .all()
    )


def resolve_override(
    db: Session,
    shop_domain: str,
    notification_type: str,
    language: str = FALLBACK_LANGUAGE
) -> Optional[WhatsAppFlow]:
    """
    Resolve the merchant override for a notification

    Args:
        db: Database session
        shop_domain: Shop to search
        notification_type: Fine-grained type, e.g. "order_paid"
        language: Requested language code

    Returns:
        Active WhatsAppFlow, or None when the shop has no active flow of the category
    """
    category = flow_category(notification_type)
    if not category:
        return None

    flows = [f for f in get_active_flows(db, shop_domain) if f.flow_type == category]
    if not flows:
        return None

    for flow in flows:
        if flow.language == language:
            return flow

    if language != FALLBACK_LANGUAGE:
        for flow in flows:
            if flow.language == FALLBACK_LANGUAGE:
                log.debug(f"Using English '{category}' flow for {shop_domain} (requested {language})")
                return flow

    flow = flows[0]
    log.debug(f"Using '{flow.language}' '{category}' flow for {shop_domain} (requested {language})")
    return flow
