"""
Shop Service
Install / uninstall lifecycle and per-shop automation settings
"""
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from notifier.config import get_settings
from notifier.models.analytics import DailyAnalytics
from notifier.models.campaign import Campaign
from notifier.models.customer import Customer
from notifier.models.flow import WhatsAppFlow
from notifier.models.message import Message
from notifier.models.shop import Shop, ShopSession, AutomationSettings, AUTOMATION_DEFAULTS
from notifier.models.shopify import AbandonedCart, Order
from notifier.utils.logger import log

# Deletion order for the uninstall cascade; the shop row itself goes last
SHOP_TABLES = (
    ('messages', Message),
    ('abandoned_carts', AbandonedCart),
    ('orders', Order),
    ('customers', Customer),
    ('campaigns', Campaign),
    ('whatsapp_flows', WhatsAppFlow),
    ('analytics', DailyAnalytics),
    ('automation_settings', AutomationSettings),
    ('shop_sessions', ShopSession),
)


def get_shop(db: Session, shop_domain: str) -> Optional[Shop]:
    return db.query(Shop).filter(Shop.shop_domain == shop_domain).first()


def ensure_automation_settings(db: Session, shop_domain: str) -> AutomationSettings:
    settings_row = db.query(AutomationSettings).filter(
        AutomationSettings.shop_domain == shop_domain
    ).first()
    if settings_row:
        return settings_row

    settings_row = AutomationSettings(shop_domain=shop_domain, **AUTOMATION_DEFAULTS)
    db.add(settings_row)
    db.commit()
    return settings_row


def install_shop(
    db: Session,
    shop_domain: str,
    access_token: Optional[str] = None,
    shop_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    scope: Optional[str] = None
) -> Shop:
    """
    Create or refresh a shop after OAuth / token exchange

    Reactivates a previously uninstalled (soft-deleted) shop, stores the
    offline session and makes sure automation settings exist.
    """
    shop = get_shop(db, shop_domain)
    if shop:
        log.info(f"Refreshing shop {shop_domain}")
        if access_token:
            shop.access_token = access_token
        shop.shop_name = shop_name or shop.shop_name
        shop.email = email or shop.email
        shop.phone = phone or shop.phone
        shop.is_active = True
    else:
        log.info(f"Installing new shop {shop_domain}")
        shop = Shop(
            shop_domain=shop_domain,
            access_token=access_token,
            shop_name=shop_name or shop_domain.replace('.myshopify.com', ''),
            email=email,
            phone=phone,
            is_active=True,
        )
        db.add(shop)
    db.commit()

    if access_token:
        session_id = f"offline_{shop_domain}"
        session = db.query(ShopSession).filter(ShopSession.session_id == session_id).first()
        if not session:
            session = ShopSession(session_id=session_id, shop_domain=shop_domain)
            db.add(session)
        session.access_token = access_token
        session.scope = scope
        session.is_online = False
        db.commit()

    ensure_automation_settings(db, shop_domain)
    return shop


def uninstall_shop(db: Session, shop_domain: str, soft_delete: Optional[bool] = None) -> Dict[str, Any]:
    """
    Remove everything stored for a shop

    Each table is cleaned in its own transaction; a failing step is logged
    and the cascade moves on. Safe to call repeatedly.

    Returns:
        {'shop_domain', 'deleted': {table: rows}, 'errors': {table: message}, 'shop': 'deleted'|'deactivated'|'missing'}
    """
    if soft_delete is None:
        soft_delete = get_settings().soft_delete_on_uninstall

    summary: Dict[str, Any] = {'shop_domain': shop_domain, 'deleted': {}, 'errors': {}, 'shop': 'missing'}

    for table, model in SHOP_TABLES:
        try:
            rows = db.query(model).filter(model.shop_domain == shop_domain).delete(synchronize_session=False)
            db.commit()
            summary['deleted'][table] = rows
        except Exception as e:
            db.rollback()
            summary['errors'][table] = str(e)
            log.error(f"Uninstall cleanup failed for {shop_domain} on {table}: {str(e)}")

    try:
        shop = get_shop(db, shop_domain)
        if shop and soft_delete:
            shop.is_active = False
            shop.access_token = None
            db.commit()
            summary['shop'] = 'deactivated'
        elif shop:
            db.delete(shop)
            db.commit()
            summary['shop'] = 'deleted'
    except Exception as e:
        db.rollback()
        summary['errors']['shops'] = str(e)
        log.error(f"Uninstall cleanup failed for {shop_domain} on shops: {str(e)}")

    total = sum(summary['deleted'].values())
    log.info(f"Shop uninstalled and cleaned up: {shop_domain} ({total} rows removed, shop {summary['shop']})")
    return summary


def get_automation_settings(db: Session, shop_domain: str) -> Dict[str, bool]:
    settings_row = db.query(AutomationSettings).filter(
        AutomationSettings.shop_domain == shop_domain
    ).first()
    if not settings_row:
        return dict(AUTOMATION_DEFAULTS)
    return {key: bool(getattr(settings_row, key)) for key in AUTOMATION_DEFAULTS}


def save_automation_settings(db: Session, shop_domain: str, values: Dict[str, Any]) -> Dict[str, bool]:
    """Update known toggles; unknown keys are ignored"""
    settings_row = ensure_automation_settings(db, shop_domain)
    for key, value in values.items():
        if key in AUTOMATION_DEFAULTS and value is not None:
            setattr(settings_row, key, bool(value))
    settings_row.updated_at = datetime.utcnow()
    db.commit()
    log.info(f"Automation settings saved for {shop_domain}")
    return get_automation_settings(db, shop_domain)
