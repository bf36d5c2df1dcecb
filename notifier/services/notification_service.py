"""
Notification Service
Resolves, renders and delivers one WhatsApp notification, and does the
bookkeeping around it (customer lifecycle, message log, cost, analytics).
"""
import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from notifier.config import get_settings
from notifier.connectors.whatsapp import (
    MessagingProviderError,
    ProviderResult,
    TwilioWhatsAppClient,
    get_whatsapp_client,
    mock_result,
)
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shop import Shop, AutomationSettings, AUTOMATION_DEFAULTS
from notifier.models.flow import WhatsAppFlow
from notifier.services.analytics_service import safe_record_daily
from notifier.services.flow_resolver import flow_category, resolve_override
from notifier.services.interpolation import TemplateData, known_customer_name, render, template_variables
from notifier.services.templates import get_template
from notifier.utils.logger import log
from notifier.utils.phone import normalize_phone

FALLBACK_LANGUAGE = 'en'

# Billed at the marketing rate; everything else is a utility message
MARKETING_NOTIFICATION_TYPES = frozenset({'flash_sale', 'exclusive_offer', 'price_drop'})

# Flow category -> AutomationSettings toggle. Categories not listed are always on.
AUTOMATION_TOGGLES = {
    'abandoned_cart': 'abandoned_cart_enabled',
    'order_confirmation': 'order_confirmation_enabled',
    'shipping_update': 'shipping_updates_enabled',
    'delivery_confirmation': 'shipping_updates_enabled',
    'welcome': 'welcome_message_enabled',
    'review_request': 'review_request_enabled',
    'birthday': 'birthday_messages_enabled',
    'back_in_stock': 'back_in_stock_enabled',
}

# Policy no-op reasons
SKIP_MISSING_SHOP_DOMAIN = 'missing_shop_domain'
SKIP_SHOP_NOT_FOUND = 'shop_not_found'
SKIP_INVALID_PHONE = 'invalid_phone'
SKIP_AUTOMATION_DISABLED = 'automation_disabled'
SKIP_TEMPLATE_NOT_FOUND = 'template_not_found'
SKIP_OPTED_OUT = 'customer_opted_out'


@dataclass
class DispatchResult:
    """Outcome of one send; sent=False with a reason is an expected no-op"""
    sent: bool
    notification_type: str
    customer_phone: Optional[str] = None
    message_id: Optional[str] = None
    status: Optional[str] = None
    body: Optional[str] = None
    reason: Optional[str] = None
    flow_id: Optional[int] = None

    @classmethod
    def skipped(cls, notification_type: str, reason: str, customer_phone: Optional[str] = None) -> "DispatchResult":
        return cls(sent=False, notification_type=notification_type, customer_phone=customer_phone, reason=reason)

    @property
    def is_mock(self) -> bool:
        return self.status == 'mock'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_cost(notification_type: str) -> float:
    """Fixed per-message cost by category"""
    settings = get_settings()
    if notification_type in MARKETING_NOTIFICATION_TYPES:
        return settings.marketing_message_cost
    return settings.utility_message_cost


def shop_display_name(shop_domain: str) -> str:
    return shop_domain.replace('.myshopify.com', '')


class NotificationDispatcher:
    """
    Sends WhatsApp notifications for one shop event at a time

    Owns the customer lifecycle: sending to an unknown phone creates the
    Customer row. The messaging client is injected so tests can pass a fake.
    """

    def __init__(self, db: Session, client: Optional[TwilioWhatsAppClient] = None):
        self.db = db
        self.client = client if client is not None else get_whatsapp_client()

    @property
    def messaging_configured(self) -> bool:
        return bool(self.client.is_configured)

    # ── Lookups ──────────────────────────────────────────

    def get_shop(self, shop_domain: str) -> Optional[Shop]:
        """Active shop only; a deactivated (uninstalled) shop counts as absent"""
        return self.db.query(Shop).filter(
            Shop.shop_domain == shop_domain,
            Shop.is_active.is_(True)
        ).first()

    def get_customer(self, shop_domain: str, customer_phone: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(
            Customer.shop_domain == shop_domain,
            Customer.customer_phone == customer_phone
        ).first()

    def get_or_create_customer(self, shop_domain: str, customer_phone: str, customer_name: Optional[str] = None) -> Customer:
        customer = self.get_customer(shop_domain, customer_phone)
        if customer:
            return customer

        log.info(f"Creating new customer {customer_phone} for {shop_domain}")
        names = (customer_name or '').split()
        customer = Customer(
            shop_domain=shop_domain,
            customer_phone=customer_phone,
            first_name=names[0] if names else None,
            last_name=' '.join(names[1:]) or None,
            opted_in=True,
            opt_in_date=datetime.utcnow(),
        )
        self.db.add(customer)
        self.db.commit()
        safe_record_daily(self.db, shop_domain, new_customers=1)
        return customer

    def is_automation_enabled(self, shop_domain: str, notification_type: str) -> bool:
        toggle = AUTOMATION_TOGGLES.get(flow_category(notification_type) or '')
        if not toggle:
            return True

        settings_row = self.db.query(AutomationSettings).filter(
            AutomationSettings.shop_domain == shop_domain
        ).first()
        if not settings_row:
            return AUTOMATION_DEFAULTS[toggle]
        return bool(getattr(settings_row, toggle))

    # ── Rendering ────────────────────────────────────────

    def render_override(self, flow: WhatsAppFlow, shop: Shop, variables: Dict[str, Any]) -> str:
        """Render a merchant flow with the derived variables flows rely on"""
        values = dict(variables)

        customer_name = values.get('customer_name') or ''
        if not values.get('first_name'):
            values['first_name'] = customer_name.split()[0] if customer_name.strip() else 'there'
        if values.get('total_price') is not None and not values.get('total'):
            values['total'] = f"{values.get('currency') or ''} {values['total_price']}".strip()
        if flow.discount_code and not values.get('discount_code'):
            values['discount_code'] = flow.discount_code
        if not values.get('shop_name'):
            values['shop_name'] = shop.shop_name or shop_display_name(shop.shop_domain)

        body = render(flow.message_content, values)
        if flow.footer_text:
            body = f"{body}\n\n{flow.footer_text}"
        return body

    def resolve_message(
        self,
        shop: Shop,
        notification_type: str,
        variables: Dict[str, Any],
        language: str
    ) -> Optional[tuple]:
        """(body, flow_id) from the merchant override or the default template, or None"""
        flow = resolve_override(self.db, shop.shop_domain, notification_type, language)
        if flow:
            return self.render_override(flow, shop, variables), flow.id

        template = get_template(language, notification_type)
        if template is None and language != FALLBACK_LANGUAGE:
            template = get_template(FALLBACK_LANGUAGE, notification_type)
        if template is None:
            return None
        return render(template, variables), None

    # ── Sending ──────────────────────────────────────────

    async def deliver(self, customer_phone: str, body: str) -> ProviderResult:
        """Provider call, or a mock result when no credentials are configured"""
        if not self.messaging_configured:
            log.warning(f"Twilio not configured. Would send message to {customer_phone}: {body[:100]}...")
            return mock_result(customer_phone, body)
        return await self.client.send(customer_phone, body)

    async def send(
        self,
        shop_domain: str,
        customer_phone: str,
        notification_type: str,
        data: TemplateData = None,
        language: str = FALLBACK_LANGUAGE,
        order_id: Optional[str] = None,
        checkout_id: Optional[str] = None
    ) -> DispatchResult:
        """
        Send one notification

        Policy rejections come back as DispatchResult(sent=False, reason=...).

        Raises:
            MessagingProviderError: the provider failed to accept the message
        """
        if not shop_domain:
            log.error("Shop domain is required for notifications")
            return DispatchResult.skipped(notification_type, SKIP_MISSING_SHOP_DOMAIN)

        shop = self.get_shop(shop_domain)
        if not shop:
            log.warning(f"Shop not found: {shop_domain}")
            return DispatchResult.skipped(notification_type, SKIP_SHOP_NOT_FOUND)

        phone = normalize_phone(customer_phone)
        if not phone:
            log.warning(f"Invalid phone number for {notification_type}: {customer_phone!r}")
            return DispatchResult.skipped(notification_type, SKIP_INVALID_PHONE)

        if not self.is_automation_enabled(shop_domain, notification_type):
            log.info(f"{notification_type} disabled for {shop_domain}, skipping")
            return DispatchResult.skipped(notification_type, SKIP_AUTOMATION_DISABLED, phone)

        variables = template_variables(data)
        resolved = self.resolve_message(shop, notification_type, variables, language)
        if resolved is None:
            log.error(f"Template not found: {notification_type} in {language}")
            return DispatchResult.skipped(notification_type, SKIP_TEMPLATE_NOT_FOUND, phone)
        body, flow_id = resolved

        customer_name = known_customer_name(data)
        customer = self.get_or_create_customer(shop_domain, phone, customer_name)
        if not customer.opted_in:
            log.info(f"Customer {phone} has opted out, skipping {notification_type}")
            return DispatchResult.skipped(notification_type, SKIP_OPTED_OUT, phone)

        try:
            result = await self.deliver(phone, body)
        except MessagingProviderError as e:
            log.error(f"Failed to send {notification_type} to {phone}: {str(e)}")
            self._record_message(
                shop_domain, phone, customer_name, notification_type, body,
                provider_message_id=None, provider_status='failed', cost=0.0,
                order_id=order_id, checkout_id=checkout_id,
                error_code=e.code, error_message=str(e),
            )
            raise

        cost = calculate_cost(notification_type)
        self._record_message(
            shop_domain, phone, customer_name, notification_type, body,
            provider_message_id=result.id, provider_status=result.status, cost=cost,
            order_id=order_id, checkout_id=checkout_id,
        )
        shop.monthly_message_count = (shop.monthly_message_count or 0) + 1
        customer.last_interaction = datetime.utcnow()
        self.db.commit()
        safe_record_daily(self.db, shop_domain, messages_sent=1, total_cost=cost)

        log.info(f"{notification_type} notification sent to {phone} ({result.status})")
        return DispatchResult(
            sent=True,
            notification_type=notification_type,
            customer_phone=phone,
            message_id=result.id,
            status=result.status,
            body=body,
            flow_id=flow_id,
        )

    def _record_message(
        self,
        shop_domain: str,
        customer_phone: str,
        customer_name: Optional[str],
        message_type: str,
        body: str,
        provider_message_id: Optional[str],
        provider_status: str,
        cost: float,
        direction: str = 'outbound',
        order_id: Optional[str] = None,
        checkout_id: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> Message:
        message = Message(
            shop_domain=shop_domain,
            customer_phone=customer_phone,
            customer_name=customer_name,
            message_type=message_type,
            message_body=body,
            direction=direction,
            provider_message_id=provider_message_id,
            provider_status=provider_status,
            cost=cost,
            order_id=order_id,
            checkout_id=checkout_id,
            error_code=error_code,
            error_message=error_message,
        )
        self.db.add(message)
        self.db.commit()
        return message

    async def send_custom_message(
        self,
        shop_domain: str,
        customer_phone: str,
        message_body: str,
        order_number: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Manual message from the merchant dashboard

        Unlike automated notifications this surfaces configuration problems,
        since the merchant can act on them.
        """
        if not self.messaging_configured:
            log.warning(f"Twilio not configured. Would send custom message to {customer_phone}")
            return {'success': False, 'error': 'WhatsApp messaging not configured'}

        phone = normalize_phone(customer_phone)
        if not phone:
            return {'success': False, 'error': f'Invalid phone number: {customer_phone}'}

        customer = self.get_customer(shop_domain, phone)
        if customer and not customer.opted_in:
            return {'success': False, 'error': 'Customer has opted out of WhatsApp messages'}

        try:
            result = await self.client.send(phone, message_body)
        except MessagingProviderError as e:
            log.error(f"Failed to send custom message to {phone}: {str(e)}")
            return {'success': False, 'error': str(e)}

        cost = calculate_cost('custom')
        self._record_message(
            shop_domain, phone, customer.full_name if customer else None, 'custom', message_body,
            provider_message_id=result.id, provider_status=result.status, cost=cost,
            order_id=order_number,
        )
        if customer:
            customer.last_interaction = datetime.utcnow()
            self.db.commit()
        safe_record_daily(self.db, shop_domain, messages_sent=1, total_cost=cost)

        return {'success': True, 'message_id': result.id, 'status': result.status, 'phone': phone}

    async def send_batch(
        self,
        shop_domain: str,
        notifications: List[Dict[str, Any]],
        delay_seconds: float = 1.0
    ) -> Dict[str, Any]:
        """
        Send several notifications sequentially, pausing between sends

        Each item: {customer_phone, type, data, language?}. Failures are collected.
        """
        results = {'sent': 0, 'skipped': 0, 'failed': 0, 'errors': []}

        for index, notification in enumerate(notifications):
            if index and delay_seconds:
                await asyncio.sleep(delay_seconds)
            try:
                result = await self.send(
                    shop_domain,
                    notification.get('customer_phone'),
                    notification.get('type'),
                    notification.get('data'),
                    notification.get('language') or FALLBACK_LANGUAGE,
                )
                if result.sent:
                    results['sent'] += 1
                else:
                    results['skipped'] += 1
            except Exception as e:
                self.db.rollback()
                results['failed'] += 1
                results['errors'].append({
                    'phone': notification.get('customer_phone'),
                    'error': str(e)
                })

        return results
