"""
Inbound WhatsApp Service
Customer replies (command vocabulary + auto-reply) and provider delivery-status callbacks
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from notifier.config import get_settings
from notifier.connectors.whatsapp import MessagingProviderError, TwilioWhatsAppClient
from notifier.models.customer import Customer
from notifier.models.message import Message
from notifier.models.shopify import AbandonedCart
from notifier.services.analytics_service import safe_record_daily
from notifier.services.notification_service import calculate_cost
from notifier.utils.logger import log
from notifier.utils.phone import normalize_phone, strip_whatsapp_prefix

DEFAULT_REPLY = "Thanks for your message! Type HELP to see available commands or SUPPORT to chat with an agent."


def reply_help(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    return (
        f"Hi {sender_name or 'there'}! 👋\n\n"
        "Here are the available commands:\n\n"
        "📦 ORDER - Check order status\n"
        "🛒 CART - View abandoned cart\n"
        "💬 SUPPORT - Chat with agent\n"
        "🔔 STOP - Unsubscribe\n\n"
        "Just type any command to continue!"
    )


def reply_order_status(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    return "To check your order status, please provide your order number or email address."


def reply_cart(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    cart = None
    if shop_domain:
        cart = (
            db.query(AbandonedCart)
            .filter(
                AbandonedCart.shop_domain == shop_domain,
                AbandonedCart.customer_phone == phone,
                AbandonedCart.recovered.is_(False),
            )
            .order_by(AbandonedCart.created_at.desc())
            .first()
        )
    if not cart or not cart.checkout_url:
        return "We couldn't find an open cart for this number. Type HELP to see available commands."
    return (
        f"🛒 You have {cart.items_count or 0} item(s) waiting "
        f"({cart.currency or ''} {(cart.cart_value or 0):.2f}).\n\n"
        f"Complete your order: {cart.checkout_url}"
    )


def reply_support(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    return "Connecting you with support. Someone will respond within 5 minutes during business hours (Mon-Fri 9AM-6PM EST)."


def set_opt_in(db: Session, shop_domain: str, phone: str, opted_in: bool) -> Customer:
    """Flip the customer's consent flag, creating the row so the choice sticks"""
    customer = db.query(Customer).filter(
        Customer.shop_domain == shop_domain,
        Customer.customer_phone == phone
    ).first()
    if not customer:
        customer = Customer(shop_domain=shop_domain, customer_phone=phone)
        db.add(customer)

    customer.opted_in = opted_in
    if opted_in:
        customer.opt_in_date = datetime.utcnow()
        customer.opt_out_date = None
    else:
        customer.opt_out_date = datetime.utcnow()
    db.commit()
    log.info(f"Customer {phone} {'opted in' if opted_in else 'opted out'} for {shop_domain}")
    return customer


def reply_stop(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    if not shop_domain:
        return "Unable to process unsubscribe request. Please try again."
    try:
        set_opt_in(db, shop_domain, phone, False)
    except Exception as e:
        db.rollback()
        log.error(f"Failed to opt out {phone}: {str(e)}")
        return "Unable to process unsubscribe request. Please try again."
    return "You've been unsubscribed from WhatsApp notifications. Reply START anytime to resubscribe."


def reply_start(db: Session, shop_domain: Optional[str], phone: str, sender_name: Optional[str]) -> str:
    if not shop_domain:
        return "Unable to process subscribe request. Please try again."
    try:
        set_opt_in(db, shop_domain, phone, True)
    except Exception as e:
        db.rollback()
        log.error(f"Failed to opt in {phone}: {str(e)}")
        return "Unable to process subscribe request. Please try again."
    return "You're subscribed to WhatsApp notifications again. Reply STOP anytime to unsubscribe."


CommandHandler = Callable[[Session, Optional[str], str, Optional[str]], str]

# Lower-cased, trimmed message body -> handler
COMMANDS: Dict[str, CommandHandler] = {
    'help': reply_help,
    'hi': reply_help,
    'hello': reply_help,
    'order': reply_order_status,
    'status': reply_order_status,
    'cart': reply_cart,
    'support': reply_support,
    'agent': reply_support,
    'stop': reply_stop,
    'unsubscribe': reply_stop,
    'start': reply_start,
    'subscribe': reply_start,
}


def match_command(body: Optional[str]) -> Optional[str]:
    text = (body or '').strip().lower()
    return text if text in COMMANDS else None


def resolve_shop_for_phone(db: Session, phone: str) -> Optional[str]:
    """Shop the customer most recently interacted with, else the configured default"""
    last_seen = func.coalesce(Customer.last_interaction, Customer.created_at)
    customer = (
        db.query(Customer)
        .filter(Customer.customer_phone == phone)
        .order_by(last_seen.desc())
        .first()
    )
    if customer:
        return customer.shop_domain

    fallback = get_settings().default_shop_domain
    if fallback:
        log.info(f"No shop found for customer phone {phone}, using default {fallback}")
    else:
        log.warning(f"No shop found for customer phone {phone}")
    return fallback


async def handle_inbound_message(
    db: Session,
    client: TwilioWhatsAppClient,
    from_: str,
    to: Optional[str] = None,
    body: Optional[str] = None,
    sender_name: Optional[str] = None,
    message_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Apply one inbound WhatsApp message and answer it

    Returns:
        {'phone', 'shop_domain', 'command', 'reply', 'reply_sent', 'reply_id', 'duplicate'}
    """
    phone = normalize_phone(from_) or strip_whatsapp_prefix(from_)
    result = {
        'phone': phone,
        'shop_domain': None,
        'command': None,
        'reply': None,
        'reply_sent': False,
        'reply_id': None,
        'duplicate': False,
    }
    if not phone:
        log.warning(f"Inbound WhatsApp message without sender: {from_!r}")
        return result

    if message_id and db.query(Message).filter(Message.provider_message_id == message_id).count():
        log.info(f"Inbound message {message_id} already processed")
        result['duplicate'] = True
        return result

    shop_domain = resolve_shop_for_phone(db, phone)
    command = match_command(body)
    handler = COMMANDS.get(command) if command else None
    reply = handler(db, shop_domain, phone, sender_name) if handler else DEFAULT_REPLY
    result.update(shop_domain=shop_domain, command=command, reply=reply)
    log.info(f"Inbound WhatsApp from {phone} ({shop_domain}): command={command}")

    if shop_domain:
        db.add(Message(
            shop_domain=shop_domain,
            customer_phone=phone,
            customer_name=sender_name,
            message_type='inbound',
            message_body=body,
            direction='inbound',
            provider_message_id=message_id,
            provider_status='received',
            cost=0.0,
        ))
        customer = db.query(Customer).filter(
            Customer.shop_domain == shop_domain,
            Customer.customer_phone == phone
        ).first()
        if customer:
            customer.last_interaction = datetime.utcnow()
        db.commit()
        safe_record_daily(db, shop_domain, messages_replied=1)

    if not client.is_configured:
        log.warning(f"Twilio not configured. Would reply to {phone}: {reply[:50]}...")
        return result

    try:
        sent = await client.send(phone, reply)
    except MessagingProviderError as e:
        log.error(f"Failed to send auto-reply to {phone}: {str(e)}")
        return result

    result.update(reply_sent=True, reply_id=sent.id)
    log.info(f"Auto-reply sent: {reply[:50]}...")
    if shop_domain:
        cost = calculate_cost('auto_reply')
        db.add(Message(
            shop_domain=shop_domain,
            customer_phone=phone,
            customer_name=sender_name,
            message_type='auto_reply',
            message_body=reply,
            direction='outbound',
            provider_message_id=sent.id,
            provider_status=sent.status,
            cost=cost,
        ))
        db.commit()
        safe_record_daily(db, shop_domain, messages_sent=1, total_cost=cost)
    return result


# Later statuses never overwrite these; failure states are terminal
STATUS_RANK = {
    'accepted': 0,
    'queued': 1,
    'sending': 2,
    'sent': 3,
    'delivered': 4,
    'read': 5,
}
FAILURE_STATUSES = frozenset({'failed', 'undelivered'})


def update_delivery_status(
    db: Session,
    message_id: str,
    status: str,
    error_code: Optional[str] = None,
    error_message: Optional[str] = None
) -> Optional[Message]:
    """
    Apply a provider status callback to the stored message

    Out-of-order callbacks never move a message backwards (a late "sent"
    after "read" is ignored); delivered_at / read_at are filled once.
    """
    message = db.query(Message).filter(Message.provider_message_id == message_id).first()
    if not message:
        log.warning(f"Status update for unknown message {message_id}: {status}")
        return None

    status = (status or '').lower()
    current = message.provider_status
    now = datetime.utcnow()

    if status in FAILURE_STATUSES:
        message.provider_status = status
        message.error_code = str(error_code) if error_code is not None else message.error_code
        message.error_message = error_message or message.error_message
        log.error(f"Message {message_id} {status}: {error_message} ({error_code})")
    elif current in FAILURE_STATUSES:
        log.info(f"Ignoring {status} for {current} message {message_id}")
    elif STATUS_RANK.get(status, -1) >= STATUS_RANK.get(current, -1):
        message.provider_status = status

    newly_delivered = False
    newly_read = False
    # A failed message stays failed; late receipts leave no trace
    if current not in FAILURE_STATUSES:
        if status in ('delivered', 'read') and message.delivered_at is None:
            message.delivered_at = now
            newly_delivered = True
        if status == 'read' and message.read_at is None:
            message.read_at = now
            newly_read = True
    db.commit()

    metrics = {}
    if newly_delivered:
        metrics['messages_delivered'] = 1
    if newly_read:
        metrics['messages_read'] = 1
    if metrics:
        safe_record_daily(db, message.shop_domain, **metrics)

    log.info(f"WhatsApp status update: {message_id} -> {message.provider_status}")
    return message
