"""
Shopify Webhooks API

One endpoint keyed by the X-Shopify-Topic header, plus per-topic aliases.
Both go through the same event -> action table. Signature verification
happens upstream in the Shopify SDK layer.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from notifier.connectors.whatsapp import TwilioWhatsAppClient, get_whatsapp_client
from notifier.models.base import get_db
from notifier.services.notification_service import NotificationDispatcher
from notifier.services.webhook_service import process_webhook, topic_for_path
from notifier.utils.logger import log

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_payload(request: Request) -> Optional[Dict[str, Any]]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


async def _handle(
    request: Request,
    topic: Optional[str],
    shop_domain: Optional[str],
    db: Session,
    client: TwilioWhatsAppClient
):
    payload = await _read_payload(request)
    if payload is None:
        log.error(f"Invalid webhook body for {topic} from {shop_domain}")
        return PlainTextResponse("Invalid webhook body", status_code=400)

    dispatcher = NotificationDispatcher(db, client)
    outcome = await process_webhook(db, dispatcher, topic, shop_domain, payload)
    if outcome.errors:
        log.warning(f"Webhook {topic} for {shop_domain} processed with errors: {outcome.errors}")

    # Always 200 once the body parsed, so Shopify does not redeliver
    return {"success": True, "data": outcome.to_dict()}


@router.post("")
async def shopify_webhook(
    request: Request,
    x_shopify_topic: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """Receive any Shopify webhook; the topic comes from X-Shopify-Topic"""
    return await _handle(request, x_shopify_topic, x_shopify_shop_domain, db, client)


@router.post("/{topic_path}")
async def shopify_webhook_alias(
    topic_path: str,
    request: Request,
    shop: Optional[str] = Query(None, description="Shop domain when the header is absent"),
    x_shopify_shop_domain: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """
    Per-topic webhook endpoint, e.g. POST /webhooks/orders-create

    Also accepts the legacy names (checkout-created, customer-created, ...).
    """
    topic = topic_for_path(topic_path)
    if not topic:
        raise HTTPException(status_code=404, detail=f"Unknown webhook topic: {topic_path}")
    return await _handle(request, topic, x_shopify_shop_domain or shop, db, client)
