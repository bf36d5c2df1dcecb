"""
Twilio WhatsApp callbacks

Inbound customer messages and delivery-status updates. Twilio posts
form-encoded bodies and only needs a 200 back.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from notifier.connectors.whatsapp import TwilioWhatsAppClient, get_whatsapp_client
from notifier.models.base import get_db
from notifier.services.inbound_service import handle_inbound_message, update_delivery_status
from notifier.utils.logger import log

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])


@router.post("/webhook", response_class=PlainTextResponse)
async def inbound_message(
    From: str = Form(...),
    To: Optional[str] = Form(None),
    Body: Optional[str] = Form(""),
    ProfileName: Optional[str] = Form(None),
    MessageSid: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client)
):
    """Incoming WhatsApp message: apply the command and auto-reply"""
    log.info(f"Incoming WhatsApp message from {From} ({MessageSid})")
    try:
        await handle_inbound_message(
            db,
            client,
            from_=From,
            to=To,
            body=Body,
            sender_name=ProfileName,
            message_id=MessageSid,
        )
    except Exception as e:
        db.rollback()
        log.error(f"Error processing WhatsApp message from {From}: {str(e)}")

    return "OK"


@router.post("/status", response_class=PlainTextResponse)
async def status_callback(
    MessageSid: str = Form(...),
    MessageStatus: str = Form(...),
    To: Optional[str] = Form(None),
    ErrorCode: Optional[str] = Form(None),
    ErrorMessage: Optional[str] = Form(None),
    db: Session = Depends(get_db)
):
    """Delivery status callback for a message we sent"""
    try:
        update_delivery_status(db, MessageSid, MessageStatus, ErrorCode, ErrorMessage)
    except Exception as e:
        db.rollback()
        log.error(f"Error updating status for {MessageSid}: {str(e)}")

    return "OK"
