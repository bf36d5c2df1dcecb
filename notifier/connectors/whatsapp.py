"""
WhatsApp Connector

Sends WhatsApp messages through the Twilio Messages REST API.
Addresses are always normalized to the channel-prefixed "whatsapp:+..." form.
"""
import httpx
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from notifier.config import get_settings
from notifier.utils.logger import log
from notifier.utils.phone import to_whatsapp_address

# Placeholder shipped in the sample .env; never a real account
PLACEHOLDER_ACCOUNT_SID = "your_twilio_account_sid_here"

MOCK_STATUS = "mock"


class MessagingProviderError(Exception):
    """Raised when the provider rejects a message or cannot be reached"""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass
class ProviderResult:
    """Provider response for one send: message id + status, persisted verbatim"""
    id: str
    status: str
    to: str
    body: str = ""

    @property
    def is_mock(self) -> bool:
        return self.status == MOCK_STATUS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def mock_result(to: str, body: str) -> ProviderResult:
    """Locally generated result used when no provider credentials are set"""
    return ProviderResult(
        id=f"mock_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
        status=MOCK_STATUS,
        to=to_whatsapp_address(to),
        body=body,
    )


class TwilioWhatsAppClient:
    """
    Client for Twilio's WhatsApp channel

    Constructed once per job / request and handed to the dispatcher, so tests
    can substitute any object with the same `is_configured` / `send` surface.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        base_url: str = "https://api.twilio.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            account_sid: Twilio account SID ("AC...")
            auth_token: Twilio auth token
            from_number: WhatsApp-enabled sender, with or without "whatsapp:" prefix
            base_url: API root, overridable for test doubles
            timeout: Per-request timeout in seconds
            transport: httpx transport override (httpx.MockTransport in tests)
        """
        self.account_sid = account_sid or ""
        self.auth_token = auth_token or ""
        self.from_number = from_number or ""
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(
            self.account_sid.startswith("AC")
            and self.account_sid != PLACEHOLDER_ACCOUNT_SID
            and self.auth_token
            and self.from_number
        )

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def send(self, to: str, body: str) -> ProviderResult:
        """
        Send one WhatsApp message

        Raises:
            MessagingProviderError: provider unconfigured, unreachable, or rejected the message
        """
        if not self.is_configured:
            raise MessagingProviderError("Twilio WhatsApp is not configured")

        from_address = to_whatsapp_address(self.from_number)
        to_address = to_whatsapp_address(to)
        log.debug(f"Sending WhatsApp from {from_address} to {to_address}")

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self.messages_url,
                    data={"From": from_address, "To": to_address, "Body": body},
                    auth=(self.account_sid, self.auth_token),
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            raise MessagingProviderError(f"Twilio request failed: {str(e)}") from e

        if response.status_code >= 400:
            code = None
            message = response.text
            try:
                payload = response.json()
                code = str(payload.get('code')) if payload.get('code') is not None else None
                message = payload.get('message') or message
            except ValueError:
                pass
            raise MessagingProviderError(
                f"Twilio rejected message to {to_address}: {message}",
                code=code,
                status_code=response.status_code,
            )

        payload = response.json()
        return ProviderResult(
            id=payload['sid'],
            status=payload.get('status') or 'queued',
            to=payload.get('to') or to_address,
            body=body,
        )


def get_whatsapp_client() -> TwilioWhatsAppClient:
    """Build a client from settings"""
    settings = get_settings()
    client = TwilioWhatsAppClient(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_whatsapp_number,
        base_url=settings.twilio_api_base_url,
        timeout=settings.twilio_timeout_seconds,
    )
    if not client.is_configured:
        log.warning("Twilio credentials not configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER")
    return client
