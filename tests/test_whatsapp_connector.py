"""
Twilio client against a mocked HTTP transport.
"""
import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from notifier.connectors.whatsapp import (
    PLACEHOLDER_ACCOUNT_SID,
    MessagingProviderError,
    TwilioWhatsAppClient,
    mock_result,
)


def _client(handler, **overrides):
    options = dict(
        account_sid="AC0123456789",
        auth_token="secret",
        from_number="+14155238886",
        transport=httpx.MockTransport(handler),
    )
    options.update(overrides)
    return TwilioWhatsAppClient(**options)


def test_is_configured():
    assert _client(None).is_configured
    assert not _client(None, account_sid=PLACEHOLDER_ACCOUNT_SID).is_configured
    assert not _client(None, auth_token=None).is_configured
    assert not _client(None, from_number="").is_configured


def test_send_posts_prefixed_addresses():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["form"] = parse_qs(request.content.decode())
        captured["auth"] = request.headers.get("authorization", "")
        return httpx.Response(201, json={"sid": "SM123", "status": "queued", "to": "whatsapp:+15551234567"})

    result = asyncio.run(_client(handler).send("+15551234567", "Hello"))

    assert result.id == "SM123"
    assert result.status == "queued"
    assert not result.is_mock
    assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC0123456789/Messages.json"
    assert captured["form"]["From"] == ["whatsapp:+14155238886"]
    assert captured["form"]["To"] == ["whatsapp:+15551234567"]
    assert captured["form"]["Body"] == ["Hello"]
    assert captured["auth"].startswith("Basic ")


def test_already_prefixed_sender_is_not_doubled():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(201, json={"sid": "SM1", "status": "queued"})

    asyncio.run(_client(handler, from_number="whatsapp:+14155238886").send("whatsapp:+15551234567", "Hi"))

    assert captured["form"]["From"] == ["whatsapp:+14155238886"]
    assert captured["form"]["To"] == ["whatsapp:+15551234567"]


def test_provider_rejection_carries_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})

    with pytest.raises(MessagingProviderError) as exc_info:
        asyncio.run(_client(handler).send("+15551234567", "Hello"))

    assert exc_info.value.code == "21211"
    assert exc_info.value.status_code == 400
    assert "Invalid 'To' Phone Number" in str(exc_info.value)


def test_network_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MessagingProviderError):
        asyncio.run(_client(handler).send("+15551234567", "Hello"))


def test_unconfigured_client_refuses_to_send():
    client = TwilioWhatsAppClient(account_sid=None, auth_token=None, from_number=None)
    with pytest.raises(MessagingProviderError):
        asyncio.run(client.send("+15551234567", "Hello"))


def test_mock_ids_are_unique_within_the_same_millisecond(monkeypatch):
    monkeypatch.setattr("notifier.connectors.whatsapp.time.time", lambda: 1700000000.0)
    ids = {mock_result("+15551234567", "Hello").id for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("mock_1700000000000_") for i in ids)
