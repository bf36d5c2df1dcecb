"""
Shared fixtures: in-memory database, fake WhatsApp provider, a demo shop.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from notifier.connectors.whatsapp import ProviderResult
from notifier.models.base import init_db
from notifier.models.shop import Shop
from notifier.services.notification_service import NotificationDispatcher
from notifier.utils.phone import to_whatsapp_address

SHOP = "demo-store.myshopify.com"
PHONE = "+15551234567"


class FakeWhatsAppClient:
    """Records sends instead of calling Twilio; set `error` to make every send fail"""

    def __init__(self, configured: bool = True, error: Exception = None):
        self.is_configured = configured
        self.error = error
        self.sent = []

    async def send(self, to: str, body: str) -> ProviderResult:
        if self.error is not None:
            raise self.error
        self.sent.append((to, body))
        return ProviderResult(
            id=f"SM{len(self.sent):032d}",
            status="queued",
            to=to_whatsapp_address(to),
            body=body,
        )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def client():
    return FakeWhatsAppClient()


@pytest.fixture
def dispatcher(db, client):
    return NotificationDispatcher(db, client)


@pytest.fixture
def shop(db):
    shop = Shop(shop_domain=SHOP, shop_name="Demo Store", is_active=True)
    db.add(shop)
    db.commit()
    return shop
