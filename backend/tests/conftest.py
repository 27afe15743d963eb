"""
Shared fixtures: in-memory Firestore, fixed calendar, recording WhatsApp gateway
"""
import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("USE_MOCK_FIREBASE", "true")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "")

from datetime import date
from typing import List, Tuple

import pytest

from app.core.errors import DeliveryError
from app.core.firebase import MockFirestoreClient
from app.services.bookings.finalizer import BookingFinalizer
from app.services.bookings.repository import FirestoreBookingRepository
from app.services.chatbot.date_parser import DateParser
from app.services.chatbot.orchestrator import ConversationStateMachine, InboundMessage
from app.services.chatbot.store import FirestoreConversationStore
from app.services.notifications.gateway import DeliveryResult, NotificationGateway
from app.services.pricing.config_source import StaticPricingConfigSource

# Monday
TODAY = date(2026, 10, 19)
CLIENT_PHONE = "+255712345678"
OPS_PHONE = "+255700000001"


class RecordingGateway(NotificationGateway):
    """Keeps every outbound message; fail_for makes sends to those numbers raise"""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail_for = set()

    async def send(self, to: str, text: str) -> DeliveryResult:
        if to in self.fail_for:
            raise DeliveryError("Twilio returned 500: unavailable", to=to)
        self.sent.append((to, text))
        return DeliveryResult(sid=f"SM{len(self.sent):032d}", status="queued")

    def to(self, phone: str) -> List[str]:
        return [text for number, text in self.sent if number == phone]


@pytest.fixture
def db():
    return MockFirestoreClient()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def date_parser():
    return DateParser(today_provider=lambda: TODAY)


@pytest.fixture
def store(db):
    return FirestoreConversationStore(db=db)


@pytest.fixture
def repository(db):
    return FirestoreBookingRepository(db=db)


@pytest.fixture
def finalizer(repository, gateway):
    return BookingFinalizer(repository=repository, gateway=gateway, ops_phone=OPS_PHONE)


@pytest.fixture
def pricing_source():
    return StaticPricingConfigSource()


@pytest.fixture
def machine(store, pricing_source, finalizer, repository, gateway, date_parser):
    return ConversationStateMachine(
        store=store,
        pricing_source=pricing_source,
        finalizer=finalizer,
        repository=repository,
        gateway=gateway,
        date_parser=date_parser,
        custom_route_default_km=100,
        mpesa_number="0765 111 131",
        tigopesa_number="0765 111 131",
    )


@pytest.fixture
def chat(machine):
    """await chat("book") -> ConversationReply for CLIENT_PHONE"""

    async def _send(body: str = "", media_url: str = None, phone: str = CLIENT_PHONE):
        return await machine.handle_message(InboundMessage(phone_number=phone, body=body, media_url=media_url))

    return _send
