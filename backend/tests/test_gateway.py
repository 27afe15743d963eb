from types import SimpleNamespace

import pytest
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from app.core.errors import DeliveryError
from app.core.firebase import Collections
from app.services.notifications.gateway import MOCK_SID, TwilioWhatsAppGateway, to_whatsapp_address

ACCOUNT_SID = "AC" + "0" * 32
AUTH_TOKEN = "secret-token"


class FakeMessages:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(sid="SM123", status="queued")


class FakeTwilioClient:
    def __init__(self, error=None):
        self.messages = FakeMessages(error)


def _gateway(client, log_db=None):
    return TwilioWhatsAppGateway(
        account_sid=ACCOUNT_SID,
        auth_token=AUTH_TOKEN,
        from_number="whatsapp:+255765111131",
        client=client,
        log_db=log_db,
    )


@pytest.mark.parametrize("raw, expected", [
    ("+255712345678", "whatsapp:+255712345678"),
    ("whatsapp:+255712345678", "whatsapp:+255712345678"),
    ("0712 345 678", "whatsapp:+255712345678"),
    ("255712345678", "whatsapp:+255712345678"),
])
def test_to_whatsapp_address(raw, expected):
    assert to_whatsapp_address(raw) == expected


async def test_send_creates_twilio_message(db):
    client = FakeTwilioClient()

    result = await _gateway(client, log_db=db).send("+255712345678", "Habari!")

    assert result.sid == "SM123"
    assert result.status == "queued"
    assert client.messages.calls == [{
        "from_": "whatsapp:+255765111131",
        "to": "whatsapp:+255712345678",
        "body": "Habari!",
    }]

    logged = db.collection(Collections.NOTIFICATIONS).stream()
    assert len(logged) == 1
    assert logged[0].to_dict()["twilio_sid"] == "SM123"


async def test_twilio_error_raises_delivery_error(db):
    error = TwilioRestException(400, "/Messages.json", msg="Outside the allowed window", code=63016, method="POST")

    with pytest.raises(DeliveryError) as exc:
        await _gateway(FakeTwilioClient(error), log_db=db).send("+255712345678", "Habari!")

    assert "Outside the allowed window" in str(exc.value)
    assert exc.value.to == "+255712345678"
    assert db.collection(Collections.NOTIFICATIONS).stream()[0].to_dict()["status"] == "failed"


async def test_network_error_raises_delivery_error():
    with pytest.raises(DeliveryError):
        await _gateway(FakeTwilioClient(ConnectionError("connection refused"))).send("+255712345678", "Habari!")


def test_builds_sdk_client_from_credentials():
    gateway = TwilioWhatsAppGateway(
        account_sid=ACCOUNT_SID,
        auth_token=AUTH_TOKEN,
        from_number="+255765111131",
    )
    assert not gateway.mock_mode
    assert isinstance(gateway._client, Client)
    assert gateway._client.account_sid == ACCOUNT_SID
    assert gateway.from_number == "whatsapp:+255765111131"


async def test_mock_mode_without_credentials():
    gateway = TwilioWhatsAppGateway()
    assert gateway.mock_mode

    result = await gateway.send("+255712345678", "Habari!")
    assert result.sid == MOCK_SID
    assert result.status == "sent"
