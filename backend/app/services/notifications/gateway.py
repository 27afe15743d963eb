"""
Outbound WhatsApp delivery via the Twilio REST API
Falls back to mock mode (log only) when Twilio credentials are not configured
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from app.core.config import settings
from app.core.errors import DeliveryError
from app.core.firebase import Collections
from app.core.security import redact_sensitive_data
from app.services.chatbot.states import utcnow

logger = logging.getLogger(__name__)

MOCK_SID = "MOCK_SID"
WHATSAPP_PREFIX = "whatsapp:"


@dataclass(frozen=True)
class DeliveryResult:
    sid: str
    status: str


def to_whatsapp_address(phone_number: str) -> str:
    """'+255765111131' / '0765 111 131' -> 'whatsapp:+255765111131'"""
    number = phone_number.strip()
    if number.startswith(WHATSAPP_PREFIX):
        number = number[len(WHATSAPP_PREFIX):]
    number = number.replace(" ", "").replace("-", "")
    if number.startswith("0"):
        number = "+255" + number[1:]
    elif not number.startswith("+"):
        number = "+" + number
    return WHATSAPP_PREFIX + number


class NotificationGateway:
    """send(to, text) -> DeliveryResult; raises DeliveryError on failure"""

    async def send(self, to: str, text: str) -> DeliveryResult:
        raise NotImplementedError


class TwilioWhatsAppGateway(NotificationGateway):
    """
    WhatsApp sender on the Twilio SDK.

    Args:
        account_sid / auth_token: Twilio credentials. Missing -> mock mode.
        from_number: WhatsApp sender, e.g. 'whatsapp:+255765111131'
        timeout: HTTP timeout for the Twilio client, in seconds
        client: prebuilt twilio.rest.Client (tests pass a stand-in)
        log_db: Firestore client; when given, every send is recorded in
            the notifications collection
    """

    def __init__(
        self,
        *,
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        timeout: float = 10.0,
        client: Optional[Client] = None,
        log_db=None,
    ):
        self.account_sid = account_sid
        self.from_number = to_whatsapp_address(from_number) if from_number else ""
        self._log_db = log_db

        self.mock_mode = not (account_sid and auth_token and from_number)
        if self.mock_mode:
            logger.warning("⚠️ Twilio credentials not configured - WhatsApp gateway running in mock mode")
            self._client = None
        else:
            self._client = client or Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))

    @classmethod
    def from_settings(cls, log_db=None) -> "TwilioWhatsAppGateway":
        if not settings.twilio_configured:
            return cls(log_db=log_db)
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_WHATSAPP_NUMBER,
            timeout=settings.TWILIO_TIMEOUT_SECONDS,
            log_db=log_db,
        )

    async def send(self, to: str, text: str) -> DeliveryResult:
        """
        Send a WhatsApp message

        Args:
            to: Recipient phone number (with or without 'whatsapp:' prefix)
            text: Message body

        Returns:
            DeliveryResult with Twilio message SID and status

        Raises:
            DeliveryError: Twilio rejected the message or was unreachable
        """
        address = to_whatsapp_address(to)

        if self.mock_mode:
            logger.info(f"🧘 [MOCK] WhatsApp to {redact_sensitive_data(address)}: {text[:100]}")
            result = DeliveryResult(sid=MOCK_SID, status="sent")
            await self._log(to, text, result.status, result.sid)
            return result

        def _work():
            return self._client.messages.create(from_=self.from_number, to=address, body=text)

        try:
            message = await asyncio.to_thread(_work)
        except TwilioRestException as e:
            logger.error(f"❌ Twilio returned {e.status} for {redact_sensitive_data(address)}: {e.msg}")
            await self._log(to, text, "failed", None, error=e.msg)
            raise DeliveryError(f"Twilio returned {e.status}: {e.msg}", to=to) from e
        except (TwilioException, OSError) as e:
            # OSError covers connection failures from the SDK's HTTP client
            logger.error(f"❌ WhatsApp send to {redact_sensitive_data(address)} failed: {e}")
            await self._log(to, text, "failed", None, error=str(e))
            raise DeliveryError(f"Twilio request failed: {e}", to=to) from e

        result = DeliveryResult(sid=message.sid, status=message.status or "queued")
        logger.info(f"✅ WhatsApp sent to {redact_sensitive_data(address)}: {result.sid}")
        await self._log(to, text, result.status, result.sid)
        return result

    async def _log(self, to: str, text: str, status: str, sid: Optional[str], error: Optional[str] = None) -> None:
        if self._log_db is None:
            return

        record = {
            "recipient_phone": to,
            "channel": "whatsapp",
            "message": text,
            "status": status,
            "twilio_sid": sid,
            "error_message": error,
            "created_at": utcnow(),
        }

        def _work():
            self._log_db.collection(Collections.NOTIFICATIONS).document().set(record)

        try:
            await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            # Audit log only; the delivery outcome stands
            logger.warning(f"Failed to record notification: {e}")
