"""
Conversation context storage
Async-safe Firestore access (asyncio.to_thread) plus per-phone serialisation
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Optional

from google.api_core.exceptions import GoogleAPIError

from app.core.errors import StorageError
from app.core.firebase import Collections, get_db, to_plain
from app.services.chatbot.states import ConversationContext, utcnow

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once no task
    holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ConversationStore:
    """
    get/put of ConversationContext keyed by phone number.

    get() never fails for an unknown number: it returns a fresh Idle context.
    lock() serialises the get-modify-put cycle for one number.
    """

    def __init__(self):
        self._keyed_lock = KeyedLock()

    def lock(self, phone_number: str):
        return self._keyed_lock(phone_number)

    async def get(self, phone_number: str) -> ConversationContext:
        raise NotImplementedError

    async def put(self, phone_number: str, context: ConversationContext) -> None:
        raise NotImplementedError


class FirestoreConversationStore(ConversationStore):
    """Contexts stored as documents in the conversations collection, keyed by phone number"""

    def __init__(
        self,
        *,
        db=None,
        ttl_hours: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__()
        self._db = db
        self.ttl_hours = ttl_hours
        self._clock = clock

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def _doc(self, phone_number: str):
        return self.db.collection(Collections.CONVERSATIONS).document(phone_number)

    async def get(self, phone_number: str) -> ConversationContext:
        def _work():
            snap = self._doc(phone_number).get()
            return snap.to_dict() if snap.exists else None

        try:
            data = await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to load conversation: {e}") from e

        if not data:
            return ConversationContext(phone_number=phone_number)

        try:
            context = ConversationContext.from_dict(phone_number, data)
        except ValueError as e:
            # Unreadable document (unknown state, invalid stored field): start over
            logger.warning(f"Discarding unreadable conversation context: {e}")
            return ConversationContext(phone_number=phone_number)

        if self._is_stale(context):
            logger.info(f"Conversation idle for over {self.ttl_hours}h, resetting to idle")
            return ConversationContext(phone_number=phone_number)

        return context

    async def put(self, phone_number: str, context: ConversationContext) -> None:
        context.updated_at = self._clock()
        data = context.to_dict()

        def _work():
            self._doc(phone_number).set(data)

        try:
            await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to save conversation: {e}") from e

    def _is_stale(self, context: ConversationContext) -> bool:
        if self.ttl_hours <= 0 or context.updated_at is None:
            return False
        return self._clock() - context.updated_at > timedelta(hours=self.ttl_hours)


class MessageLog:
    """Inbound/outbound WhatsApp message log. Writes are best-effort."""

    def __init__(self, *, db=None, clock: Callable[[], datetime] = utcnow):
        self._db = db
        self._clock = clock

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    async def record(
        self,
        phone_number: str,
        direction: str,
        body: str,
        *,
        message_sid: Optional[str] = None,
        media_url: Optional[str] = None,
    ) -> None:
        data = {
            "client_phone": phone_number,
            "direction": direction,
            "message_body": body,
            "message_sid": message_sid,
            "media_url": media_url,
            "created_at": self._clock(),
        }

        def _work():
            self.db.collection(Collections.WHATSAPP_MESSAGES).document().set(to_plain(data))

        try:
            await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            # Audit trail only; the conversation has already moved on
            logger.warning(f"⚠️ Failed to log {direction} message: {e}")
