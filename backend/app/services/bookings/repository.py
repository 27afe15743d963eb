"""
Booking persistence (Firestore bookings collection, document id = booking code)
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import Conflict, GoogleAPIError, NotFound

from app.core.errors import BookingCodeConflictError, BookingNotFoundError, StorageError
from app.core.firebase import Collections, get_db
from app.services.chatbot.states import utcnow

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_SUBMITTED = "payment_submitted"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingRepository:
    """create(data) -> code; record_payment_proof(code, media_ref, note)"""

    async def create(self, booking_data: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def record_payment_proof(self, booking_code: str, media_ref: str, note: Optional[str] = None) -> None:
        raise NotImplementedError

    async def record_payment_review(
        self,
        booking_code: str,
        approved: bool,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    async def get(self, booking_code: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def find_by_quote(self, client_phone: str, quote_id: str) -> Optional[str]:
        raise NotImplementedError

    async def mark_cancelled(self, booking_code: str) -> bool:
        raise NotImplementedError


class FirestoreBookingRepository(BookingRepository):

    def __init__(self, *, db=None, clock: Callable = utcnow):
        self._db = db
        self._clock = clock

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def _collection(self):
        return self.db.collection(Collections.BOOKINGS)

    def _doc(self, booking_code: str):
        return self._collection().document(booking_code)

    async def create(self, booking_data: Dict[str, Any]) -> str:
        """
        Atomically create a booking whose document id is its booking_code

        Raises:
            BookingCodeConflictError: a booking with that code already exists
            StorageError: any other Firestore failure
        """
        code = booking_data["booking_code"]
        now = self._clock()
        data = {
            **booking_data,
            "status": booking_data.get("status", BookingStatus.PENDING_PAYMENT.value),
            "created_at": now,
            "updated_at": now,
        }

        def _work():
            self._doc(code).create(data)

        try:
            await asyncio.to_thread(_work)
        except Conflict as e:
            raise BookingCodeConflictError(code) from e
        except GoogleAPIError as e:
            raise StorageError(f"Failed to create booking {code}: {e}") from e

        logger.info(f"📋 Booking {code} created ({data['status']})")
        return code

    async def find_by_quote(self, client_phone: str, quote_id: str) -> Optional[str]:
        """Code of the booking already created from this quote, if any"""
        def _work():
            query = (
                self._collection()
                .where("quote_id", "==", quote_id)
                .where("client_phone", "==", client_phone)
                .limit(1)
            )
            return [snap.id for snap in query.stream()]

        try:
            codes = await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to look up booking for quote {quote_id}: {e}") from e

        return codes[0] if codes else None

    async def record_payment_proof(self, booking_code: str, media_ref: str, note: Optional[str] = None) -> None:
        """
        Raises:
            BookingNotFoundError: no booking with that code
        """
        await self._update(booking_code, {
            "payment_proof_url": media_ref,
            "payment_notes": note or None,
            "status": BookingStatus.PAYMENT_SUBMITTED.value,
        })
        logger.info(f"📷 Payment proof recorded for booking {booking_code}")

    async def record_payment_review(
        self,
        booking_code: str,
        approved: bool,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
    ) -> None:
        """Approved -> confirmed; rejected -> back to pending_payment for a new proof"""
        status = BookingStatus.CONFIRMED if approved else BookingStatus.PENDING_PAYMENT
        await self._update(booking_code, {
            "status": status.value,
            "payment_reviewed_by": reviewed_by,
            "payment_reviewed_at": self._clock(),
            "payment_rejection_reason": None if approved else rejection_reason,
        })
        logger.info(f"💳 Payment for booking {booking_code} {'approved' if approved else 'rejected'} by {reviewed_by}")

    async def mark_cancelled(self, booking_code: str) -> bool:
        """False when the booking no longer exists"""
        try:
            await self._update(booking_code, {"status": BookingStatus.CANCELLED.value})
        except BookingNotFoundError:
            logger.warning(f"⚠️ Booking {booking_code} to cancel does not exist")
            return False
        logger.info(f"❌ Booking {booking_code} cancelled by client")
        return True

    async def get(self, booking_code: str) -> Optional[Dict[str, Any]]:
        def _work():
            snap = self._doc(booking_code).get()
            return snap.to_dict() if snap.exists else None

        try:
            return await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to load booking {booking_code}: {e}") from e

    async def _update(self, booking_code: str, changes: Dict[str, Any]) -> None:
        changes = {**changes, "updated_at": self._clock()}

        def _work():
            self._doc(booking_code).update(changes)

        try:
            await asyncio.to_thread(_work)
        except NotFound as e:
            raise BookingNotFoundError(booking_code) from e
        except GoogleAPIError as e:
            raise StorageError(f"Failed to update booking {booking_code}: {e}") from e
