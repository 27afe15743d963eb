"""
Payment proof review by the operations desk
Approve -> booking confirmed; reject -> back to pending payment and the client
is asked for a new proof over WhatsApp
"""
import logging
from typing import Any, Dict, Optional

from app.core.errors import BookingNotFoundError, BookingStateError, DeliveryError
from app.core.security import redact_sensitive_data
from app.services.bookings.repository import BookingRepository, BookingStatus
from app.services.chatbot import messages
from app.services.chatbot.states import ConversationState
from app.services.chatbot.store import ConversationStore
from app.services.notifications.gateway import NotificationGateway

logger = logging.getLogger(__name__)

# A rejected proof re-opens the payment step only if the client is not busy with something else
REOPENABLE_STATES = (ConversationState.IDLE, ConversationState.BOOKING_CONFIRMED)


class PaymentReviewService:

    def __init__(
        self,
        *,
        repository: BookingRepository,
        store: ConversationStore,
        gateway: NotificationGateway,
    ):
        self.repository = repository
        self.store = store
        self.gateway = gateway

    async def review(
        self,
        booking_code: str,
        approved: bool,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record the outcome of a payment proof check and tell the client

        Args:
            booking_code: Booking to review
            approved: True to confirm the booking, False to ask for a new proof
            reviewed_by: Audit label
            rejection_reason: Shown to the client when rejected

        Returns:
            The updated booking document

        Raises:
            BookingNotFoundError: no booking with that code
            BookingStateError: the booking has no payment proof awaiting review
            StorageError: Firestore failure
        """
        booking = await self.repository.get(booking_code)
        if booking is None:
            raise BookingNotFoundError(booking_code)

        if booking.get("status") != BookingStatus.PAYMENT_SUBMITTED.value:
            raise BookingStateError(
                f"Booking {booking_code} is {booking.get('status')}, not awaiting payment review"
            )

        await self.repository.record_payment_review(booking_code, approved, reviewed_by, rejection_reason)

        client_phone = booking.get("client_phone")
        if client_phone:
            if not approved:
                await self._reopen_payment_step(client_phone, booking_code)
            await self._notify(client_phone, booking_code, approved, rejection_reason)

        return await self.repository.get(booking_code)

    async def _reopen_payment_step(self, phone: str, booking_code: str) -> None:
        async with self.store.lock(phone):
            context = await self.store.get(phone)
            if context.state not in REOPENABLE_STATES:
                logger.info(f"Client {redact_sensitive_data(phone)} is mid-conversation, payment step not reopened")
                return
            context.reset()
            context.transition(ConversationState.AWAITING_PAYMENT)
            context.current_booking_id = booking_code
            await self.store.put(phone, context)

    async def _notify(self, phone: str, booking_code: str, approved: bool, reason: Optional[str]) -> None:
        text = (
            messages.payment_verified_text(booking_code)
            if approved
            else messages.payment_rejected_text(booking_code, reason)
        )
        try:
            await self.gateway.send(phone, text)
        except DeliveryError as e:
            logger.warning(f"⚠️ Payment review notice for {booking_code} not delivered: {redact_sensitive_data(str(e))}")
