"""
Booking finalization
Turns a confirmed conversation into a persisted booking and alerts the operations desk
"""
import logging
import secrets
import string
from datetime import datetime
from typing import Callable, Optional

from app.core.errors import BookingCodeConflictError, DeliveryError, StorageError
from app.core.firebase import to_plain
from app.core.security import redact_sensitive_data
from app.services.bookings.repository import BookingRepository, BookingStatus
from app.services.chatbot.messages import ops_new_booking_text
from app.services.chatbot.states import ConversationContext, utcnow
from app.services.notifications.gateway import NotificationGateway
from app.services.pricing.engine import PricingResult

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "MNZ"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_RANDOM_LENGTH = 5
MAX_CODE_ATTEMPTS = 10


def generate_booking_code(now: Optional[datetime] = None) -> str:
    """MNZ-YYMMDD-XXXXX (UTC date + random upper-case alphanumerics)"""
    now = now or utcnow()
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_RANDOM_LENGTH))
    return f"{BOOKING_CODE_PREFIX}-{now:%y%m%d}-{suffix}"


class BookingFinalizer:
    """
    finalize(context, pricing) -> booking_code

    One booking per quote: when the context carries a quote_id that already
    produced a booking (the confirmation was retried after a failed save),
    that booking's code is returned and nothing new is stored or sent.

    Persistence and notification are not transactional: once the booking is
    stored a failed ops alert is logged and the code is still returned.
    """

    def __init__(
        self,
        *,
        repository: BookingRepository,
        gateway: NotificationGateway,
        ops_phone: Optional[str] = None,
        code_generator: Callable[[], str] = generate_booking_code,
    ):
        self.repository = repository
        self.gateway = gateway
        self.ops_phone = ops_phone
        self.code_generator = code_generator

    async def finalize(self, context: ConversationContext, pricing: PricingResult) -> str:
        booking = context.partial_booking
        if not (booking.pickup_location and booking.destination and booking.vehicle_type and booking.pickup_date):
            raise ValueError("Cannot finalize an incomplete booking")

        if context.quote_id:
            existing = await self.repository.find_by_quote(context.phone_number, context.quote_id)
            if existing:
                logger.info(f"♻️ Quote {context.quote_id} already booked as {existing}")
                return existing

        base = to_plain({
            "client_phone": context.phone_number,
            "pickup_location": booking.pickup_location,
            "destination": booking.destination,
            "vehicle_type": booking.vehicle_type,
            "pickup_date": booking.pickup_date.isoformat(),
            "corridor_key": pricing.corridor_key,
            "distance_km": pricing.distance_km,
            "nights": pricing.nights,
            "pricing": pricing.to_dict(),
            "estimated_cost": pricing.customer_total.amount,
            "driver_payout": pricing.driver_payout.amount,
            "status": BookingStatus.PENDING_PAYMENT.value,
            "source": "whatsapp",
            "quote_id": context.quote_id,
        })

        code = await self._create_with_unique_code(base)

        if self.ops_phone:
            try:
                await self.gateway.send(
                    self.ops_phone,
                    ops_new_booking_text(code, booking, pricing, context.phone_number),
                )
            except DeliveryError as e:
                logger.warning(f"⚠️ Ops alert for booking {code} not delivered: {redact_sensitive_data(str(e))}")

        return code

    async def _create_with_unique_code(self, base: dict) -> str:
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = self.code_generator()
            try:
                return await self.repository.create({**base, "booking_code": code})
            except BookingCodeConflictError:
                logger.warning(f"Booking code collision on {code} (attempt {attempt}/{MAX_CODE_ATTEMPTS})")

        raise StorageError(f"Could not allocate a unique booking code after {MAX_CODE_ATTEMPTS} attempts")
