"""
Booking endpoints for Manyanza
Lookup by code and payment proof review by the operations desk
"""
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import BookingNotFoundError
from app.core.security import verify_admin_key
from app.schemas.booking import BookingResponse, PaymentReviewRequest
from app.services.bookings.payments import PaymentReviewService
from app.services.bookings.repository import BookingRepository
from app.services.chatbot.orchestrator import ConversationStateMachine, get_state_machine

logger = logging.getLogger(__name__)

router = APIRouter()

BOOKING_CODE_PATTERN = re.compile(r"^MNZ-\d{6}-[A-Z0-9]{5}$")


def get_booking_repository(machine: ConversationStateMachine = Depends(get_state_machine)) -> BookingRepository:
    return machine.repository


def get_payment_review_service(machine: ConversationStateMachine = Depends(get_state_machine)) -> PaymentReviewService:
    """Shares the chatbot's store so a rejected proof re-opens the client's payment step"""
    return PaymentReviewService(repository=machine.repository, store=machine.store, gateway=machine.gateway)


def _normalize_code(booking_code: str) -> str:
    code = booking_code.strip().upper().lstrip("#")
    if not BOOKING_CODE_PATTERN.match(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid booking code format"
        )
    return code


@router.get("/{booking_code}", response_model=BookingResponse)
async def get_booking(booking_code: str, repository: BookingRepository = Depends(get_booking_repository)):
    """Look up a booking by its code (e.g. MNZ-261019-7KQ2D)"""
    code = _normalize_code(booking_code)

    booking = await repository.get(code)
    if booking is None:
        raise BookingNotFoundError(code)

    return BookingResponse.from_document(booking)


@router.post(
    "/{booking_code}/payment-review",
    response_model=BookingResponse,
    dependencies=[Depends(verify_admin_key)],
)
async def review_payment(
    booking_code: str,
    request: PaymentReviewRequest,
    service: PaymentReviewService = Depends(get_payment_review_service),
):
    """
    Approve or reject a submitted payment proof (admin).

    Approved bookings become confirmed. Rejected ones go back to
    pending_payment and the client is asked for a new proof.
    """
    code = _normalize_code(booking_code)
    booking = await service.review(
        code,
        approved=request.approved,
        reviewed_by=request.reviewed_by,
        rejection_reason=request.rejection_reason,
    )
    return BookingResponse.from_document(booking)
