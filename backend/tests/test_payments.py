"""
Payment proof review: booking status, client notice, reopened payment step
"""
import pytest

from app.core.errors import BookingNotFoundError, BookingStateError
from app.services.bookings.payments import PaymentReviewService
from app.services.bookings.repository import BookingStatus
from app.services.chatbot.states import ConversationState
from conftest import CLIENT_PHONE
from test_orchestrator import PROOF_URL, _advance_to

S = ConversationState


@pytest.fixture
def service(repository, store, gateway):
    return PaymentReviewService(repository=repository, store=store, gateway=gateway)


async def _submitted_booking(chat):
    reply = await _advance_to(chat, S.AWAITING_PAYMENT)
    await chat("Paid", media_url=PROOF_URL)
    return reply.booking_code


async def test_approve_confirms_booking_and_tells_client(service, chat, gateway, store):
    code = await _submitted_booking(chat)

    booking = await service.review(code, approved=True, reviewed_by="ops")

    assert booking["status"] == BookingStatus.CONFIRMED.value
    assert booking["payment_reviewed_by"] == "ops"
    notices = gateway.to(CLIENT_PHONE)
    assert len(notices) == 1
    assert "PAYMENT VERIFIED" in notices[0]
    assert code in notices[0]
    assert (await store.get(CLIENT_PHONE)).state == S.BOOKING_CONFIRMED


async def test_reject_reopens_payment_step(service, chat, gateway, store, repository):
    code = await _submitted_booking(chat)

    booking = await service.review(code, approved=False, reviewed_by="ops",
                                   rejection_reason="Screenshot is unreadable")

    assert booking["status"] == BookingStatus.PENDING_PAYMENT.value
    notice = gateway.to(CLIENT_PHONE)[0]
    assert "PAYMENT VERIFICATION ISSUE" in notice
    assert "Screenshot is unreadable" in notice

    context = await store.get(CLIENT_PHONE)
    assert context.state == S.AWAITING_PAYMENT
    assert context.current_booking_id == code

    # The client's next proof goes to the same booking
    reply = await chat("", media_url=PROOF_URL)
    assert reply.state == S.BOOKING_CONFIRMED
    assert (await repository.get(code))["status"] == BookingStatus.PAYMENT_SUBMITTED.value


async def test_reject_leaves_a_new_conversation_alone(service, chat, store):
    code = await _submitted_booking(chat)
    await chat("thanks")
    await chat("book")

    await service.review(code, approved=False, reviewed_by="ops")

    context = await store.get(CLIENT_PHONE)
    assert context.state == S.COLLECTING_PICKUP
    assert context.current_booking_id is None


async def test_review_requires_submitted_proof(service, chat):
    reply = await _advance_to(chat, S.AWAITING_PAYMENT)
    with pytest.raises(BookingStateError):
        await service.review(reply.booking_code, approved=True, reviewed_by="ops")


async def test_review_missing_booking(service):
    with pytest.raises(BookingNotFoundError):
        await service.review("MNZ-261019-ZZZZZ", approved=True, reviewed_by="ops")


async def test_notice_failure_keeps_review(service, chat, gateway, repository):
    code = await _submitted_booking(chat)
    gateway.fail_for.add(CLIENT_PHONE)

    await service.review(code, approved=True, reviewed_by="ops")

    assert (await repository.get(code))["status"] == BookingStatus.CONFIRMED.value
