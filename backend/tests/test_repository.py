"""
Booking repository: quote lookup, payment review, cancellation
"""
import pytest
from google.api_core.exceptions import ServiceUnavailable

from app.core.errors import BookingNotFoundError, StorageError
from app.services.bookings.repository import BookingStatus, FirestoreBookingRepository
from conftest import CLIENT_PHONE

CODE = "MNZ-261019-AAAAA"


class BrokenFirestore:
    def collection(self, name):
        raise ServiceUnavailable("firestore down")


async def _create(repository, code=CODE, **extra):
    return await repository.create({"booking_code": code, "client_phone": CLIENT_PHONE, **extra})


async def test_find_by_quote_matches_phone_and_quote(repository):
    await _create(repository, quote_id="q-1")
    await _create(repository, "MNZ-261019-BBBBB", quote_id="q-2")

    assert await repository.find_by_quote(CLIENT_PHONE, "q-1") == CODE
    assert await repository.find_by_quote(CLIENT_PHONE, "q-2") == "MNZ-261019-BBBBB"
    assert await repository.find_by_quote("+255798765432", "q-1") is None
    assert await repository.find_by_quote(CLIENT_PHONE, "q-3") is None


async def test_find_by_quote_storage_failure():
    repository = FirestoreBookingRepository(db=BrokenFirestore())
    with pytest.raises(StorageError):
        await repository.find_by_quote(CLIENT_PHONE, "q-1")


async def test_payment_review_approved(repository):
    await _create(repository)
    await repository.record_payment_proof(CODE, "https://media/1")

    await repository.record_payment_review(CODE, True, "ops")

    booking = await repository.get(CODE)
    assert booking["status"] == BookingStatus.CONFIRMED.value
    assert booking["payment_reviewed_by"] == "ops"
    assert booking["payment_reviewed_at"] is not None
    assert booking["payment_rejection_reason"] is None


async def test_payment_review_rejected(repository):
    await _create(repository)
    await repository.record_payment_proof(CODE, "https://media/1")

    await repository.record_payment_review(CODE, False, "ops", "Amount does not match")

    booking = await repository.get(CODE)
    assert booking["status"] == BookingStatus.PENDING_PAYMENT.value
    assert booking["payment_rejection_reason"] == "Amount does not match"


async def test_missing_booking_is_not_a_storage_error(repository):
    with pytest.raises(BookingNotFoundError):
        await repository.record_payment_proof(CODE, "https://media/1")
    assert await repository.mark_cancelled(CODE) is False


async def test_mark_cancelled(repository):
    await _create(repository)
    assert await repository.mark_cancelled(CODE) is True
    assert (await repository.get(CODE))["status"] == BookingStatus.CANCELLED.value
