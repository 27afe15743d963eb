import re
from datetime import date, datetime, timezone

import pytest

from app.core.errors import StorageError
from app.core.firebase import Collections
from app.services.bookings.finalizer import MAX_CODE_ATTEMPTS, BookingFinalizer, generate_booking_code
from app.services.chatbot.states import ConversationContext, ConversationState, PartialBooking
from app.services.pricing import PricingEngine, PricingInput
from conftest import CLIENT_PHONE, OPS_PHONE


@pytest.fixture
def context():
    return ConversationContext(
        phone_number=CLIENT_PHONE,
        state=ConversationState.CONFIRMING_DETAILS,
        partial_booking=PartialBooking(
            pickup_location="Dar es Salaam CBD",
            destination="Tunduma Border",
            vehicle_type="pickup",
            pickup_date=date(2026, 10, 20),
            corridor_key="dar-tunduma",
            distance_km=932,
            nights=1,
        ),
    )


@pytest.fixture
def pricing():
    return PricingEngine().calculate(PricingInput(distance_km=932, nights=1, corridor_key="dar-tunduma"))


def test_booking_code_format():
    code = generate_booking_code(datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc))
    assert re.fullmatch(r"MNZ-261019-[A-Z0-9]{5}", code)


async def test_finalize_persists_pending_booking(finalizer, context, pricing, db, gateway):
    code = await finalizer.finalize(context, pricing)

    booking = db.collection(Collections.BOOKINGS).document(code).get().to_dict()
    assert booking["booking_code"] == code
    assert booking["status"] == "pending_payment"
    assert booking["estimated_cost"] == 1_785_340
    assert booking["driver_payout"] == 1_513_000
    assert booking["vehicle_type"] == "pickup"
    assert len(gateway.to(OPS_PHONE)) == 1


async def test_finalize_regenerates_code_on_conflict(repository, gateway, context, pricing, db):
    codes = iter(["MNZ-261019-AAAAA", "MNZ-261019-AAAAA", "MNZ-261019-BBBBB"])
    finalizer = BookingFinalizer(repository=repository, gateway=gateway, code_generator=lambda: next(codes))

    assert await finalizer.finalize(context, pricing) == "MNZ-261019-AAAAA"
    assert await finalizer.finalize(context, pricing) == "MNZ-261019-BBBBB"
    assert len(db.collection(Collections.BOOKINGS).stream()) == 2


async def test_finalize_gives_up_after_max_attempts(repository, gateway, context, pricing):
    calls = []

    def same_code():
        calls.append(1)
        return "MNZ-261019-SAME1"

    finalizer = BookingFinalizer(repository=repository, gateway=gateway, code_generator=same_code)
    await finalizer.finalize(context, pricing)
    calls.clear()

    with pytest.raises(StorageError):
        await finalizer.finalize(context, pricing)
    assert len(calls) == MAX_CODE_ATTEMPTS


async def test_notification_failure_does_not_undo_booking(finalizer, context, pricing, db, gateway):
    gateway.fail_for.add(OPS_PHONE)

    code = await finalizer.finalize(context, pricing)

    assert db.collection(Collections.BOOKINGS).document(code).get().exists
    assert gateway.to(OPS_PHONE) == []


async def test_finalize_rejects_incomplete_booking(finalizer, pricing):
    context = ConversationContext(phone_number=CLIENT_PHONE, partial_booking=PartialBooking(pickup_location="Dar"))
    with pytest.raises(ValueError):
        await finalizer.finalize(context, pricing)


async def test_finalize_same_quote_returns_existing_booking(finalizer, context, pricing, db, gateway):
    context.set_quote("q-1", pricing)

    first = await finalizer.finalize(context, pricing)
    second = await finalizer.finalize(context, pricing)

    assert second == first
    assert len(db.collection(Collections.BOOKINGS).stream()) == 1
    assert len(gateway.to(OPS_PHONE)) == 1


async def test_finalize_new_quote_creates_new_booking(finalizer, context, pricing, db):
    context.set_quote("q-1", pricing)
    first = await finalizer.finalize(context, pricing)

    context.set_quote("q-2", pricing)
    second = await finalizer.finalize(context, pricing)

    assert second != first
    assert len(db.collection(Collections.BOOKINGS).stream()) == 2
