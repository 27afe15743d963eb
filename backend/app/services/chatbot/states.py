"""
Conversation state and per-phone context for the WhatsApp booking flow
"""
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from app.services.pricing.engine import VEHICLE_TYPES, PricingResult


class ConversationState(str, Enum):
    IDLE = "idle"
    COLLECTING_PICKUP = "collecting_pickup"
    COLLECTING_DESTINATION = "collecting_destination"
    COLLECTING_VEHICLE = "collecting_vehicle"
    COLLECTING_DATE = "collecting_date"
    CONFIRMING_DETAILS = "confirming_details"
    AWAITING_PAYMENT = "awaiting_payment"
    BOOKING_CONFIRMED = "booking_confirmed"


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime"""
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class PartialBooking:
    """Booking fields collected so far. Each field is validated when set."""
    pickup_location: Optional[str] = None
    destination: Optional[str] = None
    vehicle_type: Optional[str] = None
    pickup_date: Optional[date] = None
    corridor_key: Optional[str] = None
    distance_km: Optional[float] = None
    nights: Optional[int] = None

    def __post_init__(self):
        for name in ("pickup_location", "destination"):
            value = getattr(self, name)
            if value is not None and len(value.strip()) < 3:
                raise ValueError(f"{name} must be at least 3 characters")
        if self.vehicle_type is not None and self.vehicle_type not in VEHICLE_TYPES:
            raise ValueError(f"Unknown vehicle type: {self.vehicle_type}")
        if self.distance_km is not None and self.distance_km <= 0:
            raise ValueError("distance_km must be positive")
        if self.nights is not None and self.nights < 0:
            raise ValueError("nights cannot be negative")

    def update(self, **changes: Any) -> "PartialBooking":
        return replace(self, **changes)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = value.isoformat() if isinstance(value, date) else value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PartialBooking":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if isinstance(values.get("pickup_date"), str):
            values["pickup_date"] = date.fromisoformat(values["pickup_date"])
        return cls(**values)


@dataclass
class ConversationContext:
    """
    Dialogue state for one client phone number.

    Only the state machine mutates it, through its transition handlers.
    The quote shown to the client is kept (with its id) while they decide,
    so the booking is charged exactly what they saw.
    """
    phone_number: str
    state: ConversationState = ConversationState.IDLE
    partial_booking: PartialBooking = field(default_factory=PartialBooking)
    current_booking_id: Optional[str] = None
    quote: Optional[PricingResult] = None
    quote_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def transition(self, state: ConversationState) -> None:
        self.state = state
        if state != ConversationState.CONFIRMING_DETAILS:
            self.clear_quote()

    def set_quote(self, quote_id: str, quote: PricingResult) -> None:
        self.quote_id = quote_id
        self.quote = quote

    def clear_quote(self) -> None:
        self.quote = None
        self.quote_id = None

    def reset(self) -> None:
        """Back to Idle with nothing collected"""
        self.state = ConversationState.IDLE
        self.partial_booking = PartialBooking()
        self.current_booking_id = None
        self.clear_quote()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phone_number": self.phone_number,
            "state": self.state.value,
            "partial_booking": self.partial_booking.to_dict(),
            "current_booking_id": self.current_booking_id,
            "quote": self.quote.to_dict() if self.quote else None,
            "quote_id": self.quote_id,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, phone_number: str, data: Dict[str, Any]) -> "ConversationContext":
        return cls(
            phone_number=phone_number,
            state=ConversationState(data.get("state") or ConversationState.IDLE.value),
            partial_booking=PartialBooking.from_dict(data.get("partial_booking")),
            current_booking_id=data.get("current_booking_id"),
            quote=PricingResult.from_dict(data["quote"]) if data.get("quote") else None,
            quote_id=data.get("quote_id"),
            updated_at=data.get("updated_at"),
        )
