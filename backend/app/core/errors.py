"""
Error taxonomy for pricing, conversation storage and message delivery
"""


class ManyanzaError(Exception):
    """Base class for domain errors"""


class InvalidInputError(ManyanzaError, ValueError):
    """Malformed pricing input (non-positive distance, negative nights, ...)"""


class CorridorNotFoundError(ManyanzaError, KeyError):
    """Corridor key not in the catalog. Callers fall back to custom-route pricing."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown corridor: {self.key}"


class StorageError(ManyanzaError):
    """Conversation store or booking repository failure. The inbound message is unprocessed."""


class BookingCodeConflictError(StorageError):
    """A booking with the generated code already exists"""

    def __init__(self, booking_code: str):
        super().__init__(f"Booking code already exists: {booking_code}")
        self.booking_code = booking_code


class DeliveryError(ManyanzaError):
    """Outbound WhatsApp/SMS delivery failed"""

    def __init__(self, message: str, to: str = ""):
        super().__init__(message)
        self.message = message
        self.to = to


class BookingNotFoundError(ManyanzaError, KeyError):
    """No booking with that code"""

    def __init__(self, booking_code: str):
        super().__init__(booking_code)
        self.booking_code = booking_code

    def __str__(self) -> str:
        return f"Booking {self.booking_code} not found"


class BookingStateError(ManyanzaError):
    """The requested change is not allowed from the booking's current status"""
