"""
Booking request/response schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class BookingResponse(BaseModel):
    """Booking as shown to clients and ops; the client phone is masked"""
    booking_code: str
    client_phone: str
    pickup_location: str
    destination: str
    vehicle_type: str
    pickup_date: str
    corridor_key: Optional[str] = None
    status: str
    estimated_cost: Optional[int] = None
    currency: str = "TZS"
    pricing: Dict[str, Any] = {}
    payment_submitted: bool = False
    payment_reviewed_by: Optional[str] = None
    payment_rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "BookingResponse":
        return cls(
            booking_code=doc["booking_code"],
            client_phone=mask_phone(doc.get("client_phone", "")),
            pickup_location=doc.get("pickup_location", ""),
            destination=doc.get("destination", ""),
            vehicle_type=doc.get("vehicle_type", ""),
            pickup_date=doc.get("pickup_date", ""),
            corridor_key=doc.get("corridor_key"),
            status=doc.get("status", ""),
            estimated_cost=doc.get("estimated_cost"),
            pricing=doc.get("pricing") or {},
            payment_submitted=bool(doc.get("payment_proof_url")),
            payment_reviewed_by=doc.get("payment_reviewed_by"),
            payment_rejection_reason=doc.get("payment_rejection_reason"),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class PaymentReviewRequest(BaseModel):
    """Ops decision on a submitted payment proof"""
    approved: bool
    reviewed_by: str = Field(default="admin", max_length=100)
    rejection_reason: Optional[str] = Field(None, max_length=500)


def mask_phone(phone: str) -> str:
    """+255765111131 -> +255*******131"""
    if len(phone) <= 7:
        return phone
    return phone[:4] + "*" * (len(phone) - 7) + phone[-3:]
