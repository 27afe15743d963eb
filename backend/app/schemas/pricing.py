"""
Pricing request/response schemas
"""
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from app.services.pricing.engine import VEHICLE_TYPES, PricingResult


class PricingConfigResponse(BaseModel):
    """Current effective rates (TZS)"""
    rate_per_km: int
    per_diem_rate: int
    platform_commission_default: float
    waiting_fee_per_hour: int
    free_waiting_hours: float
    after_hours_surcharge: int
    default_return_allowance: int
    custom_route_return_policy: str
    corridor_allowances: Dict[str, int] = Field(default_factory=dict)
    last_updated: Optional[str] = None
    updated_by: Optional[str] = None


class PricingConfigUpdate(BaseModel):
    """Admin rate update. Omitted fields keep their current value."""
    rate_per_km: Optional[int] = Field(None, gt=0)
    per_diem_rate: Optional[int] = Field(None, ge=0)
    platform_commission_default: Optional[float] = Field(None, ge=0, le=1)
    waiting_fee_per_hour: Optional[int] = Field(None, ge=0)
    free_waiting_hours: Optional[float] = Field(None, ge=0)
    after_hours_surcharge: Optional[int] = Field(None, ge=0)
    default_return_allowance: Optional[int] = Field(None, ge=0)
    custom_route_return_policy: Optional[str] = Field(None, pattern=r'^(half_distance_capped|none)$')
    updated_by: str = Field(default="admin", max_length=100)


class CorridorAllowanceUpdate(BaseModel):
    return_allowance: int = Field(..., ge=0)
    updated_by: str = Field(default="admin", max_length=100)


class QuoteRequest(BaseModel):
    """
    Public quote calculator input.
    Ranges are checked by the pricing engine so problems come back as one 400 with every issue listed.
    """
    distance_km: float
    nights: int = 0
    corridor_key: Optional[str] = None
    waiting_hours: float = 0
    after_hours: bool = False
    platform_commission_rate: Optional[float] = None
    vehicle_type: str = "pickup"

    @field_validator('vehicle_type')
    @classmethod
    def validate_vehicle_type(cls, v: str) -> str:
        if v.lower() not in VEHICLE_TYPES:
            raise ValueError(f'Vehicle type must be one of: {", ".join(VEHICLE_TYPES)}')
        return v.lower()


class QuoteResponse(BaseModel):
    base_distance_fee: int
    per_diem_fee: int
    return_travel_fee: int
    waiting_fee: int
    after_hours_fee: int
    subtotal: int
    commission_amount: int
    customer_total: int
    driver_payout: int
    commission_rate: float
    currency: str = "TZS"
    distance_km: float
    nights: int
    vehicle_type: Optional[str] = None
    corridor_key: Optional[str] = None
    corridor_name: Optional[str] = None
    is_estimate: bool = False

    @classmethod
    def from_result(cls, result: PricingResult) -> "QuoteResponse":
        data = result.to_dict()
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields}, is_estimate=result.is_custom_route)


class CorridorResponse(BaseModel):
    key: str
    display_name: str
    distance_km: float
    nights: int
    return_allowance: int
    estimated_total: int
