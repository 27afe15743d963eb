"""Pricing services package"""
from app.services.pricing.corridors import CorridorCatalog, CorridorDefinition, DEFAULT_CORRIDORS
from app.services.pricing.engine import (
    PricingConfig,
    PricingEngine,
    PricingInput,
    PricingResult,
    VehicleType,
    VEHICLE_TYPES,
)
from app.services.pricing.money import Money

__all__ = [
    'CorridorCatalog',
    'CorridorDefinition',
    'DEFAULT_CORRIDORS',
    'Money',
    'PricingConfig',
    'PricingEngine',
    'PricingInput',
    'PricingResult',
    'VehicleType',
    'VEHICLE_TYPES',
]
