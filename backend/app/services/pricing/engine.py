"""
Transit Pricing Engine
Per-kilometer pricing with per diem, return travel, waiting and after-hours surcharges
plus platform commission on top of the driver subtotal
"""
import logging
import math
from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import CorridorNotFoundError, InvalidInputError
from app.services.pricing.corridors import CorridorCatalog, CorridorDefinition
from app.services.pricing.money import Money, round_shillings, to_decimal

logger = logging.getLogger(__name__)

RETURN_POLICY_HALF_DISTANCE = "half_distance_capped"
RETURN_POLICY_NONE = "none"

# Soft limits enforced by the quote calculator, not by calculate()
MAX_DISTANCE_KM = 3000
MAX_NIGHTS = 10
MAX_WAITING_HOURS = 24


class VehicleType(str, Enum):
    PICKUP = "pickup"
    VAN = "van"
    TRUCK = "truck"
    SALOON = "saloon"
    SUV = "suv"
    BUS = "bus"
    LORRY = "lorry"
    MOTORCYCLE = "motorcycle"


VEHICLE_TYPES: Tuple[str, ...] = tuple(v.value for v in VehicleType)


@dataclass(frozen=True)
class PricingConfig:
    """Rates used by the engine. Supplied by a PricingConfigSource and hot-reloadable."""
    rate_per_km: int = 1500
    per_diem_rate: int = 50000
    platform_commission_default: float = 0.18
    waiting_fee_per_hour: int = 15000
    free_waiting_hours: float = 2
    after_hours_surcharge: int = 25000
    default_return_allowance: int = 75000
    custom_route_return_policy: str = RETURN_POLICY_HALF_DISTANCE
    corridor_allowances: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings) -> "PricingConfig":
        return cls(
            rate_per_km=settings.RATE_PER_KM,
            per_diem_rate=settings.PER_DIEM_RATE,
            platform_commission_default=settings.PLATFORM_COMMISSION_DEFAULT,
            waiting_fee_per_hour=settings.WAITING_FEE_PER_HOUR,
            free_waiting_hours=settings.FREE_WAITING_HOURS,
            after_hours_surcharge=settings.AFTER_HOURS_SURCHARGE,
            default_return_allowance=settings.DEFAULT_RETURN_ALLOWANCE,
            custom_route_return_policy=settings.CUSTOM_ROUTE_RETURN_POLICY,
            corridor_allowances=dict(settings.CORRIDOR_ALLOWANCES),
        )


@dataclass(frozen=True)
class PricingInput:
    distance_km: float
    nights: int = 0
    corridor_key: Optional[str] = None
    waiting_hours: float = 0
    after_hours: bool = False
    # None = config default
    platform_commission_rate: Optional[float] = None
    vehicle_type: str = VehicleType.PICKUP.value


@dataclass(frozen=True)
class PricingResult:
    """Cost breakdown for one quote. Derived, never mutated."""
    base_distance_fee: Money
    per_diem_fee: Money
    return_travel_fee: Money
    waiting_fee: Money
    after_hours_fee: Money
    subtotal: Money
    commission_amount: Money
    customer_total: Money
    driver_payout: Money
    commission_rate: float
    distance_km: float
    nights: int
    waiting_hours: float = 0
    after_hours: bool = False
    vehicle_type: Optional[str] = None
    corridor_key: Optional[str] = None
    corridor_name: Optional[str] = None

    def __post_init__(self):
        components = (self.base_distance_fee + self.per_diem_fee + self.return_travel_fee
                      + self.waiting_fee + self.after_hours_fee)
        if components != self.subtotal:
            raise ValueError("subtotal must equal the sum of the fee components")
        if self.subtotal + self.commission_amount != self.customer_total:
            raise ValueError("customer_total must equal subtotal + commission_amount")
        if self.driver_payout != self.subtotal:
            raise ValueError("driver_payout must equal subtotal")

    @property
    def is_custom_route(self) -> bool:
        return self.corridor_key is None

    def to_dict(self) -> Dict[str, Any]:
        """Flat snapshot for persistence: Money fields become integer amounts"""
        data = asdict(self)
        for key, value in list(data.items()):
            if isinstance(value, dict) and set(value) == {"amount", "currency"}:
                data[key] = value["amount"]
        data["currency"] = self.customer_total.currency
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingResult":
        """Inverse of to_dict. Invariants are checked again, so a tampered snapshot is rejected."""
        currency = data.get("currency", "TZS")
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        try:
            for name in MONEY_FIELDS:
                values[name] = Money(int(values[name]), currency)
            return cls(**values)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Unreadable pricing snapshot: {e}") from e


MONEY_FIELDS = (
    "base_distance_fee", "per_diem_fee", "return_travel_fee", "waiting_fee", "after_hours_fee",
    "subtotal", "commission_amount", "customer_total", "driver_payout",
)


class PricingEngine:
    """
    Deterministic pricing calculator.

    Holds only configuration; every call to calculate() is pure.
    """

    def __init__(self, config: Optional[PricingConfig] = None, catalog: Optional[CorridorCatalog] = None):
        self.config = config or PricingConfig()
        base_catalog = catalog if catalog is not None else CorridorCatalog()
        self.catalog = base_catalog.with_allowances(self.config.corridor_allowances)

    def calculate(self, pricing_input: PricingInput) -> PricingResult:
        """
        Calculate the full cost breakdown for a trip

        Args:
            pricing_input: Trip description

        Returns:
            PricingResult with every fee component and totals

        Raises:
            InvalidInputError: distance <= 0, negative nights or waiting hours,
                or commission rate outside [0, 1]
        """
        commission_rate = self._validate(pricing_input)
        cfg = self.config
        distance = to_decimal(pricing_input.distance_km)

        # === FEE COMPONENTS ===

        # 1. Distance
        base_distance_fee = Money(round_shillings(distance * cfg.rate_per_km))

        # 2. Overnight stays
        per_diem_fee = Money(pricing_input.nights * cfg.per_diem_rate)

        # 3. Return travel
        return_travel_fee, corridor = self.get_return_allowance(pricing_input.corridor_key, pricing_input.distance_km)

        # 4. Waiting beyond the free window
        waiting_fee = self.calculate_waiting_fee(pricing_input.waiting_hours)

        # 5. After-hours surcharge
        after_hours_fee = Money(cfg.after_hours_surcharge if pricing_input.after_hours else 0)

        # === TOTALS ===
        subtotal = base_distance_fee + per_diem_fee + return_travel_fee + waiting_fee + after_hours_fee
        commission_amount = Money(round_shillings(Decimal(subtotal.amount) * to_decimal(commission_rate)))
        customer_total = subtotal + commission_amount

        return PricingResult(
            base_distance_fee=base_distance_fee,
            per_diem_fee=per_diem_fee,
            return_travel_fee=return_travel_fee,
            waiting_fee=waiting_fee,
            after_hours_fee=after_hours_fee,
            subtotal=subtotal,
            commission_amount=commission_amount,
            customer_total=customer_total,
            driver_payout=subtotal,
            commission_rate=commission_rate,
            distance_km=pricing_input.distance_km,
            nights=pricing_input.nights,
            waiting_hours=pricing_input.waiting_hours,
            after_hours=pricing_input.after_hours,
            vehicle_type=pricing_input.vehicle_type,
            corridor_key=corridor.key if corridor else None,
            corridor_name=corridor.display_name if corridor else None,
        )

    def get_return_allowance(self, corridor_key: Optional[str], distance_km: float) -> Tuple[Money, Optional[CorridorDefinition]]:
        """
        Return allowance for the driver's unloaded trip back.

        Catalog corridors use their fixed allowance. Custom routes (no key, or
        a key the catalog does not know) follow custom_route_return_policy.
        """
        if corridor_key:
            try:
                corridor = self.catalog.lookup(corridor_key)
                return corridor.return_allowance, corridor
            except CorridorNotFoundError as e:
                logger.warning(f"{e}; pricing as custom route")

        if self.config.custom_route_return_policy == RETURN_POLICY_NONE:
            return Money(0), None

        estimate = round_shillings(to_decimal(distance_km) * Decimal("0.5") * self.config.rate_per_km)
        return Money(min(self.config.default_return_allowance, estimate)), None

    def calculate_waiting_fee(self, waiting_hours: float) -> Money:
        """First FREE_WAITING_HOURS are free, then charged per hour"""
        billable = to_decimal(waiting_hours) - to_decimal(self.config.free_waiting_hours)
        if billable <= 0:
            return Money(0)
        return Money(round_shillings(billable * self.config.waiting_fee_per_hour))

    def estimate_corridor(self, corridor_key: str) -> PricingResult:
        """Quick quote for a catalog corridor at default commission"""
        corridor = self.catalog.lookup(corridor_key)
        return self.calculate(PricingInput(
            distance_km=corridor.distance_km,
            nights=corridor.nights,
            corridor_key=corridor.key,
        ))

    def validate_params(self, pricing_input: PricingInput) -> List[str]:
        """
        Human-readable problems with a quote request, including the soft
        operating limits (used by the public calculator)
        """
        errors = []
        try:
            self._validate(pricing_input)
        except InvalidInputError as e:
            errors.append(str(e))

        if pricing_input.distance_km > MAX_DISTANCE_KM:
            errors.append(f"Distance exceeds maximum supported range ({MAX_DISTANCE_KM} km)")
        if pricing_input.nights > MAX_NIGHTS:
            errors.append(f"Nights must be between 0 and {MAX_NIGHTS}")
        if pricing_input.waiting_hours > MAX_WAITING_HOURS:
            errors.append(f"Waiting hours must be between 0 and {MAX_WAITING_HOURS}")
        return errors

    # === VALIDATION ===

    def _validate(self, pricing_input: PricingInput) -> float:
        """Check hard invariants and resolve the commission rate"""
        distance = pricing_input.distance_km
        if isinstance(distance, bool) or not isinstance(distance, (int, float, Decimal)):
            raise InvalidInputError("Distance must be a number")
        if not math.isfinite(distance):
            raise InvalidInputError("Distance must be a finite number")
        if distance <= 0:
            raise InvalidInputError("Distance must be greater than 0")

        if isinstance(pricing_input.nights, bool) or not isinstance(pricing_input.nights, int):
            raise InvalidInputError("Nights must be a whole number")
        if pricing_input.nights < 0:
            raise InvalidInputError("Nights cannot be negative")

        waiting = pricing_input.waiting_hours
        if isinstance(waiting, bool) or not isinstance(waiting, (int, float, Decimal)) or not math.isfinite(waiting):
            raise InvalidInputError("Waiting hours must be a finite number")
        if waiting < 0:
            raise InvalidInputError("Waiting hours cannot be negative")

        rate = pricing_input.platform_commission_rate
        if rate is None:
            rate = self.config.platform_commission_default
        if not 0 <= rate <= 1:
            raise InvalidInputError("Platform commission rate must be between 0 and 1")
        return float(rate)
