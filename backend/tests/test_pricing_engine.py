"""
Pricing engine: invariants, concrete scenarios, validation
"""
import random
from decimal import Decimal

import pytest

from app.core.errors import InvalidInputError
from app.services.pricing import Money, PricingConfig, PricingEngine, PricingInput, PricingResult
from app.services.pricing.engine import RETURN_POLICY_NONE
from app.services.pricing.money import round_shillings


@pytest.fixture
def engine():
    return PricingEngine()


def test_dar_tunduma_round_trip_quote(engine):
    result = engine.calculate(PricingInput(distance_km=932, nights=1, corridor_key="dar-tunduma"))

    assert result.base_distance_fee == Money(1_398_000)
    assert result.per_diem_fee == Money(50_000)
    assert result.return_travel_fee == Money(65_000)
    assert result.subtotal == Money(1_513_000)
    assert result.commission_amount == Money(272_340)
    assert result.customer_total == Money(1_785_340)
    assert result.driver_payout == result.subtotal
    assert result.corridor_name == "Dar es Salaam → Tunduma"
    assert not result.is_custom_route


def test_custom_route_with_waiting_time(engine):
    result = engine.calculate(PricingInput(
        distance_km=100,
        nights=0,
        corridor_key=None,
        waiting_hours=3,
        after_hours=False,
        platform_commission_rate=0.18,
    ))

    assert result.base_distance_fee == Money(150_000)
    assert result.waiting_fee == Money(15_000)
    # min(75,000, 0.5 * 100 km * 1,500)
    assert result.return_travel_fee == Money(75_000)
    assert result.subtotal == Money(240_000)
    assert result.commission_amount == Money(43_200)
    assert result.customer_total == Money(283_200)
    assert result.is_custom_route


def test_short_custom_route_return_is_half_distance(engine):
    result = engine.calculate(PricingInput(distance_km=40))
    assert result.return_travel_fee == Money(30_000)


def test_return_policy_none():
    engine = PricingEngine(PricingConfig(custom_route_return_policy=RETURN_POLICY_NONE))
    result = engine.calculate(PricingInput(distance_km=100))
    assert result.return_travel_fee == Money(0)


def test_unknown_corridor_falls_back_to_custom_route(engine):
    result = engine.calculate(PricingInput(distance_km=500, corridor_key="dar-nowhere"))
    assert result.corridor_key is None
    assert result.return_travel_fee == Money(75_000)


def test_after_hours_surcharge(engine):
    result = engine.calculate(PricingInput(distance_km=10, after_hours=True))
    assert result.after_hours_fee == Money(25_000)


def test_waiting_within_free_window_is_free(engine):
    assert engine.calculate_waiting_fee(2) == Money(0)
    assert engine.calculate_waiting_fee(0) == Money(0)


def test_fractional_amounts_round_half_up(engine):
    # 0.3 km * 1500 = 450 exactly; 2.5 h waiting -> 0.5 h * 15000 = 7500
    result = engine.calculate(PricingInput(distance_km=0.3, waiting_hours=2.5, platform_commission_rate=0.185))
    assert result.base_distance_fee == Money(450)
    assert result.waiting_fee == Money(7_500)
    expected_commission = round_shillings(Decimal(result.subtotal.amount) * Decimal("0.185"))
    assert result.commission_amount == Money(expected_commission)


def test_corridor_allowance_override():
    engine = PricingEngine(PricingConfig(corridor_allowances={"dar-tunduma": 80_000}))
    result = engine.calculate(PricingInput(distance_km=932, nights=1, corridor_key="dar-tunduma"))
    assert result.return_travel_fee == Money(80_000)


@pytest.mark.parametrize("distance", [0, -1, -0.5])
def test_non_positive_distance_rejected(engine, distance):
    with pytest.raises(InvalidInputError):
        engine.calculate(PricingInput(distance_km=distance))


@pytest.mark.parametrize("distance", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_distance_rejected(engine, distance):
    with pytest.raises(InvalidInputError, match="finite"):
        engine.calculate(PricingInput(distance_km=distance))


@pytest.mark.parametrize("kwargs", [
    {"nights": -1},
    {"waiting_hours": -2},
    {"waiting_hours": float("nan")},
    {"waiting_hours": float("inf")},
    {"platform_commission_rate": 1.5},
    {"platform_commission_rate": -0.1},
])
def test_invalid_inputs_rejected(engine, kwargs):
    with pytest.raises(InvalidInputError):
        engine.calculate(PricingInput(distance_km=100, **kwargs))


def test_totals_invariants_hold_for_random_inputs(engine):
    rng = random.Random(20261019)
    corridor_keys = [None, "dar-tunduma", "dar-rusumo", "dar-mutukula", "dar-kabanga", "dar-kasumulu", "dar-unknown"]

    for _ in range(500):
        pricing_input = PricingInput(
            distance_km=round(rng.uniform(0.1, 3000), rng.choice([0, 1, 2])) or 0.1,
            nights=rng.randint(0, 10),
            corridor_key=rng.choice(corridor_keys),
            waiting_hours=round(rng.uniform(0, 24), 1),
            after_hours=rng.random() < 0.3,
            platform_commission_rate=round(rng.uniform(0, 1), 3),
        )
        result = engine.calculate(pricing_input)

        components = (result.base_distance_fee.amount + result.per_diem_fee.amount
                      + result.return_travel_fee.amount + result.waiting_fee.amount
                      + result.after_hours_fee.amount)
        assert result.subtotal.amount == components
        assert result.customer_total.amount == result.subtotal.amount + result.commission_amount.amount
        assert result.commission_amount.amount == round_shillings(
            Decimal(result.subtotal.amount) * Decimal(str(pricing_input.platform_commission_rate))
        )
        assert result.driver_payout == result.subtotal


def test_validate_params_reports_soft_limits(engine):
    errors = engine.validate_params(PricingInput(distance_km=3500, nights=12, waiting_hours=30))
    assert len(errors) == 3

    assert engine.validate_params(PricingInput(distance_km=932, nights=1)) == []
    assert engine.validate_params(PricingInput(distance_km=0)) == ["Distance must be greater than 0"]
    assert "Distance must be a finite number" in engine.validate_params(PricingInput(distance_km=float("nan")))
    assert engine.validate_params(PricingInput(distance_km=100, waiting_hours=float("nan"))) == [
        "Waiting hours must be a finite number"
    ]


def test_estimate_corridor_uses_catalog_values(engine):
    result = engine.estimate_corridor("dar-tunduma")
    assert result.customer_total == Money(1_785_340)


def test_result_to_dict_flattens_money(engine):
    data = engine.calculate(PricingInput(distance_km=932, nights=1, corridor_key="dar-tunduma")).to_dict()
    assert data["customer_total"] == 1_785_340
    assert data["currency"] == "TZS"
    assert data["corridor_key"] == "dar-tunduma"


def test_money_rejects_float_and_currency_mix():
    with pytest.raises(TypeError):
        Money(10.5)
    with pytest.raises(ValueError):
        Money(10) + Money(10, "KES")
    assert Money(1_785_340).format() == "TSh 1,785,340"


def test_result_from_dict_restores_snapshot(engine):
    result = engine.calculate(PricingInput(distance_km=932, nights=1, corridor_key="dar-tunduma"))
    assert PricingResult.from_dict(result.to_dict()) == result


def test_result_from_dict_rejects_incomplete_snapshot(engine):
    data = engine.calculate(PricingInput(distance_km=932, nights=1)).to_dict()
    del data["customer_total"]
    with pytest.raises(ValueError):
        PricingResult.from_dict(data)
