import pytest

from app.core.errors import CorridorNotFoundError
from app.services.pricing import CorridorCatalog, CorridorDefinition, Money


@pytest.fixture
def catalog():
    return CorridorCatalog()


def test_default_catalog(catalog):
    assert len(catalog) == 5
    tunduma = catalog.lookup("dar-tunduma")
    assert tunduma.distance_km == 932
    assert tunduma.nights == 1
    assert tunduma.return_allowance == Money(65_000)


def test_lookup_unknown_key(catalog):
    with pytest.raises(CorridorNotFoundError) as exc:
        catalog.lookup("dar-arusha")
    assert exc.value.key == "dar-arusha"
    assert catalog.get("dar-arusha") is None
    assert catalog.get(None) is None


@pytest.mark.parametrize("pickup, destination, expected", [
    ("Dar es Salaam CBD", "Tunduma Border", "dar-tunduma"),
    ("DSM port", "Rusumo", "dar-rusumo"),
    ("Mutukula", "dar", "dar-mutukula"),
    ("Kariakoo, Dar", "Kobero border post", "dar-kabanga"),
    ("dar-es-salaam", "KASUMULU", "dar-kasumulu"),
])
def test_detect_corridor(catalog, pickup, destination, expected):
    assert catalog.detect_corridor(pickup, destination).key == expected


@pytest.mark.parametrize("pickup, destination", [
    ("Dar es Salaam", "Mwanza City"),
    ("Arusha", "Tunduma"),
    ("Darajani", "Tunduma"),
    ("Dar es Salaam", None),
])
def test_detect_corridor_custom_route(catalog, pickup, destination):
    assert catalog.detect_corridor(pickup, destination) is None


def test_catalog_rejects_bad_definitions():
    good = CorridorDefinition("a", "A", 10, 0, Money(1))
    with pytest.raises(ValueError):
        CorridorCatalog([good, good])
    with pytest.raises(ValueError):
        CorridorCatalog([CorridorDefinition("b", "B", 0, 0, Money(1))])
    with pytest.raises(ValueError):
        CorridorCatalog([CorridorDefinition("c", "C", 10, -1, Money(1))])


def test_with_allowances_returns_new_catalog(catalog):
    updated = catalog.with_allowances({"dar-rusumo": 100_000, "dar-unknown": 5})
    assert updated.lookup("dar-rusumo").return_allowance == Money(100_000)
    assert catalog.lookup("dar-rusumo").return_allowance == Money(90_000)
    assert "dar-unknown" not in updated
