"""
Corridor catalog
Predefined long-haul routes out of Dar es Salaam with fixed distance, nights and return allowance
"""
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from app.core.errors import CorridorNotFoundError
from app.services.pricing.money import Money


@dataclass(frozen=True)
class CorridorDefinition:
    key: str
    display_name: str
    distance_km: float
    nights: int
    return_allowance: Money
    origin_keywords: Tuple[str, ...] = field(default=())
    destination_keywords: Tuple[str, ...] = field(default=())


DAR_KEYWORDS = ("dar", "dar es salaam", "dar-es-salaam", "dsm")

DEFAULT_CORRIDORS: Tuple[CorridorDefinition, ...] = (
    CorridorDefinition("dar-tunduma", "Dar es Salaam → Tunduma", 932, 1, Money(65000),
                       DAR_KEYWORDS, ("tunduma",)),
    CorridorDefinition("dar-rusumo", "Dar es Salaam → Rusumo", 1300, 2, Money(90000),
                       DAR_KEYWORDS, ("rusumo",)),
    CorridorDefinition("dar-mutukula", "Dar es Salaam → Mutukula", 1480, 2, Money(95000),
                       DAR_KEYWORDS, ("mutukula",)),
    CorridorDefinition("dar-kabanga", "Dar es Salaam → Kabanga/Kobero", 1200, 2, Money(85000),
                       DAR_KEYWORDS, ("kabanga", "kobero")),
    CorridorDefinition("dar-kasumulu", "Dar es Salaam → Kasumulu", 1100, 2, Money(70000),
                       DAR_KEYWORDS, ("kasumulu",)),
)


def _mentions(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in keywords)


class CorridorCatalog:
    """Immutable, keyed set of corridors"""

    def __init__(self, corridors: Iterable[CorridorDefinition] = DEFAULT_CORRIDORS):
        self._corridors: Dict[str, CorridorDefinition] = {}
        for corridor in corridors:
            if corridor.key in self._corridors:
                raise ValueError(f"Duplicate corridor key: {corridor.key}")
            if corridor.distance_km <= 0:
                raise ValueError(f"Corridor {corridor.key} must have a positive distance")
            if corridor.nights < 0:
                raise ValueError(f"Corridor {corridor.key} cannot have negative nights")
            self._corridors[corridor.key] = corridor

    def __contains__(self, key: object) -> bool:
        return key in self._corridors

    def __iter__(self):
        return iter(self._corridors.values())

    def __len__(self) -> int:
        return len(self._corridors)

    def keys(self) -> List[str]:
        return list(self._corridors)

    def lookup(self, key: str) -> CorridorDefinition:
        try:
            return self._corridors[key]
        except KeyError:
            raise CorridorNotFoundError(key) from None

    def get(self, key: Optional[str]) -> Optional[CorridorDefinition]:
        if not key:
            return None
        return self._corridors.get(key)

    def detect_corridor(self, pickup_text: Optional[str], destination_text: Optional[str]) -> Optional[CorridorDefinition]:
        """
        Classify free-text endpoints into a predefined corridor.

        Both endpoints must mention a corridor keyword (whole word, either
        direction). Returns None for custom routes.
        """
        if not pickup_text or not destination_text:
            return None

        for corridor in self._corridors.values():
            forward = (_mentions(pickup_text, corridor.origin_keywords)
                       and _mentions(destination_text, corridor.destination_keywords))
            reverse = (_mentions(pickup_text, corridor.destination_keywords)
                       and _mentions(destination_text, corridor.origin_keywords))
            if forward or reverse:
                return corridor
        return None

    def with_allowances(self, allowances: Mapping[str, int]) -> "CorridorCatalog":
        """New catalog with return allowances overridden for the given keys"""
        updated = []
        for corridor in self._corridors.values():
            if corridor.key in allowances:
                corridor = replace(corridor, return_allowance=Money(int(allowances[corridor.key])))
            updated.append(corridor)
        return CorridorCatalog(updated)
