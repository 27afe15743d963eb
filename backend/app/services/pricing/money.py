"""
Money type for TZS amounts
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union


@dataclass(frozen=True)
class Money:
    """Integer TZS amount (whole shillings)"""
    amount: int
    currency: str = "TZS"

    def __post_init__(self):
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise TypeError(f"Money amount must be an int, got {type(self.amount).__name__}")

    def __add__(self, other: "Money") -> "Money":
        if other.currency != self.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def format(self) -> str:
        return f"TSh {self.amount:,}"


def to_decimal(value: Union[int, float, str, Decimal]) -> Decimal:
    """Exact decimal for a rate or quantity; floats go through str() to avoid binary noise"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_shillings(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
