"""Money value type - exact integer cents"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Percent = Union[int, float, Decimal, str]


def _as_decimal(value: Percent) -> Decimal:
    # str() first so 12.5 becomes Decimal("12.5") rather than its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True, order=True)
class Money:
    """An amount of currency subunits (cents). Never holds a fraction of a cent."""

    cents: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money requires integer cents, got {type(self.cents).__name__}")

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def sum(cls, amounts) -> "Money":
        total = 0
        for amount in amounts:
            total += amount.cents
        return cls(total)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __mul__(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return NotImplemented
        return Money(self.cents * quantity)

    __rmul__ = __mul__

    def percent(self, percent: Percent) -> "Money":
        """Return `percent`% of this amount, rounded once to the nearest cent (half-up)."""
        exact = Decimal(self.cents) * _as_decimal(percent) / Decimal(100)
        return Money(int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP)))

    def min(self, other: "Money") -> "Money":
        return self if self.cents <= other.cents else other

    def floor_zero(self) -> "Money":
        return self if self.cents >= 0 else Money(0)

    @property
    def is_negative(self) -> bool:
        return self.cents < 0

    def __str__(self) -> str:
        sign = "-" if self.cents < 0 else ""
        dollars, cents = divmod(abs(self.cents), 100)
        return f"{sign}${dollars:,}.{cents:02d}"
