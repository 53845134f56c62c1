"""
Precision helpers for fee calculations.

Money and usage arithmetic is done with `Decimal`; floats are converted via
`str` so that `1.3` stays `1.3` instead of its binary approximation.

Rounding to the currency's minor unit happens once, when a fee leaves the
engine (see `RoundingPolicy.to_minor_units`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Dict, Mapping

from .config import CURRENCY_EXPONENTS, DEFAULT_CURRENCY_EXPONENT, DEFAULT_ROUNDING_MODE

# Decimal context precision (significant digits)
DECIMAL_CONTEXT_PRECISION = 28

ROUNDING_MODES: Dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
}

ZERO = Decimal("0")


def to_decimal(value: float | int | str | Decimal | None) -> Decimal:
    """Convert values to Decimal safely (float via str to avoid binary artifacts).

    Raises ValueError for booleans, non-numeric strings and non-finite numbers.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"not a number: {value!r}") from None
    if not d.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return d


def to_count(value: float | int | str | Decimal) -> int:
    """Convert an integral value (`3`, `"3"`, `3.0`) to int; reject fractions."""
    d = to_decimal(value)
    if d != d.to_integral_value():
        raise ValueError(f"not an integer: {value!r}")
    return int(d)


@dataclass(frozen=True)
class RoundingPolicy:
    """Rounds major-unit amounts to integer minor units ("cents")."""

    mode: str = DEFAULT_ROUNDING_MODE
    exponents: Mapping[str, int] = field(default_factory=lambda: dict(CURRENCY_EXPONENTS))

    def __post_init__(self) -> None:
        if self.mode not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode '{self.mode}' (expected one of {sorted(ROUNDING_MODES)})")

    def exponent(self, currency: str) -> int:
        return int(self.exponents.get((currency or "").upper(), DEFAULT_CURRENCY_EXPONENT))

    def quantize(self, amount: Decimal, currency: str) -> Decimal:
        """Round to the currency's minor-unit precision, still in major units."""
        quantizer = Decimal(10) ** -self.exponent(currency)
        with localcontext() as ctx:
            ctx.prec = DECIMAL_CONTEXT_PRECISION
            return to_decimal(amount).quantize(quantizer, rounding=ROUNDING_MODES[self.mode])

    def round_integral(self, value: Decimal) -> int:
        with localcontext() as ctx:
            ctx.prec = DECIMAL_CONTEXT_PRECISION
            return int(to_decimal(value).quantize(Decimal(1), rounding=ROUNDING_MODES[self.mode]))

    def to_minor_units(self, amount: Decimal, currency: str) -> int:
        return self.round_integral(to_decimal(amount).scaleb(self.exponent(currency)))


__all__ = ["RoundingPolicy", "ROUNDING_MODES", "to_decimal", "to_count", "ZERO"]
