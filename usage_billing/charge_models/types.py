from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..precision import ZERO


class ChargeModelKind(str, Enum):
    """The closed set of pricing models a charge can be configured with."""

    STANDARD = "standard"
    PERCENTAGE = "percentage"
    GRADUATED = "graduated"
    VOLUME = "volume"
    PACKAGE = "package"


@dataclass(frozen=True)
class PropertySpec:
    """Describes one configuration property of a charge model."""

    name: str
    type: str = "decimal"  # "decimal" | "int" | "ranges"
    required: bool = True
    default: Optional[Any] = None


@dataclass(frozen=True)
class FieldIssue:
    key: str
    issue: str  # "missing" | "invalid"
    message: str


def issues_to_messages(issues: Sequence[FieldIssue]) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for i in issues:
        out.setdefault(i.key, []).append(i.message)
    return out


@dataclass(frozen=True)
class FeeRef:
    """Non-owning pointer to a fee in the period's fee list."""

    index: int
    charge_code: Optional[str] = None


@dataclass(frozen=True)
class ComputedFee:
    """Pre-tax, pre-rounding fee produced by a charge model (major units)."""

    charge_model: Optional[ChargeModelKind]
    amount: Decimal
    units: Decimal = ZERO
    events_count: int = 0
    units_billed: int = 0
    free_units_consumed: int = 0
    breakdown: Mapping[str, Any] = field(default_factory=dict)
    charge_code: Optional[str] = None
    true_up_parent: Optional[FeeRef] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"fee amount cannot be negative: {self.amount}")
        if self.units < 0 or self.events_count < 0:
            raise ValueError(f"units and events_count cannot be negative: {self.units}, {self.events_count}")
        if self.units_billed < 0 or self.free_units_consumed < 0:
            raise ValueError("billed/free unit counts cannot be negative")
        object.__setattr__(self, "breakdown", MappingProxyType(dict(self.breakdown)))

    @property
    def is_true_up(self) -> bool:
        return self.true_up_parent is not None

    def with_charge_code(self, code: Optional[str]) -> "ComputedFee":
        return replace(self, charge_code=code)
