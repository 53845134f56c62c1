"""Period usage summary handed to the charge models.

The aggregation stage (outside this package) turns raw events into a total,
a count and a running history; this module only carries and checks that
triple.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .precision import ZERO, to_count, to_decimal
from .result import BaseFailure


@dataclass(frozen=True)
class AggregationResult:
    """Usage for one charge over one billing period.

    `running_totals[i]` is the cumulative usage right after event i+1, in
    chronological order. The last entry (equal to `total_usage`) may be left
    out; any index at or past the end reads as `total_usage`.
    """

    total_usage: Decimal = ZERO
    event_count: int = 0
    running_totals: Tuple[Decimal, ...] = ()
    options: Mapping[str, Any] = field(default_factory=dict)
    failure: Optional[BaseFailure] = None

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "total_usage", to_decimal(self.total_usage))
        object.__setattr__(self, "running_totals", tuple(to_decimal(v) for v in self.running_totals))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options or {})))

    @classmethod
    def build(
        cls,
        total_usage: Any = 0,
        event_count: Any = 0,
        running_totals: Optional[Iterable[Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "AggregationResult":
        """Construct from loosely typed values (numbers, numeric strings)."""
        opts = dict(options or {})
        if running_totals is None:
            # the aggregator historically shipped the history inside options
            running_totals = opts.pop("running_total", None) or ()
        return cls(
            total_usage=to_decimal(total_usage),
            event_count=to_count(event_count),
            running_totals=tuple(to_decimal(v) for v in running_totals),
            options=opts,
        )

    @classmethod
    def failed(cls, failure: BaseFailure) -> "AggregationResult":
        return cls(failure=failure)

    def running_total_at(self, index: int) -> Decimal:
        if 0 <= index < len(self.running_totals):
            return self.running_totals[index]
        return self.total_usage

    def last_running_total(self) -> Decimal:
        if self.running_totals:
            return self.running_totals[-1]
        return self.total_usage

    def validate(self) -> Dict[str, List[str]]:
        """Precondition checks; returns field -> messages (empty when valid)."""
        errors: Dict[str, List[str]] = {}

        def add(key: str, message: str) -> None:
            errors.setdefault(key, []).append(message)

        if self.total_usage < 0:
            add("total_usage", "must be greater than or equal to 0")
        if self.event_count < 0:
            add("event_count", "must be greater than or equal to 0")
        if len(self.running_totals) > self.event_count:
            add("running_totals", f"has {len(self.running_totals)} entries for {self.event_count} events")

        previous = ZERO
        for i, value in enumerate(self.running_totals):
            if value < 0:
                add("running_totals", f"entry {i} is negative")
            elif value < previous:
                add("running_totals", f"entry {i} decreases (not in chronological order)")
            if value > self.total_usage:
                add("running_totals", f"entry {i} exceeds total_usage")
            previous = max(previous, value)
        return errors


__all__ = ["AggregationResult"]
