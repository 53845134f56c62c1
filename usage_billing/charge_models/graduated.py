from __future__ import annotations

from typing import Any, Dict, List

from ..aggregation import AggregationResult
from ..precision import ZERO
from .base import BaseChargeModel
from .properties import GraduatedProperties, validate_price_ranges
from .types import ChargeModelKind, ComputedFee, FieldIssue, PropertySpec


class GraduatedChargeModel(BaseChargeModel):
    """Tiered pricing where each range bills only the usage that falls inside it.

    Ranges are contiguous from 0: `[0, 100) -> [100, 500) -> [500, None)`.
    A range's flat amount is charged once usage reaches into that range.
    """

    kind = ChargeModelKind.GRADUATED

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {
            "graduated_ranges": PropertySpec("graduated_ranges", type="ranges"),
        }

    def validate_properties(self, properties: GraduatedProperties) -> List[FieldIssue]:
        return validate_price_ranges(properties.ranges, "graduated_ranges", open_ended=True)

    def compute(self, properties: GraduatedProperties, aggregation_result: AggregationResult) -> ComputedFee:
        agg = aggregation_result
        remaining = agg.total_usage
        amount = ZERO
        slices: List[Dict[str, Any]] = []

        for r in properties.ranges:
            if remaining <= 0:
                break
            width = None if r.to_value is None else r.to_value - r.from_value
            units = remaining if width is None else min(width, remaining)
            slice_amount = units * r.per_unit_amount + r.flat_amount
            amount += slice_amount
            remaining -= units
            slices.append(
                {
                    "from_value": r.from_value,
                    "to_value": r.to_value,
                    "units": units,
                    "per_unit_amount": r.per_unit_amount,
                    "flat_amount": r.flat_amount,
                    "amount": slice_amount,
                }
            )

        return ComputedFee(
            charge_model=self.kind,
            amount=amount,
            units=agg.total_usage,
            events_count=agg.event_count,
            units_billed=agg.event_count,
            breakdown={"ranges": tuple(slices)},
        )
