from __future__ import annotations

from decimal import Decimal
from typing import Dict

from ..aggregation import AggregationResult
from ..precision import ZERO
from .base import BaseChargeModel
from .properties import PercentageProperties
from .types import ChargeModelKind, ComputedFee, PropertySpec

HUNDRED = Decimal(100)


class PercentageChargeModel(BaseChargeModel):
    """Percentage of usage above a free threshold, plus a fixed fee per paying event.

    Free units can be bounded two ways, and the stricter bound wins:
    - `free_units_per_events`: the first N events are free
    - `free_units_per_total_aggregation`: events are free while cumulative
      usage is still below this amount
    The percentage applies to the usage above the point where free units stop.
    """

    kind = ChargeModelKind.PERCENTAGE

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {
            "rate": PropertySpec("rate"),  # 1.3 means 1.3%
            "fixed_amount": PropertySpec("fixed_amount", required=False, default=ZERO),
            "free_units_per_events": PropertySpec("free_units_per_events", type="int", required=False),
            "free_units_per_total_aggregation": PropertySpec("free_units_per_total_aggregation", required=False),
        }

    def free_units_count(self, properties: PercentageProperties, agg: AggregationResult) -> int:
        per_events = properties.free_units_per_events
        per_total = properties.free_units_per_total_aggregation
        if per_events is None and per_total is None:
            return 0

        if per_total is not None:
            # events that happened while cumulative usage was still under the cap
            agg_free_events = sum(1 for v in agg.running_totals if v < per_total)
        else:
            agg_free_events = agg.event_count

        bound_from_events = per_events if per_events is not None else agg.event_count
        return min(bound_from_events, agg_free_events, agg.event_count)

    def free_units_value(self, properties: PercentageProperties, agg: AggregationResult, free_events: int) -> Decimal:
        """Usage covered by free units (the percentage threshold)."""
        if properties.free_units_per_total_aggregation is not None:
            return min(properties.free_units_per_total_aggregation, agg.last_running_total())
        if properties.free_units_per_events is not None and free_events > 0:
            return agg.running_total_at(free_events - 1)
        return ZERO

    def compute(self, properties: PercentageProperties, aggregation_result: AggregationResult) -> ComputedFee:
        agg = aggregation_result
        free_events = self.free_units_count(properties, agg)
        threshold = self.free_units_value(properties, agg, free_events)

        percentage_base = max(agg.total_usage - threshold, ZERO)
        percentage_amount = percentage_base * properties.rate / HUNDRED
        units_billed = max(agg.event_count - free_events, 0)
        fixed_fee_amount = units_billed * properties.fixed_amount

        return ComputedFee(
            charge_model=self.kind,
            amount=percentage_amount + fixed_fee_amount,
            units=agg.total_usage,
            events_count=agg.event_count,
            units_billed=units_billed,
            free_units_consumed=free_events,
            breakdown={
                "percentage_threshold": threshold,
                "percentage_base": percentage_base,
                "percentage_amount": percentage_amount,
                "fixed_fee_amount": fixed_fee_amount,
            },
        )
