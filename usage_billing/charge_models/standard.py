from __future__ import annotations

from typing import Dict

from ..aggregation import AggregationResult
from .base import BaseChargeModel
from .properties import StandardProperties
from .types import ChargeModelKind, ComputedFee, PropertySpec


class StandardChargeModel(BaseChargeModel):
    """Flat unit price on the whole period usage."""

    kind = ChargeModelKind.STANDARD

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {
            "unit_price": PropertySpec("unit_price"),
        }

    def compute(self, properties: StandardProperties, aggregation_result: AggregationResult) -> ComputedFee:
        agg = aggregation_result
        return ComputedFee(
            charge_model=self.kind,
            amount=agg.total_usage * properties.unit_price,
            units=agg.total_usage,
            events_count=agg.event_count,
            units_billed=agg.event_count,
        )
