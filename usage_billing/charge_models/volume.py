from __future__ import annotations

from typing import Dict, List, Optional

from ..aggregation import AggregationResult
from .base import BaseChargeModel
from .properties import PriceRange, VolumeProperties, validate_price_ranges
from .types import ChargeModelKind, ComputedFee, FieldIssue, PropertySpec


class VolumeChargeModel(BaseChargeModel):
    """Single-tier pricing: total usage picks one tier, which prices all of it."""

    kind = ChargeModelKind.VOLUME

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {
            "volume_ranges": PropertySpec("volume_ranges", type="ranges"),
        }

    def validate_properties(self, properties: VolumeProperties) -> List[FieldIssue]:
        return validate_price_ranges(properties.ranges, "volume_ranges", open_ended=False)

    @staticmethod
    def select_tier(properties: VolumeProperties, aggregation_result: AggregationResult) -> Optional[PriceRange]:
        """Highest tier whose lower bound is reached, if usage is within its bounds."""
        usage = aggregation_result.total_usage
        for tier in reversed(properties.ranges):
            if tier.from_value <= usage:
                return tier if tier.contains(usage) else None
        return None

    def check_applicable(self, properties: VolumeProperties, aggregation_result: AggregationResult) -> List[FieldIssue]:
        if self.select_tier(properties, aggregation_result) is None:
            return [
                FieldIssue(
                    key="volume_ranges",
                    issue="invalid",
                    message=f"no_matching_range (total_usage={aggregation_result.total_usage})",
                )
            ]
        return []

    def compute(self, properties: VolumeProperties, aggregation_result: AggregationResult) -> ComputedFee:
        agg = aggregation_result
        tier = self.select_tier(properties, agg)
        if tier is None:
            raise ValueError(f"no volume tier matches total_usage={agg.total_usage}")
        return ComputedFee(
            charge_model=self.kind,
            amount=tier.flat_amount + agg.total_usage * tier.per_unit_amount,
            units=agg.total_usage,
            events_count=agg.event_count,
            units_billed=agg.event_count,
            breakdown={
                "tier_from_value": tier.from_value,
                "tier_to_value": tier.to_value,
                "per_unit_amount": tier.per_unit_amount,
                "flat_amount": tier.flat_amount,
            },
        )
