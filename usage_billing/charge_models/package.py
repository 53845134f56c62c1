from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from typing import Dict, List

from ..aggregation import AggregationResult
from .base import BaseChargeModel
from .properties import PackageProperties
from .types import ChargeModelKind, ComputedFee, FieldIssue, PropertySpec


class PackageChargeModel(BaseChargeModel):
    """Usage billed in whole packages; a started package is a billed package."""

    kind = ChargeModelKind.PACKAGE

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {
            "package_size": PropertySpec("package_size"),
            "package_price": PropertySpec("package_price"),
            "free_packages": PropertySpec("free_packages", type="int", required=False, default=0),
        }

    def validate_properties(self, properties: PackageProperties) -> List[FieldIssue]:
        issues = super().validate_properties(properties)
        if properties.package_size == 0:
            issues.append(FieldIssue(key="package_size", issue="invalid", message="invalid_value (must be > 0)"))
        return issues

    def compute(self, properties: PackageProperties, aggregation_result: AggregationResult) -> ComputedFee:
        agg = aggregation_result
        packages = int((agg.total_usage / properties.package_size).to_integral_value(rounding=ROUND_CEILING))
        free = min(properties.free_packages, packages)
        billed = packages - free
        return ComputedFee(
            charge_model=self.kind,
            amount=Decimal(billed) * properties.package_price,
            units=agg.total_usage,
            events_count=agg.event_count,
            units_billed=billed,
            breakdown={
                "packages": packages,
                "free_packages": free,
                "package_size": properties.package_size,
                "package_price": properties.package_price,
            },
        )
