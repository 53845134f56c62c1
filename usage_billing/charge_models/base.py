from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Protocol, Union

from ..aggregation import AggregationResult
from ..result import Failure, Result, Success, validation_failure
from .properties import PROPERTIES_TYPES, ChargeProperties, parse_properties
from .types import ChargeModelKind, ComputedFee, FieldIssue, PropertySpec, issues_to_messages

_LOGGER = logging.getLogger(__name__)


class ChargeModel(Protocol):
    """A pricing model turning one period's usage into a fee."""

    kind: ChargeModelKind

    def property_specs(self) -> Dict[str, PropertySpec]: ...

    def validate_properties(self, properties: Any) -> List[FieldIssue]: ...

    def apply(
        self,
        properties: Union[ChargeProperties, Mapping[str, Any]],
        aggregation_result: AggregationResult,
    ) -> Result[ComputedFee]: ...


class BaseChargeModel:
    """Shared `apply` pipeline: parse, validate, check the input, compute.

    Subclasses implement `compute`, which only ever sees validated
    properties and a consistent aggregation result, so it cannot fail.
    """

    kind: ChargeModelKind

    def property_specs(self) -> Dict[str, PropertySpec]:
        return {}

    def with_defaults(self, properties: Any) -> Any:
        """Fill unset optional properties from `PropertySpec.default`."""
        defaults = {
            k: spec.default
            for k, spec in self.property_specs().items()
            if spec.default is not None and getattr(properties, k, None) is None
        }
        return replace(properties, **defaults) if defaults else properties

    def validate_properties(self, properties: Any) -> List[FieldIssue]:
        issues: List[FieldIssue] = []
        for k, spec in self.property_specs().items():
            v = getattr(properties, k, None)
            if v is None:
                if spec.required:
                    issues.append(FieldIssue(key=k, issue="missing", message="value_is_mandatory"))
                continue
            if spec.type == "decimal" and not isinstance(v, Decimal):
                issues.append(FieldIssue(key=k, issue="invalid", message=f"invalid_value ({v!r})"))
            elif spec.type == "int" and (isinstance(v, bool) or not isinstance(v, int)):
                issues.append(FieldIssue(key=k, issue="invalid", message=f"invalid_value ({v!r})"))
            elif spec.type in ("decimal", "int") and v < 0:
                issues.append(FieldIssue(key=k, issue="invalid", message="invalid_value (must be >= 0)"))
        return issues

    def check_applicable(self, properties: Any, aggregation_result: AggregationResult) -> List[FieldIssue]:
        """Issues that depend on both configuration and usage (e.g. no matching tier)."""
        return []

    def compute(self, properties: Any, aggregation_result: AggregationResult) -> ComputedFee:
        raise NotImplementedError

    def apply(
        self,
        properties: Union[ChargeProperties, Mapping[str, Any]],
        aggregation_result: AggregationResult,
    ) -> Result[ComputedFee]:
        if aggregation_result.failure is not None:
            return Failure(aggregation_result.failure)

        if isinstance(properties, Mapping):
            parsed = parse_properties(self.kind, properties)
            if isinstance(parsed, Failure):
                return parsed
            properties = parsed.value
        elif not isinstance(properties, PROPERTIES_TYPES[self.kind]):
            return validation_failure(
                {"properties": [f"expected {PROPERTIES_TYPES[self.kind].__name__}, got {type(properties).__name__}"]}
            )

        properties = self.with_defaults(properties)
        issues = self.validate_properties(properties)
        if issues:
            return validation_failure(issues_to_messages(issues))

        input_errors = aggregation_result.validate()
        if input_errors:
            return validation_failure(input_errors)

        issues = self.check_applicable(properties, aggregation_result)
        if issues:
            return validation_failure(issues_to_messages(issues))

        fee = self.compute(properties, aggregation_result)
        _LOGGER.debug("%s fee computed: amount=%s units_billed=%s", self.kind.value, fee.amount, fee.units_billed)
        return Success(fee)
