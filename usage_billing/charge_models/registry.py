from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from ..aggregation import AggregationResult
from ..result import Result, Success, validation_failure
from .base import ChargeModel
from .graduated import GraduatedChargeModel
from .package import PackageChargeModel
from .percentage import PercentageChargeModel
from .properties import ChargeProperties
from .standard import StandardChargeModel
from .types import ChargeModelKind, ComputedFee
from .volume import VolumeChargeModel


def resolve_kind(kind: Union[ChargeModelKind, str, None]) -> Optional[ChargeModelKind]:
    if isinstance(kind, ChargeModelKind):
        return kind
    try:
        return ChargeModelKind(str(kind or "").strip().lower())
    except ValueError:
        return None


@dataclass
class ChargeModelSelector:
    """Lookup table from configured model kind to its implementation.

    The set of kinds is closed; anything outside it is rejected.
    """

    models: Dict[ChargeModelKind, ChargeModel] = field(default_factory=dict)

    def register(self, kind: ChargeModelKind, model: ChargeModel) -> None:
        if not isinstance(kind, ChargeModelKind):
            raise TypeError(f"charge model kind must be a ChargeModelKind, got {kind!r}")
        self.models[kind] = model

    def get(self, kind: Union[ChargeModelKind, str, None]) -> Optional[ChargeModel]:
        resolved = resolve_kind(kind)
        if resolved is None:
            return None
        return self.models.get(resolved)

    def select(self, kind: Union[ChargeModelKind, str, None]) -> Result[ChargeModel]:
        model = self.get(kind)
        if model is None:
            return validation_failure({"charge_model": [f"invalid_charge_model ({kind!r})"]})
        return Success(model)

    def apply(
        self,
        kind: Union[ChargeModelKind, str, None],
        properties: Union[ChargeProperties, Mapping[str, Any]],
        aggregation_result: AggregationResult,
    ) -> Result[ComputedFee]:
        selected = self.select(kind)
        if not isinstance(selected, Success):
            return selected
        return selected.value.apply(properties, aggregation_result)


def build_default_registry() -> ChargeModelSelector:
    """Selector with one implementation per ChargeModelKind."""

    reg = ChargeModelSelector()
    reg.register(ChargeModelKind.STANDARD, StandardChargeModel())
    reg.register(ChargeModelKind.PERCENTAGE, PercentageChargeModel())
    reg.register(ChargeModelKind.GRADUATED, GraduatedChargeModel())
    reg.register(ChargeModelKind.VOLUME, VolumeChargeModel())
    reg.register(ChargeModelKind.PACKAGE, PackageChargeModel())

    missing = set(ChargeModelKind) - set(reg.models)
    if missing:
        raise RuntimeError(f"charge models not registered: {sorted(k.value for k in missing)}")
    return reg
