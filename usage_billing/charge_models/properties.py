"""Typed charge properties, one shape per charge model.

Plan storage keeps properties as loose mappings (numbers are often strings,
e.g. `{"rate": "1.3"}`). `parse_properties` turns such a mapping into the
typed dataclass for a model kind and reports every malformed field at once.
Dataclasses built directly normalize their numbers on construction.
Range rules (sign, ordering, contiguity) are checked by the models.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..precision import ZERO, to_count, to_decimal
from ..result import Result, Success, validation_failure
from .types import ChargeModelKind, FieldIssue, issues_to_messages


def _normalize(obj: Any, convert: Callable[[Any], Any], *names: str) -> None:
    """Convert numeric fields in place (`1.3` -> `Decimal("1.3")`).

    `None` stays `None`. Values that do not convert are kept as given so that
    the model's validation reports them as invalid.
    """
    for name in names:
        value = getattr(obj, name)
        if value is None or isinstance(value, (list, tuple, dict)):
            continue
        try:
            object.__setattr__(obj, name, convert(value))
        except ValueError:
            continue


@dataclass(frozen=True)
class StandardProperties:
    unit_price: Decimal

    def __post_init__(self) -> None:
        _normalize(self, to_decimal, "unit_price")


@dataclass(frozen=True)
class PercentageProperties:
    rate: Decimal
    fixed_amount: Decimal = ZERO
    free_units_per_events: Optional[int] = None
    free_units_per_total_aggregation: Optional[Decimal] = None

    def __post_init__(self) -> None:
        _normalize(self, to_decimal, "rate", "fixed_amount", "free_units_per_total_aggregation")
        _normalize(self, to_count, "free_units_per_events")


@dataclass(frozen=True)
class PriceRange:
    """One row of a graduated or volume table; `to_value=None` is open-ended."""

    from_value: Decimal
    to_value: Optional[Decimal]
    per_unit_amount: Decimal
    flat_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.flat_amount is None:
            object.__setattr__(self, "flat_amount", ZERO)
        _normalize(self, to_decimal, "from_value", "to_value", "per_unit_amount", "flat_amount")

    def contains(self, usage: Decimal) -> bool:
        return self.from_value <= usage and (self.to_value is None or usage <= self.to_value)


def _ranges_tuple(obj: Any) -> None:
    if isinstance(obj.ranges, list):
        object.__setattr__(obj, "ranges", tuple(obj.ranges))


@dataclass(frozen=True)
class GraduatedProperties:
    ranges: Tuple[PriceRange, ...]

    def __post_init__(self) -> None:
        _ranges_tuple(self)


@dataclass(frozen=True)
class VolumeProperties:
    ranges: Tuple[PriceRange, ...]

    def __post_init__(self) -> None:
        _ranges_tuple(self)


@dataclass(frozen=True)
class PackageProperties:
    package_size: Decimal
    package_price: Decimal
    free_packages: int = 0

    def __post_init__(self) -> None:
        _normalize(self, to_decimal, "package_size", "package_price")
        _normalize(self, to_count, "free_packages")


ChargeProperties = Union[
    StandardProperties,
    PercentageProperties,
    GraduatedProperties,
    VolumeProperties,
    PackageProperties,
]

PROPERTIES_TYPES: Dict[ChargeModelKind, type] = {
    ChargeModelKind.STANDARD: StandardProperties,
    ChargeModelKind.PERCENTAGE: PercentageProperties,
    ChargeModelKind.GRADUATED: GraduatedProperties,
    ChargeModelKind.VOLUME: VolumeProperties,
    ChargeModelKind.PACKAGE: PackageProperties,
}

_MISSING = object()


class _Reader:
    """Pulls typed values out of a raw mapping, collecting issues instead of raising."""

    def __init__(self, raw: Mapping[str, Any], prefix: str = ""):
        self.raw = raw
        self.prefix = prefix
        self.issues: List[FieldIssue] = []

    def _lookup(self, names: Sequence[str]) -> Any:
        for n in names:
            v = self.raw.get(n)
            if v is not None and v != "":
                return v
        return _MISSING

    def value(
        self,
        key: str,
        convert: Callable[[Any], Any],
        *,
        aliases: Sequence[str] = (),
        required: bool = True,
        default: Any = None,
    ) -> Any:
        raw = self._lookup([key, *aliases])
        if raw is _MISSING:
            if required:
                self.issues.append(FieldIssue(key=self.prefix + key, issue="missing", message="value_is_mandatory"))
            return default
        try:
            return convert(raw)
        except ValueError:
            self.issues.append(FieldIssue(key=self.prefix + key, issue="invalid", message=f"invalid_value ({raw!r})"))
            return default


def _decimal_or_none(v: Any) -> Optional[Decimal]:
    return None if v is None else to_decimal(v)


def _parse_ranges(reader: _Reader, key: str, aliases: Sequence[str]) -> Tuple[PriceRange, ...]:
    raw = reader._lookup([key, *aliases])
    if raw is _MISSING:
        reader.issues.append(FieldIssue(key=key, issue="missing", message="value_is_mandatory"))
        return ()
    if not isinstance(raw, (list, tuple)):
        reader.issues.append(FieldIssue(key=key, issue="invalid", message="must be a list of ranges"))
        return ()

    out: List[PriceRange] = []
    for i, item in enumerate(raw):
        ctx = f"{key}[{i}]."
        if not isinstance(item, Mapping):
            reader.issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="range must be an object"))
            continue
        r = _Reader(item, prefix=ctx)
        from_value = r.value("from_value", to_decimal, aliases=("from",))
        # to_value: None is meaningful (open-ended), so read it directly
        to_raw = item.get("to_value", item.get("to"))
        try:
            to_value = _decimal_or_none(to_raw if to_raw != "" else None)
        except ValueError:
            r.issues.append(FieldIssue(key=ctx + "to_value", issue="invalid", message=f"invalid_value ({to_raw!r})"))
            to_value = None
        per_unit = r.value("per_unit_amount", to_decimal, aliases=("unit_price",))
        flat = r.value("flat_amount", to_decimal, required=False, default=ZERO)
        reader.issues.extend(r.issues)
        if not r.issues:
            out.append(PriceRange(from_value=from_value, to_value=to_value, per_unit_amount=per_unit, flat_amount=flat))
    return tuple(out)


def _parse_standard(r: _Reader) -> StandardProperties:
    return StandardProperties(unit_price=r.value("unit_price", to_decimal, aliases=("amount",)))


def _parse_percentage(r: _Reader) -> PercentageProperties:
    return PercentageProperties(
        rate=r.value("rate", to_decimal),
        fixed_amount=r.value("fixed_amount", to_decimal, required=False, default=ZERO),
        free_units_per_events=r.value("free_units_per_events", to_count, required=False),
        free_units_per_total_aggregation=r.value("free_units_per_total_aggregation", to_decimal, required=False),
    )


def _parse_graduated(r: _Reader) -> GraduatedProperties:
    return GraduatedProperties(ranges=_parse_ranges(r, "graduated_ranges", ("ranges",)))


def _parse_volume(r: _Reader) -> VolumeProperties:
    return VolumeProperties(ranges=_parse_ranges(r, "volume_ranges", ("ranges",)))


def _parse_package(r: _Reader) -> PackageProperties:
    return PackageProperties(
        package_size=r.value("package_size", to_decimal),
        package_price=r.value("package_price", to_decimal, aliases=("amount",)),
        free_packages=r.value("free_packages", to_count, required=False, default=0),
    )


_PARSERS: Dict[ChargeModelKind, Callable[[_Reader], Any]] = {
    ChargeModelKind.STANDARD: _parse_standard,
    ChargeModelKind.PERCENTAGE: _parse_percentage,
    ChargeModelKind.GRADUATED: _parse_graduated,
    ChargeModelKind.VOLUME: _parse_volume,
    ChargeModelKind.PACKAGE: _parse_package,
}


def parse_properties(kind: ChargeModelKind, raw: Optional[Mapping[str, Any]]) -> Result[ChargeProperties]:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        return validation_failure({"properties": ["must be an object"]})
    reader = _Reader(raw)
    props = _PARSERS[kind](reader)
    if reader.issues:
        return validation_failure(issues_to_messages(reader.issues))
    return Success(props)


def validate_price_ranges(ranges: Sequence[PriceRange], key: str, *, open_ended: bool = True) -> List[FieldIssue]:
    """Tables must start at 0 and be contiguous and increasing.

    With `open_ended`, the last range must also have no upper bound.
    """
    issues: List[FieldIssue] = []
    if not ranges:
        return [FieldIssue(key=key, issue="missing", message="missing_ranges")]
    if not isinstance(ranges, tuple):
        return [FieldIssue(key=key, issue="invalid", message="must be a list of ranges")]

    for i, r in enumerate(ranges):
        if not isinstance(r, PriceRange):
            issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="range must be a PriceRange"))
            continue
        for name in ("from_value", "to_value", "per_unit_amount", "flat_amount"):
            v = getattr(r, name)
            if v is None and name != "to_value":
                issues.append(FieldIssue(key=f"{key}[{i}].{name}", issue="missing", message="value_is_mandatory"))
            elif v is not None and not isinstance(v, Decimal):
                issues.append(FieldIssue(key=f"{key}[{i}].{name}", issue="invalid", message=f"invalid_value ({v!r})"))
    if issues:
        return issues

    if ranges[0].from_value != 0:
        issues.append(FieldIssue(key=key, issue="invalid", message="invalid_ranges (first range must start at 0)"))
    for i, r in enumerate(ranges):
        if r.per_unit_amount < 0 or r.flat_amount < 0:
            issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="invalid_amount (must be >= 0)"))
        last = i == len(ranges) - 1
        if last and open_ended and r.to_value is not None:
            issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="invalid_ranges (last range must be open-ended)"))
        if r.to_value is None:
            if not last:
                issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="invalid_ranges (only the last range can be open-ended)"))
            continue
        if r.to_value <= r.from_value:
            issues.append(FieldIssue(key=f"{key}[{i}]", issue="invalid", message="invalid_ranges (to_value must be greater than from_value)"))
        if not last and ranges[i + 1].from_value != r.to_value:
            kind = "gap" if ranges[i + 1].from_value > r.to_value else "overlap"
            issues.append(FieldIssue(key=f"{key}[{i + 1}]", issue="invalid", message=f"invalid_ranges ({kind} after {r.to_value})"))
    return issues


__all__ = [
    "ChargeProperties",
    "StandardProperties",
    "PercentageProperties",
    "PriceRange",
    "GraduatedProperties",
    "VolumeProperties",
    "PackageProperties",
    "PROPERTIES_TYPES",
    "parse_properties",
    "validate_price_ranges",
]
