from .base import BaseChargeModel, ChargeModel
from .declarative import BillingRunDefinition, ChargeDefinition, load_billing_run, load_billing_runs
from .graduated import GraduatedChargeModel
from .package import PackageChargeModel
from .percentage import PercentageChargeModel
from .properties import (
    ChargeProperties,
    GraduatedProperties,
    PackageProperties,
    PercentageProperties,
    PriceRange,
    StandardProperties,
    VolumeProperties,
    parse_properties,
)
from .registry import ChargeModelSelector, build_default_registry
from .standard import StandardChargeModel
from .types import ChargeModelKind, ComputedFee, FeeRef, FieldIssue, PropertySpec
from .volume import VolumeChargeModel

__all__ = [
    "BaseChargeModel",
    "ChargeModel",
    "ChargeModelSelector",
    "build_default_registry",
    "ChargeModelKind",
    "ComputedFee",
    "FeeRef",
    "FieldIssue",
    "PropertySpec",
    "ChargeProperties",
    "StandardProperties",
    "PercentageProperties",
    "PriceRange",
    "GraduatedProperties",
    "VolumeProperties",
    "PackageProperties",
    "parse_properties",
    "StandardChargeModel",
    "PercentageChargeModel",
    "GraduatedChargeModel",
    "VolumeChargeModel",
    "PackageChargeModel",
    "BillingRunDefinition",
    "ChargeDefinition",
    "load_billing_run",
    "load_billing_runs",
]
