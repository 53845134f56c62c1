"""Declarative billing-run schema.

A billing run is one customer period: the charges configured on the plan,
the usage each charge aggregated, an optional minimum commitment and an
optional VAT rate (a percentage applied to each rounded fee).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ...aggregation import AggregationResult


@dataclass(frozen=True)
class ChargeDefinition:
    code: str
    charge_model: str
    properties: Dict[str, Any] = field(default_factory=dict)
    aggregation: AggregationResult = field(default_factory=AggregationResult)


@dataclass(frozen=True)
class BillingRunDefinition:
    id: str
    currency: Optional[str] = None
    commitment: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = None
    charges: List[ChargeDefinition] = field(default_factory=list)
    source_file: str = ""
