"""Billing-run orchestration.

Computes every charge of a period, reconciles the minimum commitment and
rounds the resulting fees to minor units. The charge models stay pure; this
module is where results meet logging, tracing and the rounding boundary.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .charge_models.declarative.schema import BillingRunDefinition, ChargeDefinition
from .charge_models.registry import ChargeModelSelector, build_default_registry
from .charge_models.types import ComputedFee
from .config import DEFAULT_CURRENCY, DEFAULT_MAX_WORKERS
from .precision import ZERO, RoundingPolicy, to_decimal
from .result import Failure, Result, Success
from .true_up import reconcile
from .utils.trace import TraceLogger

_LOGGER = logging.getLogger(__name__)

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class BilledFee:
    """A fee as it leaves the engine: rounded to the currency's minor unit.

    `total_amount_cents` is `amount_cents + vat_amount_cents`.
    """

    charge_code: Optional[str]
    charge_model: Optional[str]
    currency: str
    amount: Decimal
    amount_cents: int
    units: Decimal
    events_count: int
    units_billed: int
    free_units_consumed: int
    true_up_parent_code: Optional[str] = None
    true_up_parent_index: Optional[int] = None
    vat_rate: Decimal = ZERO
    vat_amount_cents: int = 0

    @property
    def is_true_up(self) -> bool:
        return self.true_up_parent_index is not None

    @property
    def total_amount_cents(self) -> int:
        return self.amount_cents + self.vat_amount_cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "charge_code": self.charge_code,
            "charge_model": self.charge_model,
            "currency": self.currency,
            "amount": str(self.amount),
            "amount_cents": self.amount_cents,
            "vat_rate": str(self.vat_rate),
            "vat_amount_cents": self.vat_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "units": str(self.units),
            "events_count": self.events_count,
            "units_billed": self.units_billed,
            "free_units_consumed": self.free_units_consumed,
            "true_up": self.is_true_up,
            "true_up_parent_code": self.true_up_parent_code,
            "true_up_parent_index": self.true_up_parent_index,
        }


def compute_vat(amount_cents: int, vat_rate: Any, policy: RoundingPolicy) -> int:
    """VAT in minor units: `round(amount_cents * vat_rate / 100)`; the rate is a percentage."""
    rate = to_decimal(vat_rate)
    if rate < 0:
        raise ValueError(f"vat_rate cannot be negative: {vat_rate!r}")
    return policy.round_integral(Decimal(amount_cents) * rate / HUNDRED)


def finalize_fee(fee: ComputedFee, currency: str, policy: RoundingPolicy, vat_rate: Any = ZERO) -> BilledFee:
    parent = fee.true_up_parent
    amount_cents = policy.to_minor_units(fee.amount, currency)
    return BilledFee(
        charge_code=fee.charge_code,
        charge_model=fee.charge_model.value if fee.charge_model is not None else None,
        currency=currency,
        amount=fee.amount,
        amount_cents=amount_cents,
        units=fee.units,
        events_count=fee.events_count,
        units_billed=fee.units_billed,
        free_units_consumed=fee.free_units_consumed,
        true_up_parent_code=parent.charge_code if parent else None,
        true_up_parent_index=parent.index if parent else None,
        vat_rate=to_decimal(vat_rate),
        vat_amount_cents=compute_vat(amount_cents, vat_rate, policy),
    )


def compute_charge(charge: ChargeDefinition, selector: ChargeModelSelector) -> Result[ComputedFee]:
    result = selector.apply(charge.charge_model, charge.properties, charge.aggregation)
    if isinstance(result, Failure):
        _LOGGER.warning("Charge %s (%s) failed: %s", charge.code, charge.charge_model, result.error)
        return result
    return Success(result.value.with_charge_code(charge.code))


def compute_fees_concurrently(
    charges: Sequence[ChargeDefinition],
    selector: Optional[ChargeModelSelector] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[Result[ComputedFee]]:
    """One computation per charge on a thread pool; results keep input order."""
    selector = selector or build_default_registry()
    if max_workers <= 1 or len(charges) <= 1:
        return [compute_charge(c, selector) for c in charges]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda c: compute_charge(c, selector), charges))


@dataclass
class ChargeOutcome:
    code: str
    charge_model: str
    result: Result[ComputedFee]

    @property
    def fee(self) -> Optional[ComputedFee]:
        return self.result.value if isinstance(self.result, Success) else None


@dataclass
class BillingRunOutcome:
    run_id: str
    currency: str
    commitment: Optional[Decimal]
    charges: List[ChargeOutcome] = field(default_factory=list)
    true_up: Optional[Result[Optional[ComputedFee]]] = None
    billed_fees: List[BilledFee] = field(default_factory=list)

    @property
    def failures(self) -> List[ChargeOutcome]:
        return [c for c in self.charges if isinstance(c.result, Failure)]

    @property
    def succeeded(self) -> bool:
        return not self.failures and not isinstance(self.true_up, Failure)

    @property
    def amount_cents(self) -> int:
        return sum(f.amount_cents for f in self.billed_fees)

    @property
    def vat_amount_cents(self) -> int:
        return sum(f.vat_amount_cents for f in self.billed_fees)

    @property
    def total_amount_cents(self) -> int:
        return self.amount_cents + self.vat_amount_cents


def run_billing(
    definition: BillingRunDefinition,
    *,
    policy: Optional[RoundingPolicy] = None,
    currency: Optional[str] = None,
    commitment: Optional[Decimal] = None,
    vat_rate: Optional[Decimal] = None,
    selector: Optional[ChargeModelSelector] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    trace: Optional[TraceLogger] = None,
) -> BillingRunOutcome:
    """Compute, reconcile and round one billing run.

    Precedence for currency, commitment and VAT rate: explicit argument >
    definition > default. The true-up is only reconciled when every charge
    succeeded, since a partial total would emit a wrong top-up. It is sized on
    the rounded fees, so the billed amounts reach the commitment exactly.
    """
    policy = policy or RoundingPolicy()
    currency = (currency or definition.currency or DEFAULT_CURRENCY).upper()
    commitment = commitment if commitment is not None else definition.commitment
    if vat_rate is None:
        vat_rate = definition.vat_rate if definition.vat_rate is not None else ZERO

    results = compute_fees_concurrently(definition.charges, selector, max_workers=max_workers)
    outcome = BillingRunOutcome(run_id=definition.id, currency=currency, commitment=commitment)
    for charge, result in zip(definition.charges, results):
        outcome.charges.append(ChargeOutcome(code=charge.code, charge_model=charge.charge_model, result=result))
        if trace is not None:
            payload: Dict[str, Any] = {"charge_model": charge.charge_model}
            if isinstance(result, Success):
                payload.update({"status": "computed", "amount": result.value.amount, "breakdown": dict(result.value.breakdown)})
            else:
                payload.update({"status": "failed", "error": str(result.error)})
            trace.log("charge_computed", payload, run_id=definition.id, charge_code=charge.code)

    if outcome.failures:
        _LOGGER.warning("Billing run %s: %d charge(s) failed, true-up skipped", definition.id, len(outcome.failures))
        return outcome

    fees = [c.result.value for c in outcome.charges]
    outcome.true_up = reconcile(fees, commitment, policy, currency)
    if isinstance(outcome.true_up, Failure):
        _LOGGER.warning("Billing run %s: true-up failed: %s", definition.id, outcome.true_up.error)
        return outcome

    true_up_fee = outcome.true_up.value
    if true_up_fee is not None:
        fees.append(true_up_fee)
        if trace is not None:
            trace.log(
                "true_up",
                {"amount": true_up_fee.amount, "commitment": commitment},
                run_id=definition.id,
                charge_code=true_up_fee.charge_code,
            )

    outcome.billed_fees = [finalize_fee(f, currency, policy, vat_rate) for f in fees]
    _LOGGER.info(
        "Billing run %s: %d fee(s), amount %s + VAT %s minor units (%s)",
        definition.id,
        len(outcome.billed_fees),
        outcome.amount_cents,
        outcome.vat_amount_cents,
        currency,
    )
    return outcome


__all__ = [
    "BilledFee",
    "compute_vat",
    "finalize_fee",
    "compute_charge",
    "compute_fees_concurrently",
    "ChargeOutcome",
    "BillingRunOutcome",
    "run_billing",
]
