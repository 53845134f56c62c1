"""Minimum-commitment true-up.

When a period's fees add up to less than the committed minimum spend, one
extra fee covers the difference. It points back at a parent fee of the same
period through a `FeeRef`; the parent itself is left untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from .charge_models.types import ComputedFee, FeeRef
from .precision import ZERO, RoundingPolicy, to_decimal
from .result import Result, Success, validation_failure

_LOGGER = logging.getLogger(__name__)


def reconcile(
    computed_fees: Sequence[ComputedFee],
    commitment: Any,
    policy: Optional[RoundingPolicy] = None,
    currency: Optional[str] = None,
) -> Result[Optional[ComputedFee]]:
    """Return the true-up fee for the period, `None` when none is due.

    With a `policy`, fees and commitment are compared as they will be billed
    (rounded to the currency's minor unit), so the rounded fees plus the
    true-up add up to the rounded commitment exactly.
    """
    if commitment is None:
        return Success(None)
    try:
        commitment = to_decimal(commitment)
    except ValueError:
        return validation_failure({"commitment": [f"invalid_value ({commitment!r})"]})
    if commitment < 0:
        return validation_failure({"commitment": ["invalid_value (must be >= 0)"]})

    if any(f.is_true_up for f in computed_fees):
        return validation_failure({"fees": ["true_up_fee_not_reconcilable"]})

    if policy is not None:
        commitment = policy.quantize(commitment, currency)
        computed_total = sum((policy.quantize(f.amount, currency) for f in computed_fees), ZERO)
    else:
        computed_total = sum((f.amount for f in computed_fees), ZERO)
    if computed_total >= commitment:
        return Success(None)

    if not computed_fees:
        return validation_failure({"fees": ["no_parent_fee (a true-up fee must be linked to a period fee)"]})

    parent = computed_fees[0]
    true_up = ComputedFee(
        charge_model=parent.charge_model,
        amount=commitment - computed_total,
        charge_code=parent.charge_code,
        true_up_parent=FeeRef(index=0, charge_code=parent.charge_code),
        breakdown={"commitment": commitment, "computed_total": computed_total},
    )
    _LOGGER.info(
        "True-up fee of %s emitted (commitment=%s, computed=%s, parent=%s)",
        true_up.amount,
        commitment,
        computed_total,
        parent.charge_code,
    )
    return Success(true_up)


@dataclass(frozen=True)
class TrueUpReconciler:
    """`reconcile` bound to one plan's minimum commitment."""

    commitment: Optional[Decimal] = None
    policy: Optional[RoundingPolicy] = None
    currency: Optional[str] = None

    def reconcile(self, computed_fees: Sequence[ComputedFee]) -> Result[Optional[ComputedFee]]:
        return reconcile(computed_fees, self.commitment, self.policy, self.currency)


__all__ = ["reconcile", "TrueUpReconciler"]
