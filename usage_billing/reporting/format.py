from decimal import Decimal
from typing import Any, Dict, List

from ..engine import BillingRunOutcome, BilledFee
from ..result import Failure, render_error_response


def _format_minor(amount_cents: int, exponent: int, currency: str) -> str:
    value = Decimal(amount_cents).scaleb(-exponent)
    return f"{value:,.{exponent}f} {currency}"


def _md_escape(v: Any) -> str:
    s = "" if v is None else str(v)
    # Escape pipes so Markdown tables don't break
    return s.replace("|", "\\|").replace("\n", " ").strip()


def _fee_label(fee: BilledFee) -> str:
    if fee.is_true_up:
        return f"true-up → {fee.true_up_parent_code or fee.true_up_parent_index}"
    return fee.charge_code or "-"


def render_fees_table(outcome: BillingRunOutcome, exponent: int = 2) -> str:
    rows = [
        "| Charge | Model | Units | Events | Billed units | Free units | Amount (exact) | Amount | VAT |",
        "|---|---|---|---|---|---|---|---|---|",
    ]
    for fee in outcome.billed_fees:
        rows.append(
            "| {label} | {model} | {units} | {events} | {billed} | {free} | {exact} | {amount} | {vat} |".format(
                label=_md_escape(_fee_label(fee)),
                model=_md_escape(fee.charge_model),
                units=fee.units,
                events=fee.events_count,
                billed=fee.units_billed,
                free=fee.free_units_consumed,
                exact=fee.amount,
                amount=_format_minor(fee.amount_cents, exponent, outcome.currency),
                vat=_format_minor(fee.vat_amount_cents, exponent, outcome.currency),
            )
        )
    return "\n".join(rows)


def render_failures_table(outcome: BillingRunOutcome) -> str:
    rows: List[str] = [
        "| Charge | Model | Status | Details |",
        "|---|---|---|---|",
    ]
    for charge in outcome.charges:
        if not isinstance(charge.result, Failure):
            continue
        response: Dict[str, Any] = render_error_response(charge.result.error)
        details = response.get("error_details") or response.get("code")
        rows.append(
            "| {code} | {model} | {status} | {details} |".format(
                code=_md_escape(charge.code),
                model=_md_escape(charge.charge_model),
                status=response["status"],
                details=_md_escape(details),
            )
        )
    return "\n".join(rows)


def render_report(outcome: BillingRunOutcome, exponent: int = 2) -> str:
    sections: List[str] = [f"# Billing run {outcome.run_id}", ""]
    if outcome.failures:
        sections += ["## Failed charges", render_failures_table(outcome), ""]
        return "\n".join(sections)
    if isinstance(outcome.true_up, Failure):
        details = render_error_response(outcome.true_up.error).get("error_details")
        sections += ["## True-up failed", _md_escape(details), ""]
        return "\n".join(sections)

    sections += ["## Fees", render_fees_table(outcome, exponent), ""]
    if outcome.vat_amount_cents:
        sections.append(f"**Subtotal:** {_format_minor(outcome.amount_cents, exponent, outcome.currency)}")
        sections.append(f"**VAT:** {_format_minor(outcome.vat_amount_cents, exponent, outcome.currency)}")
    total = _format_minor(outcome.total_amount_cents, exponent, outcome.currency)
    sections.append(f"**Total:** {total}")
    if outcome.commitment is not None:
        sections.append(f"**Minimum commitment:** {outcome.commitment} {outcome.currency}")
    return "\n".join(sections) + "\n"
