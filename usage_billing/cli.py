#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Usage billing – CLI

Flow:
- Reads a billing-run definition (YAML/JSON): charges, their properties and
  the usage each charge aggregated for the period.
- Computes every charge with its pricing model.
- Reconciles the minimum commitment (true-up fee).
- Rounds fees to the currency's minor unit and writes fees.json / report.md.
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from importlib import metadata
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .charge_models.declarative import load_billing_run
from .config import DEFAULT_LOG_LEVEL, DEFAULT_MAX_WORKERS, DEFAULT_ROUNDING_MODE, RUNS_DIR
from .engine import BillingRunOutcome, run_billing
from .precision import ROUNDING_MODES, RoundingPolicy, to_decimal
from .reporting.format import render_report
from .result import Failure, render_error_response
from .utils.trace import build_trace_logger

console = Console()


# --------------------------------------------------------------------
# Argument parsing
# --------------------------------------------------------------------
def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="usage-billing",
        description=(
            "Usage billing – charge-model engine\n\n"
            "Computes the fees of one billing period from pre-aggregated usage:\n"
            "- standard / percentage / graduated / volume / package pricing\n"
            "- minimum-commitment true-up\n"
            "- rounding to the currency's minor unit\n"
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("run_file", type=str, help="Billing-run definition (.yaml, .yml or .json).")

    parser.add_argument(
        "--currency",
        type=str,
        default=None,
        help="Currency code overriding the one in the run file (e.g. EUR, USD, JPY).",
    )

    parser.add_argument(
        "--rounding",
        choices=sorted(ROUNDING_MODES),
        default=DEFAULT_ROUNDING_MODE,
        help="Rounding mode used when converting amounts to minor units.",
    )

    parser.add_argument(
        "--commitment",
        type=str,
        default=None,
        help="Minimum commitment for the period, overriding the run file.",
    )

    parser.add_argument(
        "--vat-rate",
        type=str,
        default=None,
        help="VAT rate in percent (e.g. 20), overriding the run file.",
    )

    parser.add_argument(
        "--output-format",
        choices=["table", "json", "both"],
        default="both",
        help=(
            "What to produce:\n"
            "  - table: console table + report.md.\n"
            "  - json: fees.json only.\n"
            "  - both: all of the above."
        ),
    )

    parser.add_argument(
        "--output-prefix",
        type=str,
        default=None,
        help="Run directory name under runs/ (default: the run id).",
    )

    parser.add_argument(
        "--max-workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help="Thread pool size for computing charges.",
    )

    parser.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        default=DEFAULT_LOG_LEVEL,
        help="Logging level for internal messages (DEBUG logs every computed fee).",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Force writing a run trace JSONL (enabled by default).",
    )
    parser.add_argument(
        "--trace-path",
        type=str,
        default=None,
        help="Override trace output path (default: runs/<prefix>/trace.jsonl)",
    )

    return parser.parse_args(argv)


# --------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------
def _print_fees(outcome: BillingRunOutcome, policy: RoundingPolicy) -> None:
    table = Table(title=f"Billing run {outcome.run_id} ({outcome.currency})")
    for col in ("Charge", "Model", "Units", "Events", "Billed", "Free", "Amount", "VAT"):
        table.add_column(col, justify="left" if col in ("Charge", "Model") else "right")

    exponent = policy.exponent(outcome.currency)
    for fee in outcome.billed_fees:
        label = fee.charge_code or "-"
        if fee.is_true_up:
            label = f"[yellow]true-up → {fee.true_up_parent_code}[/yellow]"
        table.add_row(
            label,
            fee.charge_model or "-",
            str(fee.units),
            str(fee.events_count),
            str(fee.units_billed),
            str(fee.free_units_consumed),
            f"{Decimal(fee.amount_cents).scaleb(-exponent):,.{exponent}f}",
            f"{Decimal(fee.vat_amount_cents).scaleb(-exponent):,.{exponent}f}",
        )
    console.print(table)
    total = Decimal(outcome.total_amount_cents).scaleb(-exponent)
    console.print(f"[bold]Total:[/bold] {total:,.{exponent}f} {outcome.currency}")


def _print_failures(outcome: BillingRunOutcome) -> None:
    for charge in outcome.charges:
        if not isinstance(charge.result, Failure):
            continue
        response = render_error_response(charge.result.error)
        console.print(f"[red]  - {charge.code} [{charge.charge_model}] → {response['status']} {response['code']}[/red]")
        for key, messages in (response.get("error_details") or {}).items():
            console.print(f"      {key}: {', '.join(messages)}")
    if isinstance(outcome.true_up, Failure):
        response = render_error_response(outcome.true_up.error)
        console.print(f"[red]  - true-up → {response['status']} {response.get('error_details')}[/red]")


# --------------------------------------------------------------------
# Main
# --------------------------------------------------------------------
def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    try:
        definition = load_billing_run(args.run_file)
    except (OSError, ValueError) as ex:
        console.print(f"[red]Cannot load billing run: {ex}[/red]")
        sys.exit(1)

    run_dir = Path(RUNS_DIR) / (args.output_prefix or definition.id)
    run_dir.mkdir(parents=True, exist_ok=True)

    trace_path = Path(args.trace_path) if args.trace_path else run_dir / "trace.jsonl"
    trace_env = os.getenv("USAGE_BILLING_TRACE")
    trace_enabled = True
    if trace_env is not None and trace_env.strip().lower() in {"0", "false", "no"}:
        trace_enabled = False
    if args.trace:
        trace_enabled = True

    log_handlers: list[logging.Handler] = [logging.StreamHandler()]
    console_log_path = run_dir / "console.log"
    log_handlers.append(logging.FileHandler(console_log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=log_handlers,
    )
    logger = logging.getLogger("usage_billing")
    logger.debug("CLI arguments: %s", args)

    commitment = None
    if args.commitment is not None:
        try:
            commitment = to_decimal(args.commitment)
        except ValueError:
            console.print(f"[red]--commitment must be a number, got {args.commitment!r}[/red]")
            sys.exit(1)

    vat_rate = None
    if args.vat_rate is not None:
        try:
            vat_rate = to_decimal(args.vat_rate)
        except ValueError:
            console.print(f"[red]--vat-rate must be a number, got {args.vat_rate!r}[/red]")
            sys.exit(1)
        if vat_rate < 0:
            console.print(f"[red]--vat-rate cannot be negative, got {args.vat_rate!r}[/red]")
            sys.exit(1)

    trace_logger = build_trace_logger(trace_path, enabled=trace_enabled)
    try:
        tool_version = metadata.version("usage-billing")
    except metadata.PackageNotFoundError:
        tool_version = "dev"

    policy = RoundingPolicy(mode=args.rounding)
    trace_logger.log(
        "setup",
        {
            "tool_version": tool_version,
            "run_file": str(args.run_file),
            "currency": args.currency or definition.currency,
            "rounding": policy.mode,
            "commitment": commitment if commitment is not None else definition.commitment,
            "vat_rate": vat_rate if vat_rate is not None else definition.vat_rate,
            "charges": len(definition.charges),
        },
        run_id=definition.id,
    )

    console.print(f"[cyan]Computing {len(definition.charges)} charge(s) for run '{definition.id}'…[/cyan]")
    outcome = run_billing(
        definition,
        policy=policy,
        currency=args.currency,
        commitment=commitment,
        vat_rate=vat_rate,
        max_workers=args.max_workers,
        trace=trace_logger,
    )

    if args.output_format in ("json", "both"):
        fees_path = run_dir / "fees.json"
        payload = {
            "run_id": outcome.run_id,
            "currency": outcome.currency,
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            "succeeded": outcome.succeeded,
            "fees": [f.to_dict() for f in outcome.billed_fees],
            "amount_cents": outcome.amount_cents,
            "vat_amount_cents": outcome.vat_amount_cents,
            "total_amount_cents": outcome.total_amount_cents,
            "errors": {c.code: render_error_response(c.result.error) for c in outcome.failures},
        }
        with open(fees_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info("Saved fees JSON to %s", fees_path)

    if args.output_format in ("table", "both"):
        report_path = run_dir / "report.md"
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(render_report(outcome, exponent=policy.exponent(outcome.currency)))
        logger.info("Saved report to %s", report_path)
        trace_logger.log("report", {"report_path": str(report_path)}, run_id=outcome.run_id)
        if outcome.succeeded:
            _print_fees(outcome, policy)

    if not outcome.succeeded:
        console.print("[red]Billing run has failures; no fees were finalized.[/red]")
        _print_failures(outcome)
        sys.exit(2)

    console.print(f"[green]Billing run '{outcome.run_id}' done → {run_dir}[/green]")


if __name__ == "__main__":
    main()
