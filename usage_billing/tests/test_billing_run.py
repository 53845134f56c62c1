import json
from decimal import Decimal
from pathlib import Path
from textwrap import dedent

import pytest

from usage_billing import cli
from usage_billing.aggregation import AggregationResult
from usage_billing.charge_models.declarative import BillingRunDefinition, ChargeDefinition, load_billing_run, load_billing_runs
from usage_billing.engine import compute_fees_concurrently, compute_vat, finalize_fee, run_billing
from usage_billing.precision import RoundingPolicy
from usage_billing.reporting.format import render_report
from usage_billing.result import Success
from usage_billing.utils.trace import build_trace_logger

RUN_YAML = dedent(
    """
    id: acme-2024-05
    currency: eur
    commitment: "50"
    charges:
      - code: api_calls
        charge_model: percentage
        properties:
          rate: "1.3"
          fixed_amount: "2.0"
          free_units_per_events: 3
          free_units_per_total_aggregation: "250.0"
        aggregation:
          total_usage: 800
          event_count: 4
          running_totals: [50, 150, 400]
      - code: storage_gb
        charge_model: graduated
        properties:
          graduated_ranges:
            - {from_value: 0, to_value: 10, per_unit_amount: "0"}
            - {from_value: 10, to_value: null, per_unit_amount: "0.125"}
        aggregation:
          total_usage: 15
          event_count: 15
    """
)


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_load_billing_run_yaml(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML))

    assert definition.id == "acme-2024-05"
    assert definition.currency == "EUR"
    assert definition.commitment == Decimal("50")
    assert [c.code for c in definition.charges] == ["api_calls", "storage_gb"]
    assert definition.charges[0].aggregation.running_totals == (Decimal(50), Decimal(150), Decimal(400))
    assert definition.source_file == "run.yaml"


def test_load_billing_run_json_and_directory(tmp_path: Path):
    payload = {
        "charges": [
            {"code": "seats", "charge_model": "standard", "properties": {"unit_price": "3"}, "aggregation": {"total_usage": 2, "event_count": 2}}
        ]
    }
    _write(tmp_path, "b.json", json.dumps(payload))
    _write(tmp_path, "a.yaml", RUN_YAML)
    _write(tmp_path, "notes.txt", "ignored")

    runs = load_billing_runs(tmp_path)

    assert [r.id for r in runs] == ["acme-2024-05", "b"]
    assert runs[1].currency is None
    assert load_billing_runs(tmp_path / "missing") == []


@pytest.mark.parametrize(
    "content,fragment",
    [
        ("- 1\n- 2\n", "Top-level YAML must be a mapping"),
        ("id: x\n", "Missing charges"),
        ("charges:\n  - {charge_model: standard}\n", "Missing required key 'code'"),
        ("charges:\n  - {code: a}\n", "Missing required key 'charge_model'"),
        ("charges:\n  - {code: a, charge_model: standard}\n  - {code: a, charge_model: standard}\n", "duplicate charge code"),
        ("charges:\n  - {code: a, charge_model: standard, aggregation: {total_usage: lots}}\n", "invalid aggregation"),
        ("commitment: abc\ncharges:\n  - {code: a, charge_model: standard}\n", "commitment must be a number"),
        ("vat_rate: abc\ncharges:\n  - {code: a, charge_model: standard}\n", "vat_rate must be a number"),
        ("vat_rate: -5\ncharges:\n  - {code: a, charge_model: standard}\n", "vat_rate cannot be negative"),
    ],
)
def test_load_billing_run_rejects_broken_files(tmp_path: Path, content, fragment):
    with pytest.raises(ValueError, match=fragment):
        load_billing_run(_write(tmp_path, "run.yaml", content))


def test_run_billing_computes_rounds_and_trues_up(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML))
    trace = build_trace_logger(tmp_path / "trace.jsonl")

    outcome = run_billing(definition, trace=trace)

    assert outcome.succeeded
    api, storage, true_up = outcome.billed_fees
    assert api.amount == Decimal("11.15") and api.amount_cents == 1115
    assert storage.amount == Decimal("0.625") and storage.amount_cents == 63
    assert true_up.is_true_up
    assert true_up.true_up_parent_code == "api_calls"
    # sized on the rounded fees (11.15 + 0.63), not the exact 0.625
    assert true_up.amount == Decimal("38.22")
    assert true_up.amount_cents == 3822
    assert outcome.total_amount_cents == 5000

    phases = [json.loads(line)["phase"] for line in (tmp_path / "trace.jsonl").read_text().splitlines()]
    assert phases == ["charge_computed", "charge_computed", "true_up"]


def test_run_billing_half_even_and_overrides(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML))

    outcome = run_billing(
        definition,
        policy=RoundingPolicy(mode="half_even"),
        currency="usd",
        commitment=Decimal("0"),
        max_workers=1,
    )

    assert outcome.currency == "USD"
    assert [f.amount_cents for f in outcome.billed_fees] == [1115, 62]
    assert outcome.true_up == Success(None)


def _standard_run(*usages, commitment="10", vat_rate=None):
    charges = [
        ChargeDefinition(
            code=f"c{i}",
            charge_model="standard",
            properties={"unit_price": "1"},
            aggregation=AggregationResult.build(total_usage=u, event_count=1),
        )
        for i, u in enumerate(usages)
    ]
    return BillingRunDefinition(id="rounded", currency="EUR", commitment=Decimal(commitment), vat_rate=vat_rate, charges=charges)


def test_true_up_fills_the_commitment_after_rounding():
    outcome = run_billing(_standard_run("3.333", "3.333"), max_workers=1)

    assert [f.amount_cents for f in outcome.billed_fees] == [333, 333, 334]
    assert outcome.billed_fees[-1].is_true_up
    assert outcome.total_amount_cents == 1000


def test_true_up_emitted_when_only_the_rounded_total_falls_short():
    # exact total is 10.000, billed total would be 9.99
    outcome = run_billing(_standard_run("3.334", "3.333", "3.333"), max_workers=1)

    assert [f.amount_cents for f in outcome.billed_fees] == [333, 333, 333, 1]
    assert outcome.total_amount_cents == 1000


@pytest.mark.parametrize(
    "mode,amount_cents,rate,vat",
    [
        ("half_up", 1115, "20", 223),
        ("half_up", 1115, "19.6", 219),
        ("half_up", 1130, "5", 57),
        ("half_even", 1130, "5", 56),
        ("half_up", 1115, "0", 0),
    ],
)
def test_compute_vat_rounds_to_minor_units(mode, amount_cents, rate, vat):
    assert compute_vat(amount_cents, Decimal(rate), RoundingPolicy(mode=mode)) == vat


def test_compute_vat_rejects_negative_rate():
    with pytest.raises(ValueError, match="vat_rate"):
        compute_vat(100, Decimal("-1"), RoundingPolicy())


def test_run_billing_adds_vat_per_fee(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML + "vat_rate: 20\n"))

    outcome = run_billing(definition)

    assert definition.vat_rate == Decimal("20")
    assert [f.amount_cents for f in outcome.billed_fees] == [1115, 63, 3822]
    assert [f.vat_amount_cents for f in outcome.billed_fees] == [223, 13, 764]
    assert [f.total_amount_cents for f in outcome.billed_fees] == [1338, 76, 4586]
    assert outcome.amount_cents == 5000
    assert outcome.vat_amount_cents == 1000
    assert outcome.total_amount_cents == 6000

    report = render_report(outcome)
    assert "**Subtotal:** 50.00 EUR" in report
    assert "**VAT:** 10.00 EUR" in report
    assert "**Total:** 60.00 EUR" in report

    # explicit rate wins over the definition
    assert run_billing(definition, vat_rate=Decimal("0")).vat_amount_cents == 0


def test_run_billing_with_failed_charge_skips_true_up(tmp_path: Path):
    broken = RUN_YAML.replace('rate: "1.3"', 'rate: "-1.3"').replace("charge_model: graduated", "charge_model: dynamic")
    definition = load_billing_run(_write(tmp_path, "run.yaml", broken))

    outcome = run_billing(definition)

    assert not outcome.succeeded
    assert [c.code for c in outcome.failures] == ["api_calls", "storage_gb"]
    assert outcome.true_up is None
    assert outcome.billed_fees == []
    assert "rate" in outcome.failures[0].result.error.messages
    assert "charge_model" in outcome.failures[1].result.error.messages

    report = render_report(outcome)
    assert "## Failed charges" in report
    assert "| api_calls | percentage | 422 |" in report


def test_concurrent_fan_out_keeps_order_and_matches_sequential(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML))
    charges = definition.charges * 20

    parallel = compute_fees_concurrently(charges, max_workers=8)
    sequential = compute_fees_concurrently(charges, max_workers=1)

    assert parallel == sequential
    assert [r.value.charge_code for r in parallel] == [c.code for c in charges]


def test_finalize_fee_uses_currency_exponent(tmp_path: Path):
    definition = load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML))
    fee = compute_fees_concurrently(definition.charges[:1])[0].value

    billed = finalize_fee(fee, "JPY", RoundingPolicy())

    assert billed.amount_cents == 11
    assert Decimal(billed.to_dict()["amount"]) == Decimal("11.15")


def test_render_report_lists_fees_and_total(tmp_path: Path):
    outcome = run_billing(load_billing_run(_write(tmp_path, "run.yaml", RUN_YAML)))

    report = render_report(outcome)

    assert report.startswith("# Billing run acme-2024-05")
    assert "| api_calls | percentage |" in report
    assert "| true-up → api_calls |" in report
    assert "**Total:** 50.00 EUR" in report


def test_cli_writes_outputs(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli, "RUNS_DIR", str(tmp_path / "runs"))
    run_file = _write(tmp_path, "run.yaml", RUN_YAML)

    cli.main([str(run_file), "--output-prefix", "test"])

    run_dir = tmp_path / "runs" / "test"
    fees = json.loads((run_dir / "fees.json").read_text(encoding="utf-8"))
    assert fees["succeeded"] is True
    assert [f["amount_cents"] for f in fees["fees"]] == [1115, 63, 3822]
    assert (run_dir / "report.md").exists()
    assert (run_dir / "trace.jsonl").exists()


def test_cli_exits_2_on_failed_charges(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli, "RUNS_DIR", str(tmp_path / "runs"))
    run_file = _write(tmp_path, "run.yaml", RUN_YAML.replace('rate: "1.3"', 'rate: "-1"'))

    with pytest.raises(SystemExit) as exc:
        cli.main([str(run_file), "--output-format", "json"])

    assert exc.value.code == 2
    fees = json.loads((tmp_path / "runs" / "acme-2024-05" / "fees.json").read_text(encoding="utf-8"))
    assert fees["errors"]["api_calls"]["status"] == 422


def test_cli_exits_1_on_unreadable_file(tmp_path: Path):
    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path / "missing.yaml")])
    assert exc.value.code == 1


def test_cli_vat_rate_flag(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli, "RUNS_DIR", str(tmp_path / "runs"))
    run_file = _write(tmp_path, "run.yaml", RUN_YAML)

    cli.main([str(run_file), "--output-format", "json", "--vat-rate", "20"])

    fees = json.loads((tmp_path / "runs" / "acme-2024-05" / "fees.json").read_text(encoding="utf-8"))
    assert fees["vat_amount_cents"] == 1000
    assert fees["total_amount_cents"] == 6000
    assert fees["fees"][0]["vat_amount_cents"] == 223

    with pytest.raises(SystemExit) as exc:
        cli.main([str(run_file), "--vat-rate", "-1"])
    assert exc.value.code == 1
