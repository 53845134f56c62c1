"""Definition loader for billing runs.

Loads a YAML/JSON billing-run file (see schema.py).

The loader is intentionally conservative:
- it validates the file structure (required keys, value shapes)
- it normalizes numbers into Decimal / AggregationResult

Charge properties are kept as raw mappings: checking them is the charge
models' job, and they report problems as ValidationFailure results instead
of exceptions. Structural file problems raise ValueError with a readable
location so a broken file fails fast.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from ...aggregation import AggregationResult
from ...precision import to_decimal
from .schema import BillingRunDefinition, ChargeDefinition


def _as_list(x: Any) -> List[Any]:
    if x is None:
        return []
    if isinstance(x, list):
        return x
    return [x]


def _require(obj: Dict[str, Any], key: str, *, ctx: str) -> Any:
    if key not in obj:
        raise ValueError(f"Missing required key '{key}' in {ctx}")
    return obj[key]


def _load_one(path: Path) -> Dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(raw) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Top-level YAML must be a mapping in {path}")
        return data
    if path.suffix.lower() == ".json":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Top-level JSON must be an object in {path}")
        return data
    raise ValueError(f"Unsupported definition file type: {path}")


def _parse_aggregation(obj: Any, *, ctx: str) -> AggregationResult:
    if obj is None:
        return AggregationResult()
    if not isinstance(obj, dict):
        raise ValueError(f"aggregation must be an object in {ctx}")
    try:
        return AggregationResult.build(
            total_usage=obj.get("total_usage", obj.get("aggregation", 0)),
            event_count=obj.get("event_count", obj.get("count", 0)),
            running_totals=obj.get("running_totals"),
            options=obj.get("options") or {},
        )
    except ValueError as ex:
        raise ValueError(f"invalid aggregation in {ctx}: {ex}") from None


def _parse_charges(items: Iterable[Any], *, ctx: str) -> List[ChargeDefinition]:
    out: List[ChargeDefinition] = []
    seen: set[str] = set()
    for i, it in enumerate(items):
        cctx = f"{ctx}.charges[{i}]"
        if not isinstance(it, dict):
            raise ValueError(f"charge must be an object in {cctx}")
        code = str(_require(it, "code", ctx=cctx)).strip()
        if not code:
            raise ValueError(f"charge code cannot be empty in {cctx}")
        if code in seen:
            raise ValueError(f"duplicate charge code '{code}' in {cctx}")
        seen.add(code)
        props = it.get("properties") or {}
        if not isinstance(props, dict):
            raise ValueError(f"properties must be an object in {cctx}")
        out.append(
            ChargeDefinition(
                code=code,
                charge_model=str(_require(it, "charge_model", ctx=cctx)).strip().lower(),
                properties=dict(props),
                aggregation=_parse_aggregation(it.get("aggregation"), ctx=cctx),
            )
        )
    return out


def load_billing_run(path: Path | str) -> BillingRunDefinition:
    p = Path(path)
    data = _load_one(p)
    ctx = f"definition({p.name})"
    commitment = data.get("commitment", data.get("minimum_commitment"))
    if commitment is not None:
        try:
            commitment = to_decimal(commitment)
        except ValueError:
            raise ValueError(f"commitment must be a number in {ctx}") from None
    vat_rate = data.get("vat_rate")
    if vat_rate is not None:
        try:
            vat_rate = to_decimal(vat_rate)
        except ValueError:
            raise ValueError(f"vat_rate must be a number in {ctx}") from None
        if vat_rate < 0:
            raise ValueError(f"vat_rate cannot be negative in {ctx}")
    charges = _parse_charges(_as_list(data.get("charges")), ctx=ctx)
    if not charges:
        raise ValueError(f"Missing charges in {ctx}")
    currency = data.get("currency")
    return BillingRunDefinition(
        id=str(data.get("id") or p.stem),
        currency=str(currency).strip().upper() if currency else None,
        commitment=commitment,
        vat_rate=vat_rate,
        charges=charges,
        source_file=p.name,
    )


def load_billing_runs(definitions_dir: Path | str) -> List[BillingRunDefinition]:
    base = Path(definitions_dir)
    if not base.exists():
        return []
    paths = sorted([p for p in base.iterdir() if p.is_file() and p.suffix.lower() in (".yaml", ".yml", ".json")])
    return [load_billing_run(p) for p in paths]
