#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
config.py

Configuration constants and defaults for the usage-billing engine and its CLI.

Every value can be overridden through an environment variable so a billing run
can be reproduced on another machine without code changes.

Key idea: the engine returns PRE-ROUNDING amounts
-------------------------------------------------
Charge models compute in major currency units with full Decimal precision.
Rounding to minor units ("cents") happens once, when a fee leaves the engine.
The currency exponent table below drives that step.
"""

import os  # Standard library: access environment variables (os.getenv).

# ---------------------------------------------------------------------
# Defaults: currency / rounding
# ---------------------------------------------------------------------
# DEFAULT_CURRENCY:
# - Used when neither the CLI nor the billing-run file names a currency.
# - Override with USAGE_BILLING_DEFAULT_CURRENCY.
DEFAULT_CURRENCY = os.getenv("USAGE_BILLING_DEFAULT_CURRENCY", "EUR")

# DEFAULT_ROUNDING_MODE:
# - "half_up"   -> 0.125 EUR becomes 13 cents
# - "half_even" -> 0.125 EUR becomes 12 cents (banker's rounding)
DEFAULT_ROUNDING_MODE = os.getenv("USAGE_BILLING_ROUNDING_MODE", "half_up")

# ---------------------------------------------------------------------
# Minor-unit exponents (ISO 4217)
# ---------------------------------------------------------------------
# Number of decimal places in the currency's minor unit.
# Currencies not listed here fall back to DEFAULT_CURRENCY_EXPONENT.
DEFAULT_CURRENCY_EXPONENT = 2

CURRENCY_EXPONENTS = {
    # zero-decimal currencies
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    # three-decimal currencies
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
}

# ---------------------------------------------------------------------
# Logging / runs
# ---------------------------------------------------------------------
# DEFAULT_LOG_LEVEL:
# - CLI default for --log-level. DEBUG logs every computed fee.
DEFAULT_LOG_LEVEL = os.getenv("USAGE_BILLING_LOG_LEVEL", "INFO")

# RUNS_DIR:
# - Root folder for per-run outputs (fees.json, report.md, trace.jsonl, console.log).
RUNS_DIR = os.getenv("USAGE_BILLING_RUNS_DIR", "runs")

# DEFAULT_MAX_WORKERS:
# - Thread pool size used when a billing run fans out one computation per charge.
# - Computations are pure, so 1 gives the same result, only slower on big runs.
DEFAULT_MAX_WORKERS = int(os.getenv("USAGE_BILLING_MAX_WORKERS", "4"))
