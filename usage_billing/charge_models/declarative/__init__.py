from .loader import load_billing_run, load_billing_runs
from .schema import BillingRunDefinition, ChargeDefinition

__all__ = ["load_billing_run", "load_billing_runs", "BillingRunDefinition", "ChargeDefinition"]
