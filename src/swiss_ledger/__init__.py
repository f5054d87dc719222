"""Swiss Ledger - Shared-expense balances and settlement reconciliation."""

__version__ = "0.1.0"

from .balance import BalanceEngine, compute_balance, compute_balances
from .config import Settings, configure_logging, load_settings
from .exceptions import (
    DirectionInconsistent,
    DuplicateBillingPeriod,
    InvalidAmount,
    LedgerError,
    OverSettlement,
    SameParty,
    SplitMismatch,
)
from .ledger import Ledger, compute_fact_fingerprint
from .models import (
    BillingCycle,
    CurrencyBalance,
    Expense,
    Group,
    RecurringPayment,
    Settlement,
    SplitMethod,
    Subscription,
)
from .reconciliation import SettlementReconciler
from .splits import compute_splits
from .subscriptions import SubscriptionService

__all__ = [
    "Settings",
    "configure_logging",
    "load_settings",
    "Ledger",
    "compute_fact_fingerprint",
    "BalanceEngine",
    "compute_balance",
    "compute_balances",
    "SettlementReconciler",
    "SubscriptionService",
    "compute_splits",
    "BillingCycle",
    "CurrencyBalance",
    "Expense",
    "Group",
    "RecurringPayment",
    "Settlement",
    "SplitMethod",
    "Subscription",
    "LedgerError",
    "InvalidAmount",
    "SplitMismatch",
    "SameParty",
    "DirectionInconsistent",
    "OverSettlement",
    "DuplicateBillingPeriod",
]
