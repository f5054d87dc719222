"""Custom exceptions for the Swiss Coin ledger."""

from datetime import date


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    pass


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class LedgerValidationError(LedgerError):
    """Base class for facts rejected at construction time."""

    pass


class InvalidAmount(LedgerValidationError):
    """Raised for non-positive, NaN, infinite or over-precise amounts."""

    pass


class SplitMismatch(LedgerValidationError):
    """Raised when payments or splits don't add up to the expense amount."""

    pass


class SameParty(LedgerValidationError):
    """Raised when a settlement's payer and payee are the same party."""

    pass


class IncompleteFact(LedgerValidationError):
    """Raised when a required field (title, party id, name) is blank."""

    pass


class InactiveSubscription(LedgerValidationError):
    """Raised when generating a payment for a paused subscription."""

    pass


class ReconciliationError(LedgerError):
    """Base class for settlement reconciliation failures."""

    pass


class DirectionInconsistent(ReconciliationError):
    """Raised when a recorded payment would not reduce the balance as expected."""

    pass


class OverSettlement(ReconciliationError):
    """Raised when a payment exceeds the outstanding balance."""

    def __init__(self, amount, outstanding, message: str | None = None):
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            message
            or f"Payment of {amount} exceeds outstanding balance of {outstanding}"
        )


class DuplicateBillingPeriod(LedgerError):
    """Raised when a billing period already has a recurring payment."""

    def __init__(
        self,
        subscription_id: str,
        period_start: date,
        period_end: date,
        message: str | None = None,
    ):
        self.subscription_id = subscription_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            message
            or f"Subscription {subscription_id} already has a payment covering "
            f"{period_start} to {period_end}"
        )


class FactNotFound(LedgerError):
    """Raised when a fact id is not present in the ledger."""

    def __init__(self, fact_id: str):
        self.fact_id = fact_id
        super().__init__(f"Fact {fact_id} not found in ledger")
