"""Pydantic domain models for the Swiss Coin ledger."""

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .money import ZERO, is_settled


def new_fact_id() -> str:
    """Generate a fresh fact identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Enumerations
# ============================================================================


class SplitMethod(str, Enum):
    """How an expense amount was divided among participants."""

    EQUAL = "equal"  # Split evenly among all participants
    AMOUNT = "amount"  # Each person owes a specific amount
    PERCENTAGE = "percentage"  # Each person owes a percentage
    SHARES = "shares"  # Split by number of shares
    ADJUSTMENT = "adjustment"  # Equal split with +/- adjustments


class BillingCycle(str, Enum):
    """Billing cycle of a subscription template."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"  # every custom_cycle_days days


class BillingStatus(str, Enum):
    """Where a subscription stands relative to its next billing date."""

    UPCOMING = "upcoming"  # More than due_soon_days away
    DUE = "due"  # Within due_soon_days
    OVERDUE = "overdue"  # Past billing date
    PAUSED = "paused"  # Subscription paused


# ============================================================================
# Parties
# ============================================================================


class Group(BaseModel):
    """A named set of parties sharing expenses."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    member_ids: tuple[str, ...] = ()


# ============================================================================
# Ledger facts
# ============================================================================


class PaymentContribution(BaseModel):
    """Amount a party actually paid towards an expense."""

    model_config = ConfigDict(frozen=True)

    party_id: str
    amount: Decimal


class SplitObligation(BaseModel):
    """Portion of an expense a party owes."""

    model_config = ConfigDict(frozen=True)

    party_id: str
    amount: Decimal


class Expense(BaseModel):
    """A shared cost with payer contributions and split obligations.

    Invariant: sum(payments) == sum(splits) == amount. Instances are built
    through ``build_expense`` / ``Ledger.create_expense``, which enforce it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_fact_id)
    title: str
    amount: Decimal
    currency: str = "USD"
    occurred_at: datetime = Field(default_factory=utc_now)
    payments: tuple[PaymentContribution, ...]
    splits: tuple[SplitObligation, ...]
    split_method: SplitMethod = SplitMethod.AMOUNT
    group_id: str | None = None
    note: str | None = None

    def paid_by(self, party_id: str) -> Decimal:
        """Total this party contributed."""
        return sum(
            (p.amount for p in self.payments if p.party_id == party_id), ZERO
        )

    def owed_by(self, party_id: str) -> Decimal:
        """Total this party owes."""
        return sum((s.amount for s in self.splits if s.party_id == party_id), ZERO)

    def net_positions(self) -> dict[str, Decimal]:
        """Net position per party: paid - owed."""
        positions: dict[str, Decimal] = {}
        for payment in self.payments:
            positions[payment.party_id] = (
                positions.get(payment.party_id, ZERO) + payment.amount
            )
        for split in self.splits:
            positions[split.party_id] = positions.get(split.party_id, ZERO) - split.amount
        return positions

    @property
    def party_ids(self) -> set[str]:
        return {p.party_id for p in self.payments} | {s.party_id for s in self.splits}

    def involves(self, party_id: str) -> bool:
        return party_id in self.party_ids


class RecurringPayment(Expense):
    """An expense generated from a subscription for one billing period.

    The period is half-open: [billing_period_start, billing_period_end).
    """

    subscription_id: str
    billing_period_start: date
    billing_period_end: date

    def overlaps(self, start: date, end: date) -> bool:
        """Check whether [start, end) intersects this payment's period."""
        return self.billing_period_start < end and start < self.billing_period_end


class Settlement(BaseModel):
    """A directed payment: from_party paid to_party."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_fact_id)
    from_party: str
    to_party: str
    amount: Decimal
    currency: str = "USD"
    occurred_at: datetime = Field(default_factory=utc_now)
    note: str | None = None
    group_id: str | None = None
    subscription_id: str | None = None

    def is_between(self, party_a: str, party_b: str) -> bool:
        """True if this settlement moves money between the two parties."""
        return {self.from_party, self.to_party} == {party_a, party_b}

    def involves(self, party_id: str) -> bool:
        return party_id in (self.from_party, self.to_party)


LedgerFact = Expense | Settlement


# ============================================================================
# Subscriptions
# ============================================================================


class Subscription(BaseModel):
    """A recurring-cost template from which RecurringPayments are generated.

    ``subscriber_ids`` lists every participant, including whoever pays.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_fact_id)
    name: str
    amount: Decimal
    currency: str = "USD"
    cycle: BillingCycle = BillingCycle.MONTHLY
    custom_cycle_days: int = 30
    start_date: date
    next_billing_date: date
    is_active: bool = True
    is_shared: bool = False
    subscriber_ids: tuple[str, ...] = ()

    @property
    def subscriber_count(self) -> int:
        """Number of people sharing the cost, at least 1."""
        if not self.is_shared:
            return 1
        return max(len(self.subscriber_ids), 1)


# ============================================================================
# Derived values
# ============================================================================


class CurrencyBalance(BaseModel):
    """Signed balances tracked per currency code.

    Positive = they owe you, negative = you owe them.
    """

    balances: dict[str, Decimal] = Field(default_factory=dict)
    epsilon: Decimal = Decimal("0.01")
    default_currency: str = "USD"

    def add(self, amount: Decimal, currency: str):
        self.balances[currency] = self.balances.get(currency, ZERO) + amount

    def subtract(self, amount: Decimal, currency: str):
        self.balances[currency] = self.balances.get(currency, ZERO) - amount

    def merge(self, other: "CurrencyBalance"):
        for code, amount in other.balances.items():
            self.add(amount, code)

    def get(self, currency: str) -> Decimal:
        return self.balances.get(currency, ZERO)

    @property
    def non_zero(self) -> dict[str, Decimal]:
        """Entries at least epsilon away from zero."""
        return {
            code: amount
            for code, amount in self.balances.items()
            if not is_settled(amount, self.epsilon)
        }

    @property
    def sorted_currencies(self) -> list[tuple[str, Decimal]]:
        """Non-zero entries sorted by |amount| descending."""
        return sorted(self.non_zero.items(), key=lambda item: (-abs(item[1]), item[0]))

    @property
    def is_settled(self) -> bool:
        return not self.non_zero

    @property
    def single_currency(self) -> str | None:
        """The code if exactly one currency has a non-zero balance."""
        non_zero = self.non_zero
        return next(iter(non_zero)) if len(non_zero) == 1 else None

    @property
    def has_positive(self) -> bool:
        return any(amount > ZERO for amount in self.non_zero.values())

    @property
    def has_negative(self) -> bool:
        return any(amount < ZERO for amount in self.non_zero.values())

    @property
    def primary_amount(self) -> Decimal:
        ranked = self.sorted_currencies
        return ranked[0][1] if ranked else ZERO

    @property
    def primary_currency(self) -> str:
        ranked = self.sorted_currencies
        return ranked[0][0] if ranked else self.default_currency

    @property
    def currency_count(self) -> int:
        return len(self.non_zero)


class MemberBalance(BaseModel):
    """Balance between the self party and one member of a group or subscription."""

    party_id: str
    balance: Decimal
    paid: Decimal = ZERO
