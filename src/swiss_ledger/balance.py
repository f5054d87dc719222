"""Balance engine: signed balances derived from ledger facts.

Sign convention everywhere: positive means the other side owes ``self_party``,
negative means ``self_party`` owes the other side. Balances are always
recomputed from facts and never stored.
"""

import logging
from collections.abc import Callable, Iterable
from decimal import Decimal

from .config import Settings
from .ledger import Ledger
from .models import (
    CurrencyBalance,
    Expense,
    Group,
    LedgerFact,
    MemberBalance,
    RecurringPayment,
    Settlement,
    Subscription,
)
from .money import DEFAULT_MINOR_UNIT_DIGITS, ZERO, is_settled, quantize

logger = logging.getLogger(__name__)


# ============================================================================
# Per-fact contributions
# ============================================================================


def pairwise_expense_balance(
    expense: Expense,
    party_a: str,
    party_b: str,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> Decimal:
    """
    Calculate what party_b owes party_a because of one expense.

    Net-position algorithm (supports several payers):
    1. net_i = paid_i - owed_i for every party
    2. If A is a creditor and B a debtor, B's debt is allocated to A in
       proportion to A's share of total credit: |net_B| * net_A / total_credit
    3. Mirrored (negative) when A is the debtor and B the creditor
    4. Otherwise the expense creates no debt between them

    With a single payer this is "the payer is owed each other party's split".
    The expression is the same for (A, B) and (B, A) up to sign, and the
    result is rounded half-even, so the function is exactly antisymmetric.

    Returns:
        Positive if B owes A, negative if A owes B
    """
    if party_a == party_b:
        return ZERO

    positions = expense.net_positions()
    net_a = positions.get(party_a, ZERO)
    net_b = positions.get(party_b, ZERO)

    total_credit = sum((net for net in positions.values() if net > ZERO), ZERO)
    if total_credit == ZERO:
        return ZERO

    if net_a > ZERO and net_b < ZERO:
        return quantize(abs(net_b) * net_a / total_credit, digits)
    if net_a < ZERO and net_b > ZERO:
        return -quantize(abs(net_a) * net_b / total_credit, digits)
    return ZERO


def settlement_delta(settlement: Settlement, self_party: str, other: str) -> Decimal:
    """
    Signed effect of a settlement on the balance between self_party and other.

    Derived only from (from_party, to_party) relative to (self_party, other):
    - other paid self_party: other owes less, so the balance goes down
    - self_party paid other: self_party owes less, so the balance goes up
    - anything else: no effect
    """
    if settlement.from_party == other and settlement.to_party == self_party:
        return -settlement.amount
    if settlement.from_party == self_party and settlement.to_party == other:
        return settlement.amount
    return ZERO


# ============================================================================
# Pairwise scope
# ============================================================================


def compute_balances(
    self_party: str,
    other: str,
    facts: Iterable[LedgerFact],
    epsilon: Decimal = Decimal("0.01"),
    default_currency: str = "USD",
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> CurrencyBalance:
    """
    Net balance between self_party and other across all facts, per currency.

    Returns:
        CurrencyBalance; positive entries mean other owes self_party
    """
    balance = CurrencyBalance(epsilon=epsilon, default_currency=default_currency)
    if self_party == other:
        return balance

    for fact in facts:
        if isinstance(fact, Settlement):
            delta = settlement_delta(fact, self_party, other)
        else:
            delta = pairwise_expense_balance(fact, self_party, other, digits)
        if delta != ZERO:
            balance.add(delta, fact.currency)

    return balance


def compute_balance(
    self_party: str,
    other: str,
    facts: Iterable[LedgerFact],
    currency: str = "USD",
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> Decimal:
    """Net balance between self_party and other in a single currency."""
    matching = [fact for fact in facts if fact.currency == currency]
    return compute_balances(self_party, other, matching, digits=digits).get(currency)


# ============================================================================
# Group / subscription scope
# ============================================================================


def compute_scope_share(
    self_party: str,
    facts: Iterable[LedgerFact],
    currency: str = "USD",
) -> Decimal:
    """
    Net position of self_party against everyone else in a scope.

    Expenses contribute paid - owed; settlements self_party paid count
    positive, settlements it received count negative. The shares of all
    participants in a scope sum to zero.

    Returns:
        Positive if the rest of the scope owes self_party
    """
    share = ZERO
    for fact in facts:
        if fact.currency != currency:
            continue
        if isinstance(fact, Settlement):
            if fact.from_party == self_party:
                share += fact.amount
            elif fact.to_party == self_party:
                share -= fact.amount
        else:
            share += fact.paid_by(self_party) - fact.owed_by(self_party)
    return share


def group_facts(facts: Iterable[LedgerFact], group_id: str) -> list[LedgerFact]:
    """Facts tagged with a group."""
    return [fact for fact in facts if fact.group_id == group_id]


def subscription_facts(
    facts: Iterable[LedgerFact], subscription_id: str
) -> list[LedgerFact]:
    """Recurring payments and settlements tagged with a subscription."""
    selected: list[LedgerFact] = []
    for fact in facts:
        if isinstance(fact, RecurringPayment) and fact.subscription_id == subscription_id:
            selected.append(fact)
        elif isinstance(fact, Settlement) and fact.subscription_id == subscription_id:
            selected.append(fact)
    return selected


def scoped_facts(
    facts: Iterable[LedgerFact],
    group_id: str | None = None,
    subscription_id: str | None = None,
) -> list[LedgerFact]:
    """
    Facts inside a group and/or subscription scope.

    With neither tag every fact is in scope. With both, a fact must carry
    both tags.
    """
    selected = list(facts)
    if group_id is not None:
        selected = group_facts(selected, group_id)
    if subscription_id is not None:
        selected = subscription_facts(selected, subscription_id)
    return selected


def compute_group_share(
    self_party: str,
    group_id: str,
    facts: Iterable[LedgerFact],
    currency: str = "USD",
) -> Decimal:
    """Net position of self_party within a group."""
    return compute_scope_share(self_party, group_facts(facts, group_id), currency)


def compute_subscription_share(
    self_party: str,
    subscription_id: str,
    facts: Iterable[LedgerFact],
    currency: str = "USD",
) -> Decimal:
    """Net position of self_party within a shared subscription."""
    return compute_scope_share(
        self_party, subscription_facts(facts, subscription_id), currency
    )


def member_balances(
    self_party: str,
    member_ids: Iterable[str],
    facts: Iterable[LedgerFact],
    currency: str = "USD",
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> list[MemberBalance]:
    """
    Pairwise balance with each member, restricted to the given scope facts.

    Also reports how much each member paid across those facts. Self is
    skipped; results are sorted by member id.
    """
    scoped = [fact for fact in facts if fact.currency == currency]
    results = []
    for member_id in sorted(set(member_ids)):
        if member_id == self_party:
            continue
        paid = sum(
            (fact.paid_by(member_id) for fact in scoped if isinstance(fact, Expense)),
            ZERO,
        )
        balance = compute_balances(self_party, member_id, scoped, digits=digits).get(
            currency
        )
        results.append(MemberBalance(party_id=member_id, balance=balance, paid=paid))
    return results


def members_who_owe(
    balances: list[MemberBalance], epsilon: Decimal = Decimal("0.01")
) -> list[MemberBalance]:
    """Members with a positive outstanding balance."""
    return [entry for entry in balances if entry.balance >= epsilon]


def members_owed(
    balances: list[MemberBalance], epsilon: Decimal = Decimal("0.01")
) -> list[MemberBalance]:
    """Members self_party owes money to."""
    return [entry for entry in balances if entry.balance <= -epsilon]


# ============================================================================
# Engine
# ============================================================================


class BalanceEngine:
    """Computes balances against the current snapshot of a ledger."""

    def __init__(self, ledger: Ledger, settings: Settings | None = None):
        """Initialize the engine."""
        self.ledger = ledger
        self.settings = settings or ledger.settings

    def _currency(self, currency: str | None) -> str:
        return currency or self.settings.default_currency

    def compute(
        self,
        self_party: str,
        other: str,
        currency: str | None = None,
        facts: Iterable[LedgerFact] | None = None,
    ) -> Decimal:
        """
        Net balance between self_party and other.

        Args:
            self_party: The party the balance is relative to
            other: The counterparty
            currency: Currency to report (defaults to settings.default_currency)
            facts: Explicit fact set; defaults to a fresh ledger snapshot

        Returns:
            Positive if other owes self_party, negative if self_party owes other
        """
        if facts is None:
            facts = self.ledger.snapshot()
        balance = compute_balance(
            self_party,
            other,
            facts,
            currency=self._currency(currency),
            digits=self.settings.minor_unit_digits,
        )
        logger.debug(f"Balance {self_party} vs {other}: {balance}")
        return balance

    def compute_all(self, self_party: str, other: str) -> CurrencyBalance:
        """Net balance between self_party and other in every currency."""
        return compute_balances(
            self_party,
            other,
            self.ledger.snapshot(),
            epsilon=self.settings.balance_epsilon,
            default_currency=self.settings.default_currency,
            digits=self.settings.minor_unit_digits,
        )

    def compute_group_share(
        self, self_party: str, group_id: str, currency: str | None = None
    ) -> Decimal:
        """Net position of self_party against the rest of a group."""
        return compute_group_share(
            self_party, group_id, self.ledger.snapshot(), self._currency(currency)
        )

    def compute_subscription_share(
        self, self_party: str, subscription_id: str, currency: str | None = None
    ) -> Decimal:
        """Net position of self_party against the rest of a subscription."""
        return compute_subscription_share(
            self_party,
            subscription_id,
            self.ledger.snapshot(),
            self._currency(currency),
        )

    def group_member_balances(
        self, self_party: str, group: Group, currency: str | None = None
    ) -> list[MemberBalance]:
        """Balance with each group member, counting only group facts."""
        return member_balances(
            self_party,
            group.member_ids,
            group_facts(self.ledger.snapshot(), group.id),
            self._currency(currency),
            self.settings.minor_unit_digits,
        )

    def subscription_member_balances(
        self, self_party: str, subscription: Subscription
    ) -> list[MemberBalance]:
        """Balance with each subscriber, counting only subscription facts."""
        if not subscription.is_shared:
            return []
        return member_balances(
            self_party,
            subscription.subscriber_ids,
            subscription_facts(self.ledger.snapshot(), subscription.id),
            subscription.currency,
            self.settings.minor_unit_digits,
        )

    def is_settled(self, balance: Decimal) -> bool:
        """A balance within epsilon of zero counts as settled."""
        return is_settled(balance, self.settings.balance_epsilon)
