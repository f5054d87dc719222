"""Ledger of financial facts and the invariants checked when facts are built.

Facts (expenses, recurring payments, settlements) are immutable values.
The ``build_*`` functions are pure: they coerce caller input, construct the
fact and validate it. ``Ledger`` owns the in-memory fact list and appends
or replaces facts under a re-entrant lock.
"""

import hashlib
import logging
import threading
from collections.abc import Iterable
from datetime import date, datetime

from .config import Settings
from .exceptions import (
    DuplicateBillingPeriod,
    FactNotFound,
    IncompleteFact,
    InvalidAmount,
    LedgerValidationError,
    SameParty,
    SplitMismatch,
)
from .models import (
    Expense,
    LedgerFact,
    PaymentContribution,
    RecurringPayment,
    Settlement,
    SplitMethod,
    SplitObligation,
    utc_now,
)
from .money import DEFAULT_MINOR_UNIT_DIGITS, ZERO, to_amount, to_positive_amount

logger = logging.getLogger(__name__)


# ============================================================================
# Validation helpers
# ============================================================================


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise IncompleteFact(f"{field} is required")
    return value.strip()


def _coerce_entries(entries, model, digits: int) -> tuple:
    """
    Normalize payments/splits into a tuple of ``model`` instances.

    Accepts a dict of party id -> amount, model instances, or
    (party id, amount) pairs.
    """
    if isinstance(entries, dict):
        pairs = list(entries.items())
    else:
        pairs = []
        for entry in entries:
            if isinstance(entry, (PaymentContribution, SplitObligation)):
                pairs.append((entry.party_id, entry.amount))
            else:
                party_id, amount = entry
                pairs.append((party_id, amount))

    return tuple(
        model(party_id=_require_text(party_id, "Party id"), amount=to_amount(amount, digits))
        for party_id, amount in pairs
    )


def _check_entries(entries, label: str, total, digits: int) -> None:
    party_ids = [entry.party_id for entry in entries]
    for party_id in party_ids:
        _require_text(party_id, "Party id")
    if len(set(party_ids)) != len(party_ids):
        raise SplitMismatch(f"A party is listed more than once in {label}")

    for entry in entries:
        amount = to_amount(entry.amount, digits)
        if amount < ZERO:
            raise InvalidAmount(f"{label} must not contain negative amounts ({amount})")

    entries_total = sum((entry.amount for entry in entries), ZERO)
    if entries_total != total:
        raise SplitMismatch(
            f"{label.capitalize()} sum to {entries_total}, expected {total}"
        )


def validate_expense(expense: Expense, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> None:
    """
    Check every invariant of an expense (or recurring payment).

    Raises:
        IncompleteFact: If the title, currency or a party id is blank
        InvalidAmount: If the amount is not a positive minor-unit amount
        SplitMismatch: If payments or splits don't sum exactly to the amount
    """
    _require_text(expense.title, "Title")
    _require_text(expense.currency, "Currency")
    amount = to_positive_amount(expense.amount, digits)
    _check_entries(expense.payments, "payments", amount, digits)
    _check_entries(expense.splits, "splits", amount, digits)

    if isinstance(expense, RecurringPayment):
        _require_text(expense.subscription_id, "Subscription id")
        if expense.billing_period_start >= expense.billing_period_end:
            raise LedgerValidationError(
                f"Billing period start {expense.billing_period_start} must be "
                f"before its end {expense.billing_period_end}"
            )


def validate_settlement(
    settlement: Settlement, digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> None:
    """
    Check every invariant of a settlement.

    Raises:
        SameParty: If from_party == to_party
        InvalidAmount: If the amount is not positive
    """
    from_party = _require_text(settlement.from_party, "From party")
    to_party = _require_text(settlement.to_party, "To party")
    _require_text(settlement.currency, "Currency")
    if from_party == to_party:
        raise SameParty(f"Settlement payer and payee are both {from_party}")
    to_positive_amount(settlement.amount, digits)


# ============================================================================
# Pure fact builders
# ============================================================================


def build_expense(
    amount,
    payments,
    splits,
    *,
    title: str,
    currency: str = "USD",
    occurred_at: datetime | None = None,
    split_method: SplitMethod = SplitMethod.AMOUNT,
    group_id: str | None = None,
    note: str | None = None,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> Expense:
    """
    Build and validate an expense without recording it.

    Args:
        amount: Expense total (> 0)
        payments: Who paid how much; must sum to amount
        splits: Who owes how much; must sum to amount
        title: Required description
        currency: ISO currency code
        occurred_at: When the expense happened (defaults to now)
        split_method: How the splits were derived
        group_id: Optional group the expense belongs to
        note: Optional free-form note

    Returns:
        A validated Expense
    """
    expense = Expense(
        title=_require_text(title, "Title"),
        amount=to_positive_amount(amount, digits),
        currency=currency,
        occurred_at=occurred_at or utc_now(),
        payments=_coerce_entries(payments, PaymentContribution, digits),
        splits=_coerce_entries(splits, SplitObligation, digits),
        split_method=split_method,
        group_id=group_id,
        note=note,
    )
    validate_expense(expense, digits)
    return expense


def build_recurring_payment(
    amount,
    payments,
    splits,
    *,
    title: str,
    subscription_id: str,
    billing_period_start: date,
    billing_period_end: date,
    currency: str = "USD",
    occurred_at: datetime | None = None,
    split_method: SplitMethod = SplitMethod.EQUAL,
    group_id: str | None = None,
    note: str | None = None,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> RecurringPayment:
    """Build and validate a recurring payment covering one billing period."""
    payment = RecurringPayment(
        title=_require_text(title, "Title"),
        amount=to_positive_amount(amount, digits),
        currency=currency,
        occurred_at=occurred_at or utc_now(),
        payments=_coerce_entries(payments, PaymentContribution, digits),
        splits=_coerce_entries(splits, SplitObligation, digits),
        split_method=split_method,
        group_id=group_id,
        note=note,
        subscription_id=subscription_id,
        billing_period_start=billing_period_start,
        billing_period_end=billing_period_end,
    )
    validate_expense(payment, digits)
    return payment


def build_settlement(
    from_party: str,
    to_party: str,
    amount,
    note: str | None = None,
    *,
    currency: str = "USD",
    occurred_at: datetime | None = None,
    group_id: str | None = None,
    subscription_id: str | None = None,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> Settlement:
    """Build and validate a settlement without recording it."""
    if (
        isinstance(from_party, str)
        and isinstance(to_party, str)
        and from_party.strip()
        and from_party.strip() == to_party.strip()
    ):
        raise SameParty(f"Settlement payer and payee are both {from_party}")

    settlement = Settlement(
        from_party=_require_text(from_party, "From party"),
        to_party=_require_text(to_party, "To party"),
        amount=to_positive_amount(amount, digits),
        currency=currency,
        occurred_at=occurred_at or utc_now(),
        note=note,
        group_id=group_id,
        subscription_id=subscription_id,
    )
    validate_settlement(settlement, digits)
    return settlement


def compute_fact_fingerprint(fact: LedgerFact) -> str:
    """
    Compute a deterministic hash of a fact's economic content.

    Ids and notes are excluded, so two recordings of the same payment share
    a fingerprint. Callers use it to de-duplicate retries.
    """
    if isinstance(fact, Settlement):
        parts = [
            "settlement",
            fact.from_party,
            fact.to_party,
            str(fact.amount),
            fact.currency,
            fact.occurred_at.isoformat(),
            fact.group_id or "",
            fact.subscription_id or "",
        ]
    else:
        parts = [
            "expense",
            str(fact.amount),
            fact.currency,
            fact.occurred_at.isoformat(),
            fact.group_id or "",
        ]
        parts.extend(
            f"paid:{p.party_id}:{p.amount}"
            for p in sorted(fact.payments, key=lambda x: x.party_id)
        )
        parts.extend(
            f"owes:{s.party_id}:{s.amount}"
            for s in sorted(fact.splits, key=lambda x: x.party_id)
        )
        if isinstance(fact, RecurringPayment):
            parts.extend(
                [
                    fact.subscription_id,
                    fact.billing_period_start.isoformat(),
                    fact.billing_period_end.isoformat(),
                ]
            )

    combined = "|".join(parts)
    return hashlib.sha256(combined.encode()).hexdigest()


# ============================================================================
# Ledger
# ============================================================================


class Ledger:
    """In-memory collection of ledger facts.

    Every mutation happens under ``lock`` (a re-entrant lock), and readers
    take ``snapshot()`` copies, so no reader sees a half-applied change.
    Callers that read, decide and then write (see ``SettlementReconciler``)
    hold ``lock`` for the whole sequence.
    """

    def __init__(
        self, settings: Settings | None = None, facts: Iterable[LedgerFact] = ()
    ):
        """Initialize the ledger, validating any preloaded facts."""
        self.settings = settings or Settings()
        self.lock = threading.RLock()
        self._facts: list[LedgerFact] = []
        for fact in facts:
            self.append(fact)

    @property
    def digits(self) -> int:
        return self.settings.minor_unit_digits

    def __len__(self) -> int:
        with self.lock:
            return len(self._facts)

    def snapshot(self) -> tuple[LedgerFact, ...]:
        """Return a consistent copy of all facts."""
        with self.lock:
            return tuple(self._facts)

    def get(self, fact_id: str) -> LedgerFact:
        """Look up a fact by id."""
        with self.lock:
            for fact in self._facts:
                if fact.id == fact_id:
                    return fact
        raise FactNotFound(fact_id)

    def expenses(self, group_id: str | None = None) -> list[Expense]:
        """Expenses (including recurring payments), optionally for one group."""
        return [
            fact
            for fact in self.snapshot()
            if isinstance(fact, Expense)
            and (group_id is None or fact.group_id == group_id)
        ]

    def settlements(self) -> list[Settlement]:
        return [fact for fact in self.snapshot() if isinstance(fact, Settlement)]

    def recurring_payments(
        self, subscription_id: str | None = None
    ) -> list[RecurringPayment]:
        """Recurring payments, optionally for one subscription."""
        return [
            fact
            for fact in self.snapshot()
            if isinstance(fact, RecurringPayment)
            and (subscription_id is None or fact.subscription_id == subscription_id)
        ]

    def append(self, fact: LedgerFact) -> LedgerFact:
        """
        Validate and record a fact.

        Raises:
            LedgerValidationError: If the fact breaks an invariant or its id
                is already recorded
            DuplicateBillingPeriod: If a recurring payment overlaps another
                payment of the same subscription
        """
        if isinstance(fact, Settlement):
            validate_settlement(fact, self.digits)
        else:
            validate_expense(fact, self.digits)

        with self.lock:
            if any(existing.id == fact.id for existing in self._facts):
                raise LedgerValidationError(f"Fact {fact.id} is already recorded")
            if isinstance(fact, RecurringPayment):
                self._check_billing_period(fact)
            self._facts.append(fact)

        logger.debug(f"Recorded {type(fact).__name__} {fact.id}")
        return fact

    def _check_billing_period(self, payment: RecurringPayment) -> None:
        for existing in self._facts:
            if (
                isinstance(existing, RecurringPayment)
                and existing.id != payment.id
                and existing.subscription_id == payment.subscription_id
                and existing.overlaps(
                    payment.billing_period_start, payment.billing_period_end
                )
            ):
                raise DuplicateBillingPeriod(
                    payment.subscription_id,
                    payment.billing_period_start,
                    payment.billing_period_end,
                )

    def create_expense(
        self,
        amount,
        payments,
        splits,
        *,
        title: str,
        currency: str | None = None,
        occurred_at: datetime | None = None,
        split_method: SplitMethod = SplitMethod.AMOUNT,
        group_id: str | None = None,
        note: str | None = None,
    ) -> Expense:
        """Build, validate and record an expense."""
        expense = build_expense(
            amount,
            payments,
            splits,
            title=title,
            currency=currency or self.settings.default_currency,
            occurred_at=occurred_at,
            split_method=split_method,
            group_id=group_id,
            note=note,
            digits=self.digits,
        )
        self.append(expense)
        logger.info(
            f"Created expense '{expense.title}' for {expense.amount} "
            f"{expense.currency} ({len(expense.splits)} splits)"
        )
        return expense

    def create_settlement(
        self,
        from_party: str,
        to_party: str,
        amount,
        note: str | None = None,
        *,
        currency: str | None = None,
        occurred_at: datetime | None = None,
        group_id: str | None = None,
        subscription_id: str | None = None,
    ) -> Settlement:
        """Build, validate and record a settlement."""
        settlement = build_settlement(
            from_party,
            to_party,
            amount,
            note,
            currency=currency or self.settings.default_currency,
            occurred_at=occurred_at,
            group_id=group_id,
            subscription_id=subscription_id,
            digits=self.digits,
        )
        self.append(settlement)
        logger.info(
            f"Created settlement {settlement.from_party} -> {settlement.to_party} "
            f"for {settlement.amount} {settlement.currency}"
        )
        return settlement

    def create_recurring_payment(
        self,
        amount,
        payments,
        splits,
        *,
        title: str,
        subscription_id: str,
        billing_period_start: date,
        billing_period_end: date,
        currency: str | None = None,
        occurred_at: datetime | None = None,
        split_method: SplitMethod = SplitMethod.EQUAL,
        group_id: str | None = None,
        note: str | None = None,
    ) -> RecurringPayment:
        """Build, validate and record a recurring payment for one billing period."""
        payment = build_recurring_payment(
            amount,
            payments,
            splits,
            title=title,
            subscription_id=subscription_id,
            billing_period_start=billing_period_start,
            billing_period_end=billing_period_end,
            currency=currency or self.settings.default_currency,
            occurred_at=occurred_at,
            split_method=split_method,
            group_id=group_id,
            note=note,
            digits=self.digits,
        )
        self.append(payment)
        logger.info(
            f"Created recurring payment for subscription {subscription_id} "
            f"({billing_period_start} to {billing_period_end})"
        )
        return payment

    def replace_expense(self, expense_id: str, **changes) -> Expense:
        """
        Replace an expense with an edited copy, re-validating every invariant.

        Args:
            expense_id: Id of the expense to replace
            **changes: Field values to change (payments/splits accept the
                same forms as ``create_expense``)

        Returns:
            The new expense value (same id)

        Raises:
            FactNotFound: If no expense has this id
        """
        if "id" in changes:
            raise LedgerValidationError("An expense id cannot be changed")

        updates = dict(changes)
        if "payments" in updates:
            updates["payments"] = _coerce_entries(
                updates["payments"], PaymentContribution, self.digits
            )
        if "splits" in updates:
            updates["splits"] = _coerce_entries(
                updates["splits"], SplitObligation, self.digits
            )
        if "amount" in updates:
            updates["amount"] = to_positive_amount(updates["amount"], self.digits)

        with self.lock:
            current = self.get(expense_id)
            if not isinstance(current, Expense):
                raise FactNotFound(expense_id)

            replacement = type(current).model_validate(
                {**current.model_dump(), **updates}
            )
            validate_expense(replacement, self.digits)
            if isinstance(replacement, RecurringPayment):
                self._check_billing_period(replacement)

            index = next(
                i for i, fact in enumerate(self._facts) if fact.id == expense_id
            )
            self._facts[index] = replacement

        logger.info(f"Replaced expense {expense_id}")
        return replacement
