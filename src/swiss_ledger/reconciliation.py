"""Settlement reconciliation: record payments whose direction follows the balance."""

import logging
from datetime import datetime
from decimal import Decimal

from .balance import compute_balance, scoped_facts
from .config import Settings
from .exceptions import DirectionInconsistent, OverSettlement, SameParty
from .ledger import Ledger, build_settlement
from .models import Settlement
from .money import is_settled, sign, to_positive_amount

logger = logging.getLogger(__name__)


class SettlementReconciler:
    """Records "I paid / they paid me" actions as correctly directed settlements."""

    def __init__(self, ledger: Ledger, settings: Settings | None = None):
        """Initialize the reconciler."""
        self.ledger = ledger
        self.settings = settings or ledger.settings

    def record_payment(
        self,
        self_party: str,
        counterparty: str,
        amount,
        note: str | None = None,
        *,
        currency: str | None = None,
        occurred_at: datetime | None = None,
        group_id: str | None = None,
        subscription_id: str | None = None,
        allow_over_settlement: bool | None = None,
    ) -> Settlement:
        """
        Record a payment that moves the balance with counterparty toward zero.

        Steps (all under the ledger lock, against one snapshot):
        1. Compute the current balance b between self_party and counterparty,
           restricted to the group and/or subscription the payment is tagged with
        2. b > 0 (they owe you): counterparty -> self_party
           b < 0 (you owe them): self_party -> counterparty
        3. Reject amounts above |b| + epsilon unless over-payment is allowed
        4. Recompute with the new settlement and require
           after == b - sign(b) * amount (and |after| < |b| for normal payments)
        5. Append the settlement

        Args:
            self_party: The party recording the payment
            counterparty: The other side of the balance
            amount: Payment amount (> 0)
            note: Optional note
            currency: Currency of the balance to settle
            occurred_at: When the payment happened (defaults to now)
            group_id: Optional group; the balance is computed within it
            subscription_id: Optional subscription; the balance is computed
                within it
            allow_over_settlement: Override settings.allow_over_settlement

        Returns:
            The recorded settlement

        Raises:
            InvalidAmount: If amount is not positive
            SameParty: If self_party == counterparty
            OverSettlement: If nothing is outstanding or amount exceeds it
            DirectionInconsistent: If the post-condition check fails
        """
        digits = self.settings.minor_unit_digits
        epsilon = self.settings.balance_epsilon
        currency = currency or self.settings.default_currency
        payment = to_positive_amount(amount, digits)
        if self_party == counterparty:
            raise SameParty(f"Cannot record a payment between {self_party} and itself")
        if allow_over_settlement is None:
            allow_over_settlement = self.settings.allow_over_settlement

        with self.ledger.lock:
            facts = scoped_facts(self.ledger.snapshot(), group_id, subscription_id)
            before = compute_balance(
                self_party, counterparty, facts, currency=currency, digits=digits
            )

            if is_settled(before, epsilon):
                raise OverSettlement(
                    payment,
                    abs(before),
                    f"Nothing outstanding between {self_party} and {counterparty} "
                    f"in {currency}",
                )

            is_over_payment = payment > abs(before) + epsilon
            if is_over_payment and not allow_over_settlement:
                raise OverSettlement(payment, abs(before))

            if before > 0:
                from_party, to_party = counterparty, self_party
            else:
                from_party, to_party = self_party, counterparty

            settlement = build_settlement(
                from_party,
                to_party,
                payment,
                note,
                currency=currency,
                occurred_at=occurred_at,
                group_id=group_id,
                subscription_id=subscription_id,
                digits=digits,
            )

            after = compute_balance(
                self_party,
                counterparty,
                [*facts, settlement],
                currency=currency,
                digits=digits,
            )
            check_reduction(before, after, payment, allow_overshoot=is_over_payment)

            self.ledger.append(settlement)

        logger.info(
            f"Recorded payment {from_party} -> {to_party} of {payment} {currency}; "
            f"balance {before} -> {after}"
        )
        return settlement


def check_reduction(
    before: Decimal, after: Decimal, amount: Decimal, allow_overshoot: bool = False
) -> None:
    """
    Verify that a settlement moved the balance toward zero by exactly ``amount``.

    Raises:
        DirectionInconsistent: If the balance moved the wrong way or by the
            wrong amount
    """
    expected = before - sign(before) * amount
    if after != expected:
        raise DirectionInconsistent(
            f"Balance moved from {before} to {after}, expected {expected}"
        )
    if not allow_overshoot and abs(after) >= abs(before):
        raise DirectionInconsistent(
            f"Balance magnitude did not decrease ({before} -> {after})"
        )
