"""Split calculators that turn an expense amount into exact obligations.

Every calculator returns one ``SplitObligation`` per participant, in the
order the participants were given, and the obligations always sum to the
expense amount exactly. Leftover minor units from uneven division go to
the earliest participants (see ``money.allocate``).
"""

import logging
from decimal import Decimal, InvalidOperation

from .exceptions import IncompleteFact, InvalidAmount, SplitMismatch
from .models import SplitMethod, SplitObligation
from .money import (
    DEFAULT_MINOR_UNIT_DIGITS,
    ZERO,
    allocate,
    to_amount,
    to_positive_amount,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _check_participants(party_ids: list[str]) -> None:
    if not party_ids:
        raise SplitMismatch("An expense needs at least one participant")
    if any(not party_id or not party_id.strip() for party_id in party_ids):
        raise IncompleteFact("Participant ids must not be blank")
    if len(set(party_ids)) != len(party_ids):
        raise SplitMismatch(f"Participants listed more than once: {party_ids}")


def _obligations(party_ids: list[str], amounts: list[Decimal]) -> list[SplitObligation]:
    return [
        SplitObligation(party_id=party_id, amount=amount)
        for party_id, amount in zip(party_ids, amounts, strict=True)
    ]


def split_equally(
    amount, party_ids: list[str], digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> list[SplitObligation]:
    """
    Split evenly among all participants.

    Example:
        split_equally("10.01", ["a", "b", "c"]) -> a=3.34, b=3.34, c=3.33
    """
    total = to_positive_amount(amount, digits)
    _check_participants(party_ids)
    return _obligations(party_ids, allocate(total, [1] * len(party_ids), digits))


def split_by_amount(
    amount, amounts: dict[str, object], digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> list[SplitObligation]:
    """
    Each participant owes an explicit amount; the amounts must add up.

    Raises:
        SplitMismatch: If the amounts don't sum to the total
    """
    total = to_positive_amount(amount, digits)
    party_ids = list(amounts)
    _check_participants(party_ids)

    parts = [to_amount(value, digits) for value in amounts.values()]
    if any(part < ZERO for part in parts):
        raise InvalidAmount("Split amounts must not be negative")

    split_total = sum(parts, ZERO)
    if split_total != total:
        raise SplitMismatch(
            f"Split amounts sum to {split_total}, expected {total}"
        )
    return _obligations(party_ids, parts)


def split_by_percentage(
    amount, percentages: dict[str, object], digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> list[SplitObligation]:
    """
    Each participant owes a percentage of the total; percentages must sum to 100.

    Raises:
        SplitMismatch: If the percentages don't sum to 100
    """
    total = to_positive_amount(amount, digits)
    party_ids = list(percentages)
    _check_participants(party_ids)

    try:
        weights = [Decimal(str(value)) for value in percentages.values()]
    except InvalidOperation as e:
        raise InvalidAmount(f"Percentages must be numeric: {percentages}") from e
    if any(not weight.is_finite() or weight < ZERO for weight in weights):
        raise InvalidAmount("Percentages must be finite and not negative")

    percent_total = sum(weights, ZERO)
    if percent_total != HUNDRED:
        raise SplitMismatch(f"Percentages sum to {percent_total}, expected 100")
    return _obligations(party_ids, allocate(total, weights, digits))


def split_by_shares(
    amount, shares: dict[str, int], digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> list[SplitObligation]:
    """
    Split proportionally to whole-number shares.

    Falls back to an equal split when every share is zero.
    """
    total = to_positive_amount(amount, digits)
    party_ids = list(shares)
    _check_participants(party_ids)

    counts = list(shares.values())
    if any(isinstance(count, bool) or not isinstance(count, int) for count in counts):
        raise InvalidAmount("Shares must be whole numbers")
    if any(count < 0 for count in counts):
        raise InvalidAmount("Shares must not be negative")

    if sum(counts) == 0:
        logger.debug("All shares are zero, falling back to an equal split")
        return split_equally(total, party_ids, digits)
    return _obligations(party_ids, allocate(total, counts, digits))


def split_with_adjustments(
    amount, adjustments: dict[str, object], digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> list[SplitObligation]:
    """
    Equal split of (total - sum of adjustments), then each adjustment added back.

    Example:
        $30 among a/b/c with a=+3 -> base 9 each, a owes 12, b and c owe 9

    Raises:
        InvalidAmount: If an adjustment drives someone's share below zero
    """
    total = to_positive_amount(amount, digits)
    party_ids = list(adjustments)
    _check_participants(party_ids)

    deltas = [to_amount(value, digits) for value in adjustments.values()]
    base_total = total - sum(deltas, ZERO)
    if base_total < ZERO:
        raise InvalidAmount(
            f"Adjustments ({sum(deltas, ZERO)}) exceed the total ({total})"
        )

    if base_total == ZERO:
        bases = [ZERO] * len(party_ids)
    else:
        bases = allocate(base_total, [1] * len(party_ids), digits)

    parts = [base + delta for base, delta in zip(bases, deltas, strict=True)]
    negative = [pid for pid, part in zip(party_ids, parts, strict=True) if part < ZERO]
    if negative:
        raise InvalidAmount(f"Adjustments leave a negative share for {negative}")
    return _obligations(party_ids, parts)


def compute_splits(
    method: SplitMethod,
    amount,
    participants,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> list[SplitObligation]:
    """
    Dispatch to the calculator for ``method``.

    Args:
        method: Split method
        amount: Expense total
        participants: list of party ids for EQUAL, otherwise a dict of
            party id -> amount / percentage / share count / adjustment

    Returns:
        Obligations summing exactly to the amount
    """
    if method == SplitMethod.EQUAL:
        return split_equally(amount, list(participants), digits)
    if method == SplitMethod.AMOUNT:
        return split_by_amount(amount, dict(participants), digits)
    if method == SplitMethod.PERCENTAGE:
        return split_by_percentage(amount, dict(participants), digits)
    if method == SplitMethod.SHARES:
        return split_by_shares(amount, dict(participants), digits)
    if method == SplitMethod.ADJUSTMENT:
        return split_with_adjustments(amount, dict(participants), digits)
    raise ValueError(f"Unknown split method: {method}")
