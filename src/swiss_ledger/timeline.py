"""Conversation timelines: the facts two parties (or a group) share, by day."""

from collections.abc import Iterable
from datetime import date

from .models import Expense, LedgerFact, Settlement


def conversation_items(
    self_party: str, other: str, facts: Iterable[LedgerFact]
) -> list[LedgerFact]:
    """
    Facts involving both parties, oldest first.

    Expenses qualify when both parties paid or owe something; settlements
    only when they move money directly between the two.
    """
    items: list[LedgerFact] = []
    for fact in facts:
        if isinstance(fact, Settlement):
            if fact.is_between(self_party, other):
                items.append(fact)
        elif isinstance(fact, Expense):
            if fact.involves(self_party) and fact.involves(other):
                items.append(fact)
    return sorted(items, key=lambda fact: fact.occurred_at)


def group_conversation_items(
    group_id: str, facts: Iterable[LedgerFact]
) -> list[LedgerFact]:
    """Facts tagged with a group, oldest first."""
    return sorted(
        (fact for fact in facts if fact.group_id == group_id),
        key=lambda fact: fact.occurred_at,
    )


def group_by_day(items: Iterable[LedgerFact]) -> list[tuple[date, list[LedgerFact]]]:
    """Bucket facts by calendar day (in their own timezone), days ascending."""
    buckets: dict[date, list[LedgerFact]] = {}
    for item in items:
        buckets.setdefault(item.occurred_at.date(), []).append(item)
    return [
        (day, sorted(buckets[day], key=lambda fact: fact.occurred_at))
        for day in sorted(buckets)
    ]
