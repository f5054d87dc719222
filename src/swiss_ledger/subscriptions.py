"""Subscription templates, billing cycles and recurring payment generation."""

import logging
from datetime import UTC, date, datetime
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from .config import Settings
from .exceptions import IncompleteFact, InactiveSubscription, LedgerValidationError
from .ledger import Ledger
from .models import (
    BillingCycle,
    BillingStatus,
    RecurringPayment,
    SplitMethod,
    Subscription,
)
from .money import DEFAULT_MINOR_UNIT_DIGITS, quantize, to_positive_amount
from .splits import split_equally

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = Decimal("4.33")  # Average weeks per month
DAYS_PER_MONTH = Decimal("30.44")
MONTHS_PER_YEAR = Decimal("12")


# ============================================================================
# Billing calendar
# ============================================================================


def _cycle_delta(cycle: BillingCycle, periods: int, custom_cycle_days: int) -> relativedelta:
    if cycle == BillingCycle.WEEKLY:
        return relativedelta(days=7 * periods)
    if cycle == BillingCycle.YEARLY:
        return relativedelta(years=periods)
    if cycle == BillingCycle.CUSTOM:
        return relativedelta(days=max(1, custom_cycle_days) * periods)
    return relativedelta(months=periods)


def next_billing_date(
    cycle: BillingCycle, from_date: date, custom_cycle_days: int = 30
) -> date:
    """
    Date one billing cycle after from_date.

    Weekly adds 7 days, monthly one calendar month (clamped to month end),
    yearly one year, custom ``custom_cycle_days`` days.
    """
    return from_date + _cycle_delta(cycle, 1, custom_cycle_days)


def first_billing_date(
    cycle: BillingCycle,
    start_date: date,
    today: date,
    custom_cycle_days: int = 30,
) -> date:
    """
    First billing date on or after today, stepping whole cycles from start_date.

    Each candidate is computed from start_date directly so monthly cycles that
    start on the 31st don't drift to the 28th after February.
    """
    periods = 0
    candidate = start_date
    while candidate < today:
        periods += 1
        candidate = start_date + _cycle_delta(cycle, periods, custom_cycle_days)
    return candidate


def days_until_next_billing(subscription: Subscription, today: date) -> int:
    return (subscription.next_billing_date - today).days


def billing_status(
    subscription: Subscription, today: date, due_soon_days: int = 7
) -> BillingStatus:
    """Classify a subscription as paused, overdue, due soon or upcoming."""
    if not subscription.is_active:
        return BillingStatus.PAUSED

    days = days_until_next_billing(subscription, today)
    if days < 0:
        return BillingStatus.OVERDUE
    if days <= due_soon_days:
        return BillingStatus.DUE
    return BillingStatus.UPCOMING


# ============================================================================
# Cost calculations
# ============================================================================


def _monthly_equivalent_exact(subscription: Subscription) -> Decimal:
    amount = subscription.amount
    if subscription.cycle == BillingCycle.WEEKLY:
        return amount * WEEKS_PER_MONTH
    if subscription.cycle == BillingCycle.YEARLY:
        return amount / MONTHS_PER_YEAR
    if subscription.cycle == BillingCycle.CUSTOM:
        days = max(1, subscription.custom_cycle_days)
        return amount * DAYS_PER_MONTH / Decimal(days)
    return amount


def monthly_equivalent(
    subscription: Subscription, digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> Decimal:
    """Cost normalized to one month."""
    return quantize(_monthly_equivalent_exact(subscription), digits)


def yearly_equivalent(
    subscription: Subscription, digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> Decimal:
    """Cost normalized to one year."""
    return quantize(_monthly_equivalent_exact(subscription) * MONTHS_PER_YEAR, digits)


def share_per_subscriber(
    subscription: Subscription, digits: int = DEFAULT_MINOR_UNIT_DIGITS
) -> Decimal:
    """Approximate per-person share; actual payments allocate leftover cents."""
    return quantize(subscription.amount / Decimal(subscription.subscriber_count), digits)


# ============================================================================
# Service
# ============================================================================


def _validate_subscription(subscription: Subscription, digits: int) -> None:
    if not subscription.name or not subscription.name.strip():
        raise IncompleteFact("Subscription name is required")
    to_positive_amount(subscription.amount, digits)
    if subscription.cycle == BillingCycle.CUSTOM and subscription.custom_cycle_days < 1:
        raise LedgerValidationError("Custom billing cycles need at least one day")
    if len(set(subscription.subscriber_ids)) != len(subscription.subscriber_ids):
        raise LedgerValidationError("A subscriber is listed more than once")
    if subscription.is_shared and len(subscription.subscriber_ids) < 2:
        raise LedgerValidationError("A shared subscription needs at least two subscribers")


class SubscriptionService:
    """Manages subscription templates and the payments generated from them.

    Subscriptions are immutable values: every change returns a new,
    re-validated Subscription for the caller to store.
    """

    def __init__(self, ledger: Ledger, settings: Settings | None = None):
        """Initialize the subscription service."""
        self.ledger = ledger
        self.settings = settings or ledger.settings

    @property
    def digits(self) -> int:
        return self.settings.minor_unit_digits

    def create_subscription(
        self,
        name: str,
        amount,
        *,
        start_date: date,
        cycle: BillingCycle = BillingCycle.MONTHLY,
        custom_cycle_days: int = 30,
        subscriber_ids: tuple[str, ...] | list[str] = (),
        is_shared: bool | None = None,
        currency: str | None = None,
        today: date | None = None,
    ) -> Subscription:
        """
        Create a subscription whose next billing date is on or after today.

        ``is_shared`` defaults to True when there is more than one subscriber.
        """
        today = today or date.today()
        subscriber_ids = tuple(subscriber_ids)
        if is_shared is None:
            is_shared = len(subscriber_ids) > 1

        subscription = Subscription(
            name=name,
            amount=to_positive_amount(amount, self.digits),
            currency=currency or self.settings.default_currency,
            cycle=cycle,
            custom_cycle_days=custom_cycle_days,
            start_date=start_date,
            next_billing_date=first_billing_date(
                cycle, start_date, today, custom_cycle_days
            ),
            is_shared=is_shared,
            subscriber_ids=subscriber_ids,
        )
        _validate_subscription(subscription, self.digits)

        logger.info(
            f"Created subscription '{subscription.name}' ({subscription.cycle.value}), "
            f"next billing {subscription.next_billing_date}"
        )
        return subscription

    def update_subscription(self, subscription: Subscription, **changes) -> Subscription:
        """Return an edited copy after re-checking every invariant."""
        if "amount" in changes:
            changes["amount"] = to_positive_amount(changes["amount"], self.digits)
        updated = Subscription.model_validate({**subscription.model_dump(), **changes})
        _validate_subscription(updated, self.digits)
        return updated

    def pause(self, subscription: Subscription) -> Subscription:
        logger.info(f"Paused subscription {subscription.id}")
        return self.update_subscription(subscription, is_active=False)

    def resume(self, subscription: Subscription, today: date | None = None) -> Subscription:
        """Reactivate a subscription; billing restarts one cycle after today."""
        today = today or date.today()
        next_date = next_billing_date(
            subscription.cycle, today, subscription.custom_cycle_days
        )
        logger.info(f"Resumed subscription {subscription.id}, next billing {next_date}")
        return self.update_subscription(
            subscription, is_active=True, next_billing_date=next_date
        )

    def status(self, subscription: Subscription, today: date | None = None) -> BillingStatus:
        return billing_status(
            subscription, today or date.today(), self.settings.due_soon_days
        )

    def record_payment(
        self,
        subscription: Subscription,
        payer_id: str,
        *,
        amount=None,
        paid_at: datetime | None = None,
        note: str | None = None,
    ) -> tuple[RecurringPayment, Subscription]:
        """
        Record one billing period's payment and advance the billing date.

        The period covered is [next_billing_date, next_billing_date + cycle).
        The cost is split equally among subscribers (or charged entirely to
        the payer for personal subscriptions).

        Returns:
            Tuple of (recorded payment, subscription with advanced billing date)

        Raises:
            InactiveSubscription: If the subscription is paused
            DuplicateBillingPeriod: If the period already has a payment
        """
        if not subscription.is_active:
            raise InactiveSubscription(
                f"Subscription '{subscription.name}' is paused"
            )

        total = to_positive_amount(
            subscription.amount if amount is None else amount, self.digits
        )

        if subscription.is_shared:
            if payer_id not in subscription.subscriber_ids:
                raise LedgerValidationError(
                    f"{payer_id} is not a subscriber of '{subscription.name}'"
                )
            participants = list(subscription.subscriber_ids)
        else:
            participants = [payer_id]

        period_start = subscription.next_billing_date
        period_end = next_billing_date(
            subscription.cycle, period_start, subscription.custom_cycle_days
        )

        payment = self.ledger.create_recurring_payment(
            total,
            {payer_id: total},
            split_equally(total, participants, self.digits),
            title=subscription.name,
            subscription_id=subscription.id,
            billing_period_start=period_start,
            billing_period_end=period_end,
            currency=subscription.currency,
            occurred_at=paid_at or datetime.now(UTC),
            split_method=SplitMethod.EQUAL,
            note=note,
        )

        advanced = self.update_subscription(subscription, next_billing_date=period_end)
        return payment, advanced

    def payment_history(self, subscription_id: str) -> list[RecurringPayment]:
        """Payments for a subscription, newest first."""
        return sorted(
            self.ledger.recurring_payments(subscription_id),
            key=lambda payment: payment.occurred_at,
            reverse=True,
        )
