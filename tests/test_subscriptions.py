"""Tests for subscription billing and recurring payments."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from swiss_ledger.balance import BalanceEngine
from swiss_ledger.config import Settings
from swiss_ledger.exceptions import (
    DuplicateBillingPeriod,
    IncompleteFact,
    InactiveSubscription,
    InvalidAmount,
    LedgerValidationError,
)
from swiss_ledger.ledger import Ledger
from swiss_ledger.models import BillingCycle, BillingStatus, Subscription
from swiss_ledger.reconciliation import SettlementReconciler
from swiss_ledger.subscriptions import (
    SubscriptionService,
    billing_status,
    first_billing_date,
    monthly_equivalent,
    next_billing_date,
    share_per_subscriber,
    yearly_equivalent,
)

TODAY = date(2024, 3, 1)


@pytest.fixture
def ledger():
    """Create an empty ledger with default settings."""
    return Ledger(Settings(_env_file=None))


@pytest.fixture
def service(ledger):
    return SubscriptionService(ledger)


@pytest.fixture
def netflix(service):
    """A monthly subscription shared by three people."""
    return service.create_subscription(
        "Netflix",
        "15.99",
        start_date=date(2024, 1, 15),
        subscriber_ids=["me", "alice", "bob"],
        today=TODAY,
    )


def make_subscription(**overrides) -> Subscription:
    fields = {
        "name": "Gym",
        "amount": Decimal("30.00"),
        "start_date": date(2024, 1, 1),
        "next_billing_date": date(2024, 3, 10),
    }
    fields.update(overrides)
    return Subscription(**fields)


class TestBillingCalendar:
    """Test billing date arithmetic."""

    @pytest.mark.parametrize(
        "cycle,start,expected",
        [
            (BillingCycle.WEEKLY, date(2024, 2, 26), date(2024, 3, 4)),
            (BillingCycle.MONTHLY, date(2024, 1, 15), date(2024, 2, 15)),
            (BillingCycle.MONTHLY, date(2024, 1, 31), date(2024, 2, 29)),
            (BillingCycle.YEARLY, date(2024, 2, 29), date(2025, 2, 28)),
        ],
    )
    def test_next_billing_date(self, cycle, start, expected):
        assert next_billing_date(cycle, start) == expected

    def test_custom_cycle(self):
        assert next_billing_date(BillingCycle.CUSTOM, date(2024, 1, 1), 10) == date(
            2024, 1, 11
        )

    def test_first_billing_date_does_not_drift(self):
        """A subscription started on the 31st bills on the 31st again after February."""
        first = first_billing_date(BillingCycle.MONTHLY, date(2024, 1, 31), date(2024, 3, 15))

        assert first == date(2024, 3, 31)

    def test_first_billing_date_in_future(self):
        start = date(2024, 5, 1)

        assert first_billing_date(BillingCycle.MONTHLY, start, TODAY) == start

    def test_first_billing_date_today(self):
        assert first_billing_date(BillingCycle.WEEKLY, TODAY, TODAY) == TODAY


class TestBillingStatus:
    """Test due/overdue classification."""

    @pytest.mark.parametrize(
        "next_date,expected",
        [
            (date(2024, 2, 29), BillingStatus.OVERDUE),
            (date(2024, 3, 1), BillingStatus.DUE),
            (date(2024, 3, 8), BillingStatus.DUE),
            (date(2024, 3, 9), BillingStatus.UPCOMING),
        ],
    )
    def test_status(self, next_date, expected):
        subscription = make_subscription(next_billing_date=next_date)

        assert billing_status(subscription, TODAY) == expected

    def test_paused_wins(self):
        subscription = make_subscription(
            next_billing_date=date(2024, 1, 1), is_active=False
        )

        assert billing_status(subscription, TODAY) == BillingStatus.PAUSED


class TestCostCalculations:
    """Test normalized monthly and yearly costs."""

    def test_weekly(self):
        subscription = make_subscription(amount=Decimal("10.00"), cycle=BillingCycle.WEEKLY)

        assert monthly_equivalent(subscription) == Decimal("43.30")

    def test_yearly(self):
        subscription = make_subscription(amount=Decimal("120.00"), cycle=BillingCycle.YEARLY)

        assert monthly_equivalent(subscription) == Decimal("10.00")
        assert yearly_equivalent(subscription) == Decimal("120.00")

    def test_custom(self):
        subscription = make_subscription(
            amount=Decimal("30.00"), cycle=BillingCycle.CUSTOM, custom_cycle_days=15
        )

        assert monthly_equivalent(subscription) == Decimal("60.88")

    def test_monthly_yearly_equivalent(self):
        subscription = make_subscription(amount=Decimal("15.99"))

        assert yearly_equivalent(subscription) == Decimal("191.88")

    def test_share_per_subscriber(self, netflix):
        assert share_per_subscriber(netflix) == Decimal("5.33")
        assert share_per_subscriber(make_subscription()) == Decimal("30.00")


class TestSubscriptionService:
    """Test subscription lifecycle."""

    def test_create_shared(self, netflix):
        assert netflix.is_shared
        assert netflix.subscriber_count == 3
        assert netflix.next_billing_date == date(2024, 3, 15)
        assert netflix.amount == Decimal("15.99")

    def test_create_personal(self, service):
        subscription = service.create_subscription(
            "Gym", "30.00", start_date=TODAY, subscriber_ids=["me"], today=TODAY
        )

        assert not subscription.is_shared
        assert subscription.subscriber_count == 1

    def test_blank_name(self, service):
        with pytest.raises(IncompleteFact):
            service.create_subscription(" ", "10.00", start_date=TODAY, today=TODAY)

    def test_zero_amount(self, service):
        with pytest.raises(InvalidAmount):
            service.create_subscription("Gym", "0", start_date=TODAY, today=TODAY)

    def test_shared_needs_two_subscribers(self, service):
        with pytest.raises(LedgerValidationError, match="at least two"):
            service.create_subscription(
                "Gym",
                "10.00",
                start_date=TODAY,
                subscriber_ids=["me"],
                is_shared=True,
                today=TODAY,
            )

    def test_update_returns_new_value(self, service, netflix):
        updated = service.update_subscription(netflix, amount="17.99")

        assert updated.amount == Decimal("17.99")
        assert updated.id == netflix.id
        assert netflix.amount == Decimal("15.99")

    def test_update_revalidates(self, service, netflix):
        with pytest.raises(LedgerValidationError):
            service.update_subscription(netflix, subscriber_ids=("me",))

    def test_pause_and_resume(self, service, netflix):
        paused = service.pause(netflix)
        assert service.status(paused, TODAY) == BillingStatus.PAUSED

        resumed = service.resume(paused, today=date(2024, 6, 10))

        assert resumed.is_active
        assert resumed.next_billing_date == date(2024, 7, 10)

    def test_status_uses_settings_window(self, ledger):
        service = SubscriptionService(
            ledger, Settings(_env_file=None, due_soon_days=14)
        )
        subscription = make_subscription(next_billing_date=date(2024, 3, 12))

        assert service.status(subscription, TODAY) == BillingStatus.DUE


class TestRecordPayment:
    """Test recurring payment generation."""

    def test_payment_splits_equally_and_advances(self, ledger, service, netflix):
        payment, advanced = service.record_payment(netflix, "me")

        assert payment.subscription_id == netflix.id
        assert payment.billing_period_start == date(2024, 3, 15)
        assert payment.billing_period_end == date(2024, 4, 15)
        assert payment.paid_by("me") == Decimal("15.99")
        assert [s.amount for s in payment.splits] == [Decimal("5.33")] * 3
        assert advanced.next_billing_date == date(2024, 4, 15)
        assert ledger.recurring_payments(netflix.id) == [payment]

    def test_same_period_twice(self, ledger, service, netflix):
        service.record_payment(netflix, "me")

        with pytest.raises(DuplicateBillingPeriod):
            service.record_payment(netflix, "alice")

        assert len(ledger) == 1

    def test_consecutive_periods(self, service, netflix):
        _, advanced = service.record_payment(netflix, "me")
        payment, _ = service.record_payment(advanced, "alice")

        assert payment.billing_period_start == date(2024, 4, 15)

    def test_paused_subscription(self, service, netflix):
        with pytest.raises(InactiveSubscription):
            service.record_payment(service.pause(netflix), "me")

    def test_non_subscriber_payer(self, service, netflix):
        with pytest.raises(LedgerValidationError, match="not a subscriber"):
            service.record_payment(netflix, "carol")

    def test_personal_subscription_charges_payer(self, ledger, service):
        gym = service.create_subscription(
            "Gym", "30.00", start_date=TODAY, subscriber_ids=["me"], today=TODAY
        )

        payment, _ = service.record_payment(gym, "me")

        assert payment.owed_by("me") == Decimal("30.00")
        assert BalanceEngine(ledger).subscription_member_balances("me", gym) == []

    def test_payment_history_newest_first(self, service, netflix):
        first, advanced = service.record_payment(
            netflix, "me", paid_at=datetime(2024, 3, 15, tzinfo=UTC)
        )
        second, _ = service.record_payment(
            advanced, "alice", paid_at=datetime(2024, 4, 15, tzinfo=UTC)
        )

        assert service.payment_history(netflix.id) == [second, first]


class TestSubscriptionBalances:
    """Test balances scoped to a shared subscription."""

    def test_share_after_payment(self, ledger, service, netflix):
        service.record_payment(netflix, "me")
        engine = BalanceEngine(ledger)

        assert engine.compute_subscription_share("me", netflix.id) == Decimal("10.66")
        assert engine.compute_subscription_share("alice", netflix.id) == Decimal("-5.33")

        balances = engine.subscription_member_balances("me", netflix)
        assert [(b.party_id, b.balance) for b in balances] == [
            ("alice", Decimal("5.33")),
            ("bob", Decimal("5.33")),
        ]

    def test_tagged_settlement_reduces_share(self, ledger, service, netflix):
        service.record_payment(netflix, "me")
        SettlementReconciler(ledger).record_payment(
            "me", "alice", "5.33", subscription_id=netflix.id
        )
        engine = BalanceEngine(ledger)

        assert engine.compute_subscription_share("me", netflix.id) == Decimal("5.33")
        assert engine.compute_subscription_share("alice", netflix.id) == Decimal("0.00")

    def test_payment_follows_subscription_balance_when_i_owe(
        self, ledger, service, netflix
    ):
        """Inside Netflix I owe alice, outside it alice owes me more."""
        service.record_payment(netflix, "alice")
        ledger.create_expense(
            "100.00", {"me": "100.00"}, {"me": "50.00", "alice": "50.00"}, title="Dinner"
        )
        engine = BalanceEngine(ledger)
        assert engine.compute("me", "alice") == Decimal("44.67")

        settlement = SettlementReconciler(ledger).record_payment(
            "me", "alice", "5.33", subscription_id=netflix.id
        )

        assert (settlement.from_party, settlement.to_party) == ("me", "alice")
        assert engine.compute_subscription_share("me", netflix.id) == Decimal("0.00")
        balances = engine.subscription_member_balances("me", netflix)
        assert balances[0].party_id == "alice"
        assert balances[0].balance == Decimal("0.00")
        assert engine.compute("me", "alice") == Decimal("50.00")

    def test_payment_follows_subscription_balance_when_they_owe(
        self, ledger, service, netflix
    ):
        """Inside Netflix alice owes me, outside it I owe alice more."""
        service.record_payment(netflix, "me")
        ledger.create_expense(
            "100.00", {"alice": "100.00"}, {"me": "50.00", "alice": "50.00"}, title="Dinner"
        )
        engine = BalanceEngine(ledger)
        assert engine.compute("me", "alice") == Decimal("-44.67")

        settlement = SettlementReconciler(ledger).record_payment(
            "me", "alice", "5.33", subscription_id=netflix.id
        )

        assert (settlement.from_party, settlement.to_party) == ("alice", "me")
        balances = engine.subscription_member_balances("me", netflix)
        assert balances[0].balance == Decimal("0.00")
        assert engine.compute("me", "alice") == Decimal("-50.00")
