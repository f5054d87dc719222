"""Tests for split calculators."""

from decimal import Decimal

import pytest

from swiss_ledger.exceptions import IncompleteFact, InvalidAmount, SplitMismatch
from swiss_ledger.models import SplitMethod
from swiss_ledger.splits import (
    compute_splits,
    split_by_amount,
    split_by_percentage,
    split_by_shares,
    split_equally,
    split_with_adjustments,
)


def as_dict(splits) -> dict[str, Decimal]:
    return {split.party_id: split.amount for split in splits}


class TestEqualSplit:
    """Test equal splits and remainder distribution."""

    def test_even_split(self):
        splits = split_equally("100.00", ["me", "alice"])

        assert as_dict(splits) == {"me": Decimal("50.00"), "alice": Decimal("50.00")}

    def test_ten_oh_one_three_ways(self):
        """$10.01 three ways: earliest participants absorb the leftover cents."""
        splits = split_equally("10.01", ["me", "alice", "bob"])

        assert [s.amount for s in splits] == [
            Decimal("3.34"),
            Decimal("3.34"),
            Decimal("3.33"),
        ]
        assert sum(s.amount for s in splits) == Decimal("10.01")

    def test_order_follows_participants(self):
        """The extra cent follows participant order, not alphabetical order."""
        splits = split_equally("1.00", ["zoe", "adam", "mia"])

        assert as_dict(splits)["zoe"] == Decimal("0.34")

    def test_rejects_duplicate_participants(self):
        with pytest.raises(SplitMismatch, match="more than once"):
            split_equally("10.00", ["me", "me"])

    def test_rejects_blank_participant(self):
        with pytest.raises(IncompleteFact):
            split_equally("10.00", ["me", " "])

    def test_rejects_no_participants(self):
        with pytest.raises(SplitMismatch):
            split_equally("10.00", [])


class TestAmountSplit:
    """Test explicit-amount splits."""

    def test_amounts_that_add_up(self):
        splits = split_by_amount("100.00", {"me": "30.00", "alice": "70.00"})

        assert as_dict(splits) == {"me": Decimal("30.00"), "alice": Decimal("70.00")}

    def test_amounts_one_cent_short(self):
        with pytest.raises(SplitMismatch, match="expected 100.00"):
            split_by_amount("100.00", {"me": "30.00", "alice": "69.99"})

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            split_by_amount("10.00", {"me": "15.00", "alice": "-5.00"})


class TestPercentageSplit:
    """Test percentage splits."""

    def test_seventy_thirty(self):
        splits = split_by_percentage("100.00", {"me": 70, "alice": 30})

        assert as_dict(splits) == {"me": Decimal("70.00"), "alice": Decimal("30.00")}

    def test_thirds_sum_exactly(self):
        splits = split_by_percentage(
            "10.00", {"a": "33.33", "b": "33.33", "c": "33.34"}
        )

        assert sum(s.amount for s in splits) == Decimal("10.00")

    def test_percentages_must_total_hundred(self):
        with pytest.raises(SplitMismatch, match="expected 100"):
            split_by_percentage("10.00", {"me": 50, "alice": 40})

    def test_non_numeric_percentage(self):
        with pytest.raises(InvalidAmount):
            split_by_percentage("10.00", {"me": "half", "alice": 50})


class TestSharesSplit:
    """Test share-based splits."""

    def test_two_to_one(self):
        splits = split_by_shares("90.00", {"me": 2, "alice": 1})

        assert as_dict(splits) == {"me": Decimal("60.00"), "alice": Decimal("30.00")}

    def test_all_zero_falls_back_to_equal(self):
        splits = split_by_shares("10.00", {"me": 0, "alice": 0})

        assert as_dict(splits) == {"me": Decimal("5.00"), "alice": Decimal("5.00")}

    def test_fractional_shares_rejected(self):
        with pytest.raises(InvalidAmount, match="whole numbers"):
            split_by_shares("10.00", {"me": 1.5, "alice": 1})


class TestAdjustmentSplit:
    """Test equal splits with per-person adjustments."""

    def test_positive_adjustment(self):
        """$30 with +3 for me: base 9 each, I owe 12."""
        splits = split_with_adjustments("30.00", {"me": "3.00", "alice": 0, "bob": 0})

        assert as_dict(splits) == {
            "me": Decimal("12.00"),
            "alice": Decimal("9.00"),
            "bob": Decimal("9.00"),
        }

    def test_negative_adjustment(self):
        splits = split_with_adjustments("20.00", {"me": "-2.00", "alice": 0})

        assert as_dict(splits) == {"me": Decimal("9.00"), "alice": Decimal("11.00")}

    def test_adjustment_leaving_negative_share(self):
        with pytest.raises(InvalidAmount, match="negative share"):
            split_with_adjustments("10.00", {"me": "-12.00", "alice": 0})

    def test_adjustments_larger_than_total(self):
        with pytest.raises(InvalidAmount, match="exceed the total"):
            split_with_adjustments("10.00", {"me": "11.00", "alice": 0})


class TestComputeSplits:
    """Test the method dispatcher."""

    @pytest.mark.parametrize(
        "method,participants",
        [
            (SplitMethod.EQUAL, ["me", "alice", "bob"]),
            (SplitMethod.AMOUNT, {"me": "20.00", "alice": "13.33", "bob": "13.34"}),
            (SplitMethod.PERCENTAGE, {"me": 50, "alice": 25, "bob": 25}),
            (SplitMethod.SHARES, {"me": 3, "alice": 2, "bob": 1}),
            (SplitMethod.ADJUSTMENT, {"me": "1.00", "alice": "-0.50", "bob": 0}),
        ],
    )
    def test_every_method_sums_to_total(self, method, participants):
        splits = compute_splits(method, "46.67", participants)

        assert sum(s.amount for s in splits) == Decimal("46.67")
