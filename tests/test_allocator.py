"""Tests for the split allocator."""

import pytest
from decimal import Decimal

from splitbook.models import ShareInput, SplitMethod
from splitbook.splitting import SplitValidationError, allocate


def shares(*user_ids, **kwargs):
    return [ShareInput(user_id=uid, **kwargs) for uid in user_ids]


class TestEqualSplit:
    """Tests for the equally method."""

    def test_remainder_goes_to_last_participant(self):
        """100.00 among three is 33.33, 33.33, 33.34."""
        result = allocate(Decimal("100.00"), SplitMethod.EQUALLY, shares("a", "b", "c"))
        assert [p.amount_owed for p in result] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]
        assert sum(p.amount_owed for p in result) == Decimal("100.00")

    def test_last_in_input_order_absorbs_remainder(self):
        """Reordering participants moves the extra cent."""
        result = allocate(Decimal("100.00"), SplitMethod.EQUALLY, shares("c", "a", "b"))
        assert result[-1].user_id == "b"
        assert result[-1].amount_owed == Decimal("33.34")

    def test_even_split(self):
        """Test a split with no remainder."""
        result = allocate(Decimal("90"), SplitMethod.EQUALLY, shares("a", "b", "c"))
        assert {p.amount_owed for p in result} == {Decimal("30.00")}

    def test_single_participant_owes_everything(self):
        """Test the one-person split."""
        result = allocate(Decimal("12.34"), SplitMethod.EQUALLY, shares("a"))
        assert result[0].amount_owed == Decimal("12.34")

    def test_participants_start_unsettled(self):
        """Allocation never settles anyone."""
        result = allocate(Decimal("10"), SplitMethod.EQUALLY, shares("a", "b"))
        assert not any(p.is_settled for p in result)

    def test_float_total(self):
        """Float totals don't drift."""
        result = allocate(0.3, SplitMethod.EQUALLY, shares("a", "b"))
        assert [p.amount_owed for p in result] == [Decimal("0.15"), Decimal("0.15")]


class TestAmountSplit:
    """Tests for the byAmount method."""

    def test_amounts_that_reconcile(self):
        """Test a valid split by amount."""
        result = allocate(
            Decimal("100.00"),
            SplitMethod.BY_AMOUNT,
            [
                ShareInput(user_id="a", amount_owed="60.00"),
                ShareInput(user_id="b", amount_owed="40.00"),
            ],
        )
        assert [p.amount_owed for p in result] == [Decimal("60.00"), Decimal("40.00")]

    def test_short_sum_names_both_sums(self):
        """95.00 against 100.00 is rejected with both sums in the message."""
        with pytest.raises(SplitValidationError) as exc_info:
            allocate(
                Decimal("100.00"),
                SplitMethod.BY_AMOUNT,
                [
                    ShareInput(user_id="a", amount_owed="50.00"),
                    ShareInput(user_id="b", amount_owed="45.00"),
                ],
            )
        error = exc_info.value
        assert "95.00" in str(error)
        assert "100.00" in str(error)
        assert error.actual == Decimal("95.00")
        assert error.expected == Decimal("100.00")

    def test_sub_cent_difference_accepted(self):
        """Sums within one cent reconcile."""
        result = allocate(
            Decimal("100.00"),
            SplitMethod.BY_AMOUNT,
            [
                ShareInput(user_id="a", amount_owed="50.004"),
                ShareInput(user_id="b", amount_owed="50.00"),
            ],
        )
        assert len(result) == 2

    def test_missing_amount(self):
        """Every participant needs an amount."""
        with pytest.raises(SplitValidationError) as exc_info:
            allocate(
                Decimal("10"),
                SplitMethod.BY_AMOUNT,
                [ShareInput(user_id="a", amount_owed="10"), ShareInput(user_id="b")],
            )
        assert exc_info.value.user_id == "b"

    def test_negative_amount(self):
        """Test that negative shares are rejected."""
        with pytest.raises(SplitValidationError):
            allocate(
                Decimal("10"),
                SplitMethod.BY_AMOUNT,
                [
                    ShareInput(user_id="a", amount_owed="15"),
                    ShareInput(user_id="b", amount_owed="-5"),
                ],
            )


class TestPercentageSplit:
    """Tests for the byPercentage method."""

    def test_thirds_sum_to_total(self):
        """33.33/33.33/33.34 percent of 100.00 sums to 100.00."""
        result = allocate(
            Decimal("100.00"),
            SplitMethod.BY_PERCENTAGE,
            [
                ShareInput(user_id="a", percentage="33.33"),
                ShareInput(user_id="b", percentage="33.33"),
                ShareInput(user_id="c", percentage="33.34"),
            ],
        )
        assert [p.amount_owed for p in result] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]
        assert result[0].percentage == Decimal("33.33")

    def test_rounds_half_up_without_fix_up(self):
        """Each share is rounded on its own."""
        result = allocate(
            Decimal("10.00"),
            SplitMethod.BY_PERCENTAGE,
            [
                ShareInput(user_id="a", percentage="12.5"),
                ShareInput(user_id="b", percentage="87.5"),
            ],
        )
        assert [p.amount_owed for p in result] == [Decimal("1.25"), Decimal("8.75")]

    def test_percentages_must_total_100(self):
        """Test the percentage sum check."""
        with pytest.raises(SplitValidationError) as exc_info:
            allocate(
                Decimal("100"),
                SplitMethod.BY_PERCENTAGE,
                [
                    ShareInput(user_id="a", percentage="50"),
                    ShareInput(user_id="b", percentage="40"),
                ],
            )
        assert "90.00%" in str(exc_info.value)
        assert exc_info.value.expected == Decimal("100")

    def test_rounding_drift_is_rejected(self):
        """Rounded shares a full cent off the total fail reconciliation."""
        with pytest.raises(SplitValidationError) as exc_info:
            allocate(
                Decimal("0.03"),
                SplitMethod.BY_PERCENTAGE,
                [
                    ShareInput(user_id="a", percentage="50"),
                    ShareInput(user_id="b", percentage="50"),
                ],
            )
        assert exc_info.value.actual == Decimal("0.04")


class TestAllocatorErrors:
    """Tests for input rejected before allocation."""

    def test_zero_participants(self):
        """Test that an empty split is rejected."""
        with pytest.raises(SplitValidationError) as exc_info:
            allocate(Decimal("10"), SplitMethod.EQUALLY, [])
        assert exc_info.value.field == "participants"

    def test_duplicate_participants(self):
        """Test that a user can't appear twice."""
        with pytest.raises(SplitValidationError):
            allocate(Decimal("10"), SplitMethod.EQUALLY, shares("a", "a"))

    def test_non_positive_total(self):
        """Test that zero totals are rejected."""
        with pytest.raises(SplitValidationError):
            allocate(Decimal("0"), SplitMethod.EQUALLY, shares("a"))

    def test_is_a_value_error(self):
        """Callers can catch it as a ValueError."""
        with pytest.raises(ValueError):
            allocate(Decimal("10"), SplitMethod.EQUALLY, [])
