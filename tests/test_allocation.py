"""
Tests for the expense split allocator.

Shares are whole cents; the leftover cents go to the first participants.
"""

import pytest
from decimal import Decimal

from roomledger.errors import InvalidInputError, ValidationError
from roomledger.ledger.allocation import (
    allocate_shares,
    ensure_participants,
    unique_participants,
)
from roomledger.money import is_settled, round_currency, to_cents


class TestAllocateShares:
    """Tests for allocate_shares."""

    def test_hundred_among_three(self):
        """100.00 among A, B, C gives the extra cent to A."""
        shares = allocate_shares(Decimal("100.00"), ["A", "B", "C"])
        assert shares == {
            "A": Decimal("33.34"),
            "B": Decimal("33.33"),
            "C": Decimal("33.33"),
        }
        assert sum(shares.values()) == Decimal("100.00")

    def test_even_split(self):
        shares = allocate_shares("10", ["a", "b", "c", "d"])
        assert set(shares.values()) == {Decimal("2.50")}

    def test_single_participant_gets_everything(self):
        assert allocate_shares(Decimal("42.42"), ["solo"]) == {"solo": Decimal("42.42")}

    def test_one_cent_among_three(self):
        shares = allocate_shares(Decimal("0.01"), ["a", "b", "c"])
        assert shares == {
            "a": Decimal("0.01"),
            "b": Decimal("0.00"),
            "c": Decimal("0.00"),
        }

    def test_remainder_follows_participant_order(self):
        shares = allocate_shares(Decimal("100.00"), ["C", "B", "A"])
        assert shares["C"] == Decimal("33.34")
        assert shares["A"] == Decimal("33.33")
        assert list(shares) == ["C", "B", "A"]

    def test_float_input_has_no_binary_artifacts(self):
        shares = allocate_shares(0.1, ["a", "b"])
        assert shares == {"a": Decimal("0.05"), "b": Decimal("0.05")}

    def test_amount_rounded_half_up_before_splitting(self):
        shares = allocate_shares(Decimal("10.005"), ["a"])
        assert shares == {"a": Decimal("10.01")}

    def test_duplicates_and_blanks_ignored(self):
        shares = allocate_shares(Decimal("9.00"), ["a", "b", "a", "", "c"])
        assert list(shares) == ["a", "b", "c"]
        assert set(shares.values()) == {Decimal("3.00")}

    @pytest.mark.parametrize("amount,count", [
        ("100.00", 3),
        ("0.05", 7),
        ("1234.57", 6),
        ("99.99", 11),
        ("7", 9),
    ])
    def test_shares_sum_exactly_and_differ_by_at_most_a_cent(self, amount, count):
        """Exactness and fairness for awkward amounts."""
        participants = [f"user_{i}" for i in range(count)]
        shares = allocate_shares(Decimal(amount), participants)

        assert sum(shares.values()) == round_currency(amount)
        cents = [to_cents(share) for share in shares.values()]
        assert max(cents) - min(cents) <= 1

    def test_deterministic(self):
        """Same amount and order always gives the same mapping."""
        participants = ["x", "y", "z"]
        first = allocate_shares(Decimal("50.00"), participants)
        second = allocate_shares(Decimal("50.00"), participants)
        assert first == second


class TestAllocateSharesErrors:
    """Invalid input raises InvalidInputError (a ValidationError)."""

    @pytest.mark.parametrize("amount", ["0", "-5", "-0.01"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(InvalidInputError, match="greater than zero"):
            allocate_shares(Decimal(amount), ["a"])

    def test_non_finite_amount(self):
        with pytest.raises(InvalidInputError):
            allocate_shares(Decimal("NaN"), ["a"])

    def test_no_participants(self):
        with pytest.raises(ValidationError, match="No participants"):
            allocate_shares(Decimal("10"), [])

    def test_only_blank_participants(self):
        with pytest.raises(InvalidInputError):
            allocate_shares(Decimal("10"), ["", ""])

    def test_amount_below_half_a_cent(self):
        with pytest.raises(InvalidInputError, match="zero cents"):
            allocate_shares(Decimal("0.004"), ["a"])


class TestParticipants:
    """Tests for participant list normalization."""

    def test_unique_participants_keeps_first_seen_order(self):
        assert unique_participants(["b", "a", "b", "", "c", "a"]) == ["b", "a", "c"]

    def test_payer_appended_when_missing(self):
        assert ensure_participants(["bob", "carol"], "alice") == ["bob", "carol", "alice"]

    def test_payer_position_kept_when_present(self):
        assert ensure_participants(["bob", "alice"], "alice") == ["bob", "alice"]

    def test_empty_list_becomes_payer_only(self):
        assert ensure_participants([], "alice") == ["alice"]


class TestMoney:
    """Tests for currency helpers."""

    def test_round_half_up(self):
        assert round_currency("2.675") == Decimal("2.68")
        assert round_currency("-2.675") == Decimal("-2.68")

    def test_is_settled_within_epsilon(self):
        assert is_settled(Decimal("0.01"))
        assert is_settled(Decimal("-0.01"))
        assert not is_settled(Decimal("0.02"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
