"""
Tests for the debt minimizer and the payment state machine.
"""

import pytest
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal

from roomledger.errors import AuthorizationError, ConflictError
from roomledger.ledger import workflow
from roomledger.ledger.settlement import is_group_settled, minimize_transfers
from roomledger.models.ledger import Balance, DebtLine, Payment, PaymentStatus, Session


def balances(**amounts):
    return [Balance(user_id=user, balance=Decimal(amount)) for user, amount in amounts.items()]


def apply(transfers, start):
    """Apply suggested transfers to a balance list."""
    remaining = {b.user_id: b.balance for b in start}
    for line in transfers:
        remaining[line.debtor_id] += line.amount
        remaining[line.creditor_id] -= line.amount
    return remaining


class TestMinimizeTransfers:
    """Tests for minimize_transfers."""

    def test_three_member_scenario(self):
        start = balances(A="41.66", B="-8.33", C="-33.33")
        transfers = minimize_transfers(start)

        assert transfers == [
            DebtLine(debtor_id="B", creditor_id="A", amount=Decimal("8.33")),
            DebtLine(debtor_id="C", creditor_id="A", amount=Decimal("33.33")),
        ]
        assert all(v == 0 for v in apply(transfers, start).values())

    def test_settled_group_needs_no_transfers(self):
        assert minimize_transfers(balances(A="0.00", B="0.00")) == []
        assert minimize_transfers([]) == []

    def test_noise_below_epsilon_ignored(self):
        assert minimize_transfers(balances(A="0.01", B="-0.01")) == []

    def test_conservation_per_member(self):
        """Each debtor pays exactly their debt, each creditor gets exactly their credit."""
        start = balances(A="50.00", B="30.00", C="-20.00", D="-35.00", E="-25.00")
        transfers = minimize_transfers(start)

        paid = defaultdict(Decimal)
        received = defaultdict(Decimal)
        for line in transfers:
            paid[line.debtor_id] += line.amount
            received[line.creditor_id] += line.amount

        assert dict(paid) == {"C": Decimal("20.00"), "D": Decimal("35.00"), "E": Decimal("25.00")}
        assert dict(received) == {"A": Decimal("50.00"), "B": Decimal("30.00")}
        assert len(transfers) <= 4
        assert all(v == 0 for v in apply(transfers, start).values())

    def test_consumes_input_order(self):
        """No sorting: lists are walked in the order they arrive."""
        start = balances(B="10.00", A="20.00", C="-30.00")
        transfers = minimize_transfers(start)
        assert [t.creditor_id for t in transfers] == ["B", "A"]

    def test_deterministic(self):
        start = balances(A="12.50", B="-7.25", C="-5.25")
        assert minimize_transfers(start) == minimize_transfers(start)

    def test_is_group_settled(self):
        assert is_group_settled(balances(A="0.01", B="-0.01"))
        assert not is_group_settled(balances(A="5.00", B="-5.00"))


def make_payment(status=PaymentStatus.PENDING):
    return Payment(
        id="pay_1",
        group_id="grp_1",
        sender_id="bob",
        recipient_id="alice",
        amount=Decimal("30.00"),
        status=status,
    )


class TestPaymentWorkflow:
    """Tests for the payment state machine."""

    @pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.COMPLETED])
    def test_confirm_from_awaiting_states(self, status):
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        confirmed = workflow.confirm(make_payment(status), now)
        assert confirmed.status == PaymentStatus.CONFIRMED
        assert confirmed.confirmed_at == now

    def test_confirm_does_not_mutate_input(self):
        original = make_payment()
        workflow.confirm(original)
        assert original.status == PaymentStatus.PENDING

    def test_reject_leaves_confirmed_at_empty(self):
        rejected = workflow.reject(make_payment())
        assert rejected.status == PaymentStatus.REJECTED
        assert rejected.confirmed_at is None

    @pytest.mark.parametrize("status", [PaymentStatus.CONFIRMED, PaymentStatus.REJECTED])
    def test_terminal_states_refuse_transitions(self, status):
        with pytest.raises(ConflictError, match="already"):
            workflow.confirm(make_payment(status))
        with pytest.raises(ConflictError):
            workflow.reject(make_payment(status))

    def test_cannot_move_back_to_pending(self):
        with pytest.raises(ConflictError, match="Cannot move"):
            workflow.transition(make_payment(), PaymentStatus.PENDING)

    def test_transition_table(self):
        assert workflow.can_transition(PaymentStatus.PENDING, PaymentStatus.CONFIRMED)
        assert not workflow.can_transition(PaymentStatus.CONFIRMED, PaymentStatus.REJECTED)

    def test_only_recipient_may_decide(self):
        payment = make_payment()
        workflow.assert_recipient(payment, Session(user_id="alice"))
        workflow.assert_recipient(payment, None)
        with pytest.raises(AuthorizationError):
            workflow.assert_recipient(payment, Session(user_id="bob"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
