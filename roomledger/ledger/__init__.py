"""Ledger engine package: allocation, balances, settlement and payment workflow."""

from roomledger.ledger.allocation import (
    allocate_shares,
    ensure_participants,
    unique_participants,
)
from roomledger.ledger.balances import (
    aggregate_balances,
    balances_for_members,
    compute_group_stats,
    compute_user_stats,
    find_balance,
)
from roomledger.ledger.settlement import is_group_settled, minimize_transfers
from roomledger.ledger.workflow import (
    TRANSITIONS,
    assert_recipient,
    can_transition,
    confirm,
    reject,
    transition,
)

__all__ = [
    "allocate_shares",
    "ensure_participants",
    "unique_participants",
    "aggregate_balances",
    "balances_for_members",
    "compute_group_stats",
    "compute_user_stats",
    "find_balance",
    "is_group_settled",
    "minimize_transfers",
    "TRANSITIONS",
    "assert_recipient",
    "can_transition",
    "confirm",
    "reject",
    "transition",
]
