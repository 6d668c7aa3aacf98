"""
Ledger Aggregator

Turns a group's expenses (with their split rows) and payments into
per-member balances.

CRITICAL: Shares come ONLY from persisted split rows. Nothing here looks
at group membership or assumes an equal split among current members.
A member who joined after an expense was recorded has no split row for
it and therefore contributes zero to it on both sides.

    balance(u) = (paid(u) - share(u)) + sent(u) - received(u)

Positive means the group owes u; negative means u owes the group.
Only payments whose status counts toward balance (COMPLETED, CONFIRMED)
are included.

Everything here is pure: the flows fetch a snapshot from storage and
hand it in.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from roomledger.models.ledger import (
    Balance,
    CategoryAmount,
    Expense,
    ExpenseCategory,
    GroupStats,
    MemberAmount,
    MonthlyAmount,
    Payment,
    UserStats,
)
from roomledger.money import ZERO, round_currency


def _accumulate(totals: dict[str, Decimal], key: str, delta: Decimal) -> None:
    totals[key] = round_currency(totals[key] + delta)


def aggregate_balances(
    expenses: Iterable[Expense],
    payments: Iterable[Payment],
) -> list[Balance]:
    """
    Compute every member's balance from a snapshot of the ledger.

    Only members that appear in at least one total are returned. Callers
    that need every group member should use `balances_for_members`.

    Returns:
        Balances sorted by balance descending (largest creditor first),
        ties broken by user id.
    """
    paid: dict[str, Decimal] = defaultdict(lambda: ZERO)
    share: dict[str, Decimal] = defaultdict(lambda: ZERO)
    sent: dict[str, Decimal] = defaultdict(lambda: ZERO)
    received: dict[str, Decimal] = defaultdict(lambda: ZERO)

    for expense in expenses:
        _accumulate(paid, expense.payer_id, expense.amount)
        for split in expense.splits:
            _accumulate(share, split.user_id, split.amount)

    for payment in payments:
        if not payment.status.counts_toward_balance:
            continue
        _accumulate(sent, payment.sender_id, payment.amount)
        _accumulate(received, payment.recipient_id, payment.amount)

    user_ids = set(paid) | set(share) | set(sent) | set(received)

    balances = []
    for user_id in user_ids:
        balances.append(Balance(
            user_id=user_id,
            total_paid=paid[user_id],
            total_share=share[user_id],
            total_sent=sent[user_id],
            total_received=received[user_id],
            balance=round_currency(
                (paid[user_id] - share[user_id]) + sent[user_id] - received[user_id]
            ),
        ))

    return sort_balances(balances)


def sort_balances(balances: Iterable[Balance]) -> list[Balance]:
    return sorted(balances, key=lambda b: (-b.balance, b.user_id))


def balances_for_members(
    balances: Sequence[Balance],
    members: Iterable[str],
) -> list[Balance]:
    """Union computed balances with a member list, defaulting missing members to zero."""
    by_user = {b.user_id: b for b in balances}
    for user_id in members:
        by_user.setdefault(user_id, Balance(user_id=user_id))
    return sort_balances(by_user.values())


def find_balance(balances: Iterable[Balance], user_id: str) -> Balance:
    """A member's balance, or an all-zero balance if they have no activity."""
    for balance in balances:
        if balance.user_id == user_id:
            return balance
    return Balance(user_id=user_id)


def _month_key(value: date) -> str:
    return value.strftime("%Y-%m")


def last_months(today: date, count: int) -> list[str]:
    """The `count` most recent YYYY-MM keys ending with today's month, oldest first."""
    year, month = today.year, today.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(keys))


def _percentage(part: Decimal, whole: Decimal) -> int:
    if whole <= 0:
        return 0
    return int((part * 100 / whole).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_user_stats(
    user_id: str,
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
    today: date,
    months: int = 6,
) -> UserStats:
    """
    Personal dashboard: balance, monthly share and per-category share.

    Uses the same share attribution as `aggregate_balances`: a member's
    share of an expense is their split row amount, or nothing.
    """
    balance = find_balance(aggregate_balances(expenses, payments), user_id)

    month_keys = last_months(today, months)
    monthly: dict[str, Decimal] = {key: ZERO for key in month_keys}
    by_category: dict[ExpenseCategory, Decimal] = defaultdict(lambda: ZERO)

    for expense in expenses:
        share = expense.share_of(user_id)
        if share == ZERO:
            continue
        key = _month_key(expense.date)
        if key in monthly:
            monthly[key] = round_currency(monthly[key] + share)
        by_category[expense.category] = round_currency(by_category[expense.category] + share)

    total_share = sum(by_category.values(), ZERO)

    return UserStats(
        balance=balance,
        monthly_shares=[MonthlyAmount(month=k, amount=v) for k, v in monthly.items()],
        category_breakdown=[
            CategoryAmount(
                category=category,
                amount=amount,
                percentage=_percentage(amount, total_share),
            )
            for category, amount in sorted(by_category.items(), key=lambda kv: -kv[1])
        ],
    )


def compute_group_stats(
    expenses: Sequence[Expense],
    members: Sequence[str],
    today: date,
    months: int = 6,
) -> GroupStats:
    """Group dashboard: totals, spenders, category mix and monthly trend."""
    total = sum((e.amount for e in expenses), ZERO)
    current_month = _month_key(today)

    month_keys = last_months(today, months)
    trend: dict[str, Decimal] = {key: ZERO for key in month_keys}
    spenders: dict[str, Decimal] = defaultdict(lambda: ZERO)
    categories: dict[ExpenseCategory, Decimal] = defaultdict(lambda: ZERO)

    for expense in expenses:
        key = _month_key(expense.date)
        if key in trend:
            trend[key] += expense.amount
        spenders[expense.payer_id] += expense.amount
        categories[expense.category] += expense.amount

    highest: Optional[MemberAmount] = None
    if spenders:
        user_id, amount = min(spenders.items(), key=lambda kv: (-kv[1], kv[0]))
        highest = MemberAmount(user_id=user_id, amount=amount, percentage=_percentage(amount, total))

    return GroupStats(
        total_expenses=total,
        monthly_total=trend.get(current_month, ZERO),
        highest_spender=highest,
        category_distribution=[
            CategoryAmount(category=c, amount=a, percentage=_percentage(a, total))
            for c, a in sorted(categories.items(), key=lambda kv: -kv[1])
        ],
        monthly_trend=[MonthlyAmount(month=k, amount=v) for k, v in trend.items()],
        member_contributions=[
            MemberAmount(
                user_id=user_id,
                amount=spenders.get(user_id, ZERO),
                percentage=_percentage(spenders.get(user_id, ZERO), total),
            )
            for user_id in members
        ],
    )
