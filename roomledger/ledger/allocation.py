"""
Expense Split Allocator

Partitions an expense total into per-member shares in whole cents.

ALGORITHM:
1. Convert the total to integer cents (round half-up)
2. base = cents // n, remainder = cents - base * n
3. The first `remainder` participants (in the order given) get base + 1
   cents, the rest get base

GUARANTEES:
- Shares sum to the total exactly, to the cent
- No two shares differ by more than one cent
- Same amount + same participant order = same mapping (edits are idempotent)
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from roomledger.errors import InvalidInputError
from roomledger.money import Amount, from_cents, to_cents, to_decimal


def unique_participants(participants: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for user_id in participants:
        if user_id:
            seen.setdefault(user_id, None)
    return list(seen)


def ensure_participants(participants: Iterable[str], payer_id: str) -> list[str]:
    """
    Normalize an expense's participant list.

    The payer is always a participant; if omitted they are appended last,
    so an explicit ordering supplied by the caller keeps its remainder
    tie-break.
    """
    ordered = unique_participants(participants)
    if payer_id not in ordered:
        ordered.append(payer_id)
    return ordered


def allocate_shares(
    total_amount: Amount,
    participants: Sequence[str],
) -> dict[str, Decimal]:
    """
    Split `total_amount` among `participants`.

    Args:
        total_amount: Positive currency amount
        participants: Ordered member ids; duplicates are ignored

    Returns:
        Mapping of member id to share, in participant order

    Raises:
        InvalidInputError: Non-positive amount or no participants
    """
    amount = to_decimal(total_amount)
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError("Expense amount must be greater than zero")

    ordered = unique_participants(participants)
    if not ordered:
        raise InvalidInputError("No participants for expense")

    cents = to_cents(amount)
    if cents <= 0:
        raise InvalidInputError("Expense amount rounds to zero cents")

    base, remainder = divmod(cents, len(ordered))

    shares: dict[str, Decimal] = {}
    for index, user_id in enumerate(ordered):
        share = base + 1 if index < remainder else base
        shares[user_id] = from_cents(share)

    return shares

