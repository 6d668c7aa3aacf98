"""
Debt Minimizer

Turns balances into a short list of suggested transfers that zero every
balance, using greedy two-pointer matching between debtors and creditors.

This is not a globally minimal transaction count, but it never emits more
than (debtors + creditors - 1) transfers, and it conserves money: each
debtor pays exactly what they owe and each creditor receives exactly what
they are owed.

The lists are consumed in the order the balances arrive (the aggregator
hands them over largest creditor first). Nothing is sorted here.
"""

from collections.abc import Iterable, Sequence

from roomledger.models.ledger import Balance, DebtLine
from roomledger.money import DEFAULT_EPSILON, Amount, is_settled, round_currency, to_decimal


def minimize_transfers(
    balances: Iterable[Balance],
    epsilon: Amount = DEFAULT_EPSILON,
) -> list[DebtLine]:
    """
    Suggest transfers that settle the group.

    Args:
        balances: Member balances; should sum to zero
        epsilon: Balances within epsilon of zero are treated as settled

    Returns:
        Transfers (debtor -> creditor). Empty if nobody owes anything.
    """
    eps = to_decimal(epsilon)

    debtors: list[list] = []
    creditors: list[list] = []
    for balance in balances:
        if balance.balance < -eps:
            debtors.append([balance.user_id, -balance.balance])
        elif balance.balance > eps:
            creditors.append([balance.user_id, balance.balance])

    transfers: list[DebtLine] = []
    d = c = 0
    while d < len(debtors) and c < len(creditors):
        debtor, creditor = debtors[d], creditors[c]
        amount = min(debtor[1], creditor[1])

        if amount > eps:
            transfers.append(DebtLine(
                debtor_id=debtor[0],
                creditor_id=creditor[0],
                amount=round_currency(amount),
            ))

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] <= eps:
            d += 1
        if creditor[1] <= eps:
            c += 1

    return transfers


def is_group_settled(
    balances: Sequence[Balance],
    epsilon: Amount = DEFAULT_EPSILON,
) -> bool:
    """True when every balance is within epsilon of zero."""
    return all(is_settled(b.balance, epsilon) for b in balances)
