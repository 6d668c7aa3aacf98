"""
Settlement Workflow - payment state machine

    PENDING / COMPLETED ──confirm──> CONFIRMED   (terminal)
            │
            └─────────reject───────> REJECTED    (terminal)

CRITICAL: A payment is created PENDING and does not touch anyone's
balance until the recipient confirms it. One party can never change the
other's displayed balance unilaterally.

This module only decides transitions. Persisting them and sending
notifications is the flows' job.
"""

from datetime import datetime
from typing import Optional

from roomledger.errors import AuthorizationError, ConflictError
from roomledger.models.ledger import Payment, PaymentStatus, Session, utc_now


# Allowed transitions: current status -> statuses it may move to
TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.REJECTED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.REJECTED}),
    PaymentStatus.CONFIRMED: frozenset(),
    PaymentStatus.REJECTED: frozenset(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(
    payment: Payment,
    target: PaymentStatus,
    now: Optional[datetime] = None,
) -> Payment:
    """
    Return a copy of `payment` moved to `target`.

    Sets confirmed_at when confirming.

    Raises:
        ConflictError: The payment is already in a terminal state, or the
            transition is not allowed
    """
    if not can_transition(payment.status, target):
        if payment.status.is_terminal:
            raise ConflictError(
                f"Payment {payment.id} is already {payment.status.value.lower()}"
            )
        raise ConflictError(
            f"Cannot move payment {payment.id} from {payment.status.value} to {target.value}"
        )

    update: dict = {"status": target}
    if target == PaymentStatus.CONFIRMED:
        update["confirmed_at"] = now or utc_now()
    return payment.model_copy(update=update)


def confirm(payment: Payment, now: Optional[datetime] = None) -> Payment:
    return transition(payment, PaymentStatus.CONFIRMED, now)


def reject(payment: Payment) -> Payment:
    return transition(payment, PaymentStatus.REJECTED)


def assert_recipient(payment: Payment, session: Optional[Session]) -> None:
    """
    Only the recipient may confirm or reject.

    Access control normally lives in the storage layer; when a session is
    supplied the check is repeated here.
    """
    if session is not None and session.user_id != payment.recipient_id:
        raise AuthorizationError(
            "Only the recipient can confirm or reject this payment"
        )
