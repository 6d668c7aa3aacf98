"""
Core Data Models for RoomLedger

These models define the schemas for all ledger data flowing through the
system. They are designed to:
1. Enforce the ledger invariants at construction time
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is always Decimal rounded to cents. Identifiers
are opaque strings; the core never interprets them.

Balance and DebtLine are derived values. They are never persisted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from roomledger.money import ZERO, round_currency


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Create an opaque identifier such as ``exp_3f2a...``."""
    return f"{prefix}_{uuid4().hex}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """Household expense categories."""
    RENT = "rent"
    UTILITIES = "utilities"
    GROCERIES = "groceries"
    INTERNET = "internet"
    ELECTRICITY = "electricity"
    WATER = "water"
    GAS = "gas"
    ENTERTAINMENT = "entertainment"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class PaymentStatus(str, Enum):
    """
    Lifecycle status of a settlement payment.

    PENDING and COMPLETED both mean "awaiting the recipient's confirmation".
    COMPLETED only appears on legacy rows; new payments start PENDING.
    CONFIRMED and REJECTED are terminal.
    """
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.CONFIRMED, PaymentStatus.REJECTED)

    @property
    def awaiting_confirmation(self) -> bool:
        return self in (PaymentStatus.PENDING, PaymentStatus.COMPLETED)

    @property
    def counts_toward_balance(self) -> bool:
        """Only these statuses move money in the balance computation."""
        return self in (PaymentStatus.COMPLETED, PaymentStatus.CONFIRMED)


class NotificationType(str, Enum):
    EXPENSE_ADDED = "EXPENSE_ADDED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    MEMBER_REMOVED = "MEMBER_REMOVED"


# =============================================================================
# GROUP & SESSION
# =============================================================================

class Group(BaseModel):
    """
    A household: a set of member ids plus identity.

    Membership alone never creates liability. Only split rows do.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: generate_id("grp"))
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(
        default=None,
        max_length=20,
        description="Invite code shared with roommates"
    )
    members: list[str] = Field(default_factory=list)
    created_by: Optional[str] = Field(
        default=None,
        description="Member id of the group owner (admin)"
    )
    created_at: datetime = Field(default_factory=utc_now)

    def has_member(self, user_id: str) -> bool:
        return user_id in self.members


class Session(BaseModel):
    """
    The acting user for a request.

    Passed explicitly to the flows that need to know who is acting,
    instead of a module-level "current user".
    """
    user_id: str = Field(..., min_length=1)
    group_id: Optional[str] = None


# =============================================================================
# EXPENSES & SPLITS
# =============================================================================

class Split(BaseModel):
    """
    One member's share of one expense.

    `paid` is bookkeeping only (True for the payer at creation time).
    Balance math ignores it and uses Payment records instead.
    """

    id: str = Field(default_factory=lambda: generate_id("split"))
    expense_id: str
    user_id: str
    amount: Decimal = Field(..., ge=0)
    paid: bool = False
    paid_at: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return round_currency(v)


class Expense(BaseModel):
    """
    A shared expense with its full split set.

    Invariants (checked on construction):
    - amount > 0
    - the payer has a split row
    - split amounts sum exactly to amount
    - at most one split per member
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: generate_id("exp"))
    group_id: str
    payer_id: str
    amount: Decimal = Field(..., gt=0, description="Total amount in currency units")
    description: str = Field(..., min_length=1, max_length=200)
    category: ExpenseCategory = ExpenseCategory.OTHER
    date: datetime = Field(default_factory=utc_now)
    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    splits: list[Split] = Field(default_factory=list)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return round_currency(v)

    @model_validator(mode="after")
    def validate_splits(self) -> "Expense":
        user_ids = [split.user_id for split in self.splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("Duplicate split rows for the same member")

        if self.payer_id not in user_ids:
            raise ValueError("Payer must be among the expense participants")

        for split in self.splits:
            if split.expense_id != self.id:
                raise ValueError(
                    f"Split {split.id} belongs to expense {split.expense_id}, not {self.id}"
                )

        total = sum((split.amount for split in self.splits), ZERO)
        if total != self.amount:
            raise ValueError(
                f"Split amounts ({total}) do not add up to the expense amount ({self.amount})"
            )

        return self

    @property
    def participants(self) -> list[str]:
        return [split.user_id for split in self.splits]

    def share_of(self, user_id: str) -> Decimal:
        """Amount attributed to a member, zero if they have no split row."""
        for split in self.splits:
            if split.user_id == user_id:
                return split.amount
        return ZERO


class ExpenseDraft(BaseModel):
    """User input for a new expense, before allocation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    group_id: str
    payer_id: str
    amount: Decimal
    description: str
    category: ExpenseCategory = ExpenseCategory.OTHER
    participants: list[str] = Field(default_factory=list)
    date: Optional[datetime] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


class ExpenseEdit(BaseModel):
    """
    User input for editing an expense.

    Amount and participants are always re-supplied (full re-split).
    Omitted descriptive fields keep their current value. The payer never
    changes on edit.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    amount: Decimal
    participants: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    category: Optional[ExpenseCategory] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


class ExpenseCursor(BaseModel):
    """Keyset pagination position: the last (date, id) of the previous page."""
    date: datetime
    id: str


class ExpensePage(BaseModel):
    items: list[Expense] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[ExpenseCursor] = None


# =============================================================================
# PAYMENTS
# =============================================================================

class Payment(BaseModel):
    """
    A peer-to-peer settlement payment.

    Affects balances only while its status counts toward balance
    (see PaymentStatus.counts_toward_balance).
    """

    id: str = Field(default_factory=lambda: generate_id("pay"))
    group_id: str
    sender_id: str = Field(..., description="Member paying off a debt")
    recipient_id: str = Field(..., description="Member receiving the money")
    amount: Decimal = Field(..., gt=0)
    status: PaymentStatus = PaymentStatus.PENDING
    date: datetime = Field(default_factory=utc_now)
    confirmed_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return round_currency(v)

    @model_validator(mode="after")
    def validate_parties(self) -> "Payment":
        if self.sender_id == self.recipient_id:
            raise ValueError("A payment needs two different members")
        return self


# =============================================================================
# DERIVED VALUES
# =============================================================================

class Balance(BaseModel):
    """
    A member's net position in a group.

    balance = (total_paid - total_share) + total_sent - total_received
    Positive: the group owes them. Negative: they owe the group.
    """

    user_id: str
    total_paid: Decimal = ZERO
    total_share: Decimal = ZERO
    total_sent: Decimal = ZERO
    total_received: Decimal = ZERO
    balance: Decimal = ZERO


class DebtLine(BaseModel):
    """A suggested transfer. Advisory only, never persisted."""

    debtor_id: str
    creditor_id: str
    amount: Decimal


class ConfirmationResult(BaseModel):
    """Outcome of confirming a payment."""

    payment: Payment
    group_settled: bool = Field(
        default=False,
        description="Every balance in the group is now within epsilon of zero"
    )


# =============================================================================
# STATS (personal and group dashboards)
# =============================================================================

class MonthlyAmount(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM")
    amount: Decimal = ZERO


class CategoryAmount(BaseModel):
    category: ExpenseCategory
    amount: Decimal = ZERO
    percentage: int = Field(default=0, ge=0, le=100)


class MemberAmount(BaseModel):
    user_id: str
    amount: Decimal = ZERO
    percentage: int = Field(default=0, ge=0, le=100)


class UserStats(BaseModel):
    """Personal dashboard numbers. Shares come from split rows only."""

    balance: Balance
    monthly_shares: list[MonthlyAmount] = Field(default_factory=list)
    category_breakdown: list[CategoryAmount] = Field(default_factory=list)


class GroupStats(BaseModel):
    total_expenses: Decimal = ZERO
    monthly_total: Decimal = ZERO
    highest_spender: Optional[MemberAmount] = None
    category_distribution: list[CategoryAmount] = Field(default_factory=list)
    monthly_trend: list[MonthlyAmount] = Field(default_factory=list)
    member_contributions: list[MemberAmount] = Field(default_factory=list)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(BaseModel):
    id: str = Field(default_factory=lambda: generate_id("ntf"))
    user_id: str
    type: NotificationType
    title: str
    message: str
    read: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_member')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
