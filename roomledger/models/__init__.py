"""
Data Models Package

This package contains all Pydantic models used in RoomLedger.
All data flowing through the system must conform to these schemas.
"""

from roomledger.models.ledger import (
    Balance,
    CategoryAmount,
    ConfirmationResult,
    DebtLine,
    Expense,
    ExpenseCategory,
    ExpenseCursor,
    ExpenseDraft,
    ExpenseEdit,
    ExpensePage,
    Group,
    GroupStats,
    MemberAmount,
    MonthlyAmount,
    Notification,
    NotificationType,
    Payment,
    PaymentStatus,
    Session,
    Split,
    UserStats,
    ValidationIssue,
    generate_id,
    utc_now,
)
from roomledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Balance",
    "CategoryAmount",
    "ConfirmationResult",
    "DebtLine",
    "Expense",
    "ExpenseCategory",
    "ExpenseCursor",
    "ExpenseDraft",
    "ExpenseEdit",
    "ExpensePage",
    "Group",
    "GroupStats",
    "MemberAmount",
    "MonthlyAmount",
    "Notification",
    "NotificationType",
    "Payment",
    "PaymentStatus",
    "Session",
    "Split",
    "UserStats",
    "ValidationIssue",
    "generate_id",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
