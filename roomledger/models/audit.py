"""
Audit Models for RoomLedger

An AuditEvent records one ledger mutation, a blocked membership change,
or a side effect that failed (a notification, the settled check).

DESIGN DECISION: The audit trail is append-only. Events are never edited
or removed, not even when the group they describe is deleted.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from roomledger.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Values double as the event_type column of the audit sheet."""
    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Settlement workflow
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_REJECTED = "payment_rejected"
    GROUP_SETTLED = "group_settled"

    # Membership
    MEMBER_LEFT = "member_left"
    MEMBER_REMOVED = "member_removed"
    GROUP_DELETED = "group_deleted"
    MEMBERSHIP_BLOCKED = "membership_blocked"

    # System events
    NOTIFICATION_FAILED = "notification_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One row of the audit trail."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="UTC time the event was recorded"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Subject
    entity_type: Optional[str] = Field(
        default=None,
        description="'expense', 'payment', 'group' or 'notification'"
    )
    entity_id: Optional[str] = None
    group_id: Optional[str] = Field(
        default=None,
        description="Group the entity belongs to"
    )
    actor_id: Optional[str] = Field(
        default=None,
        description="Member who triggered the event, if known"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by every event one member action causes"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured payload, stored as JSON in the sheet"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Keyword arguments for a structlog call."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "group_id": self.group_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Cells for one audit sheet row, in this order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         group_id, actor_id, correlation_id, description, details_json,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.group_id or "",
            self.actor_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    One factory per event type. Each fills in the subject, severity and
    description so call sites only pass ledger facts.
    """

    @staticmethod
    def expense_created(
        expense_id: str,
        group_id: str,
        payer_id: str,
        amount: Decimal,
        participants: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            group_id=group_id,
            actor_id=payer_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} split among {len(participants)} members",
            details={
                "amount": str(amount),
                "participants": participants,
            },
        )

    @staticmethod
    def expense_updated(
        expense_id: str,
        group_id: str,
        old_amount: Decimal,
        new_amount: Decimal,
        participants: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense re-split: {old_amount} -> {new_amount}",
            details={
                "old_amount": str(old_amount),
                "new_amount": str(new_amount),
                "participants": participants,
            },
        )

    @staticmethod
    def expense_deleted(
        expense_id: str,
        group_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} deleted",
            details={"amount": str(amount)},
        )

    @staticmethod
    def payment_initiated(
        payment_id: str,
        group_id: str,
        sender_id: str,
        recipient_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_INITIATED,
            entity_type="payment",
            entity_id=payment_id,
            group_id=group_id,
            actor_id=sender_id,
            correlation_id=correlation_id,
            description=f"Payment of {amount} awaiting confirmation",
            details={
                "sender_id": sender_id,
                "recipient_id": recipient_id,
                "amount": str(amount),
            },
        )

    @staticmethod
    def payment_confirmed(
        payment_id: str,
        group_id: str,
        recipient_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_CONFIRMED,
            entity_type="payment",
            entity_id=payment_id,
            group_id=group_id,
            actor_id=recipient_id,
            correlation_id=correlation_id,
            description=f"Recipient confirmed payment of {amount}",
            details={"amount": str(amount)},
        )

    @staticmethod
    def payment_rejected(
        payment_id: str,
        group_id: str,
        recipient_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_REJECTED,
            entity_type="payment",
            entity_id=payment_id,
            group_id=group_id,
            actor_id=recipient_id,
            correlation_id=correlation_id,
            description="Recipient rejected payment",
        )

    @staticmethod
    def group_settled(
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_SETTLED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="All balances in the group are settled",
        )

    @staticmethod
    def membership_changed(
        event_type: AuditEventType,
        group_id: str,
        user_id: str,
        actor_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Member left / member removed / group deleted."""
        descriptions = {
            AuditEventType.MEMBER_LEFT: f"Member {user_id} left the group",
            AuditEventType.MEMBER_REMOVED: f"Member {user_id} was removed",
            AuditEventType.GROUP_DELETED: "Group deleted",
        }
        return AuditEvent(
            event_type=event_type,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            actor_id=actor_id or user_id,
            correlation_id=correlation_id,
            description=descriptions.get(event_type, event_type.value),
            details={"user_id": user_id},
        )

    @staticmethod
    def membership_blocked(
        group_id: str,
        user_id: str,
        balance: Decimal,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBERSHIP_BLOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"{operation} blocked: {user_id} has outstanding balance {balance}",
            details={
                "user_id": user_id,
                "balance": str(balance),
                "operation": operation,
            },
        )

    @staticmethod
    def notification_failed(
        user_id: str,
        notification_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="notification",
            correlation_id=correlation_id,
            description=f"Could not notify {user_id} ({notification_type})",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
