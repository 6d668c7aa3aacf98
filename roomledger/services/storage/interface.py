"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the balance engine decoupled from storage implementation

The ledger itself (expenses, splits, payments) is the single source of
truth. The core never caches it across calls; every balance query reads
a fresh snapshot through this interface.

ATOMICITY: Methods documented as atomic must leave storage either fully
updated or untouched. A reader must never see an expense with stale or
missing splits.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime
from typing import Optional
from uuid import UUID

from roomledger.models.audit import AuditEvent
from roomledger.models.ledger import (
    Expense,
    Group,
    Notification,
    Payment,
    PaymentStatus,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. All of them raise StorageError on
    backend failure.
    """

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_group(self, group_id: str) -> Optional[Group]:
        """Retrieve a group, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def insert_group(self, group: Group) -> Group:
        """
        Persist a new group.

        Raises:
            DuplicateError: A group with this id already exists
        """
        pass

    @abstractmethod
    async def list_group_members(self, group_id: str) -> list[str]:
        """Current member ids of a group (empty if the group doesn't exist)."""
        pass

    @abstractmethod
    async def remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        """
        Drop a member from a group.

        Their expense, split and payment history is kept.

        Returns:
            The updated group, or None if the group doesn't exist
        """
        pass

    @abstractmethod
    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group with all its expenses, splits and payments.

        Returns:
            True if the group existed
        """
        pass

    # -------------------------------------------------------------------------
    # Expenses & splits
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_expenses(self, group_id: str) -> list[Expense]:
        """All expenses of a group, each with its full split set."""
        pass

    @abstractmethod
    async def find_expense(self, expense_id: str) -> Optional[Expense]:
        """One expense with its splits, or None."""
        pass

    @abstractmethod
    async def insert_expense_with_splits(self, expense: Expense) -> Expense:
        """
        Persist an expense and all of its split rows. Atomic.

        Raises:
            DuplicateError: The expense id already exists
        """
        pass

    @abstractmethod
    async def update_expense_with_splits(self, expense: Expense) -> Expense:
        """
        Overwrite an expense row and replace its split rows. Atomic.

        Old splits are removed and `expense.splits` written in their place
        as one unit.

        Raises:
            StorageError: The expense doesn't exist or the write failed
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        """
        Delete an expense and its splits. Atomic.

        Returns:
            True if the expense existed
        """
        pass

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_payments(self, group_id: str) -> list[Payment]:
        """All payments of a group, in any status."""
        pass

    @abstractmethod
    async def find_payment(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def insert_payment(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        confirmed_at: Optional[datetime] = None,
        expected: Optional[Collection[PaymentStatus]] = None,
    ) -> Optional[Payment]:
        """
        Set a payment's status (and confirmed_at).

        The row update is the only serialization point between racing
        confirmations, so the write is conditional.

        Args:
            payment_id: Payment to update
            status: New status
            confirmed_at: Set together with status when given
            expected: Only update if the current status is one of these

        Returns:
            The updated payment, or None if it doesn't exist or its
            current status was not in `expected`
        """
        pass


class NotificationStorageInterface(ABC):
    """Abstract interface for the per-user notification inbox."""

    @abstractmethod
    async def append_notification(self, notification: Notification) -> bool:
        pass

    @abstractmethod
    async def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        """A user's notifications, newest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """All events for one expense/payment/group, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
