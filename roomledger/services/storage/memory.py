"""
In-Memory Storage Implementation

Used by the test suite and for local development without credentials.

Rows are kept the way a relational store keeps them: one table for
expense rows and one for split rows. Multi-row writes go through
`transaction()`, which snapshots every table and restores the snapshot
if the unit of work raises. A lock keeps units of work from interleaving.
"""

import asyncio
import copy
from collections.abc import Collection
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import UUID

from roomledger.models.audit import AuditEvent
from roomledger.models.ledger import (
    Expense,
    Group,
    Notification,
    Payment,
    PaymentStatus,
    Split,
)
from roomledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotificationStorageInterface,
    StorageError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage with snapshot/restore transactions."""

    def __init__(self):
        self._groups: dict[str, Group] = {}
        self._expense_rows: dict[str, dict] = {}
        self._split_rows: dict[str, list[Split]] = {}
        self._payments: dict[str, Payment] = {}
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Transaction scope
    # -------------------------------------------------------------------------

    def _snapshot(self) -> tuple:
        return copy.deepcopy(
            (self._groups, self._expense_rows, self._split_rows, self._payments)
        )

    def _restore(self, snapshot: tuple) -> None:
        self._groups, self._expense_rows, self._split_rows, self._payments = snapshot

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run a unit of work; restore every table if it raises."""
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise

    # Row-level writers. Separate methods so a unit of work is several
    # steps, the way it is against a real backend.

    async def _write_expense_row(self, expense: Expense) -> None:
        self._expense_rows[expense.id] = expense.model_dump(exclude={"splits"})

    async def _write_split_rows(self, expense_id: str, splits: list[Split]) -> None:
        self._split_rows[expense_id] = [s.model_copy(deep=True) for s in splits]

    def _assemble(self, expense_id: str) -> Expense:
        return Expense(
            **self._expense_rows[expense_id],
            splits=[s.model_copy(deep=True) for s in self._split_rows.get(expense_id, [])],
        )

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    async def find_group(self, group_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def insert_group(self, group: Group) -> Group:
        async with self.transaction():
            if group.id in self._groups:
                raise DuplicateError(f"Group already exists: {group.id}")
            self._groups[group.id] = group.model_copy(deep=True)
        return group

    async def list_group_members(self, group_id: str) -> list[str]:
        group = self._groups.get(group_id)
        return list(group.members) if group else []

    async def remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        async with self.transaction():
            group = self._groups.get(group_id)
            if group is None:
                return None
            group.members = [m for m in group.members if m != user_id]
        return group.model_copy(deep=True)

    async def delete_group(self, group_id: str) -> bool:
        async with self.transaction():
            if group_id not in self._groups:
                return False
            expense_ids = [
                eid for eid, row in self._expense_rows.items()
                if row["group_id"] == group_id
            ]
            for expense_id in expense_ids:
                self._split_rows.pop(expense_id, None)
                del self._expense_rows[expense_id]
            self._payments = {
                pid: p for pid, p in self._payments.items() if p.group_id != group_id
            }
            del self._groups[group_id]
        return True

    # -------------------------------------------------------------------------
    # Expenses & splits
    # -------------------------------------------------------------------------

    async def find_expenses(self, group_id: str) -> list[Expense]:
        return [
            self._assemble(expense_id)
            for expense_id, row in self._expense_rows.items()
            if row["group_id"] == group_id
        ]

    async def find_expense(self, expense_id: str) -> Optional[Expense]:
        if expense_id not in self._expense_rows:
            return None
        return self._assemble(expense_id)

    async def insert_expense_with_splits(self, expense: Expense) -> Expense:
        async with self.transaction():
            if expense.id in self._expense_rows:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            await self._write_expense_row(expense)
            await self._write_split_rows(expense.id, expense.splits)
        return self._assemble(expense.id)

    async def update_expense_with_splits(self, expense: Expense) -> Expense:
        async with self.transaction():
            if expense.id not in self._expense_rows:
                raise StorageError(f"Expense not found: {expense.id}")
            await self._write_expense_row(expense)
            self._split_rows.pop(expense.id, None)
            await self._write_split_rows(expense.id, expense.splits)
        return self._assemble(expense.id)

    async def delete_expense(self, expense_id: str) -> bool:
        async with self.transaction():
            if expense_id not in self._expense_rows:
                return False
            self._split_rows.pop(expense_id, None)
            del self._expense_rows[expense_id]
        return True

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    async def find_payments(self, group_id: str) -> list[Payment]:
        return [
            p.model_copy(deep=True)
            for p in self._payments.values()
            if p.group_id == group_id
        ]

    async def find_payment(self, payment_id: str) -> Optional[Payment]:
        payment = self._payments.get(payment_id)
        return payment.model_copy(deep=True) if payment else None

    async def insert_payment(self, payment: Payment) -> Payment:
        async with self.transaction():
            if payment.id in self._payments:
                raise DuplicateError(f"Payment already exists: {payment.id}")
            self._payments[payment.id] = payment.model_copy(deep=True)
        return payment

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        confirmed_at: Optional[datetime] = None,
        expected: Optional[Collection[PaymentStatus]] = None,
    ) -> Optional[Payment]:
        async with self.transaction():
            payment = self._payments.get(payment_id)
            if payment is None:
                return None
            if expected is not None and payment.status not in expected:
                return None
            update: dict = {"status": status}
            if confirmed_at is not None:
                update["confirmed_at"] = confirmed_at
            self._payments[payment_id] = payment.model_copy(update=update)
        return self._payments[payment_id].model_copy(deep=True)


class InMemoryNotificationStorage(NotificationStorageInterface):

    def __init__(self):
        self._notifications: list[Notification] = []

    async def append_notification(self, notification: Notification) -> bool:
        self._notifications.append(notification.model_copy(deep=True))
        return True

    async def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        mine = [n for n in self._notifications if n.user_id == user_id]
        mine.sort(key=lambda n: n.created_at, reverse=True)
        return mine[:limit]


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
