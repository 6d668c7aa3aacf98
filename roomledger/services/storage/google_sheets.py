"""
Ledger Storage on Google Sheets

DESIGN DECISION: A household ledger is small, and roommates like being
able to open the raw rows in a spreadsheet. Sheets has no transactions,
so multi-row units (an expense plus its splits) are written in a fixed
order and compensated: when a later write fails, the earlier rows are
put back before the error is raised.

Every query reads the whole worksheet and filters in Python.

One worksheet per table. Split rows reference their expense by id.
"""

import json
from collections.abc import Collection
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from roomledger.config import get_settings
from roomledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from roomledger.models.ledger import (
    Expense,
    ExpenseCategory,
    Group,
    Notification,
    NotificationType,
    Payment,
    PaymentStatus,
    Split,
)
from roomledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotificationStorageInterface,
    StorageConnectionError,
    StorageError,
)


GROUP_COLUMNS = ["id", "name", "code", "created_by", "created_at", "members_json"]

EXPENSE_COLUMNS = [
    "id",
    "group_id",
    "payer_id",
    "amount",
    "description",
    "category",
    "date",
    "notes",
    "receipt_url",
    "created_at",
]

SPLIT_COLUMNS = ["id", "expense_id", "user_id", "amount", "paid", "paid_at"]

PAYMENT_COLUMNS = [
    "id",
    "group_id",
    "sender_id",
    "recipient_id",
    "amount",
    "status",
    "date",
    "confirmed_at",
    "notes",
]

NOTIFICATION_COLUMNS = [
    "id",
    "user_id",
    "type",
    "title",
    "message",
    "read",
    "created_at",
    "data_json",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "group_id",
    "actor_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

logger = structlog.get_logger("roomledger.storage.google_sheets")

_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _parse_dt(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, creates missing worksheets with a header row,
    and retries individual API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @_retry
    def read_rows(self, title: str, columns: list[str]) -> list[tuple[int, list]]:
        """
        All data rows with their 1-based sheet row index.

        Row 1 is the header, so data starts at index 2. Empty rows are skipped.
        """
        values = self.get_worksheet(title, columns).get_all_values()
        return [
            (index, row)
            for index, row in enumerate(values[1:], start=2)
            if row and row[0]
        ]

    @_retry
    def append_rows(self, title: str, columns: list[str], rows: list[list]) -> None:
        if rows:
            self.get_worksheet(title, columns).append_rows(rows, value_input_option="RAW")

    @_retry
    def update_row(self, title: str, columns: list[str], index: int, row: list) -> None:
        sheet = self.get_worksheet(title, columns)
        for col_idx, value in enumerate(row, start=1):
            sheet.update_cell(index, col_idx, value)

    @_retry
    def update_cells(
        self,
        title: str,
        columns: list[str],
        index: int,
        values: dict[str, str],
    ) -> None:
        sheet = self.get_worksheet(title, columns)
        for column, value in values.items():
            sheet.update_cell(index, columns.index(column) + 1, value)

    def delete_rows(self, title: str, columns: list[str], indices: list[int]) -> None:
        """
        Delete rows bottom-up so earlier indices stay valid.

        Not retried: after a partial failure the remaining indices point at
        shifted rows, so the caller has to re-read before deleting again.
        """
        sheet = self.get_worksheet(title, columns)
        for index in sorted(indices, reverse=True):
            sheet.delete_rows(index)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Complex fields (group member list) are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = get_settings().google_sheets
        self._groups = settings.groups_sheet_name
        self._expenses = settings.expenses_sheet_name
        self._splits = settings.splits_sheet_name
        self._payments = settings.payments_sheet_name

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _group_to_row(self, group: Group) -> list:
        return [
            group.id,
            group.name,
            group.code or "",
            group.created_by or "",
            group.created_at.isoformat(),
            json.dumps(group.members),
        ]

    def _row_to_group(self, row: list) -> Group:
        return Group(
            id=_safe_get(row, 0),
            name=_safe_get(row, 1),
            code=_safe_get(row, 2) or None,
            created_by=_safe_get(row, 3) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 4)),
            members=json.loads(_safe_get(row, 5, "[]")),
        )

    def _expense_to_row(self, expense: Expense) -> list:
        return [
            expense.id,
            expense.group_id,
            expense.payer_id,
            str(expense.amount),
            expense.description,
            expense.category.value,
            expense.date.isoformat(),
            expense.notes or "",
            expense.receipt_url or "",
            expense.created_at.isoformat(),
        ]

    def _split_to_row(self, split: Split) -> list:
        return [
            split.id,
            split.expense_id,
            split.user_id,
            str(split.amount),
            str(split.paid),
            _iso(split.paid_at),
        ]

    def _row_to_split(self, row: list) -> Split:
        return Split(
            id=_safe_get(row, 0),
            expense_id=_safe_get(row, 1),
            user_id=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3, "0")),
            paid=_safe_get(row, 4).lower() == "true",
            paid_at=_parse_dt(_safe_get(row, 5)),
        )

    def _row_to_expense(self, row: list, splits: list[Split]) -> Expense:
        return Expense(
            id=_safe_get(row, 0),
            group_id=_safe_get(row, 1),
            payer_id=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3)),
            description=_safe_get(row, 4),
            category=ExpenseCategory(_safe_get(row, 5, ExpenseCategory.OTHER.value)),
            date=datetime.fromisoformat(_safe_get(row, 6)),
            notes=_safe_get(row, 7) or None,
            receipt_url=_safe_get(row, 8) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 9)),
            splits=splits,
        )

    def _payment_to_row(self, payment: Payment) -> list:
        return [
            payment.id,
            payment.group_id,
            payment.sender_id,
            payment.recipient_id,
            str(payment.amount),
            payment.status.value,
            payment.date.isoformat(),
            _iso(payment.confirmed_at),
            payment.notes or "",
        ]

    def _row_to_payment(self, row: list) -> Payment:
        return Payment(
            id=_safe_get(row, 0),
            group_id=_safe_get(row, 1),
            sender_id=_safe_get(row, 2),
            recipient_id=_safe_get(row, 3),
            amount=Decimal(_safe_get(row, 4)),
            status=PaymentStatus(_safe_get(row, 5)),
            date=datetime.fromisoformat(_safe_get(row, 6)),
            confirmed_at=_parse_dt(_safe_get(row, 7)),
            notes=_safe_get(row, 8) or None,
        )

    # -------------------------------------------------------------------------
    # Lookup helpers
    # -------------------------------------------------------------------------

    def _find_row(self, title: str, columns: list[str], row_id: str) -> Optional[tuple[int, list]]:
        for index, row in self._client.read_rows(title, columns):
            if row[0] == row_id:
                return index, row
        return None

    def _split_rows_by_expense(self) -> dict[str, list[tuple[int, list]]]:
        grouped: dict[str, list[tuple[int, list]]] = {}
        for index, row in self._client.read_rows(self._splits, SPLIT_COLUMNS):
            grouped.setdefault(_safe_get(row, 1), []).append((index, row))
        return grouped

    def _compensate(self, failure: str, error: Exception, undo: Callable[[], None]) -> None:
        """
        Undo the rows a failed multi-row write left behind.

        If the undo itself fails the sheet is inconsistent; that is logged
        and raised as a StorageError naming both failures.
        """
        try:
            undo()
        except Exception as undo_error:
            logger.error(
                "compensation_failed",
                failure=failure,
                error=str(error),
                undo_error=str(undo_error),
            )
            raise StorageError(
                f"{failure}: {error}; rollback failed: {undo_error}"
            ) from undo_error

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    async def find_group(self, group_id: str) -> Optional[Group]:
        try:
            found = self._find_row(self._groups, GROUP_COLUMNS, group_id)
            return self._row_to_group(found[1]) if found else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get group: {e}")

    async def insert_group(self, group: Group) -> Group:
        try:
            if self._find_row(self._groups, GROUP_COLUMNS, group.id):
                raise DuplicateError(f"Group already exists: {group.id}")
            self._client.append_rows(self._groups, GROUP_COLUMNS, [self._group_to_row(group)])
            return group
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save group: {e}")

    async def list_group_members(self, group_id: str) -> list[str]:
        group = await self.find_group(group_id)
        return list(group.members) if group else []

    async def remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        try:
            found = self._find_row(self._groups, GROUP_COLUMNS, group_id)
            if found is None:
                return None
            index, row = found
            group = self._row_to_group(row)
            group.members = [m for m in group.members if m != user_id]
            self._client.update_cells(
                self._groups, GROUP_COLUMNS, index,
                {"members_json": json.dumps(group.members)},
            )
            return group
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update group members: {e}")

    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group and its ledger.

        Children go first and the group row last, so a delete that fails
        halfway leaves the group visible and can simply be retried.
        """
        try:
            found = self._find_row(self._groups, GROUP_COLUMNS, group_id)
            if found is None:
                return False

            expense_rows = [
                (index, row)
                for index, row in self._client.read_rows(self._expenses, EXPENSE_COLUMNS)
                if _safe_get(row, 1) == group_id
            ]
            expense_ids = {row[0] for _, row in expense_rows}
            split_indices = [
                index
                for index, row in self._client.read_rows(self._splits, SPLIT_COLUMNS)
                if _safe_get(row, 1) in expense_ids
            ]
            payment_indices = [
                index
                for index, row in self._client.read_rows(self._payments, PAYMENT_COLUMNS)
                if _safe_get(row, 1) == group_id
            ]

            self._client.delete_rows(self._splits, SPLIT_COLUMNS, split_indices)
            self._client.delete_rows(
                self._expenses, EXPENSE_COLUMNS, [index for index, _ in expense_rows]
            )
            self._client.delete_rows(self._payments, PAYMENT_COLUMNS, payment_indices)
            self._client.delete_rows(self._groups, GROUP_COLUMNS, [found[0]])
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete group: {e}")

    # -------------------------------------------------------------------------
    # Expenses & splits
    # -------------------------------------------------------------------------

    async def find_expenses(self, group_id: str) -> list[Expense]:
        try:
            splits = self._split_rows_by_expense()
            expenses = []
            for _, row in self._client.read_rows(self._expenses, EXPENSE_COLUMNS):
                if _safe_get(row, 1) != group_id:
                    continue
                split_models = [self._row_to_split(r) for _, r in splits.get(row[0], [])]
                expenses.append(self._row_to_expense(row, split_models))
            return expenses
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

    async def find_expense(self, expense_id: str) -> Optional[Expense]:
        try:
            found = self._find_row(self._expenses, EXPENSE_COLUMNS, expense_id)
            if found is None:
                return None
            split_rows = self._split_rows_by_expense().get(expense_id, [])
            return self._row_to_expense(found[1], [self._row_to_split(r) for _, r in split_rows])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def insert_expense_with_splits(self, expense: Expense) -> Expense:
        """Write the expense row, then its splits; remove the expense row if the splits fail."""
        try:
            if self._find_row(self._expenses, EXPENSE_COLUMNS, expense.id):
                raise DuplicateError(f"Expense already exists: {expense.id}")
            self._client.append_rows(
                self._expenses, EXPENSE_COLUMNS, [self._expense_to_row(expense)]
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

        try:
            self._client.append_rows(
                self._splits, SPLIT_COLUMNS, [self._split_to_row(s) for s in expense.splits]
            )
        except Exception as e:
            self._compensate(
                "Failed to save expense splits", e, lambda: self._discard_expense_row(expense.id)
            )
            raise StorageError(f"Failed to save expense splits: {e}") from e

        return expense

    def _discard_expense_row(self, expense_id: str) -> None:
        found = self._find_row(self._expenses, EXPENSE_COLUMNS, expense_id)
        if found:
            self._client.delete_rows(self._expenses, EXPENSE_COLUMNS, [found[0]])

    async def update_expense_with_splits(self, expense: Expense) -> Expense:
        """
        Rewrite the expense row and swap its split rows.

        On failure the previous expense row and split rows are restored.
        """
        try:
            found = self._find_row(self._expenses, EXPENSE_COLUMNS, expense.id)
            if found is None:
                raise StorageError(f"Expense not found: {expense.id}")
            expense_index, old_row = found
            old_splits = self._split_rows_by_expense().get(expense.id, [])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

        try:
            self._client.update_row(
                self._expenses, EXPENSE_COLUMNS, expense_index, self._expense_to_row(expense)
            )
            self._client.delete_rows(
                self._splits, SPLIT_COLUMNS, [index for index, _ in old_splits]
            )
            self._client.append_rows(
                self._splits, SPLIT_COLUMNS, [self._split_to_row(s) for s in expense.splits]
            )
        except Exception as e:
            self._compensate(
                "Failed to update expense",
                e,
                lambda: self._restore_expense(
                    expense, expense_index, old_row, [row for _, row in old_splits]
                ),
            )
            raise StorageError(f"Failed to update expense: {e}") from e

        return expense

    def _restore_expense(
        self,
        expense: Expense,
        expense_index: int,
        old_row: list,
        old_split_rows: list[list],
    ) -> None:
        """Put back an expense row and its splits after a failed update."""
        self._client.update_row(self._expenses, EXPENSE_COLUMNS, expense_index, old_row)
        current = self._split_rows_by_expense().get(expense.id, [])
        self._client.delete_rows(self._splits, SPLIT_COLUMNS, [index for index, _ in current])
        self._client.append_rows(self._splits, SPLIT_COLUMNS, old_split_rows)

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            found = self._find_row(self._expenses, EXPENSE_COLUMNS, expense_id)
            if found is None:
                return False
            old_splits = self._split_rows_by_expense().get(expense_id, [])
            self._client.delete_rows(
                self._splits, SPLIT_COLUMNS, [index for index, _ in old_splits]
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

        try:
            found = self._find_row(self._expenses, EXPENSE_COLUMNS, expense_id)
            if found:
                self._client.delete_rows(self._expenses, EXPENSE_COLUMNS, [found[0]])
        except Exception as e:
            self._compensate(
                "Failed to delete expense",
                e,
                lambda: self._client.append_rows(
                    self._splits, SPLIT_COLUMNS, [row for _, row in old_splits]
                ),
            )
            raise StorageError(f"Failed to delete expense: {e}") from e

        return True

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    async def find_payments(self, group_id: str) -> list[Payment]:
        try:
            return [
                self._row_to_payment(row)
                for _, row in self._client.read_rows(self._payments, PAYMENT_COLUMNS)
                if _safe_get(row, 1) == group_id
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}")

    async def find_payment(self, payment_id: str) -> Optional[Payment]:
        try:
            found = self._find_row(self._payments, PAYMENT_COLUMNS, payment_id)
            return self._row_to_payment(found[1]) if found else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get payment: {e}")

    async def insert_payment(self, payment: Payment) -> Payment:
        try:
            self._client.append_rows(
                self._payments, PAYMENT_COLUMNS, [self._payment_to_row(payment)]
            )
            return payment
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save payment: {e}")

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        confirmed_at: Optional[datetime] = None,
        expected: Optional[Collection[PaymentStatus]] = None,
    ) -> Optional[Payment]:
        """
        Conditional status update.

        Sheets cannot compare-and-set, so the check and the write are two
        calls; the window between them is as small as we can make it.
        """
        try:
            found = self._find_row(self._payments, PAYMENT_COLUMNS, payment_id)
            if found is None:
                return None
            index, row = found
            payment = self._row_to_payment(row)
            if expected is not None and payment.status not in expected:
                return None

            values = {"status": status.value}
            if confirmed_at is not None:
                values["confirmed_at"] = confirmed_at.isoformat()
            self._client.update_cells(self._payments, PAYMENT_COLUMNS, index, values)

            update: dict = {"status": status}
            if confirmed_at is not None:
                update["confirmed_at"] = confirmed_at
            return payment.model_copy(update=update)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update payment: {e}")


class GoogleSheetsNotificationStorage(NotificationStorageInterface):
    """Notification inbox stored in its own worksheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = get_settings().google_sheets.notifications_sheet_name

    def _notification_to_row(self, notification: Notification) -> list:
        return [
            notification.id,
            notification.user_id,
            notification.type.value,
            notification.title,
            notification.message,
            str(notification.read),
            notification.created_at.isoformat(),
            json.dumps(notification.data) if notification.data else "",
        ]

    def _row_to_notification(self, row: list) -> Notification:
        return Notification(
            id=_safe_get(row, 0),
            user_id=_safe_get(row, 1),
            type=NotificationType(_safe_get(row, 2)),
            title=_safe_get(row, 3),
            message=_safe_get(row, 4),
            read=_safe_get(row, 5).lower() == "true",
            created_at=datetime.fromisoformat(_safe_get(row, 6)),
            data=json.loads(_safe_get(row, 7)) if _safe_get(row, 7) else {},
        )

    async def append_notification(self, notification: Notification) -> bool:
        try:
            self._client.append_rows(
                self._sheet, NOTIFICATION_COLUMNS, [self._notification_to_row(notification)]
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save notification: {e}")

    async def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        try:
            notifications = [
                self._row_to_notification(row)
                for _, row in self._client.read_rows(self._sheet, NOTIFICATION_COLUMNS)
                if _safe_get(row, 1) == user_id
            ]
            notifications.sort(key=lambda n: n.created_at, reverse=True)
            return notifications[:limit]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list notifications: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = get_settings().google_sheets.audit_sheet_name

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            group_id=_safe_get(row, 6) or None,
            actor_id=_safe_get(row, 7) or None,
            correlation_id=UUID(_safe_get(row, 8)) if _safe_get(row, 8) else None,
            description=_safe_get(row, 9),
            details=json.loads(_safe_get(row, 10)) if _safe_get(row, 10) else {},
            error_message=_safe_get(row, 11) or None,
        )

    def _read_events(self, predicate) -> list[AuditEvent]:
        events = []
        for _, row in self._client.read_rows(self._sheet, AUDIT_COLUMNS):
            if not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                # Hand-edited rows in the sheet don't break the log view
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._client.append_rows(self._sheet, AUDIT_COLUMNS, [event.to_sheets_row()])
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(lambda row: _safe_get(row, 8) == str(correlation_id))
            events.sort(key=lambda e: e.timestamp)
            return events
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(
                lambda row: _safe_get(row, 4) == entity_type and _safe_get(row, 5) == entity_id
            )
            events.sort(key=lambda e: e.timestamp)
            return events
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(lambda row: True)
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
