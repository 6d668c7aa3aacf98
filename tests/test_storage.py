"""
Tests for the storage backends.

The Google Sheets backend runs against an in-process fake of the
worksheet client; no network calls are made.
"""

import asyncio
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from roomledger.config import get_settings
from roomledger.models.audit import AuditEventBuilder
from roomledger.models.ledger import (
    Expense,
    Group,
    Notification,
    NotificationType,
    Payment,
    PaymentStatus,
    Split,
)
from roomledger.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsNotificationStorage,
    InMemoryLedgerStorage,
    StorageError,
)


def run(coro):
    return asyncio.run(coro)


def make_expense(amount="30.00", shares=None, expense_id="exp_1"):
    shares = shares or {"alice": "15.00", "bob": "15.00"}
    return Expense(
        id=expense_id,
        group_id="grp_1",
        payer_id="alice",
        amount=Decimal(amount),
        description="Internet",
        date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        splits=[
            Split(expense_id=expense_id, user_id=user, amount=Decimal(share))
            for user, share in shares.items()
        ],
    )


class FlakyMemoryStorage(InMemoryLedgerStorage):
    """Fails the split-row step of a unit of work on demand."""

    def __init__(self):
        super().__init__()
        self.fail_splits = False

    async def _write_split_rows(self, expense_id, splits):
        if self.fail_splits:
            raise StorageError("split table unavailable")
        await super()._write_split_rows(expense_id, splits)


class TestInMemoryLedgerStorage:
    """Tests for the in-memory backend."""

    def test_expense_round_trip(self):
        storage = InMemoryLedgerStorage()
        run(storage.insert_expense_with_splits(make_expense()))

        loaded = run(storage.find_expense("exp_1"))
        assert loaded.amount == Decimal("30.00")
        assert {s.user_id for s in loaded.splits} == {"alice", "bob"}
        assert [e.id for e in run(storage.find_expenses("grp_1"))] == ["exp_1"]

    def test_returned_models_are_copies(self):
        storage = InMemoryLedgerStorage()
        run(storage.insert_expense_with_splits(make_expense()))
        loaded = run(storage.find_expense("exp_1"))
        loaded.splits.clear()
        assert len(run(storage.find_expense("exp_1")).splits) == 2

    def test_duplicate_insert(self):
        storage = InMemoryLedgerStorage()
        run(storage.insert_expense_with_splits(make_expense()))
        with pytest.raises(DuplicateError):
            run(storage.insert_expense_with_splits(make_expense()))

    def test_failed_insert_leaves_nothing(self):
        storage = FlakyMemoryStorage()
        storage.fail_splits = True
        with pytest.raises(StorageError):
            run(storage.insert_expense_with_splits(make_expense()))
        assert run(storage.find_expense("exp_1")) is None

    def test_failed_update_keeps_old_expense_and_splits(self):
        """Expense row and split rows change together or not at all."""
        storage = FlakyMemoryStorage()
        run(storage.insert_expense_with_splits(make_expense()))

        storage.fail_splits = True
        edited = make_expense(amount="40.00", shares={"alice": "20.00", "bob": "20.00"})
        with pytest.raises(StorageError):
            run(storage.update_expense_with_splits(edited))

        loaded = run(storage.find_expense("exp_1"))
        assert loaded.amount == Decimal("30.00")
        assert sorted(s.amount for s in loaded.splits) == [Decimal("15.00"), Decimal("15.00")]

    def test_update_missing_expense(self):
        with pytest.raises(StorageError):
            run(InMemoryLedgerStorage().update_expense_with_splits(make_expense()))

    def test_conditional_status_update(self):
        storage = InMemoryLedgerStorage()
        payment = Payment(
            id="pay_1", group_id="grp_1", sender_id="bob", recipient_id="alice",
            amount=Decimal("10"),
        )
        run(storage.insert_payment(payment))

        awaiting = {PaymentStatus.PENDING, PaymentStatus.COMPLETED}
        first = run(storage.update_payment_status("pay_1", PaymentStatus.CONFIRMED, expected=awaiting))
        second = run(storage.update_payment_status("pay_1", PaymentStatus.REJECTED, expected=awaiting))

        assert first.status == PaymentStatus.CONFIRMED
        assert second is None
        assert run(storage.find_payment("pay_1")).status == PaymentStatus.CONFIRMED
        assert run(storage.update_payment_status("missing", PaymentStatus.CONFIRMED)) is None

    def test_delete_group_cascades(self):
        storage = InMemoryLedgerStorage()
        run(storage.insert_group(Group(id="grp_1", name="Flat", members=["alice", "bob"])))
        run(storage.insert_expense_with_splits(make_expense()))
        run(storage.insert_payment(Payment(
            group_id="grp_1", sender_id="bob", recipient_id="alice", amount=Decimal("5"),
        )))

        assert run(storage.delete_group("grp_1"))
        assert run(storage.find_group("grp_1")) is None
        assert run(storage.find_expenses("grp_1")) == []
        assert run(storage.find_payments("grp_1")) == []
        assert not run(storage.delete_group("grp_1"))

    def test_remove_group_member_keeps_history(self):
        storage = InMemoryLedgerStorage()
        run(storage.insert_group(Group(id="grp_1", name="Flat", members=["alice", "bob"])))
        run(storage.insert_expense_with_splits(make_expense()))

        group = run(storage.remove_group_member("grp_1", "bob"))
        assert group.members == ["alice"]
        assert run(storage.list_group_members("grp_1")) == ["alice"]
        assert run(storage.find_expense("exp_1")).share_of("bob") == Decimal("15.00")


class FakeSheetsClient(GoogleSheetsClient):
    """Worksheets as lists of string rows, with failure injection.

    Each (operation, title) pair in failures makes the next matching call fail once.
    """

    def __init__(self):
        self.tables: dict[str, list[list[str]]] = {}
        self.failures: list[tuple[str, str]] = []

    def _table(self, title):
        return self.tables.setdefault(title, [])

    def _maybe_fail(self, operation, title):
        if (operation, title) in self.failures:
            self.failures.remove((operation, title))
            raise RuntimeError("Sheets API unavailable")

    def read_rows(self, title, columns):
        self._maybe_fail("read", title)
        return [
            (index, list(row))
            for index, row in enumerate(self._table(title), start=2)
            if row and row[0]
        ]

    def append_rows(self, title, columns, rows):
        self._maybe_fail("append", title)
        self._table(title).extend([str(value) for value in row] for row in rows)

    def update_row(self, title, columns, index, row):
        self._maybe_fail("update", title)
        self._table(title)[index - 2] = [str(value) for value in row]

    def update_cells(self, title, columns, index, values):
        self._maybe_fail("update", title)
        for column, value in values.items():
            self._table(title)[index - 2][columns.index(column)] = str(value)

    def delete_rows(self, title, columns, indices):
        self._maybe_fail("delete", title)
        for index in sorted(indices, reverse=True):
            del self._table(title)[index - 2]


@pytest.fixture
def sheets_env(monkeypatch, tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}")
    monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
    monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sheets(sheets_env):
    client = FakeSheetsClient()
    return client, GoogleSheetsLedgerStorage(client)


class TestGoogleSheetsLedgerStorage:
    """Tests for the Google Sheets backend row mapping and compensation."""

    def test_expense_round_trip(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))

        loaded = run(storage.find_expense("exp_1"))
        assert loaded.amount == Decimal("30.00")
        assert loaded.date == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert len(client.tables["ExpenseSplits"]) == 2

    def test_failed_split_write_removes_expense_row(self, sheets):
        client, storage = sheets
        client.failures.append(("append", "ExpenseSplits"))

        with pytest.raises(StorageError):
            run(storage.insert_expense_with_splits(make_expense()))

        assert client.tables["Expenses"] == []
        assert run(storage.find_expense("exp_1")) is None

    def test_failed_update_restores_previous_rows(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))

        client.failures.append(("append", "ExpenseSplits"))
        edited = make_expense(amount="40.00", shares={"alice": "20.00", "bob": "20.00"})
        with pytest.raises(StorageError):
            run(storage.update_expense_with_splits(edited))

        loaded = run(storage.find_expense("exp_1"))
        assert loaded.amount == Decimal("30.00")
        assert sorted(s.amount for s in loaded.splits) == [Decimal("15.00"), Decimal("15.00")]

    def test_update_replaces_splits(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))
        edited = make_expense(amount="40.00", shares={"alice": "40.00"})
        run(storage.update_expense_with_splits(edited))

        loaded = run(storage.find_expense("exp_1"))
        assert loaded.amount == Decimal("40.00")
        assert [s.user_id for s in loaded.splits] == ["alice"]
        assert len(client.tables["ExpenseSplits"]) == 1

    def test_group_members_json(self, sheets):
        _, storage = sheets
        run(storage.insert_group(Group(id="grp_1", name="Flat", members=["alice", "bob"])))
        with pytest.raises(DuplicateError):
            run(storage.insert_group(Group(id="grp_1", name="Flat")))

        group = run(storage.remove_group_member("grp_1", "bob"))
        assert group.members == ["alice"]
        assert run(storage.list_group_members("grp_1")) == ["alice"]

    def test_conditional_status_update(self, sheets):
        _, storage = sheets
        run(storage.insert_payment(Payment(
            id="pay_1", group_id="grp_1", sender_id="bob", recipient_id="alice",
            amount=Decimal("12.50"),
        )))
        now = datetime(2026, 3, 2, tzinfo=timezone.utc)

        confirmed = run(storage.update_payment_status(
            "pay_1", PaymentStatus.CONFIRMED, now, expected={PaymentStatus.PENDING},
        ))
        assert confirmed.confirmed_at == now
        assert run(storage.update_payment_status(
            "pay_1", PaymentStatus.REJECTED, expected={PaymentStatus.PENDING},
        )) is None

        loaded = run(storage.find_payment("pay_1"))
        assert loaded.status == PaymentStatus.CONFIRMED
        assert loaded.confirmed_at == now
        assert loaded.amount == Decimal("12.50")

    def test_backend_failure_wrapped(self, sheets):
        client, storage = sheets
        client.failures.append(("append", "Payments"))
        with pytest.raises(StorageError, match="Failed to save payment"):
            run(storage.insert_payment(Payment(
                group_id="grp_1", sender_id="bob", recipient_id="alice", amount=Decimal("1"),
            )))

    def test_delete_group_cascades(self, sheets):
        client, storage = sheets
        run(storage.insert_group(Group(id="grp_1", name="Flat", members=["alice", "bob"])))
        run(storage.insert_expense_with_splits(make_expense()))
        run(storage.insert_expense_with_splits(make_expense(expense_id="exp_2")))

        assert run(storage.delete_group("grp_1"))
        assert client.tables["Expenses"] == []
        assert client.tables["ExpenseSplits"] == []
        assert run(storage.find_group("grp_1")) is None

    def test_failed_rollback_of_insert_is_storage_error(self, sheets):
        client, storage = sheets
        client.failures += [("append", "ExpenseSplits"), ("delete", "Expenses")]

        with pytest.raises(StorageError, match="rollback failed") as excinfo:
            run(storage.insert_expense_with_splits(make_expense()))

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert client.failures == []

    def test_failed_rollback_of_update_is_storage_error(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))
        client.failures += [("append", "ExpenseSplits"), ("append", "ExpenseSplits")]

        edited = make_expense(amount="40.00", shares={"alice": "20.00", "bob": "20.00"})
        with pytest.raises(StorageError, match="Failed to update expense.*rollback failed"):
            run(storage.update_expense_with_splits(edited))

    def test_failed_rollback_of_delete_is_storage_error(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))
        client.failures += [("delete", "Expenses"), ("append", "ExpenseSplits")]

        with pytest.raises(StorageError, match="Failed to delete expense.*rollback failed"):
            run(storage.delete_expense("exp_1"))

    def test_failed_delete_restores_splits(self, sheets):
        client, storage = sheets
        run(storage.insert_expense_with_splits(make_expense()))
        client.failures.append(("delete", "Expenses"))

        with pytest.raises(StorageError) as excinfo:
            run(storage.delete_expense("exp_1"))

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert len(run(storage.find_expense("exp_1")).splits) == 2


class FlakyWorksheet:
    """Stands in for a gspread worksheet; row deletes fail from the given call on."""

    def __init__(self, rows, fail_on_call):
        self.rows = rows
        self.fail_on_call = fail_on_call
        self.delete_calls = 0

    def delete_rows(self, index):
        self.delete_calls += 1
        if self.delete_calls >= self.fail_on_call:
            raise RuntimeError("Sheets API unavailable")
        del self.rows[index - 1]


class WorksheetClient(GoogleSheetsClient):
    """The real client primitives over a single in-process worksheet."""

    def __init__(self, worksheet):
        super().__init__()
        self.worksheet = worksheet

    def get_worksheet(self, title, columns):
        return self.worksheet


class TestGoogleSheetsClient:
    """Tests for the client primitives over a worksheet."""

    def test_delete_rows_bottom_up(self, sheets_env):
        worksheet = FlakyWorksheet(["header", "r2", "r3", "r4", "r5", "r6"], fail_on_call=99)
        WorksheetClient(worksheet).delete_rows("Expenses", [], [3, 5])

        assert worksheet.rows == ["header", "r2", "r4", "r6"]

    def test_partial_delete_is_not_repeated(self, sheets_env):
        worksheet = FlakyWorksheet(["header", "r2", "r3", "r4", "r5", "r6"], fail_on_call=2)

        with pytest.raises(RuntimeError):
            WorksheetClient(worksheet).delete_rows("Expenses", [], [3, 5])

        assert worksheet.delete_calls == 2
        assert worksheet.rows == ["header", "r2", "r3", "r4", "r6"]


class TestGoogleSheetsSideStores:
    """Notifications and audit events in their own worksheets."""

    def test_notifications_newest_first(self, sheets_env):
        storage = GoogleSheetsNotificationStorage(FakeSheetsClient())
        older = Notification(
            user_id="bob", type=NotificationType.EXPENSE_ADDED, title="t", message="first",
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        newer = Notification(
            user_id="bob", type=NotificationType.PAYMENT_CONFIRMED, title="t", message="second",
            created_at=datetime(2026, 2, 1, tzinfo=timezone.utc), data={"payment_id": "pay_1"},
        )
        run(storage.append_notification(older))
        run(storage.append_notification(newer))

        inbox = run(storage.list_notifications("bob"))
        assert [n.message for n in inbox] == ["second", "first"]
        assert inbox[0].data == {"payment_id": "pay_1"}
        assert run(storage.list_notifications("alice")) == []

    def test_audit_events_by_entity(self, sheets_env):
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        event = AuditEventBuilder.payment_confirmed("pay_1", "grp_1", "alice", Decimal("5"))
        run(storage.append_event(event))

        events = run(storage.get_events_by_entity("payment", "pay_1"))
        assert [e.event_id for e in events] == [event.event_id]
        assert events[0].details == {"amount": "5"}
        assert run(storage.get_recent_events(limit=10))[0].event_id == event.event_id


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
