"""
Tests for the audit logger and the notifier.

Both are best-effort: a broken store is reported, never raised.
"""

import asyncio
import pytest
from decimal import Decimal

from roomledger.audit import AuditLogger, create_correlation_id
from roomledger.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from roomledger.models.ledger import NotificationType
from roomledger.services.notifications import Notifier
from roomledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryNotificationStorage,
    StorageError,
)


def run(coro):
    return asyncio.run(coro)


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("audit sheet unavailable")


class BrokenInbox(InMemoryNotificationStorage):
    async def append_notification(self, notification):
        raise StorageError("inbox unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_persists_event(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        run(audit_logger.log_payment_initiated(
            payment_id="pay_1",
            group_id="grp_1",
            sender_id="bob",
            recipient_id="alice",
            amount=Decimal("30.00"),
            correlation_id=correlation_id,
        ))

        events = run(storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [AuditEventType.PAYMENT_INITIATED]
        assert events[0].entity_id == "pay_1"

    def test_storage_failure_is_swallowed(self):
        audit_logger = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.group_settled("grp_1", create_correlation_id())
        assert run(audit_logger.log(event)) is False

    def test_without_storage_only_logs(self):
        event = AuditEventBuilder.group_settled("grp_1", create_correlation_id())
        assert run(AuditLogger().log(event)) is True

    def test_log_error(self):
        storage = InMemoryAuditStorage()
        run(AuditLogger(storage).log_error("StorageError", "read timeout", {"group_id": "grp_1"}))

        event = run(storage.get_recent_events())[0]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "read timeout"

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()


class TestNotifier:
    """Tests for Notifier."""

    def test_expense_added_skips_payer(self):
        inbox = InMemoryNotificationStorage()
        notifier = Notifier(inbox)

        delivered = run(notifier.expense_added(
            recipients=["alice", "bob", "carol"],
            payer_id="alice",
            description="Rent",
            share_by_user={"bob": Decimal("333.33"), "carol": Decimal("333.33")},
            expense_id="exp_1",
            group_id="grp_1",
        ))

        assert delivered == 2
        assert run(inbox.list_notifications("alice")) == []
        bob = run(inbox.list_notifications("bob"))[0]
        assert bob.type == NotificationType.EXPENSE_ADDED
        assert "333.33 EGP" in bob.message
        assert bob.data == {"expense_id": "exp_1", "group_id": "grp_1"}

    def test_currency_code(self):
        inbox = InMemoryNotificationStorage()
        notifier = Notifier(inbox, currency_code="USD")
        run(notifier.payment_received("alice", "bob", Decimal("1234.5"), "pay_1"))

        message = run(inbox.list_notifications("alice"))[0].message
        assert message == "bob says they paid you 1,234.50 USD. Please confirm."

    def test_failure_is_audited_not_raised(self):
        audit = InMemoryAuditStorage()
        notifier = Notifier(BrokenInbox(), AuditLogger(audit))

        assert run(notifier.member_removed("carol", "Flat 4B", "grp_1")) is False

        event = run(audit.get_recent_events())[0]
        assert event.event_type == AuditEventType.NOTIFICATION_FAILED
        assert "inbox unavailable" in event.error_message

    def test_without_storage(self):
        assert run(Notifier().payment_confirmed("bob", "alice", Decimal("5"), "pay_1")) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
