"""
Audit Logger

DESIGN DECISION: Every change to the shared ledger leaves an audit event.
When roommates disagree about a balance, the trail shows which expense,
edit or payment moved it and who did it.

Writing the trail is best-effort. A broken audit sheet is reported in the
local log and never undoes the ledger write it describes. Events from one
member action share a correlation id.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from roomledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from roomledger.services.storage import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes ledger audit events.

    Each event goes to the structlog output at a level matching its
    severity, then to the audit store when one is configured.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("roomledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns:
            False if the audit store rejected the write, True otherwise
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_created(
        self,
        expense_id: str,
        group_id: str,
        payer_id: str,
        amount: Decimal,
        participants: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.expense_created(
            expense_id=expense_id,
            group_id=group_id,
            payer_id=payer_id,
            amount=amount,
            participants=participants,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_updated(
        self,
        expense_id: str,
        group_id: str,
        old_amount: Decimal,
        new_amount: Decimal,
        participants: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            group_id=group_id,
            old_amount=old_amount,
            new_amount=new_amount,
            participants=participants,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_deleted(
        self,
        expense_id: str,
        group_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            group_id=group_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_initiated(
        self,
        payment_id: str,
        group_id: str,
        sender_id: str,
        recipient_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a payment entering the awaiting-confirmation state."""
        event = AuditEventBuilder.payment_initiated(
            payment_id=payment_id,
            group_id=group_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_confirmed(
        self,
        payment_id: str,
        group_id: str,
        recipient_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.payment_confirmed(
            payment_id=payment_id,
            group_id=group_id,
            recipient_id=recipient_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_rejected(
        self,
        payment_id: str,
        group_id: str,
        recipient_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.payment_rejected(
            payment_id=payment_id,
            group_id=group_id,
            recipient_id=recipient_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_group_settled(
        self,
        group_id: str,
        correlation_id: UUID,
    ) -> None:
        """Log that every member's balance is back within epsilon of zero."""
        await self.log(AuditEventBuilder.group_settled(group_id, correlation_id))

    async def log_membership_changed(
        self,
        event_type: AuditEventType,
        group_id: str,
        user_id: str,
        actor_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.membership_changed(
            event_type=event_type,
            group_id=group_id,
            user_id=user_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_membership_blocked(
        self,
        group_id: str,
        user_id: str,
        balance: Decimal,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.membership_blocked(
            group_id=group_id,
            user_id=user_id,
            balance=balance,
            operation=operation,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_notification_failed(
        self,
        user_id: str,
        notification_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.notification_failed(
            user_id=user_id,
            notification_type=notification_type,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """One id per member action; every event the action causes carries it."""
    return uuid4()
