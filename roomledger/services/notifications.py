"""
Notification Dispatch

DESIGN DECISION: Notifications are best-effort. A confirmed payment stays
confirmed even if the "your payment was confirmed" message never arrives.
Failures are logged (and audited when an audit logger is wired in), never
raised.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

import structlog

from roomledger.models.ledger import Notification, NotificationType
from roomledger.services.storage import NotificationStorageInterface

if TYPE_CHECKING:
    from roomledger.audit import AuditLogger


logger = structlog.get_logger("roomledger.notifications")


TITLES = {
    NotificationType.EXPENSE_ADDED: "New expense",
    NotificationType.PAYMENT_RECEIVED: "Payment received",
    NotificationType.PAYMENT_CONFIRMED: "Payment confirmed",
    NotificationType.MEMBER_REMOVED: "Removed from group",
}


class Notifier:
    """
    Builds notifications and hands them to the notification store.

    Without a store, notifications are only logged.
    """

    def __init__(
        self,
        storage: Optional[NotificationStorageInterface] = None,
        audit_logger: Optional["AuditLogger"] = None,
        currency_code: str = "EGP",
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._currency = currency_code

    def _money(self, amount: Decimal) -> str:
        return f"{amount:,.2f} {self._currency}"

    def build(
        self,
        user_id: str,
        notification_type: NotificationType,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> Notification:
        return Notification(
            user_id=user_id,
            type=notification_type,
            title=TITLES[notification_type],
            message=message,
            data=data or {},
        )

    async def notify(
        self,
        notification: Notification,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Deliver one notification.

        Returns:
            True if it was stored (or there is no store), False on failure
        """
        if self._storage is None:
            logger.info(
                "notification_skipped",
                user_id=notification.user_id,
                type=notification.type.value,
            )
            return True

        try:
            await self._storage.append_notification(notification)
            return True
        except Exception as e:
            logger.warning(
                "notification_failed",
                user_id=notification.user_id,
                type=notification.type.value,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_notification_failed(
                    user_id=notification.user_id,
                    notification_type=notification.type.value,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return False

    # -------------------------------------------------------------------------
    # Ledger events
    # -------------------------------------------------------------------------

    async def expense_added(
        self,
        recipients: list[str],
        payer_id: str,
        description: str,
        share_by_user: dict[str, Decimal],
        expense_id: str,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Tell every non-payer participant their share. Returns how many were delivered."""
        delivered = 0
        for user_id in recipients:
            if user_id == payer_id:
                continue
            notification = self.build(
                user_id,
                NotificationType.EXPENSE_ADDED,
                f"{payer_id} added '{description}'. Your share: "
                f"{self._money(share_by_user.get(user_id, Decimal('0')))}",
                {"expense_id": expense_id, "group_id": group_id},
            )
            if await self.notify(notification, correlation_id):
                delivered += 1
        return delivered

    async def payment_received(
        self,
        recipient_id: str,
        sender_id: str,
        amount: Decimal,
        payment_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        notification = self.build(
            recipient_id,
            NotificationType.PAYMENT_RECEIVED,
            f"{sender_id} says they paid you {self._money(amount)}. Please confirm.",
            {"payment_id": payment_id},
        )
        return await self.notify(notification, correlation_id)

    async def payment_confirmed(
        self,
        sender_id: str,
        recipient_id: str,
        amount: Decimal,
        payment_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        notification = self.build(
            sender_id,
            NotificationType.PAYMENT_CONFIRMED,
            f"{recipient_id} confirmed your payment of {self._money(amount)}",
            {"payment_id": payment_id},
        )
        return await self.notify(notification, correlation_id)

    async def member_removed(
        self,
        user_id: str,
        group_name: str,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        notification = self.build(
            user_id,
            NotificationType.MEMBER_REMOVED,
            f"You were removed from {group_name}",
            {"group_id": group_id},
        )
        return await self.notify(notification, correlation_id)
