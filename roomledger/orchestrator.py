"""
Main Orchestrator for RoomLedger

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses (validate → allocate → write expense + splits → notify)
2. Balances (snapshot → aggregate → minimize → stats)
3. Settlement (initiate → confirm / reject → notify → settled check)
4. Group membership (leave / remove / delete behind the balance guard)

DESIGN DECISION: The orchestrator enforces the boundaries:
- A payment never moves a balance until its recipient confirms it
- Nobody leaves a group (or loses it) while money is still owed
- Every mutation is audited

The ledger engine under roomledger.ledger is pure. Everything that talks
to storage, notifications or the audit trail lives here.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from roomledger.audit import AuditLogger, create_correlation_id
from roomledger.config import get_settings
from roomledger.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OutstandingBalanceError,
    service_operation,
)
from roomledger.ledger import (
    aggregate_balances,
    allocate_shares,
    assert_recipient,
    balances_for_members,
    compute_group_stats,
    compute_user_stats,
    ensure_participants,
    find_balance,
    is_group_settled,
    minimize_transfers,
)
from roomledger.ledger import workflow
from roomledger.models.audit import AuditEventType
from roomledger.models.ledger import (
    Balance,
    ConfirmationResult,
    DebtLine,
    Expense,
    ExpenseCursor,
    ExpenseDraft,
    ExpenseEdit,
    ExpensePage,
    Group,
    GroupStats,
    Payment,
    PaymentStatus,
    Session,
    Split,
    UserStats,
    generate_id,
    utc_now,
)
from roomledger.money import Amount, is_settled, round_currency
from roomledger.services.notifications import Notifier
from roomledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsNotificationStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemoryNotificationStorage,
    LedgerStorageInterface,
    NotificationStorageInterface,
)
from roomledger.validation import LedgerValidator


logger = structlog.get_logger("roomledger.orchestrator")

AWAITING_CONFIRMATION = frozenset(s for s in PaymentStatus if s.awaiting_confirmation)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC so ledger dates stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def _require_group(storage: LedgerStorageInterface, group_id: str) -> Group:
    group = await storage.find_group(group_id)
    if group is None:
        raise NotFoundError(f"Group not found: {group_id}")
    return group


async def _load_balances(
    storage: LedgerStorageInterface,
    group_id: str,
) -> tuple[Group, list[Balance]]:
    """
    Fresh balances for a group, including zero rows for idle members.

    Expenses and payments are read separately, so a write landing between
    the two reads can show up in one and not the other. Every call re-reads.
    """
    group = await _require_group(storage, group_id)
    expenses = await storage.find_expenses(group_id)
    payments = await storage.find_payments(group_id)
    balances = balances_for_members(aggregate_balances(expenses, payments), group.members)
    return group, balances


class ExpenseFlow:
    """
    Orchestrates the expense lifecycle.

    Flow:
    1. Validate → amount, description, payer and participants
    2. Allocate → per-member shares in whole cents
    3. Save → expense row and split rows as one unit
    4. Notify → every participant except the payer (best-effort)

    The payer's own split is marked paid; they fronted the money.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = ledger_storage
        self._validator = validator or LedgerValidator()
        self._notifier = notifier or Notifier()
        self._audit_logger = audit_logger
        self._settings = get_settings().ledger

    def allocate_shares(self, amount: Amount, participants: list[str]) -> dict[str, Decimal]:
        """Preview of how an amount would be split. Nothing is written."""
        return allocate_shares(amount, participants)

    def _build_splits(
        self,
        expense_id: str,
        payer_id: str,
        shares: dict[str, Decimal],
        now: datetime,
    ) -> list[Split]:
        return [
            Split(
                expense_id=expense_id,
                user_id=user_id,
                amount=share,
                paid=user_id == payer_id,
                paid_at=now if user_id == payer_id else None,
            )
            for user_id, share in shares.items()
        ]

    @service_operation("create expense")
    async def create_expense(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Record a new expense split among its participants.

        Raises:
            NotFoundError: Unknown group
            ValidationError: Bad amount, blank description, non-member payer
                or participants
            DataAccessError: The expense and its splits could not be written
        """
        correlation_id = correlation_id or create_correlation_id()

        group = await _require_group(self._storage, draft.group_id)
        self._validator.validate_expense_draft(draft, group.members)

        participants = ensure_participants(draft.participants, draft.payer_id)
        shares = allocate_shares(draft.amount, participants)

        now = utc_now()
        expense_id = generate_id("exp")
        expense = Expense(
            id=expense_id,
            group_id=draft.group_id,
            payer_id=draft.payer_id,
            amount=round_currency(draft.amount),
            description=draft.description,
            category=draft.category,
            date=_as_utc(draft.date) if draft.date else now,
            notes=draft.notes,
            receipt_url=draft.receipt_url,
            created_at=now,
            splits=self._build_splits(expense_id, draft.payer_id, shares, now),
        )

        saved = await self._storage.insert_expense_with_splits(expense)

        if self._audit_logger:
            await self._audit_logger.log_expense_created(
                expense_id=saved.id,
                group_id=saved.group_id,
                payer_id=saved.payer_id,
                amount=saved.amount,
                participants=participants,
                correlation_id=correlation_id,
            )

        await self._notifier.expense_added(
            recipients=participants,
            payer_id=saved.payer_id,
            description=saved.description,
            share_by_user=shares,
            expense_id=saved.id,
            group_id=saved.group_id,
            correlation_id=correlation_id,
        )

        return saved

    @service_operation("update expense")
    async def update_expense(
        self,
        edit: ExpenseEdit,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Re-split an existing expense.

        The payer stays the same. Old split rows are replaced in the same
        unit of work as the expense row, so no reader sees a half-edited
        expense.
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._storage.find_expense(edit.id)
        if existing is None:
            raise NotFoundError(f"Expense not found: {edit.id}")

        group = await _require_group(self._storage, existing.group_id)
        self._validator.validate_expense_edit(edit, group.members)

        participants = ensure_participants(edit.participants, existing.payer_id)
        shares = allocate_shares(edit.amount, participants)

        fields = existing.model_dump(exclude={"splits"})
        fields.update(
            amount=round_currency(edit.amount),
            description=edit.description if edit.description is not None else existing.description,
            category=edit.category or existing.category,
            date=_as_utc(edit.date) if edit.date else existing.date,
            notes=edit.notes if edit.notes is not None else existing.notes,
            receipt_url=edit.receipt_url if edit.receipt_url is not None else existing.receipt_url,
        )
        updated = Expense(
            **fields,
            splits=self._build_splits(existing.id, existing.payer_id, shares, utc_now()),
        )

        saved = await self._storage.update_expense_with_splits(updated)

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(
                expense_id=saved.id,
                group_id=saved.group_id,
                old_amount=existing.amount,
                new_amount=saved.amount,
                participants=participants,
                correlation_id=correlation_id,
            )

        return saved

    @service_operation("delete expense")
    async def delete_expense(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._storage.find_expense(expense_id)
        if existing is None or not await self._storage.delete_expense(expense_id):
            raise NotFoundError(f"Expense not found: {expense_id}")

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(
                expense_id=existing.id,
                group_id=existing.group_id,
                amount=existing.amount,
                correlation_id=correlation_id,
            )

    @service_operation("list expenses")
    async def list_expenses(
        self,
        group_id: str,
        limit: Optional[int] = None,
        cursor: Optional[ExpenseCursor] = None,
    ) -> ExpensePage:
        """
        One page of a group's expenses, newest first.

        Ordered by (date, id) descending. Pass the returned `next_cursor`
        back in to get the following page.
        """
        await _require_group(self._storage, group_id)

        size = limit if limit is not None else self._settings.default_page_size
        size = max(1, min(size, self._settings.max_page_size))

        expenses = sorted(
            await self._storage.find_expenses(group_id),
            key=lambda e: (e.date, e.id),
            reverse=True,
        )
        if cursor is not None:
            position = (_as_utc(cursor.date), cursor.id)
            expenses = [e for e in expenses if (e.date, e.id) < position]

        items = expenses[:size]
        has_more = len(expenses) > size
        next_cursor = None
        if has_more:
            last = items[-1]
            next_cursor = ExpenseCursor(date=last.date, id=last.id)

        return ExpensePage(items=items, has_more=has_more, next_cursor=next_cursor)


class BalanceFlow:
    """
    Read side of the ledger: balances, suggested transfers and dashboards.

    Nothing is cached. Every call reads the group's ledger fresh from
    storage, so the answer reflects whatever was committed at query time.
    """

    def __init__(self, ledger_storage: LedgerStorageInterface):
        self._storage = ledger_storage
        self._settings = get_settings().ledger

    @service_operation("get group balances")
    async def get_group_balances(
        self,
        group_id: str,
        include_all_members: bool = False,
    ) -> list[Balance]:
        """
        Every member's net balance, largest creditor first.

        By default only members with ledger activity are returned. With
        include_all_members, current members without activity appear with
        zero balances.
        """
        group = await _require_group(self._storage, group_id)
        expenses = await self._storage.find_expenses(group_id)
        payments = await self._storage.find_payments(group_id)
        balances = aggregate_balances(expenses, payments)
        if include_all_members:
            return balances_for_members(balances, group.members)
        return balances

    @service_operation("get user balance")
    async def get_user_balance(self, user_id: str, group_id: str) -> Balance:
        _, balances = await _load_balances(self._storage, group_id)
        return find_balance(balances, user_id)

    @service_operation("suggest settlements")
    async def suggest_settlements(self, group_id: str) -> list[DebtLine]:
        _, balances = await _load_balances(self._storage, group_id)
        return minimize_transfers(balances, self._settings.currency_epsilon)

    @service_operation("check group settled")
    async def is_group_settled(self, group_id: str) -> bool:
        _, balances = await _load_balances(self._storage, group_id)
        return is_group_settled(balances, self._settings.currency_epsilon)

    @service_operation("get user stats")
    async def get_user_stats(
        self,
        user_id: str,
        group_id: str,
        today: Optional[date] = None,
    ) -> UserStats:
        await _require_group(self._storage, group_id)
        return compute_user_stats(
            user_id,
            await self._storage.find_expenses(group_id),
            await self._storage.find_payments(group_id),
            today or utc_now().date(),
            self._settings.stats_months,
        )

    @service_operation("get group stats")
    async def get_group_stats(
        self,
        group_id: str,
        today: Optional[date] = None,
    ) -> GroupStats:
        group = await _require_group(self._storage, group_id)
        return compute_group_stats(
            await self._storage.find_expenses(group_id),
            group.members,
            today or utc_now().date(),
            self._settings.stats_months,
        )


class SettlementFlow:
    """
    Orchestrates the payment confirmation workflow.

    Flow:
    1. Initiate → sender records a PENDING payment, recipient is notified
    2. Confirm → recipient accepts, payment becomes CONFIRMED and counts
    3. Reject → recipient declines, payment becomes REJECTED and never counts

    The conditional status write in storage is the only serialization point
    between two racing confirmations; the loser gets ConflictError.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = ledger_storage
        self._validator = validator or LedgerValidator()
        self._notifier = notifier or Notifier()
        self._audit_logger = audit_logger
        self._settings = get_settings().ledger

    async def _require_payment(self, payment_id: str) -> Payment:
        payment = await self._storage.find_payment(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment not found: {payment_id}")
        return payment

    @service_operation("initiate payment")
    async def initiate_payment(
        self,
        sender_id: str,
        recipient_id: str,
        amount: Amount,
        group_id: str,
        session: Optional[Session] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Record a payment awaiting the recipient's confirmation.

        Balances do not change until the recipient confirms.
        """
        correlation_id = correlation_id or create_correlation_id()

        if session is not None and session.user_id != sender_id:
            raise AuthorizationError("Only the sender can record a payment they made")

        group = await _require_group(self._storage, group_id)
        self._validator.validate_payment(sender_id, recipient_id, amount, group.members, notes)

        payment = Payment(
            group_id=group_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            amount=round_currency(amount),
            status=PaymentStatus.PENDING,
            notes=notes,
        )
        saved = await self._storage.insert_payment(payment)

        if self._audit_logger:
            await self._audit_logger.log_payment_initiated(
                payment_id=saved.id,
                group_id=group_id,
                sender_id=sender_id,
                recipient_id=recipient_id,
                amount=saved.amount,
                correlation_id=correlation_id,
            )

        await self._notifier.payment_received(
            recipient_id=recipient_id,
            sender_id=sender_id,
            amount=saved.amount,
            payment_id=saved.id,
            correlation_id=correlation_id,
        )

        return saved

    @service_operation("confirm payment")
    async def confirm_payment(
        self,
        payment_id: str,
        session: Optional[Session] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ConfirmationResult:
        """
        Recipient confirms a payment; it now counts toward both balances.

        The sender notification and the fully-settled check run after the
        confirmation is committed. If either fails the confirmation stands.

        Raises:
            NotFoundError: Unknown payment
            AuthorizationError: Session user is not the recipient
            ConflictError: Payment already confirmed or rejected
        """
        correlation_id = correlation_id or create_correlation_id()

        payment = await self._require_payment(payment_id)
        assert_recipient(payment, session)
        target = workflow.confirm(payment)

        confirmed = await self._storage.update_payment_status(
            payment_id,
            PaymentStatus.CONFIRMED,
            confirmed_at=target.confirmed_at,
            expected=AWAITING_CONFIRMATION,
        )
        if confirmed is None:
            raise ConflictError(f"Payment {payment_id} was already processed")

        if self._audit_logger:
            await self._audit_logger.log_payment_confirmed(
                payment_id=confirmed.id,
                group_id=confirmed.group_id,
                recipient_id=confirmed.recipient_id,
                amount=confirmed.amount,
                correlation_id=correlation_id,
            )

        await self._notifier.payment_confirmed(
            sender_id=confirmed.sender_id,
            recipient_id=confirmed.recipient_id,
            amount=confirmed.amount,
            payment_id=confirmed.id,
            correlation_id=correlation_id,
        )

        settled = await self._check_settled(confirmed.group_id, correlation_id)
        return ConfirmationResult(payment=confirmed, group_settled=settled)

    async def _check_settled(self, group_id: str, correlation_id: UUID) -> bool:
        """Best-effort: a failure here only costs the celebration."""
        try:
            _, balances = await _load_balances(self._storage, group_id)
        except Exception as e:
            logger.warning("settled_check_failed", group_id=group_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=f"Settled check failed: {e}",
                    details={"group_id": group_id},
                    correlation_id=correlation_id,
                )
            return False

        settled = is_group_settled(balances, self._settings.currency_epsilon)
        if settled and self._audit_logger:
            await self._audit_logger.log_group_settled(group_id, correlation_id)
        return settled

    @service_operation("reject payment")
    async def reject_payment(
        self,
        payment_id: str,
        session: Optional[Session] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Payment:
        correlation_id = correlation_id or create_correlation_id()

        payment = await self._require_payment(payment_id)
        assert_recipient(payment, session)
        workflow.reject(payment)

        rejected = await self._storage.update_payment_status(
            payment_id,
            PaymentStatus.REJECTED,
            expected=AWAITING_CONFIRMATION,
        )
        if rejected is None:
            raise ConflictError(f"Payment {payment_id} was already processed")

        if self._audit_logger:
            await self._audit_logger.log_payment_rejected(
                payment_id=rejected.id,
                group_id=rejected.group_id,
                recipient_id=rejected.recipient_id,
                correlation_id=correlation_id,
            )

        return rejected

    @service_operation("list payments")
    async def list_payments(self, group_id: str) -> list[Payment]:
        """All of a group's payments in any status, newest first."""
        await _require_group(self._storage, group_id)
        payments = await self._storage.find_payments(group_id)
        return sorted(payments, key=lambda p: (p.date, p.id), reverse=True)


class GroupFlow:
    """
    Group membership changes behind the balance guard.

    A member whose balance is more than epsilon away from zero cannot
    leave or be removed, and a group cannot be deleted while anyone in it
    has such a balance. The error names the member and the amount so the
    UI can tell them what to settle.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = ledger_storage
        self._validator = validator or LedgerValidator()
        self._notifier = notifier or Notifier()
        self._audit_logger = audit_logger
        self._settings = get_settings().ledger

    def _money(self, amount: Decimal) -> str:
        return f"{abs(amount):,.2f} {self._settings.currency_code}"

    def _outstanding_message(self, balance: Balance, operation: str, own: bool) -> str:
        who = "You" if own else balance.user_id
        if balance.balance < 0:
            owes = f"{who} still owe{'' if own else 's'} {self._money(balance.balance)}"
        else:
            owes = f"{who} {'are' if own else 'is'} still owed {self._money(balance.balance)}"
        return f"{owes}. Settle all balances before {operation}."

    async def _guard(
        self,
        group: Group,
        balances: list[Balance],
        user_ids: list[str],
        operation: str,
        own: bool,
        correlation_id: UUID,
    ) -> None:
        for user_id in user_ids:
            balance = find_balance(balances, user_id)
            if is_settled(balance.balance, self._settings.currency_epsilon):
                continue
            if self._audit_logger:
                await self._audit_logger.log_membership_blocked(
                    group_id=group.id,
                    user_id=user_id,
                    balance=balance.balance,
                    operation=operation,
                    correlation_id=correlation_id,
                )
            raise OutstandingBalanceError(
                self._outstanding_message(balance, operation, own),
                user_id=user_id,
                balance=balance.balance,
            )

    def _require_creator(self, group: Group, actor_id: str, action: str) -> None:
        if group.created_by != actor_id:
            raise AuthorizationError(f"Only the group creator can {action}")

    def _require_member(self, group: Group, user_id: str) -> None:
        if not group.has_member(user_id):
            raise NotFoundError(f"{user_id} is not a member of group {group.id}")

    @service_operation("create group")
    async def create_group(
        self,
        name: str,
        creator_id: str,
        members: Optional[list[str]] = None,
        code: Optional[str] = None,
    ) -> Group:
        """Start a group; the creator is always its first member."""
        self._validator.validate_group(name, creator_id)
        roster = [creator_id] + [m for m in dict.fromkeys(members or []) if m != creator_id]
        group = Group(name=name, code=code, members=roster, created_by=creator_id)
        return await self._storage.insert_group(group)

    @service_operation("check leave group")
    async def can_leave_group(self, user_id: str, group_id: str) -> bool:
        _, balances = await _load_balances(self._storage, group_id)
        return is_settled(find_balance(balances, user_id).balance, self._settings.currency_epsilon)

    @service_operation("check remove member")
    async def can_remove_member(self, user_id: str, group_id: str) -> bool:
        _, balances = await _load_balances(self._storage, group_id)
        return is_settled(find_balance(balances, user_id).balance, self._settings.currency_epsilon)

    @service_operation("check delete group")
    async def can_delete_group(self, group_id: str) -> bool:
        _, balances = await _load_balances(self._storage, group_id)
        return is_group_settled(balances, self._settings.currency_epsilon)

    @service_operation("leave group")
    async def leave_group(
        self,
        user_id: str,
        group_id: str,
        session: Optional[Session] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Leave a group. History stays; only membership changes.

        Raises:
            AuthorizationError: Session user is someone else
            NotFoundError: Unknown group, or not a member
            OutstandingBalanceError: Balance is not settled
        """
        correlation_id = correlation_id or create_correlation_id()

        if session is not None and session.user_id != user_id:
            raise AuthorizationError("Members can only leave a group themselves")

        group, balances = await _load_balances(self._storage, group_id)
        self._require_member(group, user_id)
        await self._guard(group, balances, [user_id], "leaving the group", True, correlation_id)

        updated = await self._storage.remove_group_member(group_id, user_id)
        if updated is None:
            raise NotFoundError(f"Group not found: {group_id}")

        if self._audit_logger:
            await self._audit_logger.log_membership_changed(
                event_type=AuditEventType.MEMBER_LEFT,
                group_id=group_id,
                user_id=user_id,
                actor_id=user_id,
                correlation_id=correlation_id,
            )

        return updated

    @service_operation("remove member")
    async def remove_member(
        self,
        actor_id: str,
        user_id: str,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Creator removes another member. The removed member is notified.

        Raises:
            AuthorizationError: Actor is not the group creator
            ConflictError: Creator tried to remove themself
            NotFoundError: Unknown group, or target is not a member
            OutstandingBalanceError: Target's balance is not settled
        """
        correlation_id = correlation_id or create_correlation_id()

        group, balances = await _load_balances(self._storage, group_id)
        self._require_creator(group, actor_id, "remove members")
        if actor_id == user_id:
            raise ConflictError("The group creator cannot remove themself; delete the group instead")
        self._require_member(group, user_id)
        await self._guard(group, balances, [user_id], "removing this member", False, correlation_id)

        updated = await self._storage.remove_group_member(group_id, user_id)
        if updated is None:
            raise NotFoundError(f"Group not found: {group_id}")

        if self._audit_logger:
            await self._audit_logger.log_membership_changed(
                event_type=AuditEventType.MEMBER_REMOVED,
                group_id=group_id,
                user_id=user_id,
                actor_id=actor_id,
                correlation_id=correlation_id,
            )

        await self._notifier.member_removed(
            user_id=user_id,
            group_name=group.name,
            group_id=group_id,
            correlation_id=correlation_id,
        )

        return updated

    @service_operation("delete group")
    async def delete_group(
        self,
        actor_id: str,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Creator deletes the group with its whole ledger.

        Blocked while any member, current or former, has an outstanding
        balance.
        """
        correlation_id = correlation_id or create_correlation_id()

        group, balances = await _load_balances(self._storage, group_id)
        self._require_creator(group, actor_id, "delete the group")
        await self._guard(
            group,
            balances,
            [b.user_id for b in balances],
            "deleting the group",
            False,
            correlation_id,
        )

        if not await self._storage.delete_group(group_id):
            raise NotFoundError(f"Group not found: {group_id}")

        if self._audit_logger:
            await self._audit_logger.log_membership_changed(
                event_type=AuditEventType.GROUP_DELETED,
                group_id=group_id,
                user_id=actor_id,
                actor_id=actor_id,
                correlation_id=correlation_id,
            )


class AppComponents(NamedTuple):
    expense_flow: ExpenseFlow
    balance_flow: BalanceFlow
    settlement_flow: SettlementFlow
    group_flow: GroupFlow
    ledger_storage: LedgerStorageInterface


def create_app_components(
    backend: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: 'memory' or 'google_sheets'. Defaults to the configured
                 storage backend.

    Returns:
        AppComponents with every flow wired to the same storage
    """
    settings = get_settings()
    backend = backend or settings.app.storage_backend

    ledger_storage: LedgerStorageInterface
    notification_storage: NotificationStorageInterface
    audit_storage: AuditStorageInterface

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            notification_storage = GoogleSheetsNotificationStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # No silent fallback: an in-memory ledger would lose every write
            logger.error("storage_not_configured", backend=backend, error=str(e))
            raise
    elif backend == "memory":
        ledger_storage = InMemoryLedgerStorage()
        notification_storage = InMemoryNotificationStorage()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage)
    notifier = Notifier(
        notification_storage,
        audit_logger,
        currency_code=settings.ledger.currency_code,
    )
    validator = LedgerValidator()

    return AppComponents(
        expense_flow=ExpenseFlow(ledger_storage, validator, notifier, audit_logger),
        balance_flow=BalanceFlow(ledger_storage),
        settlement_flow=SettlementFlow(ledger_storage, validator, notifier, audit_logger),
        group_flow=GroupFlow(ledger_storage, validator, notifier, audit_logger),
        ledger_storage=ledger_storage,
    )
