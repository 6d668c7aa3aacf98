"""
Input Validation for Ledger Mutations

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SHAPE:
- Amount is a finite positive number worth at least one cent
- Required text is present and within its length limit

STAGE 2 - MEMBERSHIP:
- Payer, participants and payment parties belong to the group
- Payment parties differ

Stage 2 only runs when stage 1 passes, so a garbage amount does not
also produce a pile of membership complaints.

IMPORTANT: Validation NEVER silently fixes issues. Blank and duplicate
participant ids are the one exception; they are dropped by the allocator,
not reported.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from roomledger.errors import ValidationError
from roomledger.ledger.allocation import unique_participants
from roomledger.models.ledger import (
    ExpenseDraft,
    ExpenseEdit,
    ValidationIssue,
)
from roomledger.money import round_currency


MAX_DESCRIPTION_LENGTH = 200
MAX_EXPENSE_NOTES_LENGTH = 1000
MAX_PAYMENT_NOTES_LENGTH = 500
MAX_GROUP_NAME_LENGTH = 100


class LedgerValidator:
    """
    Validates expense and payment input before anything is written.

    check_* methods return the issues found; validate_* methods raise
    ValidationError if any of them is an error.
    """

    # -------------------------------------------------------------------------
    # Shared checks
    # -------------------------------------------------------------------------

    def _check_amount(self, amount, field: str = "amount") -> list[ValidationIssue]:
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            return [ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"Amount {amount!r} is not a number",
            )]

        if not value.is_finite():
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be a finite number",
            )]
        if value <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            )]
        if round_currency(value) <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount rounds to zero at cent precision",
            )]
        return []

    def _check_members(
        self,
        user_ids: Iterable[str],
        members: Iterable[str],
        field: str,
    ) -> list[ValidationIssue]:
        member_set = set(members)
        return [
            ValidationIssue(
                field=field,
                issue_type="not_member",
                message=f"{user_id} is not a member of this group",
            )
            for user_id in user_ids
            if user_id not in member_set
        ]

    def _too_long_description(self) -> ValidationIssue:
        return ValidationIssue(
            field="description",
            issue_type="too_long",
            message=f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
        )

    def _check_notes(self, notes: Optional[str], limit: int) -> list[ValidationIssue]:
        if notes and len(notes) > limit:
            return [ValidationIssue(
                field="notes",
                issue_type="too_long",
                message=f"Notes must be at most {limit} characters",
            )]
        return []

    def raise_for_issues(
        self,
        issues: list[ValidationIssue],
        context: Optional[str] = None,
    ) -> None:
        """Raise ValidationError carrying every issue if any is an error."""
        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            raise ValidationError(errors[0].message, context=context, issues=issues)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def check_expense_draft(
        self,
        draft: ExpenseDraft,
        members: list[str],
    ) -> list[ValidationIssue]:
        """
        Check a new expense.

        The payer is always added to the participants by the allocator, so an
        empty participant list is fine here as long as there is a payer.
        """
        issues = self._check_amount(draft.amount)

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
            ))
        elif len(draft.description) > MAX_DESCRIPTION_LENGTH:
            issues.append(self._too_long_description())
        issues.extend(self._check_notes(draft.notes, MAX_EXPENSE_NOTES_LENGTH))
        if not draft.payer_id:
            issues.append(ValidationIssue(
                field="payer_id",
                issue_type="missing",
                message="Payer is required",
            ))

        if issues:
            return issues

        issues.extend(self._check_members([draft.payer_id], members, "payer_id"))
        issues.extend(
            self._check_members(unique_participants(draft.participants), members, "participants")
        )
        return issues

    def check_expense_edit(
        self,
        edit: ExpenseEdit,
        members: list[str],
    ) -> list[ValidationIssue]:
        """An empty participant list re-splits the expense to the payer alone."""
        issues = self._check_amount(edit.amount)

        if edit.description is not None and not edit.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description cannot be blank",
            ))
        elif edit.description and len(edit.description) > MAX_DESCRIPTION_LENGTH:
            issues.append(self._too_long_description())
        issues.extend(self._check_notes(edit.notes, MAX_EXPENSE_NOTES_LENGTH))

        if issues:
            return issues

        issues.extend(
            self._check_members(unique_participants(edit.participants), members, "participants")
        )
        return issues

    def validate_expense_draft(self, draft: ExpenseDraft, members: list[str]) -> None:
        self.raise_for_issues(self.check_expense_draft(draft, members), "create expense")

    def validate_expense_edit(self, edit: ExpenseEdit, members: list[str]) -> None:
        self.raise_for_issues(self.check_expense_edit(edit, members), "update expense")

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def check_payment(
        self,
        sender_id: str,
        recipient_id: str,
        amount,
        members: list[str],
        notes: Optional[str] = None,
    ) -> list[ValidationIssue]:
        issues = self._check_amount(amount)
        issues.extend(self._check_notes(notes, MAX_PAYMENT_NOTES_LENGTH))

        if not sender_id or not recipient_id:
            issues.append(ValidationIssue(
                field="parties",
                issue_type="missing",
                message="Payment needs both a sender and a recipient",
            ))
        elif sender_id == recipient_id:
            issues.append(ValidationIssue(
                field="recipient_id",
                issue_type="invalid_value",
                message="Cannot send a payment to yourself",
            ))

        if issues:
            return issues

        issues.extend(self._check_members([sender_id], members, "sender_id"))
        issues.extend(self._check_members([recipient_id], members, "recipient_id"))
        return issues

    def validate_payment(
        self,
        sender_id: str,
        recipient_id: str,
        amount,
        members: list[str],
        notes: Optional[str] = None,
    ) -> None:
        self.raise_for_issues(
            self.check_payment(sender_id, recipient_id, amount, members, notes),
            "initiate payment",
        )

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def check_group(self, name: str, creator_id: str) -> list[ValidationIssue]:
        issues = []
        if not name or not name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Group name is required",
            ))
        elif len(name.strip()) > MAX_GROUP_NAME_LENGTH:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Group name must be at most {MAX_GROUP_NAME_LENGTH} characters",
            ))
        if not creator_id:
            issues.append(ValidationIssue(
                field="created_by",
                issue_type="missing",
                message="Group creator is required",
            ))
        return issues

    def validate_group(self, name: str, creator_id: str) -> None:
        self.raise_for_issues(self.check_group(name, creator_id), "create group")
