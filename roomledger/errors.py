"""
Error Taxonomy for RoomLedger

DESIGN DECISION: Every failure that leaves the core is one of a small set
of typed errors, annotated with the operation that failed. Callers can
branch on the type (e.g. show the "settle your debts first" message for
OutstandingBalanceError) and support can read the context string.

Storage backends raise StorageError; the flows translate it into
DataAccessError at the boundary via `service_operation`.
"""

import functools
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError as ModelValidationError

from roomledger.services.storage.interface import StorageError


T = TypeVar("T")


class LedgerError(Exception):
    """
    Base class for all errors raised by the ledger core.

    Attributes:
        message: Human-readable description of what went wrong
        context: The operation that failed (e.g. "confirm payment")
        cause: The underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.cause = cause

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


class ValidationError(LedgerError):
    """Invalid input to a core operation. Never retried."""

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        issues: Optional[list] = None,
    ):
        super().__init__(message, context)
        self.issues = issues or []


# Name used by the split allocator's contract
InvalidInputError = ValidationError


class NotFoundError(LedgerError):
    """Referenced group, expense or payment does not exist."""
    pass


class AuthorizationError(LedgerError):
    """Actor lacks permission for the requested mutation."""
    pass


class ConflictError(LedgerError):
    """Business-rule violation (illegal transition, outstanding balance...)."""
    pass


class OutstandingBalanceError(ConflictError):
    """
    A member still owes or is owed money.

    Blocks leaving a group, removing a member and deleting a group.
    """

    def __init__(
        self,
        message: str,
        user_id: str,
        balance: Decimal,
        context: Optional[str] = None,
    ):
        super().__init__(message, context)
        self.user_id = user_id
        self.balance = balance


class DataAccessError(LedgerError):
    """Wraps a failure from the storage collaborator. Always has a cause."""

    def __init__(
        self,
        message: str,
        cause: BaseException,
        context: Optional[str] = None,
    ):
        super().__init__(message, context, cause)


def service_operation(
    context: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorate an async flow method with error annotation.

    - LedgerError subclasses pass through, stamped with `context` if they
      don't carry one yet.
    - StorageError becomes DataAccessError chained to the original.
    - A pydantic error from building a model out of caller input becomes
      ValidationError, so callers only ever see the ledger taxonomy.

    Anything else propagates untouched.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except LedgerError as e:
                if not e.context:
                    e.context = context
                raise
            except StorageError as e:
                raise DataAccessError(
                    f"Storage failure: {e}",
                    cause=e,
                    context=context,
                ) from e
            except ModelValidationError as e:
                raise ValidationError(
                    _describe_model_error(e),
                    context=context,
                ) from e

        return wrapper

    return decorator


def _describe_model_error(error: ModelValidationError) -> str:
    """First field error as "field: message"."""
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first['msg']}" if field else first["msg"]
