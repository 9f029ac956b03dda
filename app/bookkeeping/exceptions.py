"""
Bookkeeping-specific exceptions.

Exception Hierarchy:
    BookkeepingError (base)
    ├── AccountNotFound - Account lookup failures
    ├── TransactionNotFound - Ledger entry lookup failures
    ├── ObligationNotFound - Payable/receivable/series lookup failures
    ├── InactiveAccount - New entries against a deactivated account
    ├── ConsistencyViolation - A derived field disagrees with its sources
    └── ConcurrentModification - Precondition changed before the locked write

Field-level problems with caller input are raised as
core.exceptions.ValidationError with one of the codes in ErrorCode.

Usage:
    from bookkeeping.exceptions import AccountNotFound, ErrorCode

    raise AccountNotFound(
        f"Account {account_id} not found",
        details={"account_id": str(account_id)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError

if TYPE_CHECKING:
    from typing import Any


class ErrorCode:
    """Machine-readable codes carried by ValidationError."""

    CATEGORY_REQUIRED = "CATEGORY_REQUIRED"
    SAME_ACCOUNT_TRANSFER = "SAME_ACCOUNT_TRANSFER"
    DESTINATION_REQUIRED = "DESTINATION_REQUIRED"
    NON_CREATABLE_TYPE = "NON_CREATABLE_TYPE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_RECURRENCE_RULE = "INVALID_RECURRENCE_RULE"
    SPLITS_EXCEED_AMOUNT = "SPLITS_EXCEED_AMOUNT"
    OBLIGATION_ALREADY_PAID = "OBLIGATION_ALREADY_PAID"
    DUPLICATE_BUDGET = "DUPLICATE_BUDGET"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"


class BookkeepingError(BaseApplicationError):
    """Base exception for all bookkeeping operations."""

    default_error_code: str = "BOOKKEEPING_ERROR"


class AccountNotFound(BookkeepingError, NotFoundError):
    default_error_code: str = "ACCOUNT_NOT_FOUND"


class TransactionNotFound(BookkeepingError, NotFoundError):
    default_error_code: str = "TRANSACTION_NOT_FOUND"


class ObligationNotFound(BookkeepingError, NotFoundError):
    default_error_code: str = "OBLIGATION_NOT_FOUND"


class InactiveAccount(BookkeepingError):
    """
    Raised when an entry targets a deactivated account.

    Example:
        if not account.is_active:
            raise InactiveAccount(
                f"Account {account.id} is inactive",
                details={"account_id": account.id},
            )
    """

    default_error_code: str = "ACCOUNT_INACTIVE"


class ConsistencyViolation(BookkeepingError):
    """
    Raised when a derived field disagrees with its source rows.

    Never shown to end users. The catcher repairs the derived field
    from the source rows (payments, ledger entries) and moves on.

    Attributes:
        expected: Value recomputed from the source rows
        actual: Value found in the derived field
    """

    default_error_code: str = "CONSISTENCY_VIOLATION"

    def __init__(
        self,
        message: str,
        *,
        expected: Any,
        actual: Any,
        details: dict | None = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message,
            details={
                "expected": str(expected),
                "actual": str(actual),
                **(details or {}),
            },
        )


class ConcurrentModification(BookkeepingError, ConflictError):
    """
    Raised when a locked re-read shows a precondition no longer holds.

    The caller may reload fresh state and retry.
    """

    default_error_code: str = "CONCURRENT_MODIFICATION"
