"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Caller-supplied data breaks a structural rule
    ├── NotFoundError - Resource not found (or not owned by the caller)
    └── ConflictError - State conflicts (concurrent modifications)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Income and expense entries require a category",
        error_code="CATEGORY_REQUIRED",
        details={"category_id": ["This field is required."]},
    )

    try:
        ...
    except BaseApplicationError as e:
        payload = e.to_dict()

Note:
    These exceptions are for domain/business logic errors. The request
    layer maps ValidationError to field-level messages and everything
    else to a generic "try again" failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for the request layer.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Source and destination accounts must differ",
                "error_code": "SAME_ACCOUNT_TRANSFER",
                "details": {"destination_account_id": ["..."]}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Missing required fields (category on income/expense)
    - Business rule violations (transfer to the same account)
    - Malformed structured input (recurrence rules)

    Nothing is persisted when this is raised from a service.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Lookups are always scoped by owner, so a record that exists but
    belongs to someone else is reported the same way.
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Concurrent modification conflicts
    - Invalid state transitions

    Note:
        Callers may re-read fresh state and retry.
    """

    default_error_code: str = "CONFLICT"
