"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    └── ConflictError - State conflicts (illegal transitions, lock contention)

Usage:
    from core.exceptions import BaseApplicationError

    class PayoutError(BaseApplicationError):
        default_error_code = "PAYOUT_ERROR"

    try:
        ...
    except BaseApplicationError as e:
        logger.error("Payout failed", extra=e.to_dict())

Note:
    These exceptions are for domain errors. Expected business outcomes
    (not payable, transition rejected) are ServiceResult values instead.
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
        error_code: Machine-readable code
        details: Additional error context (ids, processor codes, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logs and task results.

        Example:
            {
                "error": "payout does not match any payment",
                "error_code": "RECONCILIATION_ERROR",
                "details": {"payout_id": "po_123"}
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
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for:
    - Concurrent modification of the same record
    - Illegal state machine transitions
    - Resources locked by another worker
    """

    default_error_code: str = "CONFLICT"
