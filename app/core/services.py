"""
Base service layer patterns for business logic encapsulation.

- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Pattern Comparison:
    - ServiceResult: Use for expected failures (illegal transitions, business rules)
    - Exceptions: Use for unexpected failures and data-integrity errors

Usage:
    from core.services import BaseService, ServiceResult

    class PaymentStateService(BaseService):
        @classmethod
        def mark_completed(cls, payment) -> ServiceResult[Payment]:
            if not can_proceed(payment.mark_completed):
                return ServiceResult.failure(
                    "Cannot complete payment",
                    error_code="INVALID_STATE_TRANSITION",
                )

            with cls.atomic():
                payment.mark_completed()
                payment.save()

            cls.get_logger().info(f"Completed payment {payment.id}")
            return ServiceResult.success(payment)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code
        errors: Field-level errors for validation failures

    Usage:
        result = PaymentStateService.mark_failed(payment, reason)
        if not result:
            logger.warning(f"{result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result carrying data."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors

        Example:
            return ServiceResult.failure(
                "Payment is not processing",
                error_code="INVALID_STATE_TRANSITION",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - Logging named after the service class
    - Database transaction management

    Design Notes:
        - Prefer @classmethod for stateless services
        - Services that need collaborators (processor registry, adapters)
          take them in __init__ so tests can inject fakes
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Example:
            cls.get_logger().info(
                "Payment completed",
                extra={"payment_id": str(payment.id)},
            )
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic(); nests as a
        savepoint when already inside a transaction.
        """
        with transaction.atomic():
            yield
