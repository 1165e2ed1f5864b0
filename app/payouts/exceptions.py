"""
Payout-specific exceptions for the disbursement and reconciliation engine.

Exception Hierarchy:
    PayoutError (base for payout domain)
    ├── PayoutValidationError - Invalid payout requests (e.g. cutoff not in the past)
    ├── ReconciliationError - Webhook cannot be safely correlated (fatal, manual review)
    └── PayoutProcessingError - Processor request failures
        ├── PaypalError - MassPay/IPN failures
        └── StripeError - Base for all Stripe errors
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeAuthenticationError - Bad API key (permanent, infrastructure)
            ├── StripeRateLimitError - Rate limited (transient)
            ├── StripeAPIUnavailableError - API unavailable (transient)
            └── StripeTimeoutError - Request timeout (transient)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payouts.exceptions import ReconciliationError

    if payment is None:
        raise ReconciliationError(
            f"Stripe Event {event_id}: payout does not match any payment.",
            details={"stripe_event_id": event_id, "payout_id": payout_id},
        )

Note:
    Eligibility failures are not exceptions; they are recorded as payee notes.
    Processor failures during disbursement are converted to error lists at the
    engine boundary. Reconciliation errors are always raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payout Domain Exceptions
# =============================================================================


class PayoutError(BaseApplicationError):
    """
    Base exception for all payout operations.

    Example:
        try:
            PayoutRunService(registry).payout_payees(date_string, processor_type, ids)
        except PayoutError as e:
            logger.error(f"Payout run failed: {e}")
    """

    default_error_code: str = "PAYOUT_ERROR"


class PayoutValidationError(PayoutError):
    """
    Raised when a payout request is invalid.

    Use for:
    - Payout dates that are today or in the future
    - Unknown processor types
    """

    default_error_code: str = "PAYOUT_VALIDATION_ERROR"


class ReconciliationError(PayoutError):
    """
    Raised when a processor event cannot be reconciled against local state.

    These indicate a data-integrity problem and require an operator:
    - The payout id matches no payment
    - The payment id embedded in processor metadata differs from the local payment
    - A reversal reported as paid later failed
    - A cancellation arrived for a payment that is not processing

    Never caught inside the engine. The webhook task marks the event failed
    and re-raises so it is retried and surfaced.
    """

    default_error_code: str = "RECONCILIATION_ERROR"


class PayoutProcessingError(PayoutError):
    """
    Raised when a processor request fails.

    The Disbursement Engine converts these to error messages on the payment.
    """

    default_error_code: str = "PAYOUT_PROCESSING_ERROR"


class PaypalError(PayoutProcessingError):
    """
    PayPal request failure.

    Attributes:
        errors: Formatted "code - short message - long message" strings
    """

    default_error_code: str = "PAYPAL_ERROR"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if errors:
            details["errors"] = errors
        super().__init__(message, error_code=error_code, details=details)
        self.errors = errors or []


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PayoutProcessingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        is_retryable: Whether the call may succeed if repeated later
        is_infrastructure: True for failures of our integration rather than
            of the payout request itself (auth, connectivity)
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False
    is_infrastructure: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


class StripeInvalidRequestError(StripeError):
    """
    Invalid request sent to Stripe.

    Payout-relevant messages carry the failure classification, e.g.
    "Cannot create live transfers" or "Insufficient funds in Stripe account".
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeAuthenticationError(StripeError):
    """Stripe rejected our API key. Operational issue."""

    default_error_code: str = "STRIPE_AUTHENTICATION_ERROR"
    is_infrastructure: bool = True


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe 5xx errors.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
    is_infrastructure: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side. Transfers
    are created with idempotency keys so a later retry is safe.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
    is_infrastructure: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Happens when a manual payout run and the scheduled run target the same
    payee at the same time.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with our error format.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "PayoutError",
    "PayoutValidationError",
    "ReconciliationError",
    "PayoutProcessingError",
    "PaypalError",
    "StripeError",
    "StripeInvalidRequestError",
    "StripeAuthenticationError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
