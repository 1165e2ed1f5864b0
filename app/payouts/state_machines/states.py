"""
State enums for payout models.

This module defines all state enums used by payout models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Balance States:
    unpaid → processing → paid
    processing → unpaid (payment failed, cancelled or built empty)
    paid → unpaid (payment returned or reversed)

Payment States:
    creating → processing → completed
    creating/processing → failed
    processing → cancelled
    processing → unclaimed → completed (PayPal)
    processing/unclaimed → returned
    completed → returned (non-PayPal only)
"""

from django.db import models


class BalanceState(models.TextChoices):
    """
    States for the Balance model lifecycle.

    A balance is exclusively owned by one payment while PROCESSING.

    State Flow:
        UNPAID → PROCESSING → PAID
        PROCESSING → UNPAID (release)
        PAID → UNPAID (returned payment)
    """

    UNPAID = "unpaid", "Unpaid"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"


class PaymentState(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: COMPLETED (until returned), FAILED, CANCELLED, RETURNED

    State Flow:
        CREATING → PROCESSING → COMPLETED
        CREATING → FAILED (prepare or phase 1 failed)
        PROCESSING → FAILED / CANCELLED / RETURNED
        PROCESSING → UNCLAIMED → COMPLETED / RETURNED (PayPal)
        COMPLETED → RETURNED (late failure or reversal, Stripe only)
    """

    CREATING = "creating", "Creating"
    PROCESSING = "processing", "Processing"
    UNCLAIMED = "unclaimed", "Unclaimed"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"

    @classmethod
    def non_terminal(cls) -> list[str]:
        """States in which a payment may still be moved by a processor event."""
        return [cls.CREATING, cls.PROCESSING, cls.UNCLAIMED]


class PaymentFailureReason(models.TextChoices):
    """
    Enumerated failure reasons recorded on a failed payment.

    Processor-supplied failure codes (e.g. Stripe's "account_closed") are
    stored verbatim alongside these.
    """

    CANNOT_PAY = "cannot_pay", "Cannot pay"
    DEBIT_CARD_LIMIT = "debit_card_limit", "Debit card limit"
    INSUFFICIENT_FUNDS = "insufficient_funds", "Insufficient funds"


class PayoutProcessorType(models.TextChoices):
    """
    Closed set of payout processors.

    Every processor implementation is registered under one of these values.
    """

    PAYPAL = "paypal", "PayPal"
    STRIPE = "stripe", "Stripe"


class HolderOfFunds(models.TextChoices):
    """
    Legal holder of the money behind a balance.

    PLATFORM: held in the platform's own processor account
    STRIPE: held in the payee's Stripe connected account
    PAYPAL: held in the payee's PayPal account
    """

    PLATFORM = "platform", "Platform"
    STRIPE = "stripe", "Stripe"
    PAYPAL = "paypal", "PayPal"


class PayoutType(models.TextChoices):
    """Standard (next business days) or instant (debit card) payouts."""

    STANDARD = "standard", "Standard"
    INSTANT = "instant", "Instant"


class BankAccountType(models.TextChoices):
    """Kind of external account a Stripe payout lands on."""

    BANK_ACCOUNT = "bank_account", "Bank Account"
    DEBIT_CARD = "debit_card", "Debit Card"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "BalanceState",
    "BankAccountType",
    "HolderOfFunds",
    "PaymentFailureReason",
    "PaymentState",
    "PayoutProcessorType",
    "PayoutType",
    "WebhookEventStatus",
]
