"""
Abstract payout processor and the registry that selects one.

A PayoutProcessor is the processor-specific half of the payout pipeline:
who it can pay, which balances it can pay, how a payment's amount is
derived, how money is actually moved and how processor events settle a
payment. Implementations exist for every PayoutProcessorType.

Processors are never looked up from module state. Services receive a
ProcessorRegistry, built with default_registry() in production and with
fakes in tests.

Usage:
    from payouts.processors import default_registry
    from payouts.state_machines import PayoutProcessorType

    registry = default_registry()
    processor = registry.get(PayoutProcessorType.STRIPE)
    errors = processor.perform_payment(payment)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING

from django.utils import timezone

from payouts.exceptions import PayoutValidationError
from payouts.state_machines import PayoutProcessorType, PayoutType

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any

    from payouts.models import Balance, Payee, Payment


def payout_date_display() -> str:
    """Today's date as shown in payout notes, e.g. "May 1, 2024"."""
    today = timezone.localdate()
    return f"{today:%B} {today.day}, {today.year}"


# =============================================================================
# Abstract Processor
# =============================================================================


class PayoutProcessor(ABC):
    """
    Abstract base class for payout processors.

    Subclasses must implement every abstract method. perform_payments has
    a default that pays one payment at a time; processors with batch APIs
    override it.
    """

    processor_type: PayoutProcessorType

    @abstractmethod
    def is_user_payable(
        self,
        payee: Payee,
        amount_payable_usd_cents: int,
        *,
        add_comment: bool = False,
        from_admin: bool = False,
        payout_type: str = PayoutType.STANDARD,
    ) -> bool:
        """
        Whether this processor can pay the payee right now.

        When add_comment is set and the payee is not payable, a payout note
        explaining why is added to the payee.
        """

    @abstractmethod
    def is_balance_payable(self, balance: Balance) -> bool:
        """Whether the funds behind `balance` can be moved by this processor."""

    @abstractmethod
    def destination_for(self, payee: Payee) -> dict[str, Any]:
        """Payment fields identifying where the money goes."""

    @abstractmethod
    def prepare_payment_and_set_amount(
        self,
        payment: Payment,
        balances: list[Balance],
    ) -> list[str]:
        """
        Set currency and amount on an unsaved-state (CREATING) payment.

        Returns:
            Error messages; empty when the payment is ready to disburse.
        """

    @abstractmethod
    def enqueue_payments(self, payee_ids: list[str], date_string: str) -> None:
        """Queue payout work for the given payees."""

    @abstractmethod
    def perform_payment(self, payment: Payment) -> list[str]:
        """
        Move the money for one payment.

        Returns:
            Error messages; empty on success.
        """

    def perform_payments(self, payments: list[Payment]) -> dict[str, list[str]]:
        """
        Move the money for several payments.

        Returns:
            Error messages keyed by payment id, only for failed payments.
        """
        errors = {}
        for payment in payments:
            payment_errors = self.perform_payment(payment)
            if payment_errors:
                errors[str(payment.pk)] = payment_errors
        return errors

    @abstractmethod
    def handle_webhook_event(self, event: dict[str, Any], account_id: str | None = None) -> None:
        """
        Reconcile one processor event against local payments.

        Raises:
            ReconciliationError: The event cannot be safely correlated
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.processor_type})"


# =============================================================================
# Registry
# =============================================================================


class ProcessorRegistry(Mapping):
    """
    Explicit mapping from PayoutProcessorType to processor instance.

    Example:
        registry = ProcessorRegistry({PayoutProcessorType.STRIPE: FakeProcessor()})
        registry.get(PayoutProcessorType.STRIPE)
    """

    def __init__(self, processors: Mapping[PayoutProcessorType, PayoutProcessor]):
        self._processors: dict[PayoutProcessorType, PayoutProcessor] = {}
        for processor_type, processor in processors.items():
            self._processors[PayoutProcessorType(processor_type)] = processor

    def __getitem__(self, processor_type: str) -> PayoutProcessor:
        try:
            key = PayoutProcessorType(processor_type)
        except ValueError:
            raise PayoutValidationError(
                f"Unknown payout processor: {processor_type!r}",
                details={"processor_type": str(processor_type)},
            ) from None
        try:
            return self._processors[key]
        except KeyError:
            raise PayoutValidationError(
                f"No processor registered for {key}",
                details={"processor_type": str(key)},
            ) from None

    def get(self, processor_type: str) -> PayoutProcessor:  # type: ignore[override]
        """Processor for `processor_type`; raises PayoutValidationError if unknown."""
        return self[processor_type]

    def __contains__(self, processor_type: object) -> bool:
        return processor_type in self._processors

    def __iter__(self) -> Iterator[PayoutProcessorType]:
        return iter(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def types(self) -> list[PayoutProcessorType]:
        return list(self._processors)


def default_registry() -> ProcessorRegistry:
    """Registry wired to the real Stripe and PayPal adapters."""
    from payouts.adapters import PaypalAdapter, StripeAdapter
    from payouts.processors.paypal_processor import PaypalProcessor
    from payouts.processors.stripe_processor import StripeProcessor

    stripe_processor = StripeProcessor(adapter=StripeAdapter)
    paypal_processor = PaypalProcessor(
        adapter=PaypalAdapter,
        preferred_processor=stripe_processor,
    )
    return ProcessorRegistry(
        {
            PayoutProcessorType.STRIPE: stripe_processor,
            PayoutProcessorType.PAYPAL: paypal_processor,
        }
    )
