"""
Disbursement Engine.

Hands built payments to their processor and converts every failure into
an error list, so one bad payment never stops a payout run. Failures are
also reported to operators (error log and mail_admins).

Usage:
    engine = DisbursementEngine(default_registry())
    errors = engine.disburse(payment)
    if errors:
        ...  # payment is FAILED, balances are UNPAID again
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.mail import mail_admins

from core.services import BaseService

from payouts.exceptions import PayoutError
from payouts.models import Payment
from payouts.services.payment_state import PaymentStateService
from payouts.state_machines import PaymentState

if TYPE_CHECKING:
    from payouts.processors.base import ProcessorRegistry


class DisbursementEngine(BaseService):
    """
    Runs processor disbursements behind a no-raise boundary.

    Args:
        registry: Processors payments are dispatched to
    """

    def __init__(self, registry: ProcessorRegistry):
        self.registry = registry

    def disburse(self, payment: Payment) -> list[str]:
        """
        Move the money for one payment.

        Returns:
            Error messages; empty on success.
        """
        processor = self.registry.get(payment.processor)
        try:
            errors = processor.perform_payment(payment)
        except Exception as e:
            errors = self._fail_unexpectedly(payment, e)

        self._report(payment, errors)
        return errors

    def disburse_batch(self, processor_type: str, payments: list[Payment]) -> dict[str, list[str]]:
        """
        Move the money for several payments of one processor.

        Returns:
            Error messages keyed by payment id, only for failed payments.
        """
        if not payments:
            return {}
        processor = self.registry.get(processor_type)
        try:
            errors = processor.perform_payments(payments)
        except Exception as e:
            errors = {}
            for payment in payments:
                errors[str(payment.pk)] = self._fail_unexpectedly(payment, e)

        for payment in payments:
            self._report(payment, errors.get(str(payment.pk), []))
        return errors

    def _fail_unexpectedly(self, payment: Payment, error: Exception) -> list[str]:
        message = error.message if isinstance(error, PayoutError) else str(error)
        self.get_logger().exception(
            f"Unexpected error disbursing payment {payment.pk}",
            extra={"payment_id": str(payment.pk), "payee_id": str(payment.payee_id)},
        )
        # Payments past CREATING are left for reconciliation
        state = Payment.objects.values_list("state", flat=True).get(pk=payment.pk)
        if state == PaymentState.CREATING:
            PaymentStateService.mark_failed(payment)
        return [message]

    def _report(self, payment: Payment, errors: list[str]) -> None:
        if not errors:
            return

        self.get_logger().error(
            f"Payout failed for payee {payment.payee_id}: {'; '.join(errors)}",
            extra={
                "payment_id": str(payment.pk),
                "payee_id": str(payment.payee_id),
                "processor": payment.processor,
                "errors": errors,
            },
        )
        mail_admins(
            subject=f"Payout failed: payment {payment.pk}",
            message=(
                f"Processor: {payment.processor}\n"
                f"Payee: {payment.payee_id}\n"
                f"Amount: {payment.amount_cents} {payment.currency.upper()}\n\n"
                + "\n".join(errors)
            ),
            fail_silently=True,
        )
