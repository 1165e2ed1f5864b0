"""
Payout runs.

A payout run takes a cutoff date, a processor and a set of payees and runs
each payee through the pipeline:

    Eligibility -> Balance Aggregator (lock) -> Payment Builder -> Disbursement

Payees are independent: an exception for one is logged and the run moves
on to the next.

Usage:
    service = PayoutRunService(default_registry())

    # Daily schedule: fan out per processor
    service.enqueue_daily_payouts(date.today() - timedelta(days=1))

    # Worker / admin entry point
    payments = service.create_payments_for_balances_up_to_date_for_users(
        cutoff, PayoutProcessorType.STRIPE, payees, from_admin=True,
    )
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService

from payouts.exceptions import LockAcquisitionError, PayoutValidationError
from payouts.locks import payee_payout_lock
from payouts.models import Balance, Payee
from payouts.services.balance_aggregator import BalanceAggregator
from payouts.services.disbursement import DisbursementEngine
from payouts.services.eligibility import EligibilityService
from payouts.services.payment_builder import PaymentBuilder
from payouts.state_machines import BalanceState, PayoutType

if TYPE_CHECKING:
    from collections.abc import Iterable

    from payouts.models import Payment
    from payouts.processors.base import PayoutProcessor, ProcessorRegistry


class PayoutRunService(BaseService):
    """
    Orchestrates payout runs over many payees.

    Args:
        registry: Processors available to the run
    """

    def __init__(self, registry: ProcessorRegistry):
        self.registry = registry
        self.eligibility = EligibilityService(registry)
        self.engine = DisbursementEngine(registry)

    def enqueue_daily_payouts(self, cutoff_date: date) -> dict[str, int]:
        """
        Queue payout work for every payee with unpaid balances up to the cutoff.

        Returns:
            Number of payees queued per processor type.
        """
        payee_ids = [
            str(pk)
            for pk in Balance.objects.filter(state=BalanceState.UNPAID, date__lte=cutoff_date)
            .order_by()
            .values_list("payee_id", flat=True)
            .distinct()
        ]
        queued = {}
        for processor_type, processor in self.registry.items():
            processor.enqueue_payments(payee_ids, cutoff_date.isoformat())
            queued[str(processor_type)] = len(payee_ids)

        self.get_logger().info(
            f"Queued daily payouts for {len(payee_ids)} payees",
            extra={"cutoff_date": str(cutoff_date), "queued": queued},
        )
        return queued

    def payout_payees(
        self,
        date_string: str,
        processor_type: str,
        payee_ids: list[str],
        *,
        from_admin: bool = False,
        payout_type: str = PayoutType.STANDARD,
    ) -> list[Payment]:
        """Task entry point: resolve ids and run create_payments_for_..."""
        payees = list(Payee.objects.filter(pk__in=payee_ids))
        return self.create_payments_for_balances_up_to_date_for_users(
            date.fromisoformat(date_string),
            processor_type,
            payees,
            from_admin=from_admin,
            payout_type=payout_type,
        )

    def create_payments_for_balances_up_to_date_for_users(
        self,
        cutoff_date: date,
        processor_type: str,
        payees: Iterable[Payee],
        *,
        from_admin: bool = False,
        payout_type: str = PayoutType.STANDARD,
    ) -> list[Payment]:
        """
        Build and disburse payments for `payees` up to `cutoff_date`.

        Returns:
            Payments that were built and handed to the processor, successful
            or not.

        Raises:
            PayoutValidationError: cutoff_date is today or later, or the
                processor is unknown
        """
        if cutoff_date >= timezone.localdate():
            raise PayoutValidationError(
                f"Payout date {cutoff_date} must be in the past",
                details={"cutoff_date": str(cutoff_date)},
            )
        processor = self.registry.get(processor_type)
        logger = self.get_logger()

        payments = []
        for payee in payees:
            log_context = {
                "payee_id": str(payee.pk),
                "cutoff_date": str(cutoff_date),
                "processor": str(processor_type),
            }
            try:
                with payee_payout_lock(payee.pk):
                    payment = self._build_for_payee(
                        payee, cutoff_date, processor, from_admin=from_admin, payout_type=payout_type
                    )
            except LockAcquisitionError:
                logger.warning("Payee payout already running, skipping", extra=log_context)
                continue
            except Exception:
                logger.exception("Failed to build payment for payee", extra=log_context)
                continue

            if payment is not None:
                payments.append(payment)

        errors = self.engine.disburse_batch(processor_type, payments)

        logger.info(
            f"Payout run finished: {len(payments)} payments, {len(errors)} failed",
            extra={
                "cutoff_date": str(cutoff_date),
                "processor": str(processor_type),
                "payment_count": len(payments),
                "failed_count": len(errors),
            },
        )
        return payments

    def _build_for_payee(
        self,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
        *,
        from_admin: bool,
        payout_type: str,
    ) -> Payment | None:
        if not self.eligibility.is_payable(
            payee,
            cutoff_date,
            processor.processor_type,
            add_comment=True,
            from_admin=from_admin,
            payout_type=payout_type,
        ):
            return None

        balances = BalanceAggregator.lock_and_mark_processing(payee, cutoff_date, processor)
        if not balances:
            return None
        return PaymentBuilder.build(payee, cutoff_date, processor, balances, payout_type)
