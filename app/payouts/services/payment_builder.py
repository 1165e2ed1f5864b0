"""
Builds a payment from balances locked for a payout run.

The builder owns the locked balances until it hands a payment to the
Disbursement Engine. Whenever it cannot produce a payment, the balances
go back to UNPAID so a later run can pick them up again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService

from payouts.models import Payment
from payouts.services.balance_aggregator import BalanceAggregator
from payouts.services.payment_state import PaymentStateService
from payouts.state_machines import PayoutType

if TYPE_CHECKING:
    from datetime import date

    from payouts.models import Balance, Payee
    from payouts.processors.base import PayoutProcessor


class PaymentBuilder(BaseService):
    """Creates CREATING payments with their amount and destination set."""

    @classmethod
    def build(
        cls,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
        balances: list[Balance],
        payout_type: str = PayoutType.STANDARD,
    ) -> Payment | None:
        """
        Create a payment for `balances`, already locked in PROCESSING.

        Returns:
            The payment ready for disbursement, or None when the balances sum
            to zero or less or the processor could not prepare the payment.
        """
        logger = cls.get_logger()
        log_context = {
            "payee_id": str(payee.pk),
            "cutoff_date": str(cutoff_date),
            "processor": processor.processor_type,
            "balance_count": len(balances),
        }

        total_cents = sum(balance.amount_cents for balance in balances)
        if total_cents <= 0:
            BalanceAggregator.release(balances)
            logger.info(
                "Nothing to pay, released balances",
                extra={**log_context, "total_cents": total_cents},
            )
            return None

        with cls.atomic():
            payment = Payment.objects.create(
                payee=payee,
                processor=processor.processor_type,
                payout_period_end_date=cutoff_date,
                payout_type=payout_type,
                **processor.destination_for(payee),
            )
            payment.balances.set(balances)

        errors = processor.prepare_payment_and_set_amount(payment, balances)
        if errors:
            logger.warning(
                f"Could not prepare payment {payment.pk}: {'; '.join(errors)}",
                extra={**log_context, "payment_id": str(payment.pk), "errors": errors},
            )
            PaymentStateService.mark_failed(payment)
            return None

        payment.save(
            update_fields=[
                "currency",
                "amount_cents",
                "platform_fee_cents",
                "stripe_connect_account_id",
                "internal_transfer_amount_cents",
                "updated_at",
            ]
        )
        logger.info(
            f"Built payment {payment.pk}",
            extra={
                **log_context,
                "payment_id": str(payment.pk),
                "amount_cents": payment.amount_cents,
                "currency": payment.currency,
                "internal_transfer_amount_cents": payment.internal_transfer_amount_cents,
            },
        )
        return payment
