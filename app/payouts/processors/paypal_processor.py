"""
PayPal payout processor.

Pays payees who have no bank account on file to their PayPal address with
the MassPay NVP API. Payments are sent in batches; PayPal reports the
outcome of each item later through masspay IPNs.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from django.conf import settings

from payouts.adapters import MassPayItem, PaypalAdapter
from payouts.currency import CurrencyConverter
from payouts.exceptions import PaypalError
from payouts.processors.base import PayoutProcessor, payout_date_display
from payouts.services.payment_state import PaymentStateService
from payouts.state_machines import PaymentState, PayoutProcessorType, PayoutType

if TYPE_CHECKING:
    from typing import Any

    from payouts.models import Balance, Payee, Payment

logger = logging.getLogger(__name__)

# MassPay accepts 250 recipients per call
PAYOUT_RECIPIENTS_PER_JOB = 240

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def note_for_payment(payment: Payment) -> str:
    return f"{payment.payee.legal_name}, selling digital products / memberships"


class PaypalProcessor(PayoutProcessor):
    """
    PayoutProcessor for PayPal MassPay.

    Args:
        adapter: PaypalAdapter or an object with the same classmethods
        preferred_processor: Processor that takes precedence; payees it can
            pay are never paid through PayPal
    """

    processor_type = PayoutProcessorType.PAYPAL

    def __init__(
        self,
        adapter: Any = PaypalAdapter,
        preferred_processor: PayoutProcessor | None = None,
    ):
        self.adapter = adapter
        self.preferred_processor = preferred_processor

    def is_user_payable(
        self,
        payee: Payee,
        amount_payable_usd_cents: int,
        *,
        add_comment: bool = False,
        from_admin: bool = False,
        payout_type: str = PayoutType.STANDARD,
    ) -> bool:
        payout_date = payout_date_display()

        def skip(reason: str) -> bool:
            if add_comment:
                payee.add_payout_note(f"Payout via PayPal on {payout_date} skipped because {reason}")
            return False

        # Bank payouts win when the payee has set one up
        if payee.active_bank_account is not None:
            return False
        if self.preferred_processor is not None and self.preferred_processor.is_user_payable(
            payee, amount_payable_usd_cents
        ):
            return False

        email = payee.paypal_payout_email
        if not email or not EMAIL_REGEX.match(email):
            return skip("the account does not have a valid PayPal payment address")
        if not email.isascii():
            return skip("the PayPal payment address contains invalid characters")
        if not payee.legal_name.strip():
            return skip("the account does not have a valid name on record")

        processing_ids = [
            str(pk)
            for pk in payee.payments.filter(state=PaymentState.PROCESSING).values_list(
                "pk", flat=True
            )
        ]
        if processing_ids:
            return skip(
                f"there are already payouts (ID {', '.join(processing_ids)}) in processing"
            )

        return True

    def is_balance_payable(self, balance: Balance) -> bool:
        return (
            balance.merchant_account.is_held_by_platform
            and balance.holding_currency == "usd"
        )

    def destination_for(self, payee: Payee) -> dict[str, Any]:
        return {"payment_address": payee.paypal_payout_email}

    def prepare_payment_and_set_amount(
        self,
        payment: Payment,
        balances: list[Balance],
    ) -> list[str]:
        payment.currency = "usd"
        payment.amount_cents = sum(balance.holding_amount_cents for balance in balances)
        if payment.payee.charge_paypal_payout_fee:
            payment.platform_fee_cents = CurrencyConverter.fee_cents(
                payment.amount_cents, settings.PAYOUT_PAYPAL_FEE_PERCENT
            )
            payment.amount_cents -= payment.platform_fee_cents
        if payment.amount_cents <= 0:
            return [f"Payout amount {payment.amount_cents} USD is not positive"]
        return []

    def enqueue_payments(self, payee_ids: list[str], date_string: str) -> None:
        from payouts.tasks import payout_payees

        ids = [str(payee_id) for payee_id in payee_ids]
        for index, start in enumerate(range(0, len(ids), PAYOUT_RECIPIENTS_PER_JOB)):
            # Spread batches out a minute apart to stay under PayPal rate limits
            payout_payees.apply_async(
                args=[date_string, self.processor_type, ids[start : start + PAYOUT_RECIPIENTS_PER_JOB]],
                countdown=index * 60,
            )

    def perform_payment(self, payment: Payment) -> list[str]:
        return self.perform_payments([payment]).get(str(payment.pk), [])

    def perform_payments(self, payments: list[Payment]) -> dict[str, list[str]]:
        """
        Send payments in MassPay batches.

        A batch PayPal rejects fails every payment in it.
        """
        errors: dict[str, list[str]] = {}
        for start in range(0, len(payments), PAYOUT_RECIPIENTS_PER_JOB):
            batch = payments[start : start + PAYOUT_RECIPIENTS_PER_JOB]
            batch_errors = self._send_batch(batch)
            if batch_errors:
                for payment in batch:
                    errors[str(payment.pk)] = batch_errors
        return errors

    def _send_batch(self, payments: list[Payment]) -> list[str]:
        items = [
            MassPayItem(
                email=payment.payment_address,
                amount_cents=payment.amount_cents,
                unique_id=payment.external_id,
                note=note_for_payment(payment),
            )
            for payment in payments
        ]
        payee_ids = [str(payment.payee_id) for payment in payments]

        try:
            result = self.adapter.mass_pay(items, currency="usd")
        except PaypalError as e:
            logger.error(
                f"PayPal MassPay failed: {e.message}",
                extra={"payee_ids": payee_ids, **e.to_dict()},
            )
            for payment in payments:
                PaymentStateService.mark_failed(payment)
            return [e.message]

        for payment in payments:
            payment.correlation_id = result.correlation_id
            payment.save(update_fields=["correlation_id", "updated_at"])

        if not result.succeeded:
            logger.error(
                "PayPal MassPay rejected",
                extra={"payee_ids": payee_ids, "ack": result.ack, "errors": result.errors},
            )
            for payment in payments:
                PaymentStateService.mark_failed(payment)
            return result.errors or [f"PayPal MassPay returned ACK {result.ack}"]

        if result.errors:
            logger.warning(
                "PayPal MassPay succeeded with warnings",
                extra={"payee_ids": payee_ids, "errors": result.errors},
            )
        for payment in payments:
            PaymentStateService.mark_processing(payment)
        return []

    def handle_webhook_event(self, event: dict[str, Any], account_id: str | None = None) -> None:
        from payouts.services.reconciliation import PaypalReconciliationService

        PaypalReconciliationService.handle_ipn(event)
