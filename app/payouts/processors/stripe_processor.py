"""
Stripe payout processor.

Pays payees from their Stripe connected account to their bank account or
debit card. Funds held by the platform are first moved to the connected
account with an internal transfer, then everything is paid out with a
single Stripe payout:

    Phase 1 (only when platform-held funds are positive)
        platform --Transfer--> connected account
    Phase 2
        connected account --Payout--> bank account / debit card

If phase 2 fails after phase 1 succeeded, the internal transfer is
reversed and any amount the reversal took back beyond what the transfer
delivered is recorded as a compensating credit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings

from payouts.adapters import IdempotencyKeyGenerator, StripeAdapter
from payouts.currency import CurrencyConverter
from payouts.exceptions import PayoutError, StripeError
from payouts.models import MerchantAccount, Payment
from payouts.processors.base import PayoutProcessor, payout_date_display
from payouts.services.credits import CreditService
from payouts.services.payment_state import PaymentStateService
from payouts.state_machines import (
    HolderOfFunds,
    PaymentFailureReason,
    PaymentState,
    PayoutProcessorType,
    PayoutType,
)

if TYPE_CHECKING:
    from typing import Any

    from payouts.models import Balance, Credit, Payee

logger = logging.getLogger(__name__)


# Stripe error message fragments mapped to recorded failure reasons
FAILURE_REASON_MESSAGES = (
    ("Cannot create live transfers", PaymentFailureReason.CANNOT_PAY),
    (
        "Debit card transfers are only supported for amounts less",
        PaymentFailureReason.DEBIT_CARD_LIMIT,
    ),
    ("Insufficient funds in Stripe account", PaymentFailureReason.INSUFFICIENT_FUNDS),
)


def classify_payout_failure(message: str) -> str | None:
    """PaymentFailureReason for a Stripe payout error message, if recognised."""
    for fragment, reason in FAILURE_REASON_MESSAGES:
        if fragment in message:
            return reason
    return None


class StripeProcessor(PayoutProcessor):
    """
    PayoutProcessor for Stripe connected accounts.

    Args:
        adapter: StripeAdapter or an object with the same classmethods
    """

    processor_type = PayoutProcessorType.STRIPE

    def __init__(self, adapter: Any = StripeAdapter):
        self.adapter = adapter

    # ==========================================================================
    # Eligibility
    # ==========================================================================

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
                payee.add_payout_note(f"Payout on {payout_date} was skipped because {reason}")
            return False

        if payee.payments.filter(state=PaymentState.PROCESSING).exists():
            return skip("there was already a payout in processing.")

        bank_account = payee.active_bank_account
        if bank_account is None:
            return skip("a bank account wasn't added at the time.")

        if not bank_account.is_correctly_set_up or payee.stripe_merchant_account is None:
            return skip("the payout bank account was not correctly set up.")

        if payout_type == PayoutType.INSTANT and not bank_account.is_debit_card:
            return skip("instant payouts require a debit card.")

        return True

    def is_balance_payable(self, balance: Balance) -> bool:
        merchant_account = balance.merchant_account
        if merchant_account.holder_of_funds == HolderOfFunds.STRIPE:
            return balance.holding_currency == merchant_account.currency
        return merchant_account.is_held_by_platform

    def destination_for(self, payee: Payee) -> dict[str, Any]:
        return {"bank_account": payee.active_bank_account}

    # ==========================================================================
    # Amounts
    # ==========================================================================

    @staticmethod
    def _held_amounts(balances: list[Balance]) -> tuple[int, int]:
        """(connected-account held amount, platform held amount in USD cents)"""
        stripe_held = 0
        platform_held_usd = 0
        for balance in balances:
            if balance.held_by == HolderOfFunds.STRIPE:
                stripe_held += balance.holding_amount_cents
            elif balance.held_by == HolderOfFunds.PLATFORM:
                platform_held_usd += CurrencyConverter.usd_cents(
                    balance.holding_amount_cents, balance.holding_currency
                )
        return stripe_held, platform_held_usd

    @staticmethod
    def _finalize_amount(amount_cents: int, payment: Payment) -> int:
        amount_cents = CurrencyConverter.round_for_payout(amount_cents, payment.currency)
        if payment.payout_type == PayoutType.INSTANT:
            amount_cents = CurrencyConverter.amount_after_fee(
                amount_cents, settings.PAYOUT_INSTANT_FEE_PERCENT
            )
        return amount_cents

    def prepare_payment_and_set_amount(
        self,
        payment: Payment,
        balances: list[Balance],
    ) -> list[str]:
        merchant_account = payment.payee.stripe_merchant_account
        if merchant_account is None:
            return [f"Payee {payment.payee_id} has no Stripe merchant account"]

        payment.stripe_connect_account_id = merchant_account.processor_merchant_id
        payment.currency = merchant_account.currency

        try:
            stripe_held, platform_held_usd = self._held_amounts(balances)
            # Non-positive platform funds are netted against the payout itself
            platform_held = CurrencyConverter.convert_cents(
                platform_held_usd, "usd", payment.currency
            )
        except PayoutError as e:
            return [e.message]

        if platform_held_usd > 0:
            payment.internal_transfer_amount_cents = platform_held_usd
        payment.amount_cents = self._finalize_amount(stripe_held + platform_held, payment)

        if payment.amount_cents <= 0:
            return [
                f"Payout amount {payment.amount_cents} {payment.currency.upper()} is not positive"
            ]
        return []

    def enqueue_payments(self, payee_ids: list[str], date_string: str) -> None:
        from payouts.tasks import payout_payees

        for payee_id in payee_ids:
            payout_payees.delay(date_string, self.processor_type, [str(payee_id)])

    # ==========================================================================
    # Disbursement
    # ==========================================================================

    def perform_payment(self, payment: Payment) -> list[str]:
        log_context = {
            "payment_id": str(payment.pk),
            "payee_id": str(payment.payee_id),
            "amount_cents": payment.amount_cents,
            "currency": payment.currency,
            "internal_transfer_amount_cents": payment.internal_transfer_amount_cents,
        }

        if payment.internal_transfer_amount_cents > 0 and not payment.stripe_internal_transfer_id:
            try:
                self._transfer_platform_funds(payment)
            except StripeError as e:
                self._log_failure("Internal transfer failed", e, log_context)
                PaymentStateService.mark_failed(payment)
                return [e.message, *self._reverse_after_failure(payment, log_context)]

        if payment.bank_account is None:
            message = f"Payment {payment.external_id} has no bank account to pay out to"
            PaymentStateService.mark_failed(payment)
            return [message, *self._reverse_after_failure(payment, log_context)]

        try:
            payout = self.adapter.create_payout(
                amount_cents=CurrencyConverter.to_processor_amount(
                    payment.amount_cents, payment.currency
                ),
                currency=payment.currency,
                stripe_account=payment.stripe_connect_account_id,
                idempotency_key=IdempotencyKeyGenerator.generate("payout", payment.pk),
                destination=payment.bank_account.stripe_bank_account_id,
                method=payment.payout_type,
                metadata={
                    "payment": payment.external_id,
                    "bank_account": str(payment.bank_account.pk),
                    "balances": [str(pk) for pk in payment.balances.values_list("pk", flat=True)],
                },
                statement_descriptor=settings.PAYOUT_STATEMENT_DESCRIPTOR,
            )
        except StripeError as e:
            reason = classify_payout_failure(e.message)
            self._log_failure("Stripe payout failed", e, {**log_context, "failure_reason": reason})
            PaymentStateService.mark_failed(payment, reason=reason)
            return [e.message, *self._reverse_after_failure(payment, log_context)]

        payment.stripe_transfer_id = payout.id
        payment.arrival_date = payout.arrival_date
        payment.save(update_fields=["stripe_transfer_id", "arrival_date", "updated_at"])

        result = PaymentStateService.mark_processing(payment)
        if not result:
            return [result.error]

        logger.info(
            "Stripe payout created",
            extra={**log_context, "stripe_payout_id": payout.id, "amount_cents": payment.amount_cents},
        )
        return []

    def _transfer_platform_funds(self, payment: Payment) -> None:
        balances = list(payment.balances.select_related("merchant_account"))
        platform_balance_ids = [str(b.pk) for b in balances if b.held_by == HolderOfFunds.PLATFORM]

        transfer = self.adapter.create_transfer(
            amount_cents=payment.internal_transfer_amount_cents,
            currency="usd",
            destination_account=payment.stripe_connect_account_id,
            idempotency_key=IdempotencyKeyGenerator.generate("internal_transfer", payment.pk),
            metadata={"payment": payment.external_id, "balances": platform_balance_ids},
            description=f"Funds held by the platform for Payment {payment.external_id}.",
        )
        payment.stripe_internal_transfer_id = transfer.id
        payment.save(update_fields=["stripe_internal_transfer_id", "updated_at"])

        # The connected account may settle in another currency; pay out what it received
        charge = self.adapter.retrieve_charge_balance_transaction(
            transfer.destination_payment_id,
            payment.stripe_connect_account_id,
        )
        received = CurrencyConverter.from_processor_amount(charge.amount_cents, payment.currency)
        stripe_held, _ = self._held_amounts(balances)
        payment.amount_cents = self._finalize_amount(stripe_held + received, payment)
        payment.save(update_fields=["amount_cents", "updated_at"])

    def _reverse_after_failure(self, payment: Payment, log_context: dict[str, Any]) -> list[str]:
        try:
            self.reverse_internal_transfer(payment)
        except StripeError as e:
            self._log_failure("Internal transfer reversal failed", e, log_context)
            return [e.message]
        return []

    @staticmethod
    def _log_failure(message: str, error: StripeError, log_context: dict[str, Any]) -> None:
        extra = {**log_context, **error.to_dict(), "infrastructure": error.is_infrastructure}
        if error.is_infrastructure:
            logger.error(f"{message}: {error.message}", extra=extra)
        else:
            logger.warning(f"{message}: {error.message}", extra=extra)

    # ==========================================================================
    # Reversal
    # ==========================================================================

    def reverse_internal_transfer(self, payment: Payment) -> Credit | None:
        """
        Pull the internal transfer back to the platform.

        Compares what the transfer delivered to the connected account with
        what the reversal took back and records the difference as a credit.
        Does nothing if there is no internal transfer or it was already
        reversed.
        """
        payment = Payment.objects.get(pk=payment.pk)
        if not payment.has_internal_transfer or payment.stripe_internal_transfer_reversal_id:
            return None

        reversal = self.adapter.reverse_transfer(
            payment.stripe_internal_transfer_id,
            idempotency_key=IdempotencyKeyGenerator.generate("internal_transfer_reversal", payment.pk),
            metadata={"payment": payment.external_id},
        )
        payment.stripe_internal_transfer_reversal_id = reversal.id
        payment.save(update_fields=["stripe_internal_transfer_reversal_id", "updated_at"])

        account = payment.stripe_connect_account_id
        transfer = self.adapter.retrieve_transfer(payment.stripe_internal_transfer_id)
        sent = self.adapter.retrieve_charge_balance_transaction(
            transfer.destination_payment_id, account
        )
        returned = self.adapter.retrieve_refund_balance_transaction(
            reversal.destination_payment_refund_id, account
        )
        difference = CurrencyConverter.from_processor_amount(
            sent.net_cents + returned.net_cents, payment.currency
        )

        logger.info(
            "Reversed internal transfer",
            extra={
                "payment_id": str(payment.pk),
                "transfer_id": payment.stripe_internal_transfer_id,
                "reversal_id": reversal.id,
                "sent_net_cents": sent.net_cents,
                "returned_net_cents": returned.net_cents,
            },
        )

        merchant_account = (
            MerchantAccount.objects.alive()
            .filter(processor_merchant_id=account)
            .order_by("-created_at")
            .first()
        ) or payment.payee.stripe_merchant_account
        return CreditService.create_for_returned_payment_difference(
            payment, merchant_account, difference
        )

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    def handle_webhook_event(self, event: dict[str, Any], account_id: str | None = None) -> None:
        from payouts.services.reconciliation import StripeReconciliationService

        StripeReconciliationService(self).handle_event(event, account_id)
