"""
Reconciliation of processor events against payments and balances.

Stripe payout events are correlated to a payment by the payout id stored
in Payment.stripe_transfer_id, then checked against the payment id Stripe
echoes back in the payout metadata. Anything that cannot be correlated is
a data-integrity problem and raises ReconciliationError; it is never
silently dropped.

Event handling (non-automatic payouts):

    payout.paid      PROCESSING -> COMPLETED, balances PAID
                     anything else: no-op (duplicate delivery)
    payout.canceled  PROCESSING -> CANCELLED, balances UNPAID,
                     internal transfer reversed
                     anything else: ReconciliationError
    payout.failed    PROCESSING -> FAILED / COMPLETED -> RETURNED,
                     balances UNPAID, internal transfer reversed,
                     payee emailed

Reversal payouts (object.original_payout set) are correlated through the
original payout. A paid reversal is acted on after the settlement delay,
because Stripe may still report a "paid" payout as failed for several
business days.

Usage:
    StripeReconciliationService(stripe_processor).handle_event(event, "acct_123")
    PaypalReconciliationService.handle_ipn(request.POST.dict())
"""

from __future__ import annotations

import re
import uuid
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from core.services import BaseService

from payouts.currency import CurrencyConverter
from payouts.exceptions import ReconciliationError
from payouts.models import MerchantAccount, Payment
from payouts.services.credits import CreditService
from payouts.services.payment_state import PaymentStateService
from payouts.state_machines import PaymentState, PayoutProcessorType

if TYPE_CHECKING:
    from typing import Any

    from payouts.adapters import PayoutResult
    from payouts.models import Credit
    from payouts.processors.stripe_processor import StripeProcessor


HANDLED_STRIPE_EVENTS = ("payout.paid", "payout.canceled", "payout.failed")


def _settlement_delay() -> int:
    return settings.PAYOUT_REVERSAL_SETTLEMENT_DELAY_SECONDS


class StripeReconciliationService(BaseService):
    """
    Applies Stripe payout events to payments.

    Args:
        processor: StripeProcessor used for API reads and transfer reversals
    """

    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    @property
    def adapter(self):
        return self.processor.adapter

    def handle_event(self, event: dict[str, Any], account_id: str | None) -> None:
        """
        Route one Stripe event.

        Raises:
            ReconciliationError: Event cannot be correlated to a payment
        """
        event_id = event.get("id")
        event_type = event.get("type")
        logger = self.get_logger()

        if event_type not in HANDLED_STRIPE_EVENTS:
            logger.debug(f"Ignoring Stripe event type {event_type}", extra={"stripe_event_id": event_id})
            return

        event_object = (event.get("data") or {}).get("object") or {}
        if event_object.get("object") != "payout":
            raise ReconciliationError(
                f"Stripe Event {event_id}: does not contain a payout object.",
                details={"stripe_event_id": event_id},
            )

        is_reversal = bool(event_object.get("original_payout"))
        payout_id = event_object.get("original_payout") if is_reversal else event_object.get("id")
        if not payout_id:
            raise ReconciliationError(
                f"Stripe Event {event_id}: payout has no payout id.",
                details={"stripe_event_id": event_id},
            )

        log_context = {
            "stripe_event_id": event_id,
            "event_type": event_type,
            "payout_id": payout_id,
            "stripe_account": account_id,
            "is_reversal": is_reversal,
        }

        payout = self.adapter.retrieve_payout(payout_id, account_id)

        merchant_account = self._merchant_account(account_id)
        if merchant_account is None or merchant_account.currency != payout.currency:
            logger.info("Ignoring payout event for unknown account or currency", extra=log_context)
            return

        if payout.automatic:
            self._handle_automatic_payout(event_type, payout, account_id, log_context)
            return

        payment = (
            Payment.objects.filter(
                processor=PayoutProcessorType.STRIPE,
                stripe_connect_account_id=account_id,
                stripe_transfer_id=payout_id,
            )
            .select_related("payee")
            .first()
        )
        if payment is None:
            raise ReconciliationError(
                f"Stripe Event {event_id}: payout does not match any payment.",
                details=log_context,
            )
        if payment.external_id != payout.metadata.get("payment"):
            raise ReconciliationError(
                f"Stripe Event {event_id}: payout mismatches on payment ID.",
                details={**log_context, "payment_id": payment.external_id},
            )

        if is_reversal:
            self._handle_reversal_event(event_type, payment, event_object["id"], account_id)
        elif event_type == "payout.paid":
            self.handle_payout_paid(payment, payout)
        elif event_type == "payout.canceled":
            self.handle_payout_cancelled(payment)
        else:
            self.handle_payout_failed(payment, failure_code=payout.failure_code)

    @staticmethod
    def _merchant_account(account_id: str | None) -> MerchantAccount | None:
        if not account_id:
            return None
        return (
            MerchantAccount.objects.alive()
            .filter(processor_merchant_id=account_id)
            .select_related("payee")
            .order_by("-created_at")
            .first()
        )

    def _handle_automatic_payout(
        self,
        event_type: str,
        payout: PayoutResult,
        account_id: str,
        log_context: dict[str, Any],
    ) -> None:
        # Stripe's own scheduled payouts never correspond to a payment
        if payout.amount_cents >= 0 or event_type != "payout.paid":
            self.get_logger().info("Ignoring automatic payout event", extra=log_context)
            return

        from payouts.tasks import handle_stripe_bank_debit

        handle_stripe_bank_debit.apply_async(
            args=[account_id, payout.id],
            countdown=_settlement_delay(),
        )

    def _handle_reversal_event(
        self,
        event_type: str,
        payment: Payment,
        reversing_payout_id: str,
        account_id: str,
    ) -> None:
        if event_type == "payout.paid":
            from payouts.tasks import handle_payout_reversed

            handle_payout_reversed.apply_async(
                args=[str(payment.pk), reversing_payout_id, account_id],
                countdown=_settlement_delay(),
            )
        elif event_type == "payout.failed" and payment.was_reversed_by(reversing_payout_id):
            raise ReconciliationError(
                f"Payout {payment.pk} was reversed, the reversal was reported as paid and the "
                "payment was returned, but Stripe now reports the reversal as failed. "
                "Linked balances may have been paid again. The case needs manual review.",
                details={"payment_id": str(payment.pk), "reversing_payout_id": reversing_payout_id},
            )

    # ==========================================================================
    # Event Handlers
    # ==========================================================================

    def handle_payout_paid(self, payment: Payment, payout: PayoutResult) -> None:
        if payment.state != PaymentState.PROCESSING:
            self.get_logger().info(
                "Ignoring payout.paid for payment that is not processing",
                extra={"payment_id": str(payment.pk), "state": payment.state},
            )
            return
        PaymentStateService.mark_completed(payment, arrival_date=payout.arrival_date)

    def handle_payout_cancelled(self, payment: Payment) -> None:
        if payment.state != PaymentState.PROCESSING:
            raise ReconciliationError(
                f"Expected payment {payment.pk} to be in processing state, got: {payment.state}",
                details={"payment_id": str(payment.pk), "state": payment.state},
            )
        result = PaymentStateService.mark_cancelled(payment)
        if result:
            self.processor.reverse_internal_transfer(result.data)

    def handle_payout_failed(self, payment: Payment, failure_code: str | None = None) -> None:
        result = PaymentStateService.fail_or_return(payment, reason=failure_code)
        if not result:
            self.get_logger().info(
                "Ignoring payout.failed for payment that is not processing or completed",
                extra={"payment_id": str(payment.pk), "state": payment.state},
            )
            return

        self.processor.reverse_internal_transfer(result.data)

        if failure_code:
            from payouts.tasks import send_payout_failure_email

            payment_id = str(payment.pk)
            transaction.on_commit(lambda: send_payout_failure_email.delay(payment_id))

    def handle_payout_reversed(self, payment_id: str, reversing_payout_id: str) -> None:
        """
        Settle a reversal that has stayed paid through the settlement delay.

        PROCESSING -> FAILED or COMPLETED -> RETURNED; other states are left
        alone.
        """
        with self.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            result = PaymentStateService.fail_or_return(payment)
            if not result:
                self.get_logger().info(
                    "Ignoring payout reversal for payment in final state",
                    extra={"payment_id": payment_id, "state": payment.state},
                )
                return

            self.processor.reverse_internal_transfer(payment)

            payment.processor_reversing_payout_id = reversing_payout_id
            payment.save(update_fields=["processor_reversing_payout_id", "updated_at"])

    def handle_bank_debit(self, account_id: str, payout_id: str) -> Credit | None:
        """Credit the payee for an automatic payout that debited their bank."""
        payout = self.adapter.retrieve_payout(payout_id, account_id)
        if payout.amount_cents >= 0:
            return None

        merchant_account = self._merchant_account(account_id)
        if merchant_account is None or merchant_account.payee is None:
            raise ReconciliationError(
                f"Stripe payout {payout_id}: no payee merchant account for {account_id}.",
                details={"payout_id": payout_id, "stripe_account": account_id},
            )

        return CreditService.create_for_bank_debit(
            merchant_account.payee,
            merchant_account,
            CurrencyConverter.from_processor_amount(abs(payout.amount_cents), payout.currency),
            payout.currency,
        )


# =============================================================================
# PayPal
# =============================================================================


MASSPAY_FIELD = re.compile(r"^(?P<name>.+)_(?P<index>\d+)$")

PAYPAL_STATUS_TRANSITIONS = {
    "completed": "mark_completed",
    "unclaimed": "mark_unclaimed",
    "failed": "mark_failed",
    "returned": "mark_returned",
    "reversed": "mark_returned",
}


def parse_masspay_items(params: dict[str, Any]) -> list[dict[str, str]]:
    """
    Group masspay IPN fields by their numeric suffix.

    {"unique_id_1": "a", "status_1": "Completed"} -> [{"unique_id": "a", "status": "Completed"}]
    """
    items: dict[int, dict[str, str]] = defaultdict(dict)
    for key, value in params.items():
        match = MASSPAY_FIELD.match(key)
        if match:
            items[int(match["index"])][match["name"]] = value
    return [items[index] for index in sorted(items)]


class PaypalReconciliationService(BaseService):
    """Applies PayPal masspay IPNs to payments."""

    @classmethod
    def handle_ipn(cls, params: dict[str, Any]) -> None:
        cls.get_logger().info("Received PayPal masspay IPN", extra={"txn_type": params.get("txn_type")})
        for item in parse_masspay_items(params):
            cls._handle_item(item)

    @classmethod
    def _handle_item(cls, item: dict[str, str]) -> None:
        logger = cls.get_logger()
        unique_id = str(item.get("unique_id", ""))

        try:
            payment_pk = uuid.UUID(unique_id)
        except ValueError:
            payment_pk = None
        payment = Payment.objects.filter(pk=payment_pk).first() if payment_pk else None
        if payment is None:
            logger.warning(f"PayPal unique_id {unique_id!r} did not match a payment")
            return

        if payment.state not in PaymentState.non_terminal():
            return

        payment.txn_id = item.get("masspay_txn_id", "")
        if item.get("mc_fee"):
            try:
                payment.processor_fee_cents = int(Decimal(item["mc_fee"]) * 100)
            except InvalidOperation:
                logger.warning(f"Unparseable PayPal fee {item['mc_fee']!r}", extra={"payment_id": unique_id})
        payment.save(update_fields=["txn_id", "processor_fee_cents", "updated_at"])

        status = (item.get("status") or "").lower()
        if status == "pending" or status == payment.state:
            return

        transition = PAYPAL_STATUS_TRANSITIONS.get(status)
        if transition is None:
            logger.warning(
                f"Unknown PayPal payout status {status!r}",
                extra={"payment_id": unique_id},
            )
            return

        if transition == "mark_failed":
            reason = f"PAYPAL {item['reason_code']}" if item.get("reason_code") else None
            PaymentStateService.mark_failed(payment, reason=reason)
        else:
            getattr(PaymentStateService, transition)(payment)
