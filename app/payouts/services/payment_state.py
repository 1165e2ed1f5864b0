"""
Validated payment state transitions with balance side effects.

Every payment transition outside the model goes through
PaymentStateService. Each method checks the transition against the current
state with django-fsm's can_proceed, applies it under a row lock, then
moves the attached balances:

    completed                     -> balances PAID
    failed / cancelled / returned -> balances UNPAID

Notification tasks are queued with transaction.on_commit so they never
fire for a rolled back transition.

Usage:
    from payouts.services import PaymentStateService

    result = PaymentStateService.mark_completed(payment, arrival_date=date(2024, 5, 3))
    if not result:
        logger.warning(result.error, extra={"error_code": result.error_code})
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from django.db import transaction

from django_fsm import can_proceed

from core.services import BaseService, ServiceResult

from payouts.exceptions import InvalidStateTransitionError
from payouts.models import Payment
from payouts.services.balance_aggregator import BalanceAggregator
from payouts.state_machines import PaymentFailureReason, PaymentState

if TYPE_CHECKING:
    from collections.abc import Callable


INVALID_STATE_TRANSITION = InvalidStateTransitionError.default_error_code


class PaymentStateService(BaseService):
    """
    Applies payment transitions and keeps balances in step.

    Methods return ServiceResult[Payment]. A rejected transition returns a
    failure with error_code INVALID_STATE_TRANSITION and leaves the payment
    and its balances untouched.
    """

    @classmethod
    def _transition(
        cls,
        payment: Payment,
        name: str,
        *args,
        **kwargs,
    ) -> ServiceResult[Payment]:
        with cls.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            previous_state = locked.state
            method = getattr(locked, name)

            if not can_proceed(method):
                cls.get_logger().warning(
                    f"Rejected payment transition {name} from {previous_state}",
                    extra={
                        "payment_id": str(payment.pk),
                        "transition": name,
                        "state": previous_state,
                    },
                )
                return ServiceResult.failure(
                    f"Cannot {name.removeprefix('mark_')} payment in state {previous_state}",
                    error_code=INVALID_STATE_TRANSITION,
                )

            method(*args, **kwargs)
            locked.save()

            balances = list(locked.balances.all())
            if locked.state == PaymentState.COMPLETED:
                BalanceAggregator.mark_paid(balances)
            elif locked.state in (
                PaymentState.FAILED,
                PaymentState.CANCELLED,
                PaymentState.RETURNED,
            ):
                BalanceAggregator.mark_unpaid(balances)

        cls.get_logger().info(
            f"Payment {locked.pk}: {previous_state} -> {locked.state}",
            extra={
                "payment_id": str(locked.pk),
                "payee_id": str(locked.payee_id),
                "previous_state": previous_state,
                "state": locked.state,
                "failure_reason": locked.failure_reason,
            },
        )
        return ServiceResult.success(locked)

    @staticmethod
    def _after_commit(task: Callable, payment: Payment) -> None:
        payment_id = str(payment.pk)
        transaction.on_commit(lambda: task.delay(payment_id))

    # ==========================================================================
    # Transitions
    # ==========================================================================

    @classmethod
    def mark_processing(cls, payment: Payment) -> ServiceResult[Payment]:
        return cls._transition(payment, "mark_processing")

    @classmethod
    def mark_completed(
        cls,
        payment: Payment,
        arrival_date: date | None = None,
    ) -> ServiceResult[Payment]:
        return cls._transition(payment, "mark_completed", arrival_date=arrival_date)

    @classmethod
    def mark_failed(
        cls,
        payment: Payment,
        reason: str | None = None,
    ) -> ServiceResult[Payment]:
        """
        Fail the payment and release its balances.

        A cannot_pay failure also emails the payee, since they have to finish
        setting up their account before the next run can pay them.
        """
        result = cls._transition(payment, "mark_failed", reason=reason)
        if result and reason == PaymentFailureReason.CANNOT_PAY:
            from payouts.tasks import send_cannot_pay_email

            cls._after_commit(send_cannot_pay_email, result.data)
        return result

    @classmethod
    def mark_cancelled(cls, payment: Payment) -> ServiceResult[Payment]:
        return cls._transition(payment, "mark_cancelled")

    @classmethod
    def mark_returned(
        cls,
        payment: Payment,
        reason: str | None = None,
    ) -> ServiceResult[Payment]:
        was_completed = Payment.objects.filter(
            pk=payment.pk, state=PaymentState.COMPLETED
        ).exists()
        result = cls._transition(payment, "mark_returned", reason=reason)
        if result and was_completed:
            from payouts.tasks import send_payout_returned_email

            cls._after_commit(send_payout_returned_email, result.data)
        return result

    @classmethod
    def mark_unclaimed(cls, payment: Payment) -> ServiceResult[Payment]:
        return cls._transition(payment, "mark_unclaimed")

    @classmethod
    def fail_or_return(
        cls,
        payment: Payment,
        reason: str | None = None,
    ) -> ServiceResult[Payment]:
        """
        Undo a payout that bounced: PROCESSING -> FAILED, COMPLETED -> RETURNED.

        Other states are rejected with INVALID_STATE_TRANSITION.
        """
        current = Payment.objects.values_list("state", flat=True).get(pk=payment.pk)
        if current == PaymentState.PROCESSING:
            return cls.mark_failed(payment, reason=reason)
        if current == PaymentState.COMPLETED:
            return cls.mark_returned(payment, reason=reason)
        return ServiceResult.failure(
            f"Cannot fail or return payment in state {current}",
            error_code=INVALID_STATE_TRANSITION,
        )
