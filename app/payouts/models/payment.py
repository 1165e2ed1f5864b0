"""
Payment model for a single disbursement attempt.

A Payment aggregates one or more balances for one payee, one cutoff date
and one processor. It is created by the PaymentBuilder, moved to
PROCESSING by the DisbursementEngine and settled by webhook reconciliation.

Usage:
    from payouts.models import Payment
    from payouts.services import PaymentStateService

    payment = Payment.objects.create(
        payee=payee,
        processor=PayoutProcessorType.STRIPE,
        payout_period_end_date=date(2024, 5, 1),
    )
    payment.balances.set(balances)

    # Transitions go through PaymentStateService so balance side
    # effects stay consistent
    PaymentStateService.mark_processing(payment)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import VersionedModel

from payouts.state_machines import PaymentState, PayoutProcessorType, PayoutType


def _returnable_from_current_state(payment: Payment) -> bool:
    # PayPal cannot claw back a completed MassPay item
    return not (
        payment.state == PaymentState.COMPLETED
        and payment.processor == PayoutProcessorType.PAYPAL
    )


class Payment(UUIDPrimaryKeyMixin, VersionedModel):
    """
    One disbursement of aggregated balances to a payee.

    State Flow:
        CREATING -> PROCESSING -> COMPLETED
        CREATING/PROCESSING -> FAILED
        PROCESSING -> CANCELLED
        PROCESSING -> UNCLAIMED -> COMPLETED (PayPal)
        PROCESSING/UNCLAIMED -> RETURNED
        COMPLETED -> RETURNED (Stripe only)

    Fields:
        payee: Payee being paid
        processor: Processor moving the money
        amount_cents: Amount in the payout currency
        currency: Payout currency (connected account settlement currency)
        payout_period_end_date: Cutoff date the balances were aggregated up to
        payout_type: Standard or instant
        stripe_transfer_id: External transfer ID (po_xxx)
        stripe_internal_transfer_id: Platform -> connected account transfer (tr_xxx)
        internal_transfer_amount_cents: USD amount routed through the internal leg
        processor_reversing_payout_id: Reversal payout that returned this payment
        failure_reason: PaymentFailureReason or a processor failure code
        version: Optimistic locking version

    Note:
        `external_id` is sent in processor metadata and checked again when
        webhooks come back.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payee = models.ForeignKey(
        "payouts.Payee",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Payee being paid",
    )

    balances = models.ManyToManyField(
        "payouts.Balance",
        related_name="payments",
        blank=True,
        help_text="Balances aggregated into this payment",
    )

    bank_account = models.ForeignKey(
        "payouts.BankAccount",
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
        help_text="Stripe payout destination",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    processor = models.CharField(
        max_length=20,
        choices=PayoutProcessorType.choices,
        db_index=True,
        help_text="Processor moving the money",
    )

    amount_cents = models.BigIntegerField(
        default=0,
        help_text="Amount in minor units of the payout currency",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="Payout currency (ISO 4217, lowercase)",
    )

    payout_period_end_date = models.DateField(
        db_index=True,
        help_text="Cutoff date balances were aggregated up to",
    )

    payout_type = models.CharField(
        max_length=20,
        choices=PayoutType.choices,
        default=PayoutType.STANDARD,
        help_text="Standard or instant payout",
    )

    processor_fee_cents = models.BigIntegerField(
        default=0,
        help_text="Fee charged by the processor",
    )

    platform_fee_cents = models.BigIntegerField(
        default=0,
        help_text="Fee deducted by the platform (PayPal payout fee)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=PaymentState.CREATING,
        choices=PaymentState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PaymentFailureReason or processor failure code",
    )

    arrival_date = models.DateField(
        null=True,
        blank=True,
        help_text="Expected or actual arrival date reported by the processor",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # PayPal Integration
    # ==========================================================================

    payment_address = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PayPal address the payment is sent to",
    )

    correlation_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PayPal MassPay correlation ID",
    )

    txn_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PayPal MassPay transaction ID",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_connect_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Connected account the payout is made from",
    )

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Payout ID (po_xxx) of the external transfer",
    )

    stripe_internal_transfer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Transfer ID (tr_xxx) of the internal leg",
    )

    internal_transfer_amount_cents = models.BigIntegerField(
        default=0,
        help_text="USD amount routed through the internal leg",
    )

    stripe_internal_transfer_reversal_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Transfer Reversal ID (trr_xxx) of the internal leg",
    )

    processor_reversing_payout_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe payout that reversed this payment",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["payee", "state"]),
            models.Index(fields=["processor", "state"]),
            models.Index(fields=["payee", "payout_period_end_date"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gte=0),
                name="payment_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.processor}, {self.state}, {amount_display})"

    @property
    def external_id(self) -> str:
        return str(self.id)

    @property
    def has_internal_transfer(self) -> bool:
        return bool(self.stripe_internal_transfer_id)

    def was_reversed_by(self, payout_id: str) -> bool:
        return bool(payout_id) and self.processor_reversing_payout_id == payout_id

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=state, source=PaymentState.CREATING, target=PaymentState.PROCESSING)
    def mark_processing(self):
        """Transition: CREATING -> PROCESSING"""

    @transition(
        field=state,
        source=[PaymentState.PROCESSING, PaymentState.UNCLAIMED],
        target=PaymentState.COMPLETED,
    )
    def mark_completed(self, arrival_date=None):
        """
        Mark the payment as paid out.

        Transition: PROCESSING/UNCLAIMED -> COMPLETED
        """
        self.completed_at = timezone.now()
        if arrival_date is not None:
            self.arrival_date = arrival_date

    @transition(
        field=state,
        source=[PaymentState.CREATING, PaymentState.PROCESSING],
        target=PaymentState.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        """Transition: CREATING/PROCESSING -> FAILED"""
        if reason:
            self.failure_reason = reason

    @transition(field=state, source=PaymentState.PROCESSING, target=PaymentState.CANCELLED)
    def mark_cancelled(self):
        """Transition: PROCESSING -> CANCELLED"""

    @transition(
        field=state,
        source=[PaymentState.PROCESSING, PaymentState.UNCLAIMED, PaymentState.COMPLETED],
        target=PaymentState.RETURNED,
        conditions=[_returnable_from_current_state],
    )
    def mark_returned(self, reason: str | None = None):
        """
        Mark the payment as returned.

        Transition: PROCESSING/UNCLAIMED -> RETURNED
                    COMPLETED -> RETURNED (not PayPal)
        """
        if reason:
            self.failure_reason = reason

    @transition(field=state, source=PaymentState.PROCESSING, target=PaymentState.UNCLAIMED)
    def mark_unclaimed(self):
        """PayPal recipient has not claimed the money yet. PROCESSING -> UNCLAIMED"""
