"""
Balance model.

A Balance is the money owed to a payee for one settlement date on one
merchant account. `amount_cents` is the issued (USD) amount; the holding
amount is what the holder of funds actually holds, in its own currency.

Usage:
    from payouts.models import Balance

    balance = Balance.objects.create(
        payee=payee,
        merchant_account=connected,
        date=date(2024, 5, 1),
        amount_cents=10_00,
        holding_currency="eur",
        holding_amount_cents=9_20,
    )

    # Transitions only happen under a row lock, see BalanceAggregator
    balance.mark_processing()
    balance.save()
"""

from __future__ import annotations

from django.db import models

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import VersionedModel

from payouts.state_machines import BalanceState


class Balance(UUIDPrimaryKeyMixin, VersionedModel):
    """
    A payee's earned-but-unpaid funds for one settlement date.

    State Flow:
        UNPAID -> PROCESSING (locked into a payment)
        PROCESSING -> PAID (payment completed)
        PROCESSING -> UNPAID (payment failed, cancelled or built empty)
        PAID -> UNPAID (payment returned)

    Fields:
        payee: Owner of the funds
        merchant_account: Account legally holding the funds
        date: Settlement date
        currency: Issued currency (USD)
        amount_cents: Signed issued amount
        holding_currency: Currency of the holder of funds
        holding_amount_cents: Signed amount held
        state: Current FSM state
        version: Optimistic locking version

    Note:
        A balance belongs to at most one in-flight payment. Only
        BalanceAggregator.lock_and_mark_processing moves it to PROCESSING.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payee = models.ForeignKey(
        "payouts.Payee",
        on_delete=models.PROTECT,
        related_name="balances",
        help_text="Payee owed these funds",
    )

    merchant_account = models.ForeignKey(
        "payouts.MerchantAccount",
        on_delete=models.PROTECT,
        related_name="balances",
        help_text="Merchant account holding these funds",
    )

    date = models.DateField(
        db_index=True,
        help_text="Settlement date",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="Issued currency (ISO 4217, lowercase)",
    )

    amount_cents = models.BigIntegerField(
        default=0,
        help_text="Signed issued amount in minor units",
    )

    holding_currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="Currency the funds are held in",
    )

    holding_amount_cents = models.BigIntegerField(
        default=0,
        help_text="Signed held amount in minor units of holding_currency",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=BalanceState.UNPAID,
        choices=BalanceState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the balance (managed by FSM)",
    )

    class Meta:
        ordering = ["date", "created_at"]
        verbose_name = "Balance"
        verbose_name_plural = "Balances"
        indexes = [
            models.Index(fields=["payee", "state", "date"]),
            models.Index(fields=["merchant_account", "state"]),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Balance({self.id}, {self.date}, {self.state}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=state, source=BalanceState.UNPAID, target=BalanceState.PROCESSING)
    def mark_processing(self):
        """Lock the balance into a payment. Transition: UNPAID -> PROCESSING"""

    @transition(field=state, source=BalanceState.PROCESSING, target=BalanceState.PAID)
    def mark_paid(self):
        """Transition: PROCESSING -> PAID"""

    @transition(
        field=state,
        source=[BalanceState.PROCESSING, BalanceState.PAID],
        target=BalanceState.UNPAID,
    )
    def mark_unpaid(self):
        """
        Release the balance for a future payout run.

        Transition: PROCESSING/PAID -> UNPAID
        """

    @property
    def held_by(self) -> str:
        return self.merchant_account.holder_of_funds
