"""
Credit and BalanceTransaction models.

Credits are compensating ledger entries. They are created by
reconciliation only, when a reversed internal transfer returns a different
amount than was sent or when Stripe debits a payee's bank account
automatically. Each credit carries one BalanceTransaction, whose net
amounts have been added to a payee balance.

Both models are immutable once created; see CreditService.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Credit(UUIDPrimaryKeyMixin, BaseModel):
    """
    Compensating credit on a payee balance.

    Fields:
        payee: Payee whose balance is adjusted
        merchant_account: Merchant account the adjustment applies to
        amount_cents: Signed issued (USD) amount
        returned_payment: Payment whose internal transfer was reversed
        balance: Balance the adjustment was applied to
    """

    payee = models.ForeignKey(
        "payouts.Payee",
        on_delete=models.PROTECT,
        related_name="credits",
    )

    merchant_account = models.ForeignKey(
        "payouts.MerchantAccount",
        on_delete=models.PROTECT,
        related_name="credits",
    )

    amount_cents = models.BigIntegerField(
        default=0,
        help_text="Signed issued amount in USD cents",
    )

    returned_payment = models.ForeignKey(
        "payouts.Payment",
        on_delete=models.PROTECT,
        related_name="credits",
        null=True,
        blank=True,
        help_text="Payment whose internal transfer was reversed",
    )

    balance = models.ForeignKey(
        "payouts.Balance",
        on_delete=models.PROTECT,
        related_name="credits",
        null=True,
        blank=True,
        help_text="Balance this credit was applied to",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Credit({self.id}, {self.amount_cents})"


class BalanceTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Gross/net breakdown of a credit in issued and holding currencies.

    Fields:
        issued_amount_*: Issued (USD) amounts added to Balance.amount_cents
        holding_amount_*: Held amounts added to Balance.holding_amount_cents
    """

    payee = models.ForeignKey(
        "payouts.Payee",
        on_delete=models.PROTECT,
        related_name="balance_transactions",
    )

    merchant_account = models.ForeignKey(
        "payouts.MerchantAccount",
        on_delete=models.PROTECT,
        related_name="balance_transactions",
    )

    credit = models.OneToOneField(
        Credit,
        on_delete=models.PROTECT,
        related_name="balance_transaction",
        null=True,
        blank=True,
    )

    balance = models.ForeignKey(
        "payouts.Balance",
        on_delete=models.PROTECT,
        related_name="balance_transactions",
    )

    # ==========================================================================
    # Issued Amounts
    # ==========================================================================

    issued_amount_currency = models.CharField(max_length=3, default="usd")
    issued_amount_gross_cents = models.BigIntegerField(default=0)
    issued_amount_net_cents = models.BigIntegerField(default=0)

    # ==========================================================================
    # Holding Amounts
    # ==========================================================================

    holding_amount_currency = models.CharField(max_length=3, default="usd")
    holding_amount_gross_cents = models.BigIntegerField(default=0)
    holding_amount_net_cents = models.BigIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Balance Transaction"
        verbose_name_plural = "Balance Transactions"

    def __str__(self) -> str:
        return (
            f"BalanceTransaction({self.id}, "
            f"{self.issued_amount_net_cents} {self.issued_amount_currency.upper()}, "
            f"{self.holding_amount_net_cents} {self.holding_amount_currency.upper()})"
        )
