"""
MerchantAccount model.

A merchant account is a processor account that holds funds. Balances point
at the merchant account that legally holds their money: either the
platform's own account (payee is null) or the payee's Stripe connected
account.

Usage:
    from payouts.models import MerchantAccount

    platform = MerchantAccount.objects.create(
        processor=PayoutProcessorType.STRIPE,
        holder_of_funds=HolderOfFunds.PLATFORM,
        currency="usd",
    )
    connected = MerchantAccount.objects.create(
        payee=payee,
        processor=PayoutProcessorType.STRIPE,
        holder_of_funds=HolderOfFunds.STRIPE,
        processor_merchant_id="acct_123",
        currency="eur",
    )
"""

from __future__ import annotations

from django.db import models

from core.managers import SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payouts.state_machines import HolderOfFunds, PayoutProcessorType


class MerchantAccount(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    Processor account that holds funds on behalf of the platform or a payee.

    Fields:
        payee: Owning payee (null for the platform's account)
        processor: Processor type
        processor_merchant_id: Processor account ID (acct_xxx)
        currency: Settlement currency of the account
        holder_of_funds: Who legally holds money on this account
    """

    payee = models.ForeignKey(
        "payouts.Payee",
        on_delete=models.PROTECT,
        related_name="merchant_accounts",
        null=True,
        blank=True,
        help_text="Owning payee. Null for the platform's own account.",
    )

    processor = models.CharField(
        max_length=20,
        choices=PayoutProcessorType.choices,
        db_index=True,
        help_text="Processor this account lives on",
    )

    processor_merchant_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Processor account ID (e.g., acct_xxx)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="Settlement currency (ISO 4217, lowercase)",
    )

    holder_of_funds = models.CharField(
        max_length=20,
        choices=HolderOfFunds.choices,
        default=HolderOfFunds.PLATFORM,
        help_text="Legal holder of funds on this account",
    )

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Merchant Account"
        verbose_name_plural = "Merchant Accounts"
        indexes = [
            models.Index(fields=["payee", "processor"]),
        ]

    def __str__(self) -> str:
        owner = self.payee_id or "platform"
        return f"MerchantAccount({self.processor}, {owner}, {self.currency.upper()})"

    @property
    def is_held_by_platform(self) -> bool:
        return self.holder_of_funds == HolderOfFunds.PLATFORM
