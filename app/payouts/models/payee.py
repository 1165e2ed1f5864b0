"""
Payee, BankAccount and PayoutNote models.

A Payee is a seller who accumulates balances and gets paid out. Payouts
go either to the payee's bank account (through their Stripe connected
account) or to their PayPal address.

Usage:
    from payouts.models import Payee

    payee = Payee.objects.create(user=user, name="Jane", legal_name="Jane Doe")
    if payee.payouts_paused:
        ...

    payee.add_payout_note("Payout on May 1, 2024 was skipped because ...")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

from core.managers import SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel, VersionedModel

from payouts.state_machines import BankAccountType, HolderOfFunds, PayoutProcessorType

if TYPE_CHECKING:
    from payouts.models.merchant_account import MerchantAccount


class Payee(UUIDPrimaryKeyMixin, VersionedModel):
    """
    A seller receiving payouts.

    Fields:
        user: Auth user owning this payee record
        name: Display name
        legal_name: Name on record, required by PayPal
        paypal_payout_email: PayPal destination address
        is_suspended: Account suspended (fraud, TOS)
        payouts_paused_internally: Payouts paused by an operator
        payouts_paused_by_user: Payouts paused by the payee
        payout_threshold_cents: Payee-chosen minimum payout amount
        charge_paypal_payout_fee: Deduct the PayPal fee from PayPal payouts

    Properties:
        minimum_payout_amount_cents: max(threshold, platform minimum)
        active_bank_account: Most recent non-deleted bank account
        stripe_merchant_account: Payee's own Stripe connected account
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payee",
        help_text="User this payee belongs to",
    )

    # ==========================================================================
    # Identity
    # ==========================================================================

    name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Display name",
    )

    legal_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Legal name on record",
    )

    paypal_payout_email = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PayPal address payouts are sent to",
    )

    # ==========================================================================
    # Payout Controls
    # ==========================================================================

    is_suspended = models.BooleanField(
        default=False,
        help_text="Suspended payees are only paid by admins",
    )

    payouts_paused_internally = models.BooleanField(
        default=False,
        help_text="Payouts paused by an operator",
    )

    payouts_paused_by_user = models.BooleanField(
        default=False,
        help_text="Payouts paused by the payee",
    )

    payout_threshold_cents = models.PositiveIntegerField(
        default=0,
        help_text="Payee-chosen minimum payout amount (USD cents)",
    )

    charge_paypal_payout_fee = models.BooleanField(
        default=False,
        help_text="Deduct the PayPal payout fee from PayPal payouts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payee"
        verbose_name_plural = "Payees"

    def __str__(self) -> str:
        return f"Payee({self.id}, {self.name or self.user_id})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def minimum_payout_amount_cents(self) -> int:
        return max(self.payout_threshold_cents, settings.PAYOUT_MINIMUM_AMOUNT_CENTS)

    @property
    def payouts_paused(self) -> bool:
        return self.payouts_paused_internally or self.payouts_paused_by_user

    @property
    def active_bank_account(self) -> BankAccount | None:
        return self.bank_accounts.alive().order_by("-created_at").first()

    @property
    def stripe_merchant_account(self) -> MerchantAccount | None:
        return (
            self.merchant_accounts.alive()
            .filter(
                processor=PayoutProcessorType.STRIPE,
                holder_of_funds=HolderOfFunds.STRIPE,
            )
            .order_by("-created_at")
            .first()
        )

    def add_payout_note(self, content: str) -> PayoutNote:
        return PayoutNote.objects.create(payee=self, content=content)


class BankAccount(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    External account on the payee's Stripe connected account.

    "Active" means not soft deleted; the most recently added active
    account is the payout destination.
    """

    payee = models.ForeignKey(
        Payee,
        on_delete=models.PROTECT,
        related_name="bank_accounts",
        help_text="Payee owning this account",
    )

    account_type = models.CharField(
        max_length=20,
        choices=BankAccountType.choices,
        default=BankAccountType.BANK_ACCOUNT,
        help_text="Bank account or debit card",
    )

    stripe_bank_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe external account ID (ba_xxx / card_xxx)",
    )

    stripe_connect_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe connected account holding this external account",
    )

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Bank Account"
        verbose_name_plural = "Bank Accounts"

    def __str__(self) -> str:
        return f"BankAccount({self.id}, {self.account_type})"

    @property
    def is_debit_card(self) -> bool:
        return self.account_type == BankAccountType.DEBIT_CARD

    @property
    def is_correctly_set_up(self) -> bool:
        return bool(self.stripe_bank_account_id and self.stripe_connect_account_id)


class PayoutNote(UUIDPrimaryKeyMixin, BaseModel):
    """Operator-visible note on a payee. Eligibility skip reasons land here."""

    payee = models.ForeignKey(
        Payee,
        on_delete=models.CASCADE,
        related_name="payout_notes",
    )

    content = models.TextField()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"PayoutNote({self.payee_id}: {self.content[:40]})"
