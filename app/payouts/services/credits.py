"""
Compensating credits.

A credit corrects a payee balance when money moved by the processor does
not match what the ledger expected:

- An internal transfer was reversed and the connected account returned a
  different amount than it originally received (currency conversion on the
  connected account side).
- Stripe automatically debited the payee's bank account to cover a
  negative connected account balance.

Each credit gets one BalanceTransaction whose net amounts are added to the
payee's oldest unpaid balance on the same merchant account and currencies
(a balance dated today is created when none exists).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from payouts.currency import CurrencyConverter
from payouts.models import Balance, BalanceTransaction, Credit
from payouts.state_machines import BalanceState

if TYPE_CHECKING:
    from payouts.models import MerchantAccount, Payee, Payment


class CreditService(BaseService):
    """Creates credits and applies their balance transactions."""

    @classmethod
    def create_for_returned_payment_difference(
        cls,
        payment: Payment,
        merchant_account: MerchantAccount,
        difference_cents: int,
    ) -> Credit | None:
        """
        Record the mismatch left behind by reversing an internal transfer.

        Args:
            payment: Payment whose internal transfer was reversed
            merchant_account: Payee's connected account
            difference_cents: Amount the transfer delivered to the connected
                account plus the (negative) amount its reversal took back,
                in the payment currency. Negative when the reversal took
                back more than was delivered.

        Returns:
            The credit, or None when the amounts matched.
        """
        if difference_cents == 0:
            cls.get_logger().info(
                "Internal transfer reversal matched the amount sent, no credit",
                extra={"payment_id": str(payment.pk)},
            )
            return None

        with cls.atomic():
            credit = Credit.objects.create(
                payee=payment.payee,
                merchant_account=merchant_account,
                amount_cents=0,
                returned_payment=payment,
            )
            cls._create_balance_transaction(
                credit,
                issued_cents=0,
                holding_currency=payment.currency,
                holding_cents=difference_cents,
            )

        cls.get_logger().info(
            "Created credit for returned payment difference",
            extra={
                "payment_id": str(payment.pk),
                "credit_id": str(credit.pk),
                "difference_cents": difference_cents,
                "currency": payment.currency,
            },
        )
        return credit

    @classmethod
    def create_for_bank_debit(
        cls,
        payee: Payee,
        merchant_account: MerchantAccount,
        amount_cents: int,
        currency: str,
    ) -> Credit:
        """
        Credit the payee for money Stripe pulled from their bank account.

        `amount_cents` is the absolute debited amount in the merchant
        account's currency.
        """
        amount_cents = abs(amount_cents)
        usd_cents = CurrencyConverter.usd_cents(amount_cents, currency)

        with cls.atomic():
            credit = Credit.objects.create(
                payee=payee,
                merchant_account=merchant_account,
                amount_cents=usd_cents,
            )
            cls._create_balance_transaction(
                credit,
                issued_cents=usd_cents,
                holding_currency=currency,
                holding_cents=amount_cents,
            )

        cls.get_logger().info(
            "Created credit for Stripe bank debit",
            extra={
                "payee_id": str(payee.pk),
                "credit_id": str(credit.pk),
                "amount_cents": amount_cents,
                "currency": currency,
            },
        )
        return credit

    @classmethod
    def _create_balance_transaction(
        cls,
        credit: Credit,
        issued_cents: int,
        holding_currency: str,
        holding_cents: int,
    ) -> BalanceTransaction:
        balance = cls._balance_for(credit.payee, credit.merchant_account, holding_currency)

        balance_transaction = BalanceTransaction.objects.create(
            payee=credit.payee,
            merchant_account=credit.merchant_account,
            credit=credit,
            balance=balance,
            issued_amount_currency="usd",
            issued_amount_gross_cents=issued_cents,
            issued_amount_net_cents=issued_cents,
            holding_amount_currency=holding_currency,
            holding_amount_gross_cents=holding_cents,
            holding_amount_net_cents=holding_cents,
        )

        Balance.objects.filter(pk=balance.pk).update(
            amount_cents=F("amount_cents") + issued_cents,
            holding_amount_cents=F("holding_amount_cents") + holding_cents,
            version=F("version") + 1,
        )
        credit.balance = balance
        credit.save(update_fields=["balance", "updated_at"])
        return balance_transaction

    @staticmethod
    def _balance_for(payee: Payee, merchant_account: MerchantAccount, holding_currency: str) -> Balance:
        balance = (
            Balance.objects.select_for_update()
            .filter(
                payee=payee,
                merchant_account=merchant_account,
                state=BalanceState.UNPAID,
                currency="usd",
                holding_currency=holding_currency,
            )
            .order_by("date", "created_at")
            .first()
        )
        if balance is not None:
            return balance
        return Balance.objects.create(
            payee=payee,
            merchant_account=merchant_account,
            date=timezone.localdate(),
            currency="usd",
            holding_currency=holding_currency,
        )
