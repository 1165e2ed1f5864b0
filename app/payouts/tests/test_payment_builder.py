"""
Tests for PaymentBuilder.

The builder receives balances already locked in PROCESSING and must either
return a CREATING payment carrying them or put them back to UNPAID.
"""

import pytest

from payouts.models import Balance, Payment
from payouts.services import PaymentBuilder
from payouts.state_machines import BalanceState, PaymentState, PayoutProcessorType, PayoutType
from payouts.tests.factories import BalanceFactory, BankAccountFactory, StripeMerchantAccountFactory


def locked_balance(**kwargs):
    return BalanceFactory(state=BalanceState.PROCESSING, **kwargs)


def states(balances):
    return set(Balance.objects.filter(pk__in=[b.pk for b in balances]).values_list("state", flat=True))


@pytest.mark.django_db
class TestBuildGuards:
    def test_non_positive_total_releases_balances(self, stripe_payee, platform_account, stripe_processor, cutoff):
        balances = [
            locked_balance(payee=stripe_payee, merchant_account=platform_account, amount_cents=10_00),
            locked_balance(payee=stripe_payee, merchant_account=platform_account, amount_cents=-10_00),
        ]

        payment = PaymentBuilder.build(stripe_payee, cutoff, stripe_processor, balances)

        assert payment is None
        assert Payment.objects.count() == 0
        assert states(balances) == {BalanceState.UNPAID}

    def test_prepare_error_fails_payment_and_releases_balances(
        self, payee, platform_account, stripe_processor, cutoff
    ):
        # Bank account on file but no connected account to pay out from
        BankAccountFactory(payee=payee)
        balances = [locked_balance(payee=payee, merchant_account=platform_account, amount_cents=20_00)]

        payment = PaymentBuilder.build(payee, cutoff, stripe_processor, balances)

        assert payment is None
        failed = Payment.objects.get(payee=payee)
        assert failed.state == PaymentState.FAILED
        assert states(balances) == {BalanceState.UNPAID}


@pytest.mark.django_db
class TestStripeBuild:
    def test_mixed_holdings(self, stripe_payee, platform_account, stripe_account, bank_account, stripe_processor, cutoff):
        platform_balance = locked_balance(
            payee=stripe_payee, merchant_account=platform_account, amount_cents=30_00
        )
        stripe_balance = locked_balance(payee=stripe_payee, merchant_account=stripe_account, amount_cents=20_00)

        payment = PaymentBuilder.build(
            stripe_payee, cutoff, stripe_processor, [platform_balance, stripe_balance]
        )

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.state == PaymentState.CREATING
        assert payment.processor == PayoutProcessorType.STRIPE
        assert payment.amount_cents == 50_00
        assert payment.currency == "usd"
        assert payment.internal_transfer_amount_cents == 30_00
        assert payment.stripe_connect_account_id == stripe_account.processor_merchant_id
        assert payment.bank_account == bank_account
        assert payment.payout_period_end_date == cutoff
        assert set(payment.balances.all()) == {platform_balance, stripe_balance}
        assert states([platform_balance, stripe_balance]) == {BalanceState.PROCESSING}

    def test_only_connected_account_funds_skip_internal_transfer(
        self, stripe_payee, stripe_account, stripe_processor, cutoff
    ):
        balance = locked_balance(payee=stripe_payee, merchant_account=stripe_account, amount_cents=20_00)

        payment = PaymentBuilder.build(stripe_payee, cutoff, stripe_processor, [balance])

        assert payment.amount_cents == 20_00
        assert payment.internal_transfer_amount_cents == 0

    def test_negative_platform_funds_are_netted(
        self, stripe_payee, platform_account, stripe_account, stripe_processor, cutoff
    ):
        balances = [
            locked_balance(payee=stripe_payee, merchant_account=platform_account, amount_cents=-5_00),
            locked_balance(payee=stripe_payee, merchant_account=stripe_account, amount_cents=20_00),
        ]

        payment = PaymentBuilder.build(stripe_payee, cutoff, stripe_processor, balances)

        assert payment.amount_cents == 15_00
        assert payment.internal_transfer_amount_cents == 0

    def test_converts_platform_funds_to_account_currency(
        self, settings, payee, platform_account, stripe_processor, cutoff
    ):
        settings.PAYOUT_CURRENCY_RATES = {"usd": "1", "eur": "0.92"}
        StripeMerchantAccountFactory(payee=payee, currency="eur")
        BankAccountFactory(payee=payee)
        balance = locked_balance(payee=payee, merchant_account=platform_account, amount_cents=100_00)

        payment = PaymentBuilder.build(payee, cutoff, stripe_processor, [balance])

        assert payment.currency == "eur"
        assert payment.amount_cents == 92_00
        assert payment.internal_transfer_amount_cents == 100_00

    def test_instant_payout_deducts_fee(self, settings, stripe_payee, stripe_account, stripe_processor, cutoff):
        settings.PAYOUT_INSTANT_FEE_PERCENT = 3
        balance = locked_balance(payee=stripe_payee, merchant_account=stripe_account, amount_cents=103_00)

        payment = PaymentBuilder.build(
            stripe_payee, cutoff, stripe_processor, [balance], payout_type=PayoutType.INSTANT
        )

        assert payment.payout_type == PayoutType.INSTANT
        assert payment.amount_cents == 100_00


@pytest.mark.django_db
class TestPaypalBuild:
    def test_amount_is_platform_held_usd(self, payee, platform_account, paypal_processor, cutoff):
        balance = locked_balance(payee=payee, merchant_account=platform_account, amount_cents=25_00)

        payment = PaymentBuilder.build(payee, cutoff, paypal_processor, [balance])

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.processor == PayoutProcessorType.PAYPAL
        assert payment.amount_cents == 25_00
        assert payment.currency == "usd"
        assert payment.payment_address == payee.paypal_payout_email
        assert payment.platform_fee_cents == 0

    def test_charges_paypal_fee(self, settings, payee, platform_account, paypal_processor, cutoff):
        settings.PAYOUT_PAYPAL_FEE_PERCENT = 2
        payee.charge_paypal_payout_fee = True
        payee.save(update_fields=["charge_paypal_payout_fee", "updated_at"])
        balance = locked_balance(payee=payee, merchant_account=platform_account, amount_cents=100_00)

        payment = PaymentBuilder.build(payee, cutoff, paypal_processor, [balance])

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.platform_fee_cents == 2_00
        assert payment.amount_cents == 98_00
