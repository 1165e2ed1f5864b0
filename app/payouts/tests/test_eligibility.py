"""
Tests for payee payout eligibility.

Covers the ordered generic rules in EligibilityService and the
processor-specific checks of StripeProcessor and PaypalProcessor,
including the payout notes written for skipped payees.
"""

from datetime import date

import pytest
from freezegun import freeze_time

from payouts.services import EligibilityService
from payouts.state_machines import (
    BalanceState,
    BankAccountType,
    HolderOfFunds,
    PaymentState,
    PayoutProcessorType,
    PayoutType,
)
from payouts.tests.factories import (
    BalanceFactory,
    BankAccountFactory,
    MerchantAccountFactory,
    PayeeFactory,
    PaymentFactory,
    StripeMerchantAccountFactory,
)

TODAY = "2024-05-02 12:00:00"
CUTOFF = date(2024, 5, 1)
SKIP_PREFIX = "Payout on May 2, 2024 was skipped because "


def notes_for(payee):
    return list(payee.payout_notes.values_list("content", flat=True))


@pytest.fixture
def eligibility(registry):
    return EligibilityService(registry)


@pytest.fixture
def funded_payee(stripe_payee, platform_account):
    BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=50_00)
    return stripe_payee


@pytest.mark.django_db
@freeze_time(TODAY)
class TestGenericRules:
    """Rules every processor shares, evaluated in order."""

    def test_payable_payee(self, eligibility, funded_payee):
        assert eligibility.is_payable(funded_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True)
        assert notes_for(funded_payee) == []

    def test_suspended_payee_is_skipped(self, eligibility, funded_payee):
        funded_payee.is_suspended = True

        assert not eligibility.is_payable(
            funded_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True
        )
        assert notes_for(funded_payee) == [SKIP_PREFIX + "the account was suspended."]

    def test_admin_pays_suspended_payee(self, eligibility, funded_payee):
        funded_payee.is_suspended = True

        assert eligibility.is_payable(funded_payee, CUTOFF, PayoutProcessorType.STRIPE, from_admin=True)

    def test_paused_by_admin(self, eligibility, funded_payee):
        funded_payee.payouts_paused_internally = True
        funded_payee.payouts_paused_by_user = True

        assert not eligibility.is_payable(
            funded_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True, from_admin=True
        )
        assert notes_for(funded_payee) == [
            SKIP_PREFIX + "payouts on the account were paused by the admin."
        ]

    def test_paused_by_user(self, eligibility, funded_payee):
        funded_payee.payouts_paused_by_user = True

        assert not eligibility.is_payable(
            funded_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True
        )
        assert notes_for(funded_payee) == [
            SKIP_PREFIX + "payouts on the account were paused by the user."
        ]

    def test_below_minimum(self, eligibility, stripe_payee, platform_account):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=9_00)

        assert not eligibility.is_payable(
            stripe_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True
        )
        assert notes_for(stripe_payee) == [
            SKIP_PREFIX + "the account balance $9 USD was less than the minimum payout amount of $10 USD."
        ]

    def test_below_payee_threshold(self, eligibility, stripe_payee, platform_account):
        stripe_payee.payout_threshold_cents = 100_00
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=50_50)

        assert not eligibility.is_payable(
            stripe_payee, CUTOFF, PayoutProcessorType.STRIPE, add_comment=True
        )
        assert notes_for(stripe_payee) == [
            SKIP_PREFIX
            + "the account balance $50.50 USD was less than the minimum payout amount of $100 USD."
        ]

    def test_admin_waives_minimum_for_platform_held_funds(self, eligibility, stripe_payee, platform_account):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=5_00)

        assert eligibility.is_payable(stripe_payee, CUTOFF, PayoutProcessorType.STRIPE, from_admin=True)

    def test_admin_minimum_applies_when_funds_held_elsewhere(
        self, eligibility, stripe_payee, stripe_account
    ):
        BalanceFactory(payee=stripe_payee, merchant_account=stripe_account, date=CUTOFF, amount_cents=5_00)

        assert not eligibility.is_payable(stripe_payee, CUTOFF, PayoutProcessorType.STRIPE, from_admin=True)

    def test_completed_payments_for_cutoff_count_toward_minimum(
        self, eligibility, stripe_payee, platform_account
    ):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=6_00)
        PaymentFactory(
            payee=stripe_payee,
            state=PaymentState.COMPLETED,
            amount_cents=5_00,
            payout_period_end_date=CUTOFF,
        )

        snapshot = eligibility.build_snapshot(stripe_payee, CUTOFF)

        assert snapshot.payable_amount_cents == 11_00
        assert eligibility.is_payable(stripe_payee, CUTOFF, PayoutProcessorType.STRIPE)

    @pytest.mark.parametrize(
        "state", [PaymentState.CREATING, PaymentState.PROCESSING, PaymentState.UNCLAIMED]
    )
    def test_in_flight_payments_for_cutoff_count_toward_minimum(
        self, eligibility, stripe_payee, platform_account, state
    ):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=6_00)
        PaymentFactory(payee=stripe_payee, state=state, amount_cents=5_00, payout_period_end_date=CUTOFF)

        snapshot = eligibility.build_snapshot(stripe_payee, CUTOFF)

        assert snapshot.payable_amount_cents == 11_00
        assert snapshot.meets_minimum

    @pytest.mark.parametrize(
        "state", [PaymentState.FAILED, PaymentState.CANCELLED, PaymentState.RETURNED]
    )
    def test_unpaid_payments_for_cutoff_do_not_count(
        self, eligibility, stripe_payee, platform_account, state
    ):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=6_00)
        PaymentFactory(payee=stripe_payee, state=state, amount_cents=5_00, payout_period_end_date=CUTOFF)
        PaymentFactory(
            payee=stripe_payee,
            state=PaymentState.COMPLETED,
            amount_cents=5_00,
            payout_period_end_date=date(2024, 4, 30),
        )

        assert eligibility.build_snapshot(stripe_payee, CUTOFF).payable_amount_cents == 6_00
        assert not eligibility.is_payable(stripe_payee, CUTOFF, PayoutProcessorType.STRIPE)

    def test_snapshot_ignores_paid_and_future_balances(self, eligibility, stripe_payee, platform_account):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=CUTOFF, amount_cents=20_00)
        BalanceFactory(
            payee=stripe_payee,
            merchant_account=platform_account,
            date=CUTOFF,
            amount_cents=30_00,
            state=BalanceState.PAID,
        )
        BalanceFactory(
            payee=stripe_payee,
            merchant_account=platform_account,
            date=date(2024, 5, 2),
            amount_cents=40_00,
        )

        snapshot = eligibility.build_snapshot(stripe_payee, CUTOFF)

        assert snapshot.unpaid_balance_cents == 20_00
        assert snapshot.held_by_platform_only is True

    def test_no_notes_without_add_comment(self, eligibility, funded_payee):
        funded_payee.is_suspended = True

        assert not eligibility.is_payable(funded_payee, CUTOFF, PayoutProcessorType.STRIPE)
        assert notes_for(funded_payee) == []

    def test_any_processor_when_type_omitted(self, eligibility, funded_payee):
        assert eligibility.is_payable(funded_payee, CUTOFF)


@pytest.mark.django_db
@freeze_time(TODAY)
class TestStripeEligibility:
    def test_processing_payment_blocks_payout(self, stripe_processor, stripe_payee):
        PaymentFactory(payee=stripe_payee, state=PaymentState.PROCESSING)

        assert not stripe_processor.is_user_payable(stripe_payee, 50_00, add_comment=True)
        assert notes_for(stripe_payee) == [SKIP_PREFIX + "there was already a payout in processing."]

    def test_missing_bank_account(self, stripe_processor, payee, stripe_account):
        assert not stripe_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [SKIP_PREFIX + "a bank account wasn't added at the time."]

    def test_bank_account_not_set_up(self, stripe_processor, payee, stripe_account):
        BankAccountFactory(payee=payee, stripe_bank_account_id="")

        assert not stripe_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [SKIP_PREFIX + "the payout bank account was not correctly set up."]

    def test_bank_account_without_connect_account(self, stripe_processor, payee, stripe_account):
        BankAccountFactory(payee=payee, stripe_connect_account_id="")

        assert not stripe_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [SKIP_PREFIX + "the payout bank account was not correctly set up."]

    def test_missing_stripe_account(self, stripe_processor, payee):
        BankAccountFactory(payee=payee)

        assert not stripe_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [SKIP_PREFIX + "the payout bank account was not correctly set up."]

    def test_instant_payout_requires_debit_card(self, stripe_processor, stripe_payee):
        assert not stripe_processor.is_user_payable(
            stripe_payee, 50_00, add_comment=True, payout_type=PayoutType.INSTANT
        )
        assert notes_for(stripe_payee) == [SKIP_PREFIX + "instant payouts require a debit card."]

    def test_instant_payout_to_debit_card(self, stripe_processor, payee, stripe_account):
        BankAccountFactory(payee=payee, account_type=BankAccountType.DEBIT_CARD)

        assert stripe_processor.is_user_payable(payee, 50_00, payout_type=PayoutType.INSTANT)

    def test_balance_payability(self, stripe_processor, platform_account, stripe_account):
        eur_balance = BalanceFactory(merchant_account=stripe_account, holding_currency="eur")

        assert stripe_processor.is_balance_payable(BalanceFactory(merchant_account=platform_account))
        assert stripe_processor.is_balance_payable(BalanceFactory(merchant_account=stripe_account))
        assert not stripe_processor.is_balance_payable(eur_balance)


@pytest.mark.django_db
@freeze_time(TODAY)
class TestPaypalEligibility:
    PAYPAL_PREFIX = "Payout via PayPal on May 2, 2024 skipped because "

    def test_payable_payee(self, paypal_processor, payee):
        assert paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == []

    def test_payee_with_bank_account_is_left_to_stripe(self, paypal_processor, payee):
        BankAccountFactory(payee=payee)

        assert not paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == []

    def test_invalid_address(self, paypal_processor, payee):
        payee.paypal_payout_email = "not-an-email"

        assert not paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [
            self.PAYPAL_PREFIX + "the account does not have a valid PayPal payment address"
        ]

    def test_non_ascii_address(self, paypal_processor, payee):
        payee.paypal_payout_email = "sellér@example.com"

        assert not paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [
            self.PAYPAL_PREFIX + "the PayPal payment address contains invalid characters"
        ]

    def test_missing_legal_name(self, paypal_processor, payee):
        payee.legal_name = "  "

        assert not paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [
            self.PAYPAL_PREFIX + "the account does not have a valid name on record"
        ]

    def test_processing_payment_blocks_payout(self, paypal_processor, payee):
        payment = PaymentFactory(
            payee=payee, processor=PayoutProcessorType.PAYPAL, state=PaymentState.PROCESSING
        )

        assert not paypal_processor.is_user_payable(payee, 50_00, add_comment=True)
        assert notes_for(payee) == [
            self.PAYPAL_PREFIX + f"there are already payouts (ID {payment.pk}) in processing"
        ]

    def test_balance_payability(self, paypal_processor, platform_account, stripe_account):
        assert paypal_processor.is_balance_payable(BalanceFactory(merchant_account=platform_account))
        assert not paypal_processor.is_balance_payable(BalanceFactory(merchant_account=stripe_account))
        assert not paypal_processor.is_balance_payable(
            BalanceFactory(
                merchant_account=MerchantAccountFactory(holder_of_funds=HolderOfFunds.PLATFORM),
                holding_currency="eur",
            )
        )

    def test_other_payee_unaffected(self, paypal_processor):
        other = PayeeFactory()
        StripeMerchantAccountFactory(payee=other)

        assert paypal_processor.is_user_payable(other, 50_00)
