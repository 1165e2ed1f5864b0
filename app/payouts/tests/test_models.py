"""
Tests for payout models.

Covers Payee payout properties, the Balance and Payment FSMs and the
WebhookEvent helpers. Service-level transitions (with balance side
effects) are tested in test_state_transitions.py.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed, can_proceed

from payouts.models import BankAccount
from payouts.state_machines import (
    BalanceState,
    BankAccountType,
    PaymentState,
    PayoutProcessorType,
    WebhookEventStatus,
)
from payouts.tests.factories import (
    BalanceFactory,
    BankAccountFactory,
    MerchantAccountFactory,
    PayeeFactory,
    PaymentFactory,
    StripeMerchantAccountFactory,
    WebhookEventFactory,
)


@pytest.mark.django_db
class TestPayee:
    """Tests for Payee payout properties."""

    def test_minimum_payout_amount_uses_platform_minimum(self, settings):
        settings.PAYOUT_MINIMUM_AMOUNT_CENTS = 10_00
        payee = PayeeFactory(payout_threshold_cents=5_00)

        assert payee.minimum_payout_amount_cents == 10_00

    def test_minimum_payout_amount_uses_higher_threshold(self, settings):
        settings.PAYOUT_MINIMUM_AMOUNT_CENTS = 10_00
        payee = PayeeFactory(payout_threshold_cents=25_00)

        assert payee.minimum_payout_amount_cents == 25_00

    def test_payouts_paused(self):
        assert PayeeFactory().payouts_paused is False
        assert PayeeFactory(payouts_paused_internally=True).payouts_paused is True
        assert PayeeFactory(payouts_paused_by_user=True).payouts_paused is True

    def test_active_bank_account_is_latest_not_deleted(self):
        payee = PayeeFactory()
        older = BankAccountFactory(payee=payee)
        newer = BankAccountFactory(payee=payee)
        BankAccount.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=1))

        assert payee.active_bank_account == newer

        newer.soft_delete()

        assert payee.active_bank_account == older

    def test_active_bank_account_none_without_accounts(self):
        assert PayeeFactory().active_bank_account is None

    def test_stripe_merchant_account_ignores_deleted(self):
        payee = PayeeFactory()
        account = StripeMerchantAccountFactory(payee=payee)

        assert payee.stripe_merchant_account == account

        account.soft_delete()

        assert payee.stripe_merchant_account is None

    def test_add_payout_note(self):
        payee = PayeeFactory()

        payee.add_payout_note("Payout on May 1, 2024 was skipped because reasons.")

        assert list(payee.payout_notes.values_list("content", flat=True)) == [
            "Payout on May 1, 2024 was skipped because reasons."
        ]


@pytest.mark.django_db
class TestBankAccount:
    def test_debit_card(self):
        assert BankAccountFactory(account_type=BankAccountType.DEBIT_CARD).is_debit_card is True
        assert BankAccountFactory().is_debit_card is False

    def test_correctly_set_up_requires_both_ids(self):
        assert BankAccountFactory().is_correctly_set_up is True
        assert BankAccountFactory(stripe_bank_account_id="").is_correctly_set_up is False
        assert BankAccountFactory(stripe_connect_account_id="").is_correctly_set_up is False


@pytest.mark.django_db
class TestMerchantAccount:
    def test_held_by_platform(self):
        assert MerchantAccountFactory().is_held_by_platform is True
        assert StripeMerchantAccountFactory().is_held_by_platform is False


@pytest.mark.django_db
class TestBalanceTransitions:
    """Tests for the Balance FSM."""

    def test_unpaid_to_processing_to_paid(self):
        balance = BalanceFactory()

        balance.mark_processing()
        assert balance.state == BalanceState.PROCESSING

        balance.mark_paid()
        assert balance.state == BalanceState.PAID

    def test_paid_balance_can_be_released(self):
        balance = BalanceFactory(state=BalanceState.PAID)

        balance.mark_unpaid()

        assert balance.state == BalanceState.UNPAID

    def test_unpaid_balance_cannot_be_paid(self):
        balance = BalanceFactory()

        assert not can_proceed(balance.mark_paid)
        with pytest.raises(TransitionNotAllowed):
            balance.mark_paid()

    def test_processing_balance_cannot_be_locked_again(self):
        balance = BalanceFactory(state=BalanceState.PROCESSING)

        assert not can_proceed(balance.mark_processing)

    def test_state_cannot_be_assigned_directly(self):
        balance = BalanceFactory()

        with pytest.raises(AttributeError):
            balance.state = BalanceState.PAID


@pytest.mark.django_db
class TestPaymentTransitions:
    """Tests for the Payment FSM."""

    def test_happy_path(self):
        payment = PaymentFactory()

        payment.mark_processing()
        payment.mark_completed()

        assert payment.state == PaymentState.COMPLETED
        assert payment.completed_at is not None

    def test_mark_failed_records_reason(self):
        payment = PaymentFactory(state=PaymentState.PROCESSING)

        payment.mark_failed(reason="account_closed")

        assert payment.state == PaymentState.FAILED
        assert payment.failure_reason == "account_closed"

    def test_creating_payment_cannot_be_cancelled(self):
        payment = PaymentFactory()

        assert not can_proceed(payment.mark_cancelled)

    def test_completed_stripe_payment_can_be_returned(self):
        payment = PaymentFactory(state=PaymentState.COMPLETED)

        assert can_proceed(payment.mark_returned)

    def test_completed_paypal_payment_cannot_be_returned(self):
        payment = PaymentFactory(processor=PayoutProcessorType.PAYPAL, state=PaymentState.COMPLETED)

        assert not can_proceed(payment.mark_returned)

    def test_unclaimed_paypal_payment_can_complete_or_return(self):
        payment = PaymentFactory(processor=PayoutProcessorType.PAYPAL, state=PaymentState.UNCLAIMED)

        assert can_proceed(payment.mark_completed)
        assert can_proceed(payment.mark_returned)

    def test_failed_is_terminal(self):
        payment = PaymentFactory(state=PaymentState.FAILED)

        for transition in (
            payment.mark_processing,
            payment.mark_completed,
            payment.mark_cancelled,
            payment.mark_returned,
            payment.mark_unclaimed,
        ):
            assert not can_proceed(transition)

    def test_external_id_and_reversal(self):
        payment = PaymentFactory(processor_reversing_payout_id="po_rev_1")

        assert payment.external_id == str(payment.pk)
        assert payment.was_reversed_by("po_rev_1") is True
        assert payment.was_reversed_by("po_rev_2") is False
        assert payment.was_reversed_by("") is False

    def test_save_increments_version(self):
        payment = PaymentFactory()
        assert payment.version == 1

        payment.failure_reason = "x"
        payment.save(update_fields=["failure_reason", "updated_at"])

        assert payment.version == 2


@pytest.mark.django_db
class TestWebhookEvent:
    def test_processing_helpers(self):
        event = WebhookEventFactory()

        event.mark_processing()
        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1

        event.mark_failed("boom")
        assert event.can_retry is True

        event.mark_processed()
        assert event.is_processed is True
        assert event.processed_at is not None
        assert event.error_message is None

    def test_get_object(self):
        event = WebhookEventFactory()

        assert event.get_object() == {"object": "payout", "id": "po_test_123"}

    def test_get_object_for_ipn_payload(self):
        event = WebhookEventFactory(
            processor=PayoutProcessorType.PAYPAL,
            event_type="masspay",
            payload={"txn_type": "masspay"},
        )

        assert event.get_object() == {}
