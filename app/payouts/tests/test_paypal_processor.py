"""Tests for PaypalProcessor MassPay disbursement."""

import pytest

from payouts.adapters import MassPayItem, MassPayResult
from payouts.exceptions import PaypalError
from payouts.models import Balance, Payment
from payouts.processors.paypal_processor import note_for_payment
from payouts.state_machines import BalanceState, PaymentState, PayoutProcessorType
from payouts.tests.factories import BalanceFactory, PayeeFactory, PaymentFactory


def paypal_payment(payee=None, amount_cents=25_00, platform_account=None):
    payee = payee or PayeeFactory()
    balance = BalanceFactory(
        payee=payee,
        merchant_account=platform_account,
        amount_cents=amount_cents,
        state=BalanceState.PROCESSING,
    )
    return PaymentFactory(
        payee=payee,
        processor=PayoutProcessorType.PAYPAL,
        amount_cents=amount_cents,
        payment_address=payee.paypal_payout_email,
        balances=[balance],
    )


def state_of(payment):
    return Payment.objects.values_list("state", flat=True).get(pk=payment.pk)


@pytest.mark.django_db
class TestPerformPayments:
    def test_successful_batch(self, paypal_processor, paypal_adapter, payee, platform_account):
        payment = paypal_payment(payee, platform_account=platform_account)

        errors = paypal_processor.perform_payments([payment])

        assert errors == {}
        paypal_adapter.mass_pay.assert_called_once_with(
            [
                MassPayItem(
                    email=payee.paypal_payout_email,
                    amount_cents=25_00,
                    unique_id=payment.external_id,
                    note=f"{payee.legal_name}, selling digital products / memberships",
                )
            ],
            currency="usd",
        )
        payment = Payment.objects.get(pk=payment.pk)
        assert payment.state == PaymentState.PROCESSING
        assert payment.correlation_id == "corr_123"

    def test_rejected_batch_fails_every_payment(self, paypal_processor, paypal_adapter, platform_account):
        paypal_adapter.mass_pay.return_value = MassPayResult(
            ack="Failure",
            correlation_id="corr_456",
            errors=["10321 - Insufficient funds - The account does not have sufficient funds"],
        )
        payments = [paypal_payment(platform_account=platform_account) for _ in range(2)]

        errors = paypal_processor.perform_payments(payments)

        assert set(errors) == {str(p.pk) for p in payments}
        assert errors[str(payments[0].pk)] == [
            "10321 - Insufficient funds - The account does not have sufficient funds"
        ]
        assert {state_of(p) for p in payments} == {PaymentState.FAILED}
        assert set(
            Balance.objects.filter(payments__in=payments).values_list("state", flat=True)
        ) == {BalanceState.UNPAID}

    def test_request_error_fails_payments(self, paypal_processor, paypal_adapter, platform_account):
        paypal_adapter.mass_pay.side_effect = PaypalError("PayPal MassPay request failed")
        payment = paypal_payment(platform_account=platform_account)

        errors = paypal_processor.perform_payments([payment])

        assert errors == {str(payment.pk): ["PayPal MassPay request failed"]}
        assert state_of(payment) == PaymentState.FAILED

    def test_payments_are_sent_in_batches(self, mocker, paypal_processor, paypal_adapter, platform_account):
        mocker.patch("payouts.processors.paypal_processor.PAYOUT_RECIPIENTS_PER_JOB", 2)
        paypal_adapter.mass_pay.side_effect = [
            MassPayResult(ack="Success", correlation_id="corr_1"),
            MassPayResult(ack="Failure", correlation_id="corr_2", errors=["10004 - Invalid - Bad"]),
        ]
        payments = [paypal_payment(platform_account=platform_account) for _ in range(3)]

        errors = paypal_processor.perform_payments(payments)

        assert paypal_adapter.mass_pay.call_count == 2
        assert len(paypal_adapter.mass_pay.call_args_list[0].args[0]) == 2
        assert list(errors) == [str(payments[2].pk)]
        assert [state_of(p) for p in payments] == [
            PaymentState.PROCESSING,
            PaymentState.PROCESSING,
            PaymentState.FAILED,
        ]

    def test_single_payment(self, paypal_processor, platform_account):
        payment = paypal_payment(platform_account=platform_account)

        assert paypal_processor.perform_payment(payment) == []
        assert state_of(payment) == PaymentState.PROCESSING


@pytest.mark.django_db
def test_note_for_payment(payee):
    payment = PaymentFactory(payee=payee, processor=PayoutProcessorType.PAYPAL)

    assert note_for_payment(payment) == f"{payee.legal_name}, selling digital products / memberships"


class TestEnqueuePayments:
    def test_batches_are_spread_out(self, mocker, paypal_processor):
        mocker.patch("payouts.processors.paypal_processor.PAYOUT_RECIPIENTS_PER_JOB", 2)
        payout_payees = mocker.patch("payouts.tasks.payout_payees")

        paypal_processor.enqueue_payments(["p1", "p2", "p3"], "2024-05-01")

        assert payout_payees.apply_async.call_args_list == [
            mocker.call(args=["2024-05-01", "paypal", ["p1", "p2"]], countdown=0),
            mocker.call(args=["2024-05-01", "paypal", ["p3"]], countdown=60),
        ]
