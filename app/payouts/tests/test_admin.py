"""Tests for the payee "Pay out now" admin actions."""

import pytest
from django.urls import reverse

from payouts.models import Payment
from payouts.state_machines import PaymentState, PayoutProcessorType
from payouts.tests.factories import BalanceFactory


@pytest.fixture(autouse=True)
def patched_registry(mocker, registry, mock_redis):
    return mocker.patch("payouts.processors.default_registry", return_value=registry)


def run_action(admin_client, action, payees):
    return admin_client.post(
        reverse("admin:payouts_payee_changelist"),
        {"action": action, "_selected_action": [str(p.pk) for p in payees]},
        follow=True,
    )


@pytest.mark.django_db
class TestPayOutNow:
    def test_pays_suspended_payee_via_stripe(self, admin_client, stripe_payee, stripe_account):
        stripe_payee.is_suspended = True
        stripe_payee.save(update_fields=["is_suspended", "updated_at"])
        BalanceFactory(payee=stripe_payee, merchant_account=stripe_account, amount_cents=20_00)

        response = run_action(admin_client, "pay_out_via_stripe", [stripe_payee])

        assert response.status_code == 200
        payment = Payment.objects.get(payee=stripe_payee)
        assert payment.processor == PayoutProcessorType.STRIPE
        assert payment.state == PaymentState.PROCESSING
        assert "Created 1 stripe payments" in response.content.decode()

    def test_pays_via_paypal(self, admin_client, payee, platform_account):
        BalanceFactory(payee=payee, merchant_account=platform_account, amount_cents=5_00)

        run_action(admin_client, "pay_out_via_paypal", [payee])

        payment = Payment.objects.get(payee=payee)
        assert payment.processor == PayoutProcessorType.PAYPAL
        assert payment.amount_cents == 5_00

    def test_nothing_to_pay(self, admin_client, payee):
        response = run_action(admin_client, "pay_out_via_stripe", [payee])

        assert Payment.objects.count() == 0
        assert "Created 0 stripe payments" in response.content.decode()
