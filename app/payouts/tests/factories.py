"""
Factory Boy factories for payout test data.

Usage:
    from payouts.tests.factories import BalanceFactory, PayeeFactory, PaymentFactory

    payee = PayeeFactory()
    balance = BalanceFactory(payee=payee, amount_cents=25_00)

    # Payments may be created directly in any state; transitions under test
    # go through PaymentStateService
    payment = PaymentFactory(payee=payee, state=PaymentState.PROCESSING, balances=[balance])
"""

import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from payouts.models import (
    Balance,
    BankAccount,
    MerchantAccount,
    Payee,
    Payment,
    WebhookEvent,
)
from payouts.state_machines import (
    BankAccountType,
    HolderOfFunds,
    PayoutProcessorType,
    WebhookEventStatus,
)


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"seller{n}")
    email = factory.Sequence(lambda n: f"seller{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class PayeeFactory(factory.django.DjangoModelFactory):
    """
    Payee with a legal name and a PayPal address.

    Bank and merchant accounts are not created; use the fixtures in
    conftest.py for a payee Stripe can pay.
    """

    class Meta:
        model = Payee
        skip_postgeneration_save = True

    user = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Seller {n}")
    legal_name = factory.Sequence(lambda n: f"Seller Legal {n}")
    paypal_payout_email = factory.Sequence(lambda n: f"paypal{n}@example.com")


class MerchantAccountFactory(factory.django.DjangoModelFactory):
    """Platform-held USD account by default."""

    class Meta:
        model = MerchantAccount

    payee = None
    processor = PayoutProcessorType.STRIPE
    processor_merchant_id = ""
    currency = "usd"
    holder_of_funds = HolderOfFunds.PLATFORM


class StripeMerchantAccountFactory(MerchantAccountFactory):
    """Payee's own Stripe connected account."""

    payee = factory.SubFactory(PayeeFactory)
    processor_merchant_id = factory.Sequence(lambda n: f"acct_test_{n}_{uuid.uuid4().hex[:8]}")
    holder_of_funds = HolderOfFunds.STRIPE


class BankAccountFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = BankAccount

    payee = factory.SubFactory(PayeeFactory)
    account_type = BankAccountType.BANK_ACCOUNT
    stripe_bank_account_id = factory.Sequence(lambda n: f"ba_test_{n}")
    stripe_connect_account_id = factory.Sequence(lambda n: f"acct_test_bank_{n}")


class BalanceFactory(factory.django.DjangoModelFactory):
    """
    Unpaid USD balance held by a platform account, dated two days ago.

    holding_amount_cents follows amount_cents unless given.
    """

    class Meta:
        model = Balance

    payee = factory.SubFactory(PayeeFactory)
    merchant_account = factory.SubFactory(MerchantAccountFactory)
    date = factory.LazyFunction(lambda: timezone.localdate() - timedelta(days=2))
    currency = "usd"
    amount_cents = 50_00
    holding_currency = "usd"
    holding_amount_cents = factory.SelfAttribute("amount_cents")


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    CREATING Stripe payment of $50 USD for yesterday's cutoff.

    Pass balances=[...] to attach balances.
    """

    class Meta:
        model = Payment
        skip_postgeneration_save = True

    payee = factory.SubFactory(PayeeFactory)
    processor = PayoutProcessorType.STRIPE
    amount_cents = 50_00
    currency = "usd"
    payout_period_end_date = factory.LazyFunction(lambda: timezone.localdate() - timedelta(days=1))

    @factory.post_generation
    def balances(self, create, extracted, **kwargs):
        if create and extracted:
            self.balances.set(extracted)


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent

    processor = PayoutProcessorType.STRIPE
    event_id = factory.Sequence(lambda n: f"evt_test_{n}")
    event_type = "payout.paid"
    account_id = "acct_test_webhook"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.event_id,
            "type": o.event_type,
            "account": o.account_id,
            "data": {"object": {"object": "payout", "id": "po_test_123"}},
        }
    )
    status = WebhookEventStatus.PENDING
