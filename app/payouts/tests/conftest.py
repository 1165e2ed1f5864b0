"""
Pytest fixtures for payout tests.

Processors are built around MagicMock adapters returning the adapter
dataclasses, so no test talks to Stripe or PayPal. Services receive the
`registry` fixture exactly as they would receive default_registry() in
production.

Usage:
    def test_pays_out(stripe_payee, stripe_adapter, registry):
        payments = PayoutRunService(registry).create_payments_for_balances_up_to_date_for_users(
            cutoff, PayoutProcessorType.STRIPE, [stripe_payee]
        )
"""

from datetime import date, timedelta
from unittest.mock import DEFAULT

import pytest
from django.utils import timezone

from payouts.adapters import (
    BalanceTransactionResult,
    MassPayResult,
    PayoutResult,
    TransferResult,
    TransferReversalResult,
)
from payouts.processors import PaypalProcessor, ProcessorRegistry, StripeProcessor
from payouts.state_machines import HolderOfFunds, PayoutProcessorType
from payouts.tests.factories import (
    BankAccountFactory,
    MerchantAccountFactory,
    PayeeFactory,
    StripeMerchantAccountFactory,
    UserFactory,
)


# =============================================================================
# Dates
# =============================================================================


@pytest.fixture
def cutoff():
    """Yesterday, the latest date a payout run accepts."""
    return timezone.localdate() - timedelta(days=1)


# =============================================================================
# Payees and Accounts
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def payee(db, user):
    return PayeeFactory(user=user)


@pytest.fixture
def platform_account(db):
    """The platform's own USD Stripe account."""
    return MerchantAccountFactory(
        processor=PayoutProcessorType.STRIPE,
        holder_of_funds=HolderOfFunds.PLATFORM,
        processor_merchant_id="acct_platform",
    )


@pytest.fixture
def stripe_account(db, payee):
    """Payee's USD connected account."""
    return StripeMerchantAccountFactory(payee=payee, processor_merchant_id="acct_seller_1")


@pytest.fixture
def bank_account(db, payee, stripe_account):
    return BankAccountFactory(
        payee=payee,
        stripe_bank_account_id="ba_seller_1",
        stripe_connect_account_id=stripe_account.processor_merchant_id,
    )


@pytest.fixture
def stripe_payee(payee, stripe_account, bank_account):
    """Payee with a connected account and a bank account, payable through Stripe."""
    return payee


# =============================================================================
# Adapters
# =============================================================================


def _refund_mirroring_charge(adapter):
    """Refund of exactly the charged amount unless a test sets its own result."""
    configured = adapter.retrieve_refund_balance_transaction.return_value
    if isinstance(configured, BalanceTransactionResult):
        return DEFAULT
    charge = adapter.retrieve_charge_balance_transaction.return_value
    return BalanceTransactionResult(
        id="txn_refund",
        amount_cents=-charge.amount_cents,
        net_cents=-charge.net_cents,
        currency=charge.currency,
    )


@pytest.fixture
def stripe_adapter(mocker):
    """
    Mock StripeAdapter with successful defaults.

    The internal transfer delivers exactly what was sent and reversals
    return exactly that amount, so no credit is created unless a test
    changes the balance transaction results.
    """
    adapter = mocker.MagicMock(name="StripeAdapter")

    adapter.create_transfer.side_effect = lambda amount_cents, currency, destination_account, **kwargs: (
        TransferResult(
            id="tr_test_123",
            amount_cents=amount_cents,
            currency=currency,
            destination_account=destination_account,
            destination_payment_id="py_test_123",
        )
    )
    adapter.retrieve_transfer.return_value = TransferResult(
        id="tr_test_123",
        amount_cents=0,
        currency="usd",
        destination_account="acct_seller_1",
        destination_payment_id="py_test_123",
    )
    adapter.reverse_transfer.return_value = TransferReversalResult(
        id="trr_test_123",
        transfer_id="tr_test_123",
        amount_cents=0,
        currency="usd",
        destination_payment_refund_id="pyr_test_123",
    )
    adapter.retrieve_charge_balance_transaction.return_value = BalanceTransactionResult(
        id="txn_charge",
        amount_cents=0,
        net_cents=0,
        currency="usd",
    )
    adapter.retrieve_refund_balance_transaction.side_effect = lambda *args, **kwargs: _refund_mirroring_charge(adapter)
    adapter.create_payout.side_effect = lambda amount_cents, currency, **kwargs: PayoutResult(
        id="po_test_123",
        amount_cents=amount_cents,
        currency=currency,
        status="pending",
        arrival_date=date(2024, 5, 3),
        metadata=kwargs.get("metadata", {}),
    )
    return adapter


@pytest.fixture
def paypal_adapter(mocker):
    adapter = mocker.MagicMock(name="PaypalAdapter")
    adapter.mass_pay.return_value = MassPayResult(ack="Success", correlation_id="corr_123")
    adapter.verify_ipn.return_value = True
    return adapter


# =============================================================================
# Processors
# =============================================================================


@pytest.fixture
def stripe_processor(stripe_adapter):
    return StripeProcessor(adapter=stripe_adapter)


@pytest.fixture
def paypal_processor(paypal_adapter, stripe_processor):
    return PaypalProcessor(adapter=paypal_adapter, preferred_processor=stripe_processor)


@pytest.fixture
def registry(stripe_processor, paypal_processor):
    return ProcessorRegistry(
        {
            PayoutProcessorType.STRIPE: stripe_processor,
            PayoutProcessorType.PAYPAL: paypal_processor,
        }
    )


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client behind the payee payout lock.

    Returns a MagicMock configured so every lock is free.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1
    mocker.patch("payouts.locks.get_redis_connection", return_value=mock_client)
    return mock_client
