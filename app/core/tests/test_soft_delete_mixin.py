"""
Tests for SoftDeleteMixin.

Soft deleting a bank account must take it out of payout selection while
keeping the row for payments that reference it.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from payouts.models import BankAccount, Payment
from payouts.tests.factories import BankAccountFactory, PayeeFactory, PaymentFactory


@pytest.mark.django_db
class TestSoftDeleteMixin:
    def test_soft_delete_sets_timestamp(self):
        bank_account = BankAccountFactory()

        bank_account.soft_delete()

        bank_account = BankAccount.objects.get(pk=bank_account.pk)
        assert bank_account.is_deleted is True
        assert bank_account.deleted_at is not None

    def test_soft_delete_is_idempotent(self):
        bank_account = BankAccountFactory()
        bank_account.soft_delete()
        first_deleted_at = bank_account.deleted_at

        bank_account.soft_delete()

        assert BankAccount.objects.get(pk=bank_account.pk).deleted_at == first_deleted_at

    def test_restore(self):
        bank_account = BankAccountFactory()
        bank_account.soft_delete()

        bank_account.restore()

        assert BankAccount.objects.get(pk=bank_account.pk).is_deleted is False

    def test_deleted_account_is_not_active(self):
        payee = PayeeFactory()
        older = BankAccountFactory(payee=payee)
        BankAccount.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=1))
        newer = BankAccountFactory(payee=payee)

        assert payee.active_bank_account == newer
        newer.soft_delete()
        assert payee.active_bank_account == older

    def test_payment_keeps_deleted_bank_account(self):
        bank_account = BankAccountFactory()
        payment = PaymentFactory(payee=bank_account.payee, bank_account=bank_account)

        bank_account.soft_delete()

        assert Payment.objects.get(pk=payment.pk).bank_account == bank_account
