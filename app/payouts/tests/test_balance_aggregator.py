"""Tests for BalanceAggregator selection, locking and release."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from threading import Barrier

import pytest
from django.db import connection

from payouts.models import Balance
from payouts.services import BalanceAggregator
from payouts.state_machines import BalanceState, HolderOfFunds
from payouts.tests.factories import BalanceFactory


def state_of(balance):
    return Balance.objects.values_list("state", flat=True).get(pk=balance.pk)


@pytest.mark.django_db
class TestBalanceSelection:
    def test_selects_unpaid_balances_up_to_cutoff(self, stripe_payee, platform_account, stripe_processor, cutoff):
        included = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)
        older = BalanceFactory(
            payee=stripe_payee, merchant_account=platform_account, date=cutoff - timedelta(days=3)
        )
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff + timedelta(days=1))
        BalanceFactory(
            payee=stripe_payee, merchant_account=platform_account, date=cutoff, state=BalanceState.PAID
        )
        BalanceFactory(merchant_account=platform_account, date=cutoff)

        balances = BalanceAggregator.balances_for(stripe_payee, cutoff, stripe_processor)

        assert balances == [older, included]

    def test_excludes_balances_processor_cannot_pay(
        self, payee, stripe_account, platform_account, paypal_processor, cutoff
    ):
        platform_balance = BalanceFactory(payee=payee, merchant_account=platform_account, date=cutoff)
        BalanceFactory(payee=payee, merchant_account=stripe_account, date=cutoff)

        assert BalanceAggregator.balances_for(payee, cutoff, paypal_processor) == [platform_balance]

    def test_estimate_held_amount_sums_to_estimate(
        self, stripe_payee, stripe_account, platform_account, stripe_processor, cutoff
    ):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff, amount_cents=30_00)
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff, amount_cents=-5_00)
        BalanceFactory(payee=stripe_payee, merchant_account=stripe_account, date=cutoff, amount_cents=20_00)

        held = BalanceAggregator.estimate_held_amount_cents(stripe_payee, cutoff, stripe_processor)

        assert held == {HolderOfFunds.PLATFORM: 25_00, HolderOfFunds.STRIPE: 20_00}
        assert sum(held.values()) == BalanceAggregator.estimate(stripe_payee, cutoff, stripe_processor)

    def test_estimate_does_not_lock(self, stripe_payee, platform_account, stripe_processor, cutoff):
        balance = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)

        BalanceAggregator.estimate(stripe_payee, cutoff, stripe_processor)

        assert state_of(balance) == BalanceState.UNPAID


@pytest.mark.django_db
class TestLockAndMarkProcessing:
    def test_marks_balances_processing(self, stripe_payee, platform_account, stripe_processor, cutoff):
        first = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)
        second = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)

        locked = BalanceAggregator.lock_and_mark_processing(stripe_payee, cutoff, stripe_processor)

        assert {b.pk for b in locked} == {first.pk, second.pk}
        assert all(b.state == BalanceState.PROCESSING for b in locked)
        assert state_of(first) == BalanceState.PROCESSING
        assert state_of(second) == BalanceState.PROCESSING

    def test_overlapping_runs_are_disjoint(self, stripe_payee, platform_account, stripe_processor, cutoff):
        BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)

        first_run = BalanceAggregator.lock_and_mark_processing(stripe_payee, cutoff, stripe_processor)
        second_run = BalanceAggregator.lock_and_mark_processing(stripe_payee, cutoff, stripe_processor)

        assert len(first_run) == 1
        assert second_run == []

    @pytest.mark.django_db(transaction=True)
    @pytest.mark.skipif(connection.vendor != "postgresql", reason="needs row locks")
    def test_concurrent_runs_are_disjoint(self, stripe_payee, platform_account, stripe_processor, cutoff):
        balances = [
            BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)
            for _ in range(5)
        ]
        barrier = Barrier(2)

        def run():
            barrier.wait()
            try:
                locked = BalanceAggregator.lock_and_mark_processing(stripe_payee, cutoff, stripe_processor)
                return {b.pk for b in locked}
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=2) as executor:
            first, second = [future.result() for future in [executor.submit(run), executor.submit(run)]]

        assert first.isdisjoint(second)
        assert first | second == {b.pk for b in balances}

    def test_skips_balance_taken_after_selection(
        self, mocker, stripe_payee, platform_account, stripe_processor, cutoff
    ):
        taken = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)
        free = BalanceFactory(payee=stripe_payee, merchant_account=platform_account, date=cutoff)
        stale_selection = BalanceAggregator.balances_for(stripe_payee, cutoff, stripe_processor)
        Balance.objects.filter(pk=taken.pk).update(state=BalanceState.PROCESSING)
        mocker.patch.object(BalanceAggregator, "balances_for", return_value=stale_selection)

        locked = BalanceAggregator.lock_and_mark_processing(stripe_payee, cutoff, stripe_processor)

        assert [b.pk for b in locked] == [free.pk]


@pytest.mark.django_db
class TestRelease:
    def test_release_returns_processing_balances(self, platform_account):
        processing = BalanceFactory(merchant_account=platform_account, state=BalanceState.PROCESSING)
        paid = BalanceFactory(merchant_account=platform_account, state=BalanceState.PAID)

        released = BalanceAggregator.release([processing, paid])

        assert [b.pk for b in released] == [processing.pk]
        assert state_of(processing) == BalanceState.UNPAID
        assert state_of(paid) == BalanceState.PAID

    def test_mark_paid_skips_disallowed_transitions(self, platform_account):
        processing = BalanceFactory(merchant_account=platform_account, state=BalanceState.PROCESSING)
        unpaid = BalanceFactory(merchant_account=platform_account)

        changed = BalanceAggregator.mark_paid([processing, unpaid])

        assert [b.pk for b in changed] == [processing.pk]
        assert state_of(processing) == BalanceState.PAID
        assert state_of(unpaid) == BalanceState.UNPAID
