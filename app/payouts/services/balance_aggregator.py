"""
Balance aggregation and locking for payout runs.

BalanceAggregator selects the unpaid balances a processor can pay for a
payee up to a cutoff date, and moves them to PROCESSING under row locks so
two overlapping payout runs can never aggregate the same balance.

Usage:
    aggregator = BalanceAggregator()
    balances = aggregator.lock_and_mark_processing(payee, cutoff, processor)
    ...
    aggregator.release(balances)  # payment could not be built
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from django_fsm import can_proceed

from core.services import BaseService

from payouts.models import Balance
from payouts.state_machines import BalanceState

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import date

    from payouts.models import Payee
    from payouts.processors.base import PayoutProcessor


class BalanceAggregator(BaseService):
    """
    Selects, locks and releases payee balances.

    All write methods re-read each balance with SELECT ... FOR UPDATE and
    only apply a transition the FSM allows from the locked state.
    """

    @staticmethod
    def _candidates(payee: Payee, cutoff_date: date):
        return (
            Balance.objects.filter(
                payee=payee,
                state=BalanceState.UNPAID,
                date__lte=cutoff_date,
            )
            .select_related("merchant_account")
            .order_by("date", "created_at")
        )

    @classmethod
    def balances_for(
        cls,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
    ) -> list[Balance]:
        """Unpaid balances up to the cutoff that `processor` can pay."""
        return [
            balance
            for balance in cls._candidates(payee, cutoff_date)
            if processor.is_balance_payable(balance)
        ]

    @classmethod
    def lock_and_mark_processing(
        cls,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
    ) -> list[Balance]:
        """
        Lock payable balances and move them UNPAID -> PROCESSING.

        A balance taken by a concurrent run between selection and locking
        is skipped, so the results of overlapping calls are disjoint.
        """
        locked: list[Balance] = []
        with cls.atomic():
            for candidate in cls.balances_for(payee, cutoff_date, processor):
                balance = (
                    Balance.objects.select_for_update()
                    .select_related("merchant_account")
                    .filter(pk=candidate.pk, state=BalanceState.UNPAID)
                    .first()
                )
                if balance is None:
                    continue
                balance.mark_processing()
                balance.save()
                locked.append(balance)

        cls.get_logger().info(
            "Locked balances for payout",
            extra={
                "payee_id": str(payee.id),
                "cutoff_date": str(cutoff_date),
                "balance_count": len(locked),
            },
        )
        return locked

    @classmethod
    def _transition_all(cls, balances: Iterable[Balance], transition: str) -> list[Balance]:
        changed = []
        with cls.atomic():
            for candidate in balances:
                balance = Balance.objects.select_for_update().get(pk=candidate.pk)
                method = getattr(balance, transition)
                if not can_proceed(method):
                    cls.get_logger().warning(
                        f"Skipping balance {transition}: state is {balance.state}",
                        extra={"balance_id": str(balance.pk), "state": balance.state},
                    )
                    continue
                method()
                balance.save()
                changed.append(balance)
        return changed

    @classmethod
    def release(cls, balances: Iterable[Balance]) -> list[Balance]:
        """Return locked balances to UNPAID for a future run."""
        return cls._transition_all(
            [b for b in balances if b.state == BalanceState.PROCESSING],
            "mark_unpaid",
        )

    @classmethod
    def mark_paid(cls, balances: Iterable[Balance]) -> list[Balance]:
        return cls._transition_all(balances, "mark_paid")

    @classmethod
    def mark_unpaid(cls, balances: Iterable[Balance]) -> list[Balance]:
        return cls._transition_all(balances, "mark_unpaid")

    # ==========================================================================
    # Estimation (no locking, no mutation)
    # ==========================================================================

    @classmethod
    def estimate(
        cls,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
    ) -> int:
        """Issued (USD) amount a payout run would aggregate right now."""
        return sum(b.amount_cents for b in cls.balances_for(payee, cutoff_date, processor))

    @classmethod
    def estimate_held_amount_cents(
        cls,
        payee: Payee,
        cutoff_date: date,
        processor: PayoutProcessor,
    ) -> dict[str, int]:
        """
        Issued amount of the payable balances, grouped by holder of funds.

        Summed over all holders this equals estimate() for the same inputs.
        """
        held: dict[str, int] = defaultdict(int)
        for balance in cls.balances_for(payee, cutoff_date, processor):
            held[balance.merchant_account.holder_of_funds] += balance.amount_cents
        return dict(held)
