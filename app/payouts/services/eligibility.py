"""
Payee payout eligibility.

Rules are evaluated in order and stop at the first failure:

1. Suspended payees are not paid (admins may override)
2. Paused payees are not paid
3. The payable amount must reach the payee's minimum (admins may override
   when every unpaid balance is held by the platform)
4. The processor must be able to pay the payee

Skip reasons are written to the payee's payout notes when add_comment is
set. Payees never see these notes directly.

Usage:
    service = EligibilityService(default_registry())
    if service.is_payable(payee, cutoff, PayoutProcessorType.STRIPE, add_comment=True):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db.models import Sum

from core.services import BaseService

from payouts.currency import format_money
from payouts.models import Balance, Payment
from payouts.processors.base import payout_date_display
from payouts.state_machines import BalanceState, HolderOfFunds, PaymentState, PayoutType

if TYPE_CHECKING:
    from datetime import date

    from payouts.models import Payee
    from payouts.processors.base import ProcessorRegistry


PAUSED_BY_ADMIN = "admin"
PAUSED_BY_USER = "user"

UNPAID_PAYMENT_STATES = [PaymentState.FAILED, PaymentState.CANCELLED, PaymentState.RETURNED]


@dataclass(frozen=True)
class EligibilitySnapshot:
    """
    Inputs to a payability decision, read at one point in time.

    Attributes:
        unpaid_balance_cents: Unpaid issued amount up to the cutoff
        paid_payment_cents: Payments for the cutoff date that were not
            failed, cancelled or returned
        payable_amount_cents: Sum of the two above
        paused_by: "admin", "user" or None
        held_by_platform_only: Every unpaid balance up to the cutoff is
            held by the platform
    """

    is_suspended: bool
    paused_by: str | None
    unpaid_balance_cents: int
    paid_payment_cents: int
    minimum_payout_amount_cents: int
    has_processing_payment: bool
    held_by_platform_only: bool

    @property
    def payouts_paused(self) -> bool:
        return self.paused_by is not None

    @property
    def payable_amount_cents(self) -> int:
        return self.unpaid_balance_cents + self.paid_payment_cents

    @property
    def meets_minimum(self) -> bool:
        return self.payable_amount_cents >= self.minimum_payout_amount_cents


class EligibilityService(BaseService):
    """
    Decides whether payees can be paid.

    Args:
        registry: Processors consulted for the processor-specific checks
    """

    def __init__(self, registry: ProcessorRegistry):
        self.registry = registry

    @staticmethod
    def build_snapshot(payee: Payee, cutoff_date: date) -> EligibilitySnapshot:
        unpaid = Balance.objects.filter(
            payee=payee,
            state=BalanceState.UNPAID,
            date__lte=cutoff_date,
        )
        unpaid_cents = unpaid.aggregate(total=Sum("amount_cents"))["total"] or 0
        held_elsewhere = unpaid.exclude(
            merchant_account__holder_of_funds=HolderOfFunds.PLATFORM
        ).exists()

        paid_cents = (
            Payment.objects.filter(payee=payee, payout_period_end_date=cutoff_date)
            .exclude(state__in=UNPAID_PAYMENT_STATES)
            .aggregate(total=Sum("amount_cents"))["total"]
            or 0
        )

        if payee.payouts_paused_internally:
            paused_by = PAUSED_BY_ADMIN
        elif payee.payouts_paused_by_user:
            paused_by = PAUSED_BY_USER
        else:
            paused_by = None

        return EligibilitySnapshot(
            is_suspended=payee.is_suspended,
            paused_by=paused_by,
            unpaid_balance_cents=unpaid_cents,
            paid_payment_cents=paid_cents,
            minimum_payout_amount_cents=payee.minimum_payout_amount_cents,
            has_processing_payment=payee.payments.filter(state=PaymentState.PROCESSING).exists(),
            held_by_platform_only=not held_elsewhere,
        )

    def is_payable(
        self,
        payee: Payee,
        cutoff_date: date,
        processor_type: str | None = None,
        *,
        add_comment: bool = False,
        from_admin: bool = False,
        payout_type: str = PayoutType.STANDARD,
    ) -> bool:
        """
        Whether `payee` can be paid for balances up to `cutoff_date`.

        Without a processor_type the payee is payable if any registered
        processor can pay them.
        """
        snapshot = self.build_snapshot(payee, cutoff_date)
        payout_date = payout_date_display()

        def skip(reason: str) -> bool:
            if add_comment:
                payee.add_payout_note(f"Payout on {payout_date} was skipped because {reason}")
            self.get_logger().info(
                f"Payee not payable: {reason}",
                extra={"payee_id": str(payee.pk), "cutoff_date": str(cutoff_date)},
            )
            return False

        if snapshot.is_suspended and not from_admin:
            return skip("the account was suspended.")

        if snapshot.paused_by == PAUSED_BY_ADMIN:
            return skip("payouts on the account were paused by the admin.")
        if snapshot.paused_by == PAUSED_BY_USER:
            return skip("payouts on the account were paused by the user.")

        if not snapshot.meets_minimum and not (from_admin and snapshot.held_by_platform_only):
            return skip(
                f"the account balance {format_money(snapshot.payable_amount_cents)} "
                f"was less than the minimum payout amount of "
                f"{format_money(snapshot.minimum_payout_amount_cents)}."
            )

        options = {"add_comment": add_comment, "from_admin": from_admin, "payout_type": payout_type}
        if processor_type is not None:
            return self.registry.get(processor_type).is_user_payable(
                payee, snapshot.payable_amount_cents, **options
            )
        return any(
            processor.is_user_payable(payee, snapshot.payable_amount_cents, **options)
            for processor in self.registry.values()
        )
