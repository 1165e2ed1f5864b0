"""
State machine enums for payout models.

This module defines the state and choice enums used by payout models with django-fsm.
"""

from payouts.state_machines.states import (
    BalanceState,
    BankAccountType,
    HolderOfFunds,
    PaymentFailureReason,
    PaymentState,
    PayoutProcessorType,
    PayoutType,
    WebhookEventStatus,
)

__all__ = [
    "BalanceState",
    "BankAccountType",
    "HolderOfFunds",
    "PaymentFailureReason",
    "PaymentState",
    "PayoutProcessorType",
    "PayoutType",
    "WebhookEventStatus",
]
