"""
Payout services.

- EligibilityService: Who can be paid
- BalanceAggregator: Which balances, locked against concurrent runs
- PaymentBuilder: One payment from the locked balances
- DisbursementEngine: Money movement behind a no-raise boundary
- PaymentStateService: Validated payment transitions
- StripeReconciliationService / PaypalReconciliationService: Processor events
- CreditService: Compensating credits
- PayoutRunService: The whole pipeline for many payees
"""

from payouts.services.balance_aggregator import BalanceAggregator
from payouts.services.credits import CreditService
from payouts.services.disbursement import DisbursementEngine
from payouts.services.eligibility import EligibilityService, EligibilitySnapshot
from payouts.services.payment_builder import PaymentBuilder
from payouts.services.payment_state import PaymentStateService
from payouts.services.payout_run import PayoutRunService
from payouts.services.reconciliation import (
    PaypalReconciliationService,
    StripeReconciliationService,
)

__all__ = [
    "BalanceAggregator",
    "CreditService",
    "DisbursementEngine",
    "EligibilityService",
    "EligibilitySnapshot",
    "PaymentBuilder",
    "PaymentStateService",
    "PaypalReconciliationService",
    "PayoutRunService",
    "StripeReconciliationService",
]
