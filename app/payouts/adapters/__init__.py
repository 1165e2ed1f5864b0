"""
Processor adapters for external services.

All external processor API calls go through these adapters to get
consistent error handling, timeouts, idempotency and logging.
"""

from payouts.adapters.paypal_adapter import MassPayItem, MassPayResult, PaypalAdapter
from payouts.adapters.stripe_adapter import (
    BalanceTransactionResult,
    IdempotencyKeyGenerator,
    PayoutResult,
    StripeAdapter,
    TransferResult,
    TransferReversalResult,
)

__all__ = [
    "BalanceTransactionResult",
    "IdempotencyKeyGenerator",
    "MassPayItem",
    "MassPayResult",
    "PaypalAdapter",
    "PayoutResult",
    "StripeAdapter",
    "TransferResult",
    "TransferReversalResult",
]
