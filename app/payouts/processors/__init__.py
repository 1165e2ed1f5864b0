"""
Payout processors for PayPal and Stripe.

Usage:
    from payouts.processors import default_registry

    processor = default_registry().get(PayoutProcessorType.PAYPAL)
"""

from payouts.processors.base import (
    PayoutProcessor,
    ProcessorRegistry,
    default_registry,
    payout_date_display,
)
from payouts.processors.paypal_processor import PaypalProcessor
from payouts.processors.stripe_processor import StripeProcessor, classify_payout_failure

__all__ = [
    "PaypalProcessor",
    "PayoutProcessor",
    "ProcessorRegistry",
    "StripeProcessor",
    "classify_payout_failure",
    "default_registry",
    "payout_date_display",
]
