"""
Payout domain models.

- Payee / BankAccount / PayoutNote: Sellers, their payout destinations and notes
- MerchantAccount: Processor accounts holding funds
- Balance: Per-date funds owed to a payee
- Payment: One disbursement attempt
- Credit / BalanceTransaction: Compensating ledger entries
- WebhookEvent: Inbound processor events for idempotent processing
"""

from payouts.models.balance import Balance
from payouts.models.credit import BalanceTransaction, Credit
from payouts.models.merchant_account import MerchantAccount
from payouts.models.payee import BankAccount, Payee, PayoutNote
from payouts.models.payment import Payment
from payouts.models.webhook_event import WebhookEvent

__all__ = [
    "Balance",
    "BalanceTransaction",
    "BankAccount",
    "Credit",
    "MerchantAccount",
    "Payee",
    "Payment",
    "PayoutNote",
    "WebhookEvent",
]
