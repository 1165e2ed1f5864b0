"""
Payouts app: the payout reconciliation and disbursement engine.

This app handles:
- Deciding which payees are payable on a cutoff date
- Locking and aggregating unpaid balances into a single payment
- Disbursing funds through PayPal or Stripe (internal + external transfer)
- Reconciling processor webhooks back onto payments and balances
- Compensating credits when a reversed transfer returns a different amount

Usage:
    from payouts.processors import default_registry
    from payouts.services import PayoutRunService

    # Pay all eligible payees up to yesterday via Stripe
    PayoutRunService(default_registry()).create_payments_for_balances_up_to_date_for_users(
        date.today() - timedelta(days=1),
        PayoutProcessorType.STRIPE,
        payees,
    )
"""
