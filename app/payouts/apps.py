"""
Payouts app configuration.

This app owns the payout engine: payee eligibility, balance aggregation,
payment building, disbursement through PayPal or Stripe, and webhook-driven
reconciliation of payments and balances.
"""

from django.apps import AppConfig


class PayoutsConfig(AppConfig):
    """Configuration for the payouts application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payouts"
    verbose_name = "Payouts"
