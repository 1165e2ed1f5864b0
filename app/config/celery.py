"""
Celery configuration for the payout engine.

Celery runs the daily payout schedule, the per-payee payout batches,
delayed reconciliation of Stripe reversals and webhook processing.

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; periodic tasks
are stored in the database by django-celery-beat.

Usage:
    from payouts.tasks import payout_payees

    payout_payees.delay("2024-05-01", "stripe", [str(payee.id)])
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
