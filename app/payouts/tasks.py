"""
Celery tasks for payouts.

This module provides async tasks for:
- Processing Stripe webhook events and PayPal IPNs
- Retrying failed webhook events
- Scheduling the daily payout run and paying payee batches
- Settling payout reversals and automatic bank debits after the settlement delay
- Payee emails for failed, unpayable and returned payouts

Usage:
    from payouts.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))

    # Pay a batch of payees with Stripe (normally queued by the daily run)
    from payouts.tasks import payout_payees
    payout_payees.delay("2024-05-01", "stripe", [str(payee.id)])
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from payouts.currency import format_money
from payouts.models import Payment, WebhookEvent
from payouts.models.webhook_event import MAX_WEBHOOK_RETRIES
from payouts.processors import default_registry
from payouts.state_machines import PayoutProcessorType, PayoutType, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe event or PayPal IPN.

    Reconciliation errors mark the event failed and are re-raised, so
    Celery retries the event and the failure shows up in error tracking.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    from payouts.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": str(webhook_event_id), "event_id": webhook_event.event_id},
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save(update_fields=["status", "retry_count", "updated_at"])

    log_context = {
        "webhook_event_id": str(webhook_event_id),
        "event_id": webhook_event.event_id,
        "event_type": webhook_event.event_type,
        "processor": webhook_event.processor,
        "retry_count": webhook_event.retry_count,
    }

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event, default_registry())
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.exception("Webhook processing failed with exception", extra=log_context)
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {"status": "handler_failed", "webhook_event_id": str(webhook_event_id), "error": error_msg}

    webhook_event.mark_processed()
    webhook_event.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
    logger.info("Webhook processed successfully", extra=log_context)
    return {"status": "processed", "webhook_event_id": str(webhook_event_id)}


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue failed webhook events that have retries left.

    Scheduled via celery-beat.
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


# =============================================================================
# Payout Run Tasks
# =============================================================================


@shared_task
def schedule_daily_payouts() -> dict:
    """
    Queue payouts for all balances up to yesterday.

    Scheduled daily via celery-beat.
    """
    from payouts.services import PayoutRunService

    cutoff_date = timezone.localdate() - timedelta(days=1)
    queued = PayoutRunService(default_registry()).enqueue_daily_payouts(cutoff_date)
    return {"cutoff_date": cutoff_date.isoformat(), "queued": queued}


@shared_task(acks_late=True)
def payout_payees(
    date_string: str,
    processor_type: str,
    payee_ids: list[str],
    from_admin: bool = False,
    payout_type: str = PayoutType.STANDARD,
) -> dict:
    """
    Build and disburse payments for a batch of payees.

    Args:
        date_string: ISO cutoff date
        processor_type: PayoutProcessorType value
        payee_ids: Payee UUIDs as strings
    """
    from payouts.services import PayoutRunService

    payments = PayoutRunService(default_registry()).payout_payees(
        date_string,
        processor_type,
        payee_ids,
        from_admin=from_admin,
        payout_type=payout_type,
    )
    return {
        "date": date_string,
        "processor": processor_type,
        "payment_ids": [str(payment.pk) for payment in payments],
    }


# =============================================================================
# Delayed Reconciliation Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
)
def handle_payout_reversed(self, payment_id: str, reversing_payout_id: str, account_id: str) -> None:
    """Settle a Stripe payout reversal once the settlement delay has passed."""
    from payouts.services import StripeReconciliationService

    logger.info(
        "Settling payout reversal",
        extra={"payment_id": payment_id, "reversing_payout_id": reversing_payout_id, "stripe_account": account_id},
    )
    processor = default_registry().get(PayoutProcessorType.STRIPE)
    StripeReconciliationService(processor).handle_payout_reversed(payment_id, reversing_payout_id)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
)
def handle_stripe_bank_debit(self, account_id: str, payout_id: str) -> str | None:
    """Credit a payee whose bank was debited by an automatic Stripe payout."""
    from payouts.services import StripeReconciliationService

    processor = default_registry().get(PayoutProcessorType.STRIPE)
    credit = StripeReconciliationService(processor).handle_bank_debit(account_id, payout_id)
    return str(credit.pk) if credit else None


# =============================================================================
# Payee Emails
# =============================================================================


def _email_payee(payment: Payment, subject: str, message: str) -> bool:
    recipient = payment.payee.user.email
    if not recipient:
        logger.warning(
            "Payee has no email address, skipping payout email",
            extra={"payment_id": str(payment.pk), "payee_id": str(payment.payee_id)},
        )
        return False

    send_mail(
        subject=subject,
        message=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[recipient],
    )
    logger.info(
        f"Sent payout email: {subject}",
        extra={"payment_id": str(payment.pk), "payee_id": str(payment.payee_id)},
    )
    return True


def _payment_amount(payment: Payment) -> str:
    return format_money(payment.amount_cents, payment.currency)


@shared_task
def send_payout_failure_email(payment_id: str) -> bool:
    payment = Payment.objects.select_related("payee__user").get(pk=payment_id)
    return _email_payee(
        payment,
        "Your payout could not be completed",
        (
            f"Your payout of {_payment_amount(payment)} could not be completed by your bank "
            f"(reason: {payment.failure_reason or 'unknown'}).\n\n"
            "The funds are back in your balance and will be included in your next payout. "
            "Please check your payout settings."
        ),
    )


@shared_task
def send_cannot_pay_email(payment_id: str) -> bool:
    payment = Payment.objects.select_related("payee__user").get(pk=payment_id)
    return _email_payee(
        payment,
        "We couldn't pay you",
        (
            f"We tried to send you {_payment_amount(payment)} but your payout account "
            "cannot receive payouts yet.\n\n"
            "Please finish setting up your payout account. Your balance is safe and will be "
            "paid out once the account is ready."
        ),
    )


@shared_task
def send_payout_returned_email(payment_id: str) -> bool:
    payment = Payment.objects.select_related("payee__user").get(pk=payment_id)
    return _email_payee(
        payment,
        "Your payout was returned",
        (
            f"Your payout of {_payment_amount(payment)} was returned by your bank.\n\n"
            "The funds are back in your balance. Please check your bank account details "
            "so we can pay you in the next payout."
        ),
    )
