"""
Webhook endpoint views for Stripe and PayPal.

Both views:
1. Verify the request (Stripe signature / PayPal IPN postback)
2. Create or retrieve the WebhookEvent record (idempotent on event_id)
3. Queue the event for async processing
4. Return immediately

Usage:
    # In urls.py
    from payouts.webhooks.views import paypal_ipn, stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
        path("webhooks/paypal/", paypal_ipn, name="paypal_ipn"),
    ]
"""

from __future__ import annotations

import logging
from typing import Any

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payouts.adapters import PaypalAdapter, StripeAdapter
from payouts.exceptions import PaypalError, StripeInvalidRequestError
from payouts.models import WebhookEvent
from payouts.state_machines import PayoutProcessorType, WebhookEventStatus

logger = logging.getLogger(__name__)


def _store_and_queue(
    processor: str,
    event_id: str,
    event_type: str,
    payload: dict[str, Any],
    account_id: str = "",
) -> HttpResponse:
    webhook_event, created = WebhookEvent.objects.get_or_create(
        event_id=event_id,
        defaults={
            "processor": processor,
            "event_type": event_type,
            "account_id": account_id,
            "payload": payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    log_context = {"event_id": event_id, "event_type": event_type, "processor": processor}

    if not created and webhook_event.is_processed:
        logger.info("Webhook already processed, returning success", extra=log_context)
        return HttpResponse("Already processed", status=200)

    try:
        from payouts.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={**log_context, "webhook_event_id": str(webhook_event.id)},
        )
    except Exception as e:
        # The stored event is picked up by retry_failed_webhooks or redelivery
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra=log_context,
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe Connect events.

    Returns:
        200: Event accepted (new or duplicate)
        400: Missing or invalid signature, or malformed event
    """
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning("Webhook signature verification failed", extra={"error": str(e)})
        return HttpResponse("Invalid signature", status=400)

    event_id = event_data.get("id")
    event_type = event_data.get("type")
    if not event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(f"Received Stripe webhook: {event_type}", extra={"event_id": event_id})

    return _store_and_queue(
        PayoutProcessorType.STRIPE,
        event_id,
        event_type,
        event_data,
        account_id=event_data.get("account") or "",
    )


@csrf_exempt
@require_POST
def paypal_ipn(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue PayPal masspay IPNs.

    Returns:
        200: IPN accepted (new or duplicate)
        400: IPN not verified by PayPal or malformed
        503: PayPal could not be reached for verification, so PayPal retries
    """
    try:
        verified = PaypalAdapter.verify_ipn(request.body)
    except PaypalError:
        return HttpResponse("Verification unavailable", status=503)

    if not verified:
        return HttpResponse("Invalid IPN", status=400)

    params = request.POST.dict()
    event_id = params.get("ipn_track_id")
    event_type = params.get("txn_type")
    if not event_id or not event_type:
        logger.warning("PayPal IPN missing required fields")
        return HttpResponse("Invalid IPN", status=400)

    logger.info(f"Received PayPal IPN: {event_type}", extra={"event_id": event_id})

    return _store_and_queue(PayoutProcessorType.PAYPAL, event_id, event_type, params)
