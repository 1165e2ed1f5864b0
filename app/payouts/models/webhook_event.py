"""
WebhookEvent model for processor event tracking.

Stores every inbound Stripe event and PayPal IPN for idempotent
processing. The unique event_id ensures redelivered webhooks are detected.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        event_id="evt_123",
        defaults={
            "processor": PayoutProcessorType.STRIPE,
            "event_type": "payout.paid",
            "account_id": "acct_123",
            "payload": payload,
        },
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payouts.state_machines import PayoutProcessorType, WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Inbound processor event persisted for async processing.

    Processing Flow:
        1. View verifies the signature / IPN
        2. get_or_create on event_id (duplicate -> 200)
        3. process_webhook_event task marks PROCESSING
        4. Handler routes to the processor's handle_webhook_event
        5. PROCESSED, or FAILED with the error for retry

    Fields:
        processor: Processor that sent the event
        event_id: Stripe event ID or PayPal IPN track ID
        event_type: e.g. 'payout.paid' or 'masspay'
        account_id: Connected account the event belongs to
        payload: Full event payload
    """

    processor = models.CharField(
        max_length=20,
        choices=PayoutProcessorType.choices,
        default=PayoutProcessorType.STRIPE,
        help_text="Processor that sent the event",
    )

    event_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Processor event ID - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type (e.g., 'payout.paid', 'masspay')",
    )

    account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Connected account ID the event was sent for",
    )

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["status", "retry_count"]),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.processor}, {self.event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return self.status == WebhookEventStatus.FAILED and self.retry_count < MAX_WEBHOOK_RETRIES

    # ==========================================================================
    # Helper Methods (caller saves)
    # ==========================================================================

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return the Stripe event's data.object, or {} for other payloads."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        if not isinstance(data, dict):
            return {}
        return data.get("object") or {}
