"""
Webhook event handlers for payout processors.

Handlers are registered per (processor, event type) and receive the stored
WebhookEvent plus the processor registry. Reconciliation errors are not
caught here; they propagate to the processing task, which marks the event
failed and lets Celery retry and alert.

Usage:
    from payouts.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler(PayoutProcessorType.STRIPE, "payout.updated")
    def handle_payout_updated(webhook_event, registry) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event, default_registry())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.services import ServiceResult

from payouts.state_machines import PayoutProcessorType

if TYPE_CHECKING:
    from payouts.models import WebhookEvent
    from payouts.processors.base import ProcessorRegistry

    Handler = Callable[[WebhookEvent, ProcessorRegistry], ServiceResult]


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# (processor, event type) -> handler
WEBHOOK_HANDLERS: dict[tuple[str, str], Handler] = {}


def register_handler(processor: str, *event_types: str) -> Callable:
    """
    Decorator registering a handler for one or more event types.

    Args:
        processor: PayoutProcessorType the events come from
        event_types: Stripe event types or PayPal IPN txn_type values
    """

    def decorator(func: Handler) -> Handler:
        for event_type in event_types:
            WEBHOOK_HANDLERS[(str(processor), event_type)] = func
            logger.debug(f"Registered {processor} webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent, registry: ProcessorRegistry) -> ServiceResult:
    """
    Dispatch a stored event to its handler.

    Unknown event types succeed without doing anything so that processors
    stop redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get((str(webhook_event.processor), webhook_event.event_type))

    if handler is None:
        logger.info(
            f"No handler registered for {webhook_event.processor} event {webhook_event.event_type}",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"event_id": webhook_event.event_id, "processor": webhook_event.processor},
    )
    return handler(webhook_event, registry)


# =============================================================================
# Handlers
# =============================================================================


@register_handler(PayoutProcessorType.STRIPE, "payout.paid", "payout.canceled", "payout.failed")
def handle_stripe_payout_event(
    webhook_event: WebhookEvent,
    registry: ProcessorRegistry,
) -> ServiceResult:
    registry.get(PayoutProcessorType.STRIPE).handle_webhook_event(
        webhook_event.payload,
        webhook_event.account_id or None,
    )
    return ServiceResult.success(webhook_event.event_id)


@register_handler(PayoutProcessorType.PAYPAL, "masspay")
def handle_paypal_masspay(
    webhook_event: WebhookEvent,
    registry: ProcessorRegistry,
) -> ServiceResult:
    registry.get(PayoutProcessorType.PAYPAL).handle_webhook_event(webhook_event.payload)
    return ServiceResult.success(webhook_event.event_id)
