"""
Stripe API adapter for payout operations.

All Stripe calls made by the payouts app go through StripeAdapter to get
consistent error handling, timeouts, idempotency and observability.

Amounts passed to and returned from this adapter are in Stripe's own units
(zero-decimal currencies in whole units). Scaling to internal minor units
is done by the caller with payouts.currency.CurrencyConverter.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the SDK (default: 0)

Usage:
    from payouts.adapters import IdempotencyKeyGenerator, StripeAdapter

    transfer = StripeAdapter.create_transfer(
        amount_cents=100_00,
        currency="usd",
        destination_account="acct_123",
        idempotency_key=IdempotencyKeyGenerator.generate("internal_transfer", payment.id),
        metadata={"payment": payment.external_id},
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

import stripe
from django.conf import settings

from payouts.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

# Stripe caps metadata values at 500 characters
METADATA_VALUE_MAX_LENGTH = 500


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred
        currency: Currency code
        destination_account: Destination connected account (acct_xxx)
        destination_payment_id: Charge created on the destination (py_xxx)
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    destination_payment_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferReversalResult:
    """
    Result from reversing a Transfer.

    Attributes:
        id: Reversal ID (trr_xxx)
        transfer_id: Reversed transfer
        amount_cents: Amount reversed, in the transfer currency
        destination_payment_refund_id: Refund created on the destination (pyr_xxx)
    """

    id: str
    transfer_id: str
    amount_cents: int
    currency: str
    destination_payment_refund_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class BalanceTransactionResult:
    """
    A balance transaction on a connected account.

    Attributes:
        amount_cents: Gross amount in the account's currency
        net_cents: Amount after fees (negative for refunds)
    """

    id: str
    amount_cents: int
    net_cents: int
    currency: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutResult:
    """
    Result from Stripe Payout operations.

    Attributes:
        id: Payout ID (po_xxx)
        status: pending, in_transit, paid, failed, canceled
        arrival_date: Expected arrival date
        automatic: True for payouts Stripe initiated on its own schedule
        original_payout: Payout this one reverses, if any
        failure_code: Stripe failure code for failed payouts
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    arrival_date: date | None = None
    method: str = "standard"
    automatic: bool = False
    original_payout: str | None = None
    failure_code: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="payout",
            entity_id=payment.id,
        )
        # "payout:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def timestamp_to_date(value: int | None) -> date | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).date()


def format_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    """Stringify metadata values and clip them to Stripe's limit."""
    formatted = {}
    for key, value in metadata.items():
        if isinstance(value, (list, tuple)):
            value = ",".join(str(item) for item in value)
        formatted[key] = str(value)[:METADATA_VALUE_MAX_LENGTH]
    return formatted


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe payout operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        payout = StripeAdapter.create_payout(
            amount_cents=95_00,
            currency="eur",
            stripe_account="acct_123",
            destination="ba_123",
            idempotency_key=key,
        )
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 0)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Transfers (platform -> connected account)
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> TransferResult:
        """
        Transfer funds from the platform to a connected account.

        Raises:
            StripeInvalidRequestError: Invalid destination or insufficient platform funds
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "currency": currency,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=amount_cents,
                currency=currency,
                destination=destination_account,
                description=description,
                metadata=format_metadata(metadata or {}),
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                destination_payment_id=transfer.get("destination_payment"),
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def reverse_transfer(
        cls,
        transfer_id: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> TransferReversalResult:
        """
        Fully reverse a transfer, pulling the funds back to the platform.

        Raises:
            StripeInvalidRequestError: Transfer already reversed or connected
                account lacks funds
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "reverse_transfer",
            "transfer_id": transfer_id,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            reversal = stripe.Transfer.create_reversal(
                transfer_id,
                metadata=format_metadata(metadata or {}),
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "reversal_id": reversal.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferReversalResult(
                id=reversal.id,
                transfer_id=transfer_id,
                amount_cents=reversal.amount,
                currency=reversal.currency,
                destination_payment_refund_id=reversal.get("destination_payment_refund"),
                raw_response=reversal.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_transfer(cls, transfer_id: str) -> TransferResult:
        """Retrieve a platform transfer, including its destination payment id."""
        cls._configure_stripe()
        log_context = {"operation": "retrieve_transfer", "transfer_id": transfer_id}
        start_time = time.time()

        try:
            transfer = stripe.Transfer.retrieve(transfer_id)
            return TransferResult(
                id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                destination_payment_id=transfer.get("destination_payment"),
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Balance Transactions (connected account side)
    # =========================================================================

    @classmethod
    def retrieve_charge_balance_transaction(
        cls,
        charge_id: str,
        stripe_account: str,
    ) -> BalanceTransactionResult:
        """
        Balance transaction of the charge a transfer created on the
        destination account. Its amount is what the payee actually received
        in the account's currency.
        """
        return cls._retrieve_balance_transaction(stripe.Charge, charge_id, stripe_account)

    @classmethod
    def retrieve_refund_balance_transaction(
        cls,
        refund_id: str,
        stripe_account: str,
    ) -> BalanceTransactionResult:
        """Balance transaction of the refund a transfer reversal created."""
        return cls._retrieve_balance_transaction(stripe.Refund, refund_id, stripe_account)

    @classmethod
    def _retrieve_balance_transaction(
        cls,
        resource: Any,
        object_id: str,
        stripe_account: str,
    ) -> BalanceTransactionResult:
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": f"retrieve_{resource.OBJECT_NAME}_balance_transaction",
            "object_id": object_id,
            "stripe_account": stripe_account,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            obj = resource.retrieve(
                object_id,
                stripe_account=stripe_account,
                expand=["balance_transaction"],
            )
            balance_transaction = obj.balance_transaction

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

            return BalanceTransactionResult(
                id=balance_transaction.id,
                amount_cents=balance_transaction.amount,
                net_cents=balance_transaction.net,
                currency=balance_transaction.currency,
                raw_response=balance_transaction.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Payouts (connected account -> bank)
    # =========================================================================

    @classmethod
    def create_payout(
        cls,
        amount_cents: int,
        currency: str,
        stripe_account: str,
        idempotency_key: str,
        destination: str | None = None,
        method: str = "standard",
        metadata: dict[str, Any] | None = None,
        statement_descriptor: str | None = None,
    ) -> PayoutResult:
        """
        Pay out funds from a connected account to its bank account or card.

        Raises:
            StripeInvalidRequestError: e.g. "Cannot create live transfers",
                "Insufficient funds in Stripe account"
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payout",
            "amount_cents": amount_cents,
            "currency": currency,
            "stripe_account": stripe_account,
            "method": method,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            params: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "method": method,
                "metadata": format_metadata(metadata or {}),
            }
            if destination:
                params["destination"] = destination
            if statement_descriptor:
                params["statement_descriptor"] = statement_descriptor

            payout = stripe.Payout.create(
                stripe_account=stripe_account,
                idempotency_key=idempotency_key,
                **params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payout_id": payout.id,
                    "status": payout.status,
                    "duration_ms": duration_ms,
                },
            )

            return cls._payout_result(payout)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_payout(cls, payout_id: str, stripe_account: str) -> PayoutResult:
        """Retrieve a payout made on a connected account."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_payout",
            "payout_id": payout_id,
            "stripe_account": stripe_account,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            payout = stripe.Payout.retrieve(payout_id, stripe_account=stripe_account)
            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "status": payout.status, "duration_ms": duration_ms},
            )
            return cls._payout_result(payout)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @staticmethod
    def _payout_result(payout: Any) -> PayoutResult:
        return PayoutResult(
            id=payout.id,
            amount_cents=payout.amount,
            currency=payout.currency,
            status=payout.status,
            arrival_date=timestamp_to_date(payout.get("arrival_date")),
            method=payout.get("method") or "standard",
            automatic=bool(payout.get("automatic")),
            original_payout=payout.get("original_payout"),
            failure_code=payout.get("failure_code"),
            metadata=dict(payout.get("metadata") or {}),
            raw_response=payout.to_dict(),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        The original Stripe message is kept on request errors because payout
        failure classification depends on it.

        Raises:
            StripeInvalidRequestError: Invalid request parameters
            StripeAuthenticationError: Invalid API key
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable
            StripeTimeoutError: Request timed out
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            message = error.user_message or str(error)
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code, "stripe_message": message},
            )
            raise StripeInvalidRequestError(message, stripe_code=error.code) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out.",
                    stripe_code="timeout",
                ) from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.StripeError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                f"Stripe service error: {error.user_message or error}",
                stripe_code=getattr(error, "code", None) or "api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
