"""
PayPal NVP API adapter for MassPay payouts and IPN verification.

Configuration (via settings):
- PAYPAL_NVP_ENDPOINT: NVP API endpoint
- PAYPAL_IPN_VERIFY_URL: IPN postback URL
- PAYPAL_USER / PAYPAL_PASSWORD / PAYPAL_SIGNATURE: API credentials
- PAYPAL_API_TIMEOUT_SECONDS: HTTP timeout (default: 30)

Usage:
    from payouts.adapters import MassPayItem, PaypalAdapter

    result = PaypalAdapter.mass_pay([
        MassPayItem(
            email="seller@example.com",
            amount_cents=25_00,
            unique_id=payment.external_id,
            note="Jane Doe, selling digital products / memberships",
        ),
    ])
    if not result.succeeded:
        print(result.errors)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from urllib.parse import parse_qsl

import requests
from django.conf import settings

from payouts.exceptions import PaypalError

logger = logging.getLogger(__name__)

NVP_API_VERSION = "90.0"
SUCCESS_ACKS = ("Success", "SuccessWithWarning")


@dataclass
class MassPayItem:
    """One MassPay recipient."""

    email: str
    amount_cents: int
    unique_id: str
    note: str = ""


@dataclass
class MassPayResult:
    """
    Parsed MassPay response.

    Attributes:
        ack: Success, SuccessWithWarning, Failure or FailureWithWarning
        correlation_id: PayPal CORRELATIONID for support requests
        errors: "code - short message - long message" strings
    """

    ack: str
    correlation_id: str = ""
    errors: list[str] = field(default_factory=list)
    raw_response: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.ack in SUCCESS_ACKS


def parse_nvp(body: str) -> dict[str, str]:
    return dict(parse_qsl(body, keep_blank_values=True))


def errors_from_nvp(response: dict[str, str]) -> list[str]:
    errors = []
    index = 0
    while response.get(f"L_SHORTMESSAGE{index}"):
        errors.append(
            f"{response.get(f'L_ERRORCODE{index}', '')} - "
            f"{response[f'L_SHORTMESSAGE{index}']} - "
            f"{response.get(f'L_LONGMESSAGE{index}', '')}"
        )
        index += 1
    return errors


class PaypalAdapter:
    """
    Adapter for the PayPal NVP API.

    All methods are classmethods; credentials are read from settings on
    every call.
    """

    @classmethod
    def _auth_params(cls) -> dict[str, str]:
        return {
            "USER": settings.PAYPAL_USER,
            "PWD": settings.PAYPAL_PASSWORD,
            "SIGNATURE": settings.PAYPAL_SIGNATURE,
            "VERSION": NVP_API_VERSION,
        }

    @classmethod
    def _timeout(cls) -> int:
        return getattr(settings, "PAYPAL_API_TIMEOUT_SECONDS", 30)

    @classmethod
    def mass_pay(cls, items: list[MassPayItem], currency: str = "usd") -> MassPayResult:
        """
        Send one MassPay request for up to 250 recipients.

        Raises:
            PaypalError: PayPal could not be reached or returned garbage
        """
        params = {
            **cls._auth_params(),
            "METHOD": "MassPay",
            "RECEIVERTYPE": "EmailAddress",
            "CURRENCYCODE": currency.upper(),
        }
        for index, item in enumerate(items):
            params[f"L_EMAIL{index}"] = item.email
            params[f"L_AMT{index}"] = str(Decimal(item.amount_cents) / 100)
            params[f"L_UNIQUEID{index}"] = item.unique_id
            params[f"L_NOTE{index}"] = item.note

        log_context = {
            "operation": "mass_pay",
            "recipient_count": len(items),
            "unique_ids": [item.unique_id for item in items],
        }
        start_time = time.time()
        logger.info("Starting PayPal operation", extra=log_context)

        try:
            response = requests.post(
                settings.PAYPAL_NVP_ENDPOINT,
                data=params,
                timeout=cls._timeout(),
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(
                f"PayPal MassPay request failed: {e}",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
            )
            raise PaypalError(f"PayPal MassPay request failed: {e}") from e

        parsed = parse_nvp(response.text)
        result = MassPayResult(
            ack=parsed.get("ACK", ""),
            correlation_id=parsed.get("CORRELATIONID", ""),
            errors=errors_from_nvp(parsed) if parsed.get("ACK") != "Success" else [],
            raw_response=parsed,
        )

        logger.info(
            "PayPal operation completed",
            extra={
                **log_context,
                "ack": result.ack,
                "correlation_id": result.correlation_id,
                "errors": result.errors,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return result

    @classmethod
    def verify_ipn(cls, raw_body: bytes) -> bool:
        """
        Post the IPN back to PayPal and check that it answers VERIFIED.

        Raises:
            PaypalError: PayPal could not be reached
        """
        try:
            response = requests.post(
                settings.PAYPAL_IPN_VERIFY_URL,
                data=b"cmd=_notify-validate&" + raw_body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=cls._timeout(),
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"PayPal IPN verification failed: {e}")
            raise PaypalError(f"PayPal IPN verification failed: {e}") from e

        verified = response.text.strip() == "VERIFIED"
        if not verified:
            logger.warning("PayPal IPN not verified", extra={"response": response.text[:200]})
        return verified
