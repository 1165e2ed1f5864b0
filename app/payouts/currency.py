"""
Currency conversion and processor amount formatting.

All amounts inside the payouts app are integers in hundredths of the
currency's major unit, including zero-decimal currencies. A KRW balance of
1,000 won is stored as 100_000. Stripe expects zero-decimal currencies in
whole units, so amounts are scaled at the adapter boundary only.

Rates come from settings.PAYOUT_CURRENCY_RATES as units of the currency per
one USD, e.g. {"usd": "1", "eur": "0.92", "krw": "1350"}.

Usage:
    from payouts.currency import CurrencyConverter

    CurrencyConverter.convert_cents(100_00, "usd", "eur")   # 92_00
    CurrencyConverter.to_processor_amount(100_000, "krw")   # 1_000
    CurrencyConverter.round_for_payout(12_345, "huf")       # 12_300
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from django.conf import settings

from payouts.exceptions import PayoutValidationError

# Currencies Stripe accepts only in whole units
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)

# Two-decimal currencies that Stripe only pays out in whole units
WHOLE_UNIT_PAYOUT_CURRENCIES = frozenset({"huf", "twd"})


class CurrencyConverter:
    """
    Converts minor-unit amounts between currencies.

    Rounding is ROUND_HALF_UP on the final minor unit. Fee deductions
    use floor_percent / ceil_percent explicitly.
    """

    @classmethod
    def rate_for(cls, currency: str) -> Decimal:
        rates = settings.PAYOUT_CURRENCY_RATES
        try:
            return Decimal(str(rates[currency.lower()]))
        except KeyError:
            raise PayoutValidationError(
                f"No exchange rate configured for {currency.upper()}",
                details={"currency": currency},
            ) from None

    @classmethod
    def convert_cents(cls, amount_cents: int, from_currency: str, to_currency: str) -> int:
        if from_currency.lower() == to_currency.lower():
            return int(amount_cents)
        usd = Decimal(amount_cents) / cls.rate_for(from_currency)
        converted = usd * cls.rate_for(to_currency)
        return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @classmethod
    def usd_cents(cls, amount_cents: int, currency: str) -> int:
        return cls.convert_cents(amount_cents, currency, "usd")

    # ==========================================================================
    # Processor Formatting
    # ==========================================================================

    @staticmethod
    def to_processor_amount(amount_cents: int, currency: str) -> int:
        """Scale an internal amount to what Stripe expects for `currency`."""
        if currency.lower() in ZERO_DECIMAL_CURRENCIES:
            return int(amount_cents) // 100
        return int(amount_cents)

    @staticmethod
    def from_processor_amount(amount: int, currency: str) -> int:
        """Inverse of to_processor_amount."""
        if currency.lower() in ZERO_DECIMAL_CURRENCIES:
            return int(amount) * 100
        return int(amount)

    @staticmethod
    def round_for_payout(amount_cents: int, currency: str) -> int:
        """Drop sub-unit remainders for currencies paid out in whole units."""
        currency = currency.lower()
        if currency in WHOLE_UNIT_PAYOUT_CURRENCIES or currency in ZERO_DECIMAL_CURRENCIES:
            return int(amount_cents) - int(amount_cents) % 100
        return int(amount_cents)

    # ==========================================================================
    # Fees
    # ==========================================================================

    @staticmethod
    def amount_after_fee(amount_cents: int, fee_percent: int) -> int:
        """
        Amount that, with `fee_percent` added on top, equals amount_cents.

        floor(amount * 100 / (100 + fee_percent))
        """
        value = Decimal(amount_cents) * 100 / (100 + Decimal(fee_percent))
        return int(value.to_integral_value(rounding=ROUND_FLOOR))

    @staticmethod
    def fee_cents(amount_cents: int, fee_percent: int) -> int:
        """ceil(amount * fee_percent / 100)"""
        return -((-int(amount_cents) * int(fee_percent)) // 100)


def format_money(amount_cents: int, currency: str = "usd") -> str:
    """
    Human-readable amount for notes and emails.

    Whole amounts drop the cents: "$9 USD", "$10.50 USD".
    """
    major = Decimal(amount_cents) / 100
    symbol = "$" if currency.lower() == "usd" else ""
    if major == major.to_integral_value():
        text = f"{int(major):,}"
    else:
        text = f"{major:,.2f}"
    return f"{symbol}{text} {currency.upper()}"
