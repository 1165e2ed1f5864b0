"""Tests for currency conversion and formatting helpers."""

import pytest

from payouts.currency import CurrencyConverter, format_money
from payouts.exceptions import PayoutValidationError


class TestConvertCents:
    def test_same_currency_is_unchanged(self):
        assert CurrencyConverter.convert_cents(123_45, "usd", "USD") == 123_45

    def test_usd_to_eur(self, settings):
        settings.PAYOUT_CURRENCY_RATES = {"usd": "1", "eur": "0.92"}

        assert CurrencyConverter.convert_cents(100_00, "usd", "eur") == 92_00

    def test_eur_to_usd(self, settings):
        settings.PAYOUT_CURRENCY_RATES = {"usd": "1", "eur": "0.92"}

        assert CurrencyConverter.usd_cents(92_00, "eur") == 100_00

    def test_rounds_half_up(self, settings):
        settings.PAYOUT_CURRENCY_RATES = {"usd": "1", "eur": "0.5"}

        # 1 * 0.5 = 0.5 -> 1
        assert CurrencyConverter.convert_cents(1, "usd", "eur") == 1

    def test_unknown_currency_raises(self, settings):
        settings.PAYOUT_CURRENCY_RATES = {"usd": "1"}

        with pytest.raises(PayoutValidationError) as exc_info:
            CurrencyConverter.convert_cents(100, "usd", "xyz")

        assert exc_info.value.details == {"currency": "xyz"}


class TestProcessorAmounts:
    def test_zero_decimal_currency_is_scaled(self):
        assert CurrencyConverter.to_processor_amount(100_000, "krw") == 1_000
        assert CurrencyConverter.from_processor_amount(1_000, "KRW") == 100_000

    def test_two_decimal_currency_is_not_scaled(self):
        assert CurrencyConverter.to_processor_amount(12_34, "usd") == 12_34
        assert CurrencyConverter.from_processor_amount(12_34, "eur") == 12_34

    def test_round_for_payout_whole_unit_currencies(self):
        assert CurrencyConverter.round_for_payout(12_345, "huf") == 12_300
        assert CurrencyConverter.round_for_payout(12_399, "twd") == 12_300
        assert CurrencyConverter.round_for_payout(100_050, "jpy") == 100_000

    def test_round_for_payout_keeps_cents(self):
        assert CurrencyConverter.round_for_payout(12_345, "usd") == 12_345


class TestFees:
    def test_amount_after_fee(self):
        assert CurrencyConverter.amount_after_fee(103_00, 3) == 100_00
        # 10000 * 100 / 103 = 9708.73 -> floor
        assert CurrencyConverter.amount_after_fee(100_00, 3) == 97_08

    def test_fee_cents_rounds_up(self):
        assert CurrencyConverter.fee_cents(100_00, 2) == 2_00
        assert CurrencyConverter.fee_cents(10_01, 2) == 21


class TestFormatMoney:
    def test_whole_amount_drops_cents(self):
        assert format_money(9_00) == "$9 USD"

    def test_fractional_amount(self):
        assert format_money(10_50) == "$10.50 USD"

    def test_thousands_separator(self):
        assert format_money(1_234_56) == "$1,234.56 USD"

    def test_other_currency_has_no_symbol(self):
        assert format_money(5_00, "eur") == "5 EUR"

    def test_negative_amount(self):
        assert format_money(-5_00) == "$-5 USD"
