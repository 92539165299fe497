"""Tests for Decimal money helpers and currency conversion."""

from decimal import Decimal

import pytest

from docengine.errors import ValidationError
from docengine.fx import CENT, convert, quantize_money, quantize_rate, to_decimal
from docengine.models import ConversionDirection


class TestToDecimal:
    """Strict input conversion."""

    def test_float_goes_through_repr(self):
        """0.1 must not become 0.1000000000000000055..."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_strings_and_ints(self):
        assert to_decimal(" 12.50 ") == Decimal("12.50")
        assert to_decimal(7) == Decimal("7")

    @pytest.mark.parametrize("value", [True, None, "abc", "NaN", "Infinity", [1]])
    def test_rejects_non_numbers(self, value):
        """Booleans, garbage and non-finite values are validation errors."""
        with pytest.raises(ValidationError):
            to_decimal(value)


class TestQuantize:
    """Rounding rules."""

    def test_money_rounds_half_up(self):
        """Banker's rounding would give 2.67 here."""
        assert quantize_money("2.675") == Decimal("2.68")
        assert quantize_money("2.665") == Decimal("2.67")

    def test_money_always_two_places(self):
        assert str(quantize_money(5)) == "5.00"

    def test_rate_six_places(self):
        assert quantize_rate("18.1234565") == Decimal("18.123457")

    def test_too_many_digits(self):
        with pytest.raises(ValidationError, match="amount is too large"):
            quantize_money(Decimal("1e29"))
        with pytest.raises(ValidationError, match="fx_rate is too large"):
            quantize_rate(Decimal("1e25"))


class TestConvert:
    """Document <-> base currency conversion."""

    def test_document_to_base_multiplies(self):
        assert convert(Decimal("100.00"), Decimal("18.5")) == Decimal("1850.00")

    def test_base_to_document_divides(self):
        result = convert(
            Decimal("1850.00"),
            Decimal("18.5"),
            ConversionDirection.BASE_TO_DOCUMENT,
        )
        assert result == Decimal("100.00")

    def test_rate_of_one_only_rounds(self):
        assert convert(Decimal("10.00"), 1) == Decimal("10.00")
        assert convert(Decimal("10.005"), 1) == Decimal("10.01")

    @pytest.mark.parametrize("rate", [0, "-1.5"])
    def test_non_positive_rate_rejected(self, rate):
        with pytest.raises(ValidationError):
            convert(Decimal("10"), rate)

    @pytest.mark.parametrize("rate", ["18.5", "0.054321", "1.234567"])
    @pytest.mark.parametrize("amount", ["287.50", "0.01", "99999.99", "13.37"])
    def test_round_trip_within_rounding_tolerance(self, amount, rate):
        """
        document -> base -> document stays within the rounding error
        of both conversions.
        """
        amount = Decimal(amount)
        rate = Decimal(rate)
        base = convert(amount, rate)
        back = convert(base, rate, ConversionDirection.BASE_TO_DOCUMENT)

        tolerance = (CENT / 2) / rate + CENT / 2
        assert abs(back - amount) <= tolerance
