"""
Currency-aware Decimal Arithmetic

CRITICAL: Money never touches binary floating point. Summing float
VAT amounts drifts by cents, which is the most common real-world
accounting defect. Every amount is a Decimal quantized to 2 places,
every exchange rate a Decimal quantized to 6 places.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from docengine.errors import ValidationError
from docengine.models.company import ConversionDirection


MONEY_PLACES = 2
RATE_PLACES = 6

CENT = Decimal(1).scaleb(-MONEY_PLACES)
RATE_QUANTUM = Decimal(1).scaleb(-RATE_PLACES)
ZERO = Decimal("0.00")
ONE = Decimal("1")


def to_decimal(value, field: str = "amount") -> Decimal:
    """
    Strictly convert user input to Decimal.

    Floats are converted through their shortest repr, so 0.1 becomes
    Decimal("0.1") rather than 0.1000000000000000055...
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} is not a valid number: {value!r}")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def _quantize(value: Decimal, quantum: Decimal, field: str) -> Decimal:
    # More significant digits than the context precision can hold
    try:
        return value.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field} is too large")


def quantize_money(amount) -> Decimal:
    """
    Round half-up to whole cents.

    Raises:
        ValidationError: If the amount has too many digits to hold in cents
    """
    return _quantize(to_decimal(amount), CENT, "amount")


def quantize_rate(rate) -> Decimal:
    """Round half-up to 6 decimal places."""
    return _quantize(to_decimal(rate, "fx_rate"), RATE_QUANTUM, "fx_rate")


def convert(
    amount,
    fx_rate,
    direction: ConversionDirection = ConversionDirection.DOCUMENT_TO_BASE,
) -> Decimal:
    """
    Convert an amount between document and base currency.

    fx_rate is the number of base-currency units per document-currency
    unit. A rate of exactly 1 only rounds the amount.

    Raises:
        ValidationError: If the rate is not positive
    """
    rate = to_decimal(fx_rate, "fx_rate")
    if rate <= 0:
        raise ValidationError("Exchange rate must be greater than zero")

    value = to_decimal(amount)
    if rate == ONE:
        return quantize_money(value)

    if direction == ConversionDirection.DOCUMENT_TO_BASE:
        return quantize_money(value * rate)
    return quantize_money(value / rate)
