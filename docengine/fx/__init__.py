"""
Money/FX Package

Decimal money arithmetic, exchange-rate resolution and the rules for
which currencies a company may use.
"""

from docengine.fx.currencies import CurrencyRegistry, load_company
from docengine.fx.money import (
    CENT,
    ONE,
    RATE_QUANTUM,
    ZERO,
    convert,
    quantize_money,
    quantize_rate,
    to_decimal,
)
from docengine.fx.rates import ExchangeRateService

__all__ = [
    "CENT",
    "ONE",
    "RATE_QUANTUM",
    "ZERO",
    "CurrencyRegistry",
    "ExchangeRateService",
    "convert",
    "load_company",
    "quantize_money",
    "quantize_rate",
    "to_decimal",
]
