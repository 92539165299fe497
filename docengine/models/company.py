"""
Company, Currency and Exchange Rate Models

A company owns exactly one base currency and a set of enabled
document currencies. Exchange rates convert ONE unit of a quote
(document) currency into the company's base currency.

DESIGN DECISION: Currency codes are a closed enum. A document in a
currency the product does not know about is unrepresentable.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Storage identifiers are UUID4 strings."""
    return str(uuid4())


class CurrencyCode(str, Enum):
    """ISO-4217 currencies the product supports."""
    ZAR = "ZAR"
    BWP = "BWP"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    ZWG = "ZWG"
    NAD = "NAD"
    KES = "KES"
    NGN = "NGN"
    CNY = "CNY"
    JPY = "JPY"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"
    INR = "INR"


class ConversionDirection(str, Enum):
    """Which way an amount is being converted."""
    DOCUMENT_TO_BASE = "document_to_base"
    BASE_TO_DOCUMENT = "base_to_document"


class RateSource(str, Enum):
    """Where an exchange rate came from."""
    MANUAL = "manual"
    API = "api"


class Company(BaseModel):
    """
    A company (tenant) whose documents the engine manages.

    The base currency is immutable once any document exists.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(
        ...,
        description="Owner of the company"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    country: Optional[str] = None
    base_currency: CurrencyCode = Field(
        default=CurrencyCode.ZAR,
        description="Home-ledger currency"
    )
    created_at: datetime = Field(default_factory=utcnow)


class CompanyCurrency(BaseModel):
    """A non-base currency enabled for a company's documents."""

    company_id: str
    currency_code: CurrencyCode
    is_enabled: bool = True


class ExchangeRate(BaseModel):
    """
    One timestamped rate for a currency pair.

    1 unit of quote_currency == rate units of base_currency.
    Several rates per pair are allowed; lookups pick the most recent
    one effective on or before the target date.
    """

    id: str = Field(default_factory=new_id)
    company_id: str
    base_currency: CurrencyCode
    quote_currency: CurrencyCode
    rate: Decimal = Field(
        ...,
        gt=0,
        description="Document currency -> base currency multiplier"
    )
    effective_date: date
    source: RateSource = RateSource.MANUAL
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_pair(self) -> 'ExchangeRate':
        """A rate must relate two different currencies."""
        if self.base_currency == self.quote_currency:
            raise ValueError("Exchange rate currencies must differ")
        return self
