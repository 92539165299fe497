"""
Exchange Rate Lookup and Maintenance

A missing rate is a normal cold-start condition, not a fault:
resolve_rate() returns None and the caller decides what to do.
Document creation turns a missing rate into a ValidationError asking
for a manual rate (see effective_rate).
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from docengine.audit import AuditLogger
from docengine.errors import ValidationError
from docengine.fx.currencies import load_company
from docengine.fx.money import ONE, quantize_rate
from docengine.models.audit import AuditEventBuilder
from docengine.models.company import Company, CurrencyCode, ExchangeRate, RateSource
from docengine.models.context import OperationContext
from docengine.services.storage import StorageInterface, eq, lte


EXCHANGE_RATES_TABLE = "exchange_rates"


class ExchangeRateService:
    """Timestamped exchange rates per company and currency pair."""

    def __init__(
        self,
        storage: StorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def resolve_rate(
        self,
        company_id: str,
        base_currency: CurrencyCode,
        quote_currency: CurrencyCode,
        as_of: date,
    ) -> Optional[ExchangeRate]:
        """
        Most recent rate with effective_date <= as_of.

        Returns:
            The rate, or None when no rate is available yet.
            Same-currency pairs never have stored rates (they convert at 1).
        """
        rows = await self._storage.query(
            EXCHANGE_RATES_TABLE,
            [
                eq("company_id", company_id),
                eq("base_currency", base_currency),
                eq("quote_currency", quote_currency),
                lte("effective_date", as_of),
            ],
        )
        if not rows:
            return None

        rates = [ExchangeRate.model_validate(row) for row in rows]
        # Latest effective date wins; same-day ties go to the newest entry
        return max(rates, key=lambda r: (r.effective_date, r.created_at))

    async def effective_rate(
        self,
        company: Company,
        currency: CurrencyCode,
        as_of: date,
        manual_rate: Optional[Decimal] = None,
    ) -> tuple[Decimal, Optional[date]]:
        """
        Rate and rate date to stamp on a document.

        Policy (same for every document type):
        - base currency -> (1, None)
        - manual rate supplied -> that rate, dated as_of
        - otherwise the stored rate effective on as_of
        - no stored rate -> ValidationError asking for a manual rate

        Raises:
            ValidationError: If the rate is missing or not positive
        """
        if currency == company.base_currency:
            return ONE, None

        if manual_rate is not None:
            rate = quantize_rate(manual_rate)
            if rate <= 0:
                raise ValidationError("Exchange rate must be greater than zero")
            return rate, as_of

        found = await self.resolve_rate(company.id, company.base_currency, currency, as_of)
        if found is None:
            raise ValidationError(
                f"No exchange rate for {currency.value}/{company.base_currency.value} "
                f"on or before {as_of.isoformat()}. Enter a manual rate to continue."
            )
        return quantize_rate(found.rate), found.effective_date

    async def record_rate(
        self,
        ctx: OperationContext,
        quote_currency: CurrencyCode,
        rate: Decimal,
        effective_date: date,
        source: RateSource = RateSource.MANUAL,
    ) -> ExchangeRate:
        """
        Store a new rate against the company's base currency.

        Raises:
            ValidationError: If the rate isn't positive or the pair is degenerate
        """
        company = await load_company(self._storage, ctx.company_id)
        quantized = quantize_rate(rate)
        if quantized <= 0:
            raise ValidationError("Exchange rate must be greater than zero")
        if quote_currency == company.base_currency:
            raise ValidationError("Base currency always converts at 1")

        exchange_rate = ExchangeRate(
            company_id=company.id,
            base_currency=company.base_currency,
            quote_currency=quote_currency,
            rate=quantized,
            effective_date=effective_date,
            source=source,
        )
        await self._storage.insert(EXCHANGE_RATES_TABLE, [exchange_rate.model_dump(mode="json")])

        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.exchange_rate_recorded(
                rate_id=exchange_rate.id,
                pair=f"{quote_currency.value}/{company.base_currency.value}",
                rate=str(quantized),
                effective_date=effective_date.isoformat(),
                company_id=company.id,
                user_id=ctx.user_id,
            ))
        return exchange_rate

    async def list_rates(
        self,
        company_id: str,
        quote_currency: Optional[CurrencyCode] = None,
    ) -> list[ExchangeRate]:
        """All rates for a company, newest effective date first."""
        filters = [eq("company_id", company_id)]
        if quote_currency is not None:
            filters.append(eq("quote_currency", quote_currency))
        rows = await self._storage.query(
            EXCHANGE_RATES_TABLE,
            filters,
            order_by="effective_date",
            descending=True,
        )
        return [ExchangeRate.model_validate(row) for row in rows]

    async def delete_rate(self, ctx: OperationContext, rate_id: str) -> bool:
        """Delete a rate. Documents keep the rate they were stamped with."""
        deleted = await self._storage.delete(
            EXCHANGE_RATES_TABLE,
            [eq("id", rate_id), eq("company_id", ctx.company_id)],
        )
        if deleted and self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.exchange_rate_deleted(
                rate_id=rate_id,
                company_id=ctx.company_id,
                user_id=ctx.user_id,
            ))
        return deleted > 0

