"""
Company Currency Registry

Rules enforced here:
1. The base currency is always enabled and can never be removed
2. A currency used by any existing document can't be disabled
3. The base currency is frozen once any document exists

These are precondition checks, not locks: they read the current
document set and refuse the change if it would break history.
"""

from typing import Optional

from docengine.audit import AuditLogger
from docengine.config import get_settings
from docengine.errors import StateConflictError, ValidationError
from docengine.models.audit import AuditEventBuilder
from docengine.models.company import Company, CompanyCurrency, CurrencyCode
from docengine.models.context import OperationContext
from docengine.models.document import DOCUMENT_TABLES
from docengine.services.storage import NotFoundError, StorageInterface, eq


COMPANIES_TABLE = "companies"
COMPANY_CURRENCIES_TABLE = "company_currencies"


async def load_company(storage: StorageInterface, company_id: str) -> Company:
    """
    Fetch a company row.

    Raises:
        NotFoundError: If the company doesn't exist
    """
    row = await storage.get_one(COMPANIES_TABLE, [eq("id", company_id)])
    if row is None:
        raise NotFoundError(f"Company not found: {company_id}")
    if not row.get("base_currency"):
        row["base_currency"] = get_settings().engine.default_base_currency.upper()
    return Company.model_validate(row)


class CurrencyRegistry:
    """Which currencies a company may issue documents in."""

    def __init__(
        self,
        storage: StorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def get_company(self, company_id: str) -> Company:
        return await load_company(self._storage, company_id)

    async def enabled_currencies(self, company_id: str) -> list[CurrencyCode]:
        """Base currency first, then the enabled extras in code order."""
        company = await self.get_company(company_id)
        rows = await self._storage.query(
            COMPANY_CURRENCIES_TABLE,
            [eq("company_id", company_id), eq("is_enabled", True)],
        )
        extras = sorted(
            {CompanyCurrency.model_validate(row).currency_code for row in rows}
            - {company.base_currency},
            key=lambda code: code.value,
        )
        return [company.base_currency, *extras]

    async def assert_enabled(self, company: Company, currency: CurrencyCode) -> None:
        """
        Raises:
            ValidationError: If documents can't be issued in this currency
        """
        if currency == company.base_currency:
            return
        enabled = await self.enabled_currencies(company.id)
        if currency not in enabled:
            raise ValidationError(
                f"Currency {currency.value} is not enabled for this company. "
                "Enable it in Settings before using it on a document."
            )

    async def has_documents(self, company_id: str, currency: Optional[CurrencyCode] = None) -> bool:
        """Does the company have any document (optionally in one currency)?"""
        for tables in DOCUMENT_TABLES.values():
            filters = [eq("company_id", company_id)]
            if currency is not None:
                filters.append(eq("currency_code", currency))
            if await self._storage.count(tables.header, filters) > 0:
                return True
        return False

    async def enable_currency(self, ctx: OperationContext, currency: CurrencyCode) -> list[CurrencyCode]:
        """Enable a document currency (idempotent)."""
        company = await self.get_company(ctx.company_id)
        if currency != company.base_currency:
            filters = [eq("company_id", company.id), eq("currency_code", currency)]
            existing = await self._storage.get_one(COMPANY_CURRENCIES_TABLE, filters)
            if existing is None:
                await self._storage.insert(COMPANY_CURRENCIES_TABLE, [
                    CompanyCurrency(company_id=company.id, currency_code=currency).model_dump(mode="json")
                ])
            elif not CompanyCurrency.model_validate(existing).is_enabled:
                await self._storage.update(COMPANY_CURRENCIES_TABLE, filters, {"is_enabled": True})

            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.currency_changed(
                    currency=currency.value,
                    enabled=True,
                    company_id=company.id,
                    user_id=ctx.user_id,
                ))

        return await self.enabled_currencies(company.id)

    async def disable_currency(self, ctx: OperationContext, currency: CurrencyCode) -> list[CurrencyCode]:
        """
        Remove a document currency.

        Raises:
            ValidationError: For the base currency
            StateConflictError: If any document uses the currency
        """
        company = await self.get_company(ctx.company_id)
        if currency == company.base_currency:
            raise ValidationError("Cannot remove base currency")
        if await self.has_documents(company.id, currency):
            raise StateConflictError(
                f"Currency {currency.value} is used by existing documents and can't be removed"
            )

        await self._storage.delete(
            COMPANY_CURRENCIES_TABLE,
            [eq("company_id", company.id), eq("currency_code", currency)],
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.currency_changed(
                currency=currency.value,
                enabled=False,
                company_id=company.id,
                user_id=ctx.user_id,
            ))
        return await self.enabled_currencies(company.id)

    async def set_base_currency(self, ctx: OperationContext, currency: CurrencyCode) -> Company:
        """
        Change the home-ledger currency.

        Raises:
            StateConflictError: Once any document exists
        """
        company = await self.get_company(ctx.company_id)
        if currency == company.base_currency:
            return company
        if await self.has_documents(company.id):
            raise StateConflictError(
                "Base currency can't be changed once documents exist"
            )

        await self._storage.update(
            COMPANIES_TABLE,
            [eq("id", company.id)],
            {"base_currency": currency.value},
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.base_currency_changed(
                old_currency=company.base_currency.value,
                new_currency=currency.value,
                company_id=company.id,
                user_id=ctx.user_id,
            ))
        return company.model_copy(update={"base_currency": currency})
