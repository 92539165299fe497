"""
Document Aggregate

This module ties together all the components and defines the
end-to-end flows for:
1. Create (validate -> quota -> price -> convert -> number -> persist)
2. Update (header patch and/or full item replacement)
3. Delete, status changes and the overdue sweep
4. Quotation -> invoice conversion

DESIGN DECISION: The aggregate enforces the boundaries:
- Totals are always derived here, never taken from the caller
- Headers are written before items; items are deleted before they
  are re-inserted
- A half-written document is removed again (compensation) because the
  storage layer offers no transactions
- Usage accounting never fails an operation
- Every mutation is audited and invalidates cached views

LIMITATION: compensation is best-effort. A caller that aborts midway,
or a storage outage during compensation, can leave partial rows.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Iterable, NamedTuple, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from docengine.audit import AuditLogger
from docengine.calculation import (
    PricedLine,
    calculate_totals,
    price_document,
    reprice_lines,
    totals_of,
)
from docengine.config import EngineSettings, get_settings
from docengine.errors import StateConflictError, ValidationError
from docengine.fx import CurrencyRegistry, ExchangeRateService, load_company
from docengine.lifecycle import (
    assert_convertible,
    assert_deletable,
    assert_items_editable,
    assert_transition,
    initial_status,
    overdue_target,
)
from docengine.models.company import utcnow
from docengine.models.context import OperationContext
from docengine.models.document import (
    DOCUMENT_TABLES,
    Document,
    DocumentDraft,
    DocumentPatch,
    DocumentTotals,
    DocumentType,
    InvoiceStatus,
    LineItem,
    LineItemInput,
    QuotationStatus,
    parse_status,
)
from docengine.models.subscription import Feature, LimitCheck, LimitKind
from docengine.numbering import NumberSequencer
from docengine.queries import DocumentQueries, DocumentViewCache
from docengine.quota import QuotaGuard, UsageRecorder
from docengine.services.storage import (
    GoogleSheetsStorage,
    InMemoryStorage,
    StorageError,
    StorageInterface,
    eq,
)
from docengine.validation import DocumentValidator, party_issues, raise_for_issues


logger = structlog.get_logger(__name__)

ItemLike = Union[LineItemInput, dict]

# Header columns that never change after creation
IMMUTABLE_COLUMNS = {"id", "company_id", "document_type", "created_at"}

# Patch fields that change how amounts convert to base currency
FX_FIELDS = {"currency_code", "fx_rate", "fx_rate_date"}


class DocumentAggregate:
    """
    Create, update, delete and convert monetary documents.

    Every operation takes an explicit OperationContext naming the
    company and the acting user. Collaborators are injected; the
    defaults are built on the given storage.
    """

    def __init__(
        self,
        storage: StorageInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        currency_registry: Optional[CurrencyRegistry] = None,
        rate_service: Optional[ExchangeRateService] = None,
        number_sequencer: Optional[NumberSequencer] = None,
        quota_guard: Optional[QuotaGuard] = None,
        usage_recorder: Optional[UsageRecorder] = None,
        validator: Optional[DocumentValidator] = None,
        queries: Optional[DocumentQueries] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger
        self._clock = clock

        self._currencies = currency_registry or CurrencyRegistry(storage, audit_logger)
        self._rates = rate_service or ExchangeRateService(storage, audit_logger)
        self._numbers = number_sequencer or NumberSequencer(storage, self._settings)
        self._quota = quota_guard or QuotaGuard(storage, self._settings, audit_logger, clock)
        self._usage = usage_recorder or UsageRecorder(storage, self._settings, audit_logger, clock)
        self._validator = validator or DocumentValidator(storage, self._currencies, self._numbers)
        self._queries = queries or DocumentQueries(
            storage,
            DocumentViewCache(enabled=self._settings.view_cache_enabled),
        )

    @property
    def views(self) -> DocumentViewCache:
        return self._queries.cache

    # =========================================================================
    # Create
    # =========================================================================

    async def create(
        self,
        ctx: OperationContext,
        draft: Union[DocumentDraft, dict],
        items: Iterable[ItemLike],
    ) -> Document:
        """
        Create a quotation, invoice or purchase.

        Raises:
            ValidationError: Bad input, disabled currency or missing FX rate
            QuotaExceededError: Plan limit or feature not available
            StorageError: Persisting failed (partial rows are removed)
        """
        company = await load_company(self._storage, ctx.company_id)
        draft, line_items = await self._validator.validate_draft(company, draft, list(items))
        document_type = draft.document_type
        currency = draft.currency_code or company.base_currency

        if document_type == DocumentType.INVOICE:
            await self._quota.enforce_limit(LimitKind.INVOICE, ctx)
        if currency != company.base_currency:
            await self._quota.enforce_feature(Feature.MULTI_CURRENCY, ctx)

        fx_rate, fx_rate_date = await self._rates.effective_rate(
            company,
            currency,
            draft.fx_rate_date or draft.issue_date,
            draft.fx_rate,
        )
        priced = price_document(line_items, fx_rate)
        number = draft.number or await self._numbers.next_number(company.id, document_type)

        document = Document(
            company_id=company.id,
            document_type=document_type,
            number=number,
            party_id=draft.party_id,
            reference=draft.reference,
            issue_date=draft.issue_date,
            due_date=draft.due_date,
            status=initial_status(document_type),
            currency_code=currency,
            fx_rate=fx_rate,
            fx_rate_date=fx_rate_date,
            notes=draft.notes,
            terms=draft.terms,
            **self._total_fields(priced.totals_fx, priced.totals_base),
        )
        document.items = [line.to_line_item(document.id) for line in priced.lines]

        await self._persist_new(ctx, document)

        self.views.invalidate(company.id, document_type)
        if self._audit_logger:
            await self._audit_logger.log_document_created(document, ctx)
        if document_type == DocumentType.INVOICE:
            await self._record_usage(ctx, document)
        return document

    async def _persist_new(self, ctx: OperationContext, document: Document) -> None:
        """Header first, then items. Item failure removes the header again."""
        tables = DOCUMENT_TABLES[document.document_type]
        try:
            await self._storage.insert(tables.header, [document.to_row()])
        except StorageError as e:
            await self._log_storage_error("insert_header", e, ctx)
            raise

        try:
            if document.items:
                await self._storage.insert(tables.items, [item.to_row() for item in document.items])
        except Exception as e:
            await self._compensate(ctx, document, e)
            raise

    async def _compensate(self, ctx: OperationContext, document: Document, error: Exception) -> None:
        logger.warning(
            "rolling_back_document",
            document_type=document.document_type.value,
            document_id=document.id,
            error=str(error),
        )
        try:
            await self._delete_rows(document.document_type, document.id)
        except StorageError as e:
            # The original error is what the caller needs to see
            logger.error("rollback_failed", document_id=document.id, error=str(e))
            await self._log_storage_error("rollback", e, ctx)
        if self._audit_logger:
            await self._audit_logger.log_create_rolled_back(document, str(error), ctx)

    async def _delete_rows(self, document_type: DocumentType, document_id: str) -> None:
        """Delete a header, then its items (a no-op where storage cascades)."""
        tables = DOCUMENT_TABLES[document_type]
        await self._storage.delete(tables.header, [eq("id", document_id)])
        await self._storage.delete(tables.items, [eq("document_id", document_id)])

    async def _record_usage(self, ctx: OperationContext, invoice: Document) -> None:
        """Enqueue invoice usage; failures are logged, never raised."""
        try:
            await self._usage.enqueue(ctx.user_id, ctx.company_id, invoice.id)
            if self._settings.usage_flush_inline:
                await self._usage.flush()
        except Exception as e:
            logger.error(
                "usage_recording_error",
                invoice_id=invoice.id,
                company_id=ctx.company_id,
                error=str(e),
            )

    # =========================================================================
    # Update
    # =========================================================================

    async def update(
        self,
        ctx: OperationContext,
        document_type: DocumentType,
        document_id: str,
        patch: Union[DocumentPatch, dict, None],
        items: Optional[Iterable[ItemLike]] = None,
    ) -> Document:
        """
        Patch the header and/or replace every line item.

        Items are never merged: when given, they replace the stored
        set completely. Currency and FX changes re-price the existing
        items, so they are only allowed while items are editable.

        Raises:
            ValidationError: Bad patch or items
            StateConflictError: Items (or currency) locked by status
            DocumentNotFoundError: Unknown document
        """
        document_type = DocumentType(document_type)
        document = await self._queries.load(ctx.company_id, document_type, document_id)
        changes = self._parse_patch(patch, document)

        new_items = None
        if items is not None:
            assert_items_editable(document)
            new_items = self._validator.validate_items(list(items))

        fx_changed = bool(FX_FIELDS & changes.keys())
        if fx_changed:
            assert_items_editable(document)

        company = await load_company(self._storage, ctx.company_id)
        merged = document.model_copy(update=changes)
        raise_for_issues(party_issues(document_type, merged.party_id))

        issues = await self._validator.check_header(
            company,
            document_type,
            changes.get("party_id"),
            merged.currency_code,
            changes.get("number"),
            exclude_id=document.id,
        )
        raise_for_issues(issues)
        if merged.due_date and merged.due_date < merged.issue_date:
            raise ValidationError("Due date cannot be before issue date")

        fx_rate, fx_rate_date = document.fx_rate, document.fx_rate_date
        if fx_changed:
            if merged.currency_code != company.base_currency:
                await self._quota.enforce_feature(Feature.MULTI_CURRENCY, ctx)
            fx_rate, fx_rate_date = await self._rates.effective_rate(
                company,
                merged.currency_code,
                changes.get("fx_rate_date") or merged.issue_date,
                changes.get("fx_rate"),
            )

        lines: Optional[list[PricedLine]] = None
        if new_items is not None:
            lines = price_document(new_items, fx_rate).lines
        elif fx_changed:
            lines = reprice_lines(document.items, fx_rate)

        values = dict(changes)
        values.update(fx_rate=fx_rate, fx_rate_date=fx_rate_date, updated_at=self._clock())
        if lines is not None:
            values.update(self._total_fields(*totals_of(lines)))

        updated = document.model_copy(update=values)
        if lines is not None:
            updated.items = [line.to_line_item(document.id) for line in lines]

        await self._write_update(ctx, updated, replace_items=lines is not None)

        self.views.invalidate(ctx.company_id, document_type)
        if self._audit_logger:
            await self._audit_logger.log_document_updated(
                updated,
                sorted(changes),
                lines is not None,
                ctx,
            )
        return updated

    def _parse_patch(self, patch, document: Document) -> dict:
        """Fields the caller actually changed (None never clears a required field)."""
        if patch is None:
            return {}
        if not isinstance(patch, DocumentPatch):
            try:
                patch = DocumentPatch.model_validate(patch)
            except PydanticValidationError as e:
                messages = [
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ]
                raise ValidationError("; ".join(messages), issues=messages)

        changes = {}
        for field, value in patch.model_dump(exclude_unset=True).items():
            if value is None and field in ("number", "issue_date", "currency_code", "fx_rate"):
                continue
            if getattr(document, field) != value:
                changes[field] = value
        return changes

    async def _write_update(self, ctx: OperationContext, document: Document, replace_items: bool) -> None:
        """Header first; then old items are deleted before new ones are inserted."""
        tables = DOCUMENT_TABLES[document.document_type]
        values = {
            key: value
            for key, value in document.to_row().items()
            if key not in IMMUTABLE_COLUMNS
        }
        try:
            await self._storage.update(
                tables.header,
                [eq("id", document.id), eq("company_id", document.company_id)],
                values,
            )
            if replace_items:
                await self._storage.delete(tables.items, [eq("document_id", document.id)])
                if document.items:
                    await self._storage.insert(
                        tables.items,
                        [item.to_row() for item in document.items],
                    )
        except StorageError as e:
            await self._log_storage_error("update", e, ctx)
            raise

    # =========================================================================
    # Delete / status
    # =========================================================================

    async def delete(
        self,
        ctx: OperationContext,
        document_type: DocumentType,
        document_id: str,
    ) -> None:
        """
        Hard-delete a document and its items.

        Raises:
            StateConflictError: Converted quotations and paid documents
            DocumentNotFoundError: Unknown document
        """
        document_type = DocumentType(document_type)
        document = await self._queries.load(ctx.company_id, document_type, document_id, with_items=False)
        assert_deletable(document)

        try:
            await self._delete_rows(document_type, document.id)
        except StorageError as e:
            await self._log_storage_error("delete", e, ctx)
            raise

        self.views.invalidate(ctx.company_id, document_type)
        if self._audit_logger:
            await self._audit_logger.log_document_deleted(document, ctx)

    async def update_status(
        self,
        ctx: OperationContext,
        document_type: DocumentType,
        document_id: str,
        status,
    ) -> Document:
        """
        Move a document along its lifecycle.

        Setting the current status again is a no-op.

        Raises:
            StateConflictError: Transition not allowed, or "paid"/"converted"
        """
        document_type = DocumentType(document_type)
        document = await self._queries.load(ctx.company_id, document_type, document_id)
        if not assert_transition(document_type, document.status, status):
            return document
        return await self._set_status(ctx, document, parse_status(document_type, status))

    async def _set_status(self, ctx: OperationContext, document: Document, status) -> Document:
        old_status = document.status.value
        updated = document.model_copy(update={"status": status, "updated_at": self._clock()})
        try:
            await self._storage.update(
                DOCUMENT_TABLES[document.document_type].header,
                [eq("id", document.id), eq("company_id", document.company_id)],
                {"status": status.value, "updated_at": updated.updated_at.isoformat()},
            )
        except StorageError as e:
            await self._log_storage_error("update_status", e, ctx)
            raise

        self.views.invalidate(ctx.company_id, document.document_type)
        if self._audit_logger:
            await self._audit_logger.log_status_changed(updated, old_status, ctx)
        return updated

    async def refresh_overdue(
        self,
        ctx: OperationContext,
        as_of: Optional[date] = None,
    ) -> list[Document]:
        """
        Time-based sweep.

        Sent invoices and unpaid purchases past their due date become
        overdue; sent quotations past their expiry date become expired.

        Returns:
            The documents whose status changed
        """
        as_of = as_of or self._clock().date()
        changed = []
        for document_type, tables in DOCUMENT_TABLES.items():
            rows = await self._storage.query(tables.header, [eq("company_id", ctx.company_id)])
            for row in rows:
                document = Document.from_row(row)
                target = overdue_target(document, as_of)
                if target is not None:
                    changed.append(await self._set_status(ctx, document, target))
        return changed

    # =========================================================================
    # Conversion
    # =========================================================================

    async def convert_to_invoice(self, ctx: OperationContext, quotation_id: str) -> Document:
        """
        Turn an accepted quotation into a draft invoice.

        Amounts are copied verbatim, never recomputed. The invoice is
        due default_due_days after today.

        Raises:
            StateConflictError: Not accepted, or already converted
            QuotaExceededError: Invoice limit or multi-currency not on plan
            StorageError: Persisting failed (the invoice is removed again
                and the quotation is left unchanged)
        """
        quotation = await self._queries.load(ctx.company_id, DocumentType.QUOTATION, quotation_id)
        assert_convertible(quotation)

        company = await load_company(self._storage, ctx.company_id)
        await self._quota.enforce_limit(LimitKind.INVOICE, ctx)
        if quotation.currency_code != company.base_currency:
            await self._quota.enforce_feature(Feature.MULTI_CURRENCY, ctx)

        number = await self._numbers.next_number(company.id, DocumentType.INVOICE)
        today = self._clock().date()

        invoice = Document(
            company_id=company.id,
            document_type=DocumentType.INVOICE,
            number=number,
            party_id=quotation.party_id,
            reference=quotation.reference,
            issue_date=today,
            due_date=today + timedelta(days=self._settings.default_due_days),
            status=InvoiceStatus.DRAFT,
            currency_code=quotation.currency_code,
            fx_rate=quotation.fx_rate,
            fx_rate_date=quotation.fx_rate_date,
            notes=quotation.notes,
            terms=quotation.terms,
            source_quotation_id=quotation.id,
            **self._total_fields(quotation.totals_fx, quotation.totals_base),
        )
        invoice.items = [
            LineItem(
                document_id=invoice.id,
                **item.model_dump(exclude={"id", "document_id"}),
            )
            for item in quotation.items
        ]

        tables = DOCUMENT_TABLES[DocumentType.INVOICE]
        try:
            await self._storage.insert(tables.header, [invoice.to_row()])
        except StorageError as e:
            await self._log_storage_error("convert_insert_header", e, ctx)
            raise

        try:
            if invoice.items:
                await self._storage.insert(tables.items, [item.to_row() for item in invoice.items])
            marked = await self._storage.update(
                DOCUMENT_TABLES[DocumentType.QUOTATION].header,
                [
                    eq("id", quotation.id),
                    eq("company_id", company.id),
                    eq("status", QuotationStatus.ACCEPTED),
                ],
                {
                    "status": QuotationStatus.CONVERTED.value,
                    "converted_invoice_id": invoice.id,
                    "updated_at": self._clock().isoformat(),
                },
            )
            if not marked:
                raise StateConflictError("Quotation has already been converted to an invoice")
        except Exception as e:
            await self._compensate(ctx, invoice, e)
            raise

        self.views.invalidate(company.id, DocumentType.QUOTATION, DocumentType.INVOICE)
        if self._audit_logger:
            await self._audit_logger.log_quotation_converted(quotation.id, invoice, ctx)
        await self._record_usage(ctx, invoice)
        return invoice

    # =========================================================================
    # Passthroughs
    # =========================================================================

    async def next_number(self, ctx: OperationContext, document_type: DocumentType) -> str:
        """Preview the number the next document would get."""
        return await self._numbers.next_number(ctx.company_id, DocumentType(document_type))

    def calculate_totals(self, items: Iterable[ItemLike]) -> DocumentTotals:
        return calculate_totals(items)

    async def check_limit(self, ctx: OperationContext, kind: LimitKind) -> LimitCheck:
        return await self._quota.check_limit(kind, ctx.user_id, ctx.company_id)

    async def get(
        self,
        ctx: OperationContext,
        document_type: DocumentType,
        document_id: str,
    ) -> Document:
        """One document with its items."""
        return await self._queries.load(ctx.company_id, document_type, document_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _total_fields(totals_fx: DocumentTotals, totals_base: DocumentTotals) -> dict:
        return {
            "subtotal_fx": totals_fx.subtotal,
            "vat_amount_fx": totals_fx.vat,
            "total_fx": totals_fx.total,
            "subtotal": totals_base.subtotal,
            "vat_amount": totals_base.vat,
            "total": totals_base.total,
        }

    async def _log_storage_error(self, operation: str, error: Exception, ctx: OperationContext) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(operation, str(error), ctx)

    async def list(
        self,
        ctx: OperationContext,
        document_type: DocumentType,
        status=None,
    ) -> list[Document]:
        """Cached list of a company's documents, optionally by status."""
        return await self._queries.list(ctx.company_id, document_type, status)


class EngineComponents(NamedTuple):
    """Everything create_engine_components() wires together."""
    aggregate: DocumentAggregate
    currencies: CurrencyRegistry
    rates: ExchangeRateService
    quota: QuotaGuard
    usage: UsageRecorder
    storage: StorageInterface


def create_engine_components(
    storage: Optional[StorageInterface] = None,
    use_sheets: bool = True,
    settings: Optional[EngineSettings] = None,
) -> EngineComponents:
    """
    Factory function to create all engine components.

    Args:
        storage: Storage backend to use. When None, Google Sheets is
                 tried first (if use_sheets) and in-memory storage is the
                 fallback.
        use_sheets: Whether to try Google Sheets storage.
        settings: Engine settings; loaded from the environment if None.
    """
    settings = settings or get_settings().engine

    if storage is None:
        if use_sheets:
            try:
                storage = GoogleSheetsStorage()
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", error=str(e))
                storage = InMemoryStorage()
        else:
            storage = InMemoryStorage()

    audit_logger = AuditLogger(storage)
    currencies = CurrencyRegistry(storage, audit_logger)
    rates = ExchangeRateService(storage, audit_logger)
    quota = QuotaGuard(storage, settings, audit_logger)
    usage = UsageRecorder(storage, settings, audit_logger)

    aggregate = DocumentAggregate(
        storage,
        settings=settings,
        audit_logger=audit_logger,
        currency_registry=currencies,
        rate_service=rates,
        quota_guard=quota,
        usage_recorder=usage,
    )
    return EngineComponents(aggregate, currencies, rates, quota, usage, storage)
