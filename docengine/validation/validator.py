"""
Two-Stage Document Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking of header and line items (pydantic)
- Required field presence (client for sales documents)
- At least one non-blank line
- Every line with an amount has a description

STAGE 2 - SEMANTIC VALIDATION:
- The client or supplier exists for this company
- The document currency is enabled for the company
- A hand-entered number is not already used

WHY TWO STAGES:
1. Stage 1 needs no storage and gives instant form feedback
2. Stage 2 only runs on structurally valid input
3. The caller learns exactly which field to fix

IMPORTANT: Validation NEVER silently fixes issues. Blank rows are
the one exception: an untouched form row is dropped, not reported.
"""

from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from docengine.calculation import is_blank, line_subtotal
from docengine.errors import ValidationError
from docengine.fx.currencies import CurrencyRegistry
from docengine.fx.money import ZERO
from docengine.models.company import Company, CurrencyCode
from docengine.models.document import (
    DOCUMENT_TABLES,
    DocumentDraft,
    DocumentType,
    LineItemInput,
    ValidationIssue,
    ValidationResult,
)
from docengine.numbering import NumberSequencer
from docengine.services.storage import StorageInterface, eq


DraftLike = Union[DocumentDraft, dict]
ItemLike = Union[LineItemInput, dict]

# Purchases may be captured without a supplier on file
PARTY_REQUIRED = {DocumentType.QUOTATION, DocumentType.INVOICE}


def _pydantic_issues(error: PydanticValidationError, prefix: str = "") -> list[ValidationIssue]:
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "document"
        issues.append(ValidationIssue(
            field=f"{prefix}{location}",
            issue_type="invalid_value",
            message=f"{prefix}{location}: {err['msg']}" if prefix else err["msg"],
            severity="error",
        ))
    return issues


def party_issues(document_type: DocumentType, party_id: Optional[str]) -> list[ValidationIssue]:
    """Quotations and invoices always need a client, on create and on update."""
    if document_type in PARTY_REQUIRED and not party_id:
        return [ValidationIssue(
            field="party_id",
            issue_type="missing",
            message="Please select a client",
            severity="error",
        )]
    return []


def raise_for_issues(issues: list[ValidationIssue]) -> None:
    """Turn error-severity issues into a ValidationError."""
    errors = [issue for issue in issues if issue.severity == "error"]
    if errors:
        raise ValidationError(
            "; ".join(issue.message for issue in errors),
            issues=errors,
        )


class DocumentValidator:
    """
    Validates new documents and header changes.

    Stage 1: Schema validation (no storage)
    Stage 2: Semantic validation (reads parties, currencies and numbers)
    """

    def __init__(
        self,
        storage: StorageInterface,
        currency_registry: CurrencyRegistry,
        number_sequencer: NumberSequencer,
    ):
        self._storage = storage
        self._currencies = currency_registry
        self._numbers = number_sequencer

    # =========================================================================
    # Stage 1
    # =========================================================================

    def _validate_schema(
        self,
        draft: DraftLike,
        items: Iterable[ItemLike],
    ) -> tuple[Optional[DocumentDraft], list[LineItemInput], list[ValidationIssue]]:
        """
        Returns: (parsed_draft_or_None, included_items, list_of_issues)
        """
        issues = []

        parsed = None
        if isinstance(draft, DocumentDraft):
            parsed = draft
        else:
            try:
                parsed = DocumentDraft.model_validate(draft)
            except PydanticValidationError as e:
                issues.extend(_pydantic_issues(e))

        if parsed is not None:
            issues.extend(party_issues(parsed.document_type, parsed.party_id))

        line_items, item_issues = self.parse_items(items)
        issues.extend(item_issues)

        if not line_items and not item_issues:
            issues.append(ValidationIssue(
                field="items",
                issue_type="missing",
                message="Add at least one line item",
                severity="error",
            ))

        return parsed, line_items, issues

    def parse_items(
        self,
        items: Iterable[ItemLike],
    ) -> tuple[list[LineItemInput], list[ValidationIssue]]:
        """
        Parse form rows, dropping blank ones.

        Returns: (included_items, list_of_issues)
        """
        issues = []
        included = []

        for index, raw in enumerate(items):
            prefix = f"items[{index}]."
            if isinstance(raw, LineItemInput):
                item = raw
            else:
                try:
                    item = LineItemInput.model_validate(raw)
                except PydanticValidationError as e:
                    issues.extend(_pydantic_issues(e, prefix))
                    continue

            if is_blank(item):
                continue

            if not item.description:
                issues.append(ValidationIssue(
                    field=f"{prefix}description",
                    issue_type="missing",
                    message=f"Line {index + 1} has an amount but no description",
                    severity="error",
                ))
                continue

            if line_subtotal(item) == ZERO:
                issues.append(ValidationIssue(
                    field=f"{prefix}unit_price",
                    issue_type="zero_amount",
                    message=f"Line {index + 1} ({item.description}) has no amount",
                    severity="warning",
                ))

            included.append(item)

        return included, issues

    # =========================================================================
    # Stage 2
    # =========================================================================

    async def check_header(
        self,
        company: Company,
        document_type: DocumentType,
        party_id: Optional[str],
        currency: CurrencyCode,
        number: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> list[ValidationIssue]:
        """Semantic header checks shared by create and update."""
        issues = []
        tables = DOCUMENT_TABLES[document_type]

        if party_id:
            party = await self._storage.get_one(tables.party, [
                eq("id", party_id),
                eq("company_id", company.id),
            ])
            if party is None:
                noun = "supplier" if document_type == DocumentType.PURCHASE else "client"
                issues.append(ValidationIssue(
                    field="party_id",
                    issue_type="not_found",
                    message=f"Selected {noun} does not exist",
                    severity="error",
                ))

        try:
            await self._currencies.assert_enabled(company, currency)
        except ValidationError as e:
            issues.append(ValidationIssue(
                field="currency_code",
                issue_type="not_enabled",
                message=str(e),
                severity="error",
                suggested_fix="Enable the currency in company settings",
            ))

        if number and await self._numbers.is_taken(company.id, document_type, number, exclude_id):
            issues.append(ValidationIssue(
                field="number",
                issue_type="duplicate",
                message=f"{tables.prefix} number {number} is already used",
                severity="error",
                suggested_fix="Leave the number empty to use the next free number",
            ))

        return issues

    # =========================================================================
    # Entry points
    # =========================================================================

    async def validate(
        self,
        company: Company,
        draft: DraftLike,
        items: Iterable[ItemLike],
    ) -> ValidationResult:
        """Run the full pipeline and report every issue found."""
        result, _, _ = await self._run(company, draft, items)
        return result

    async def validate_draft(
        self,
        company: Company,
        draft: DraftLike,
        items: Iterable[ItemLike],
    ) -> tuple[DocumentDraft, list[LineItemInput]]:
        """
        Validate a new document.

        Returns:
            (parsed draft, non-blank line items)

        Raises:
            ValidationError: With every error-severity issue attached
        """
        result, parsed, line_items = await self._run(company, draft, items)
        raise_for_issues(result.issues)
        return parsed, line_items

    def validate_items(self, items: Iterable[ItemLike]) -> list[LineItemInput]:
        """
        Validate a replacement item set.

        Raises:
            ValidationError: If a line is malformed or nothing remains
        """
        line_items, issues = self.parse_items(items)
        if not line_items and not issues:
            issues.append(ValidationIssue(
                field="items",
                issue_type="missing",
                message="Add at least one line item",
                severity="error",
            ))
        raise_for_issues(issues)
        return line_items

    async def _run(
        self,
        company: Company,
        draft: DraftLike,
        items: Iterable[ItemLike],
    ) -> tuple[ValidationResult, Any, list[LineItemInput]]:
        parsed, line_items, issues = self._validate_schema(draft, items)
        schema_valid = not any(issue.severity == "error" for issue in issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_issues = await self.check_header(
                company,
                parsed.document_type,
                parsed.party_id,
                parsed.currency_code or company.base_currency,
                parsed.number,
            )
            issues.extend(semantic_issues)
            semantic_valid = not any(issue.severity == "error" for issue in semantic_issues)

        result = ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=issues,
        )
        return result, parsed, line_items
