"""
Core Document Models

These models define the strict schemas for every monetary document
the engine produces: quotations, sales invoices and supplier purchases.

They are designed to:
1. Make invalid statuses unrepresentable (closed enums per type)
2. Keep money in Decimal end to end
3. Be serializable to flat storage rows
4. Carry BOTH currency views of every amount

NAMING: the `_fx` suffix always marks the DOCUMENT-currency value.
Unsuffixed amounts are in the company's base currency.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from docengine.models.company import CurrencyCode, new_id, utcnow


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class DocumentType(str, Enum):
    """The three kinds of documents the engine manages."""
    QUOTATION = "quotation"
    INVOICE = "invoice"
    PURCHASE = "purchase"


class QuotationStatus(str, Enum):
    """
    Quotation lifecycle.

    CONVERTED is terminal and only reachable by converting to an invoice.
    """
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CONVERTED = "converted"


class InvoiceStatus(str, Enum):
    """
    Sales invoice lifecycle.

    CRITICAL: PAID is written by the payment subsystem only.
    """
    DRAFT = "draft"
    SENT = "sent"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


class PurchaseStatus(str, Enum):
    """Supplier invoice lifecycle. Purchases start out unpaid."""
    UNPAID = "unpaid"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


DocumentStatus = Union[QuotationStatus, InvoiceStatus, PurchaseStatus]

STATUS_ENUMS: dict[DocumentType, type[Enum]] = {
    DocumentType.QUOTATION: QuotationStatus,
    DocumentType.INVOICE: InvoiceStatus,
    DocumentType.PURCHASE: PurchaseStatus,
}


def parse_status(document_type: DocumentType, value) -> DocumentStatus:
    """Coerce a raw status into the enum of its document type."""
    enum_cls = STATUS_ENUMS[DocumentType(document_type)]
    if isinstance(value, enum_cls):
        return value
    raw = value.value if isinstance(value, Enum) else value
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValueError(
            f"Invalid {DocumentType(document_type).value} status: {raw!r}. Allowed: {allowed}"
        )


class DocumentTables(NamedTuple):
    """Storage layout of one document type."""
    header: str
    items: str
    party: str
    prefix: str


DOCUMENT_TABLES: dict[DocumentType, DocumentTables] = {
    DocumentType.QUOTATION: DocumentTables("quotations", "quotation_items", "clients", "QTN"),
    DocumentType.INVOICE: DocumentTables("invoices", "invoice_items", "clients", "INV"),
    DocumentType.PURCHASE: DocumentTables("supplier_invoices", "supplier_invoice_items", "suppliers", "PUR"),
}


# =============================================================================
# CALLER INPUT
# =============================================================================

class LineItemInput(BaseModel):
    """
    A line item as entered on a form.

    Only the raw inputs are accepted. Subtotal, VAT and totals are
    ALWAYS derived by the calculator, never taken from the caller.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(
        default="",
        max_length=500,
    )
    quantity: Decimal = Field(
        default=Decimal("1"),
        ge=0,
    )
    unit_price: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Price per unit in the document currency"
    )
    vat_rate: Decimal = Field(
        default=Decimal("15"),
        ge=0,
        le=100,
        description="VAT percentage, fractional allowed"
    )
    account_id: Optional[str] = None
    product_id: Optional[str] = None

    @field_validator('quantity', 'unit_price', 'vat_rate', mode='before')
    @classmethod
    def reject_float_noise(cls, v):
        """Floats go through str so 0.1 stays 0.1."""
        if isinstance(v, float):
            return str(v)
        return v


class DocumentDraft(BaseModel):
    """A new document as assembled by the caller, before numbering."""
    model_config = ConfigDict(str_strip_whitespace=True)

    document_type: DocumentType
    party_id: Optional[str] = Field(
        default=None,
        description="Client (quotation/invoice) or supplier (purchase)"
    )
    number: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Leave empty to allocate the next number"
    )
    reference: Optional[str] = Field(default=None, max_length=100)
    issue_date: date
    due_date: Optional[date] = Field(
        default=None,
        description="Due date, or expiry date for quotations"
    )
    currency_code: Optional[CurrencyCode] = Field(
        default=None,
        description="Defaults to the company base currency"
    )
    fx_rate: Optional[Decimal] = Field(
        default=None,
        gt=0,
        description="Manual rate; looked up from stored rates when empty"
    )
    fx_rate_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    terms: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode='after')
    def validate_dates(self) -> 'DocumentDraft':
        """Validate date relationships."""
        if self.due_date and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before issue date")
        return self


class DocumentPatch(BaseModel):
    """
    Partial header update.

    Status is deliberately absent: status changes go through the
    lifecycle state machine.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    party_id: Optional[str] = None
    number: Optional[str] = Field(default=None, max_length=50)
    reference: Optional[str] = Field(default=None, max_length=100)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency_code: Optional[CurrencyCode] = None
    fx_rate: Optional[Decimal] = Field(default=None, gt=0)
    fx_rate_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    terms: Optional[str] = Field(default=None, max_length=2000)


# =============================================================================
# DERIVED VALUES
# =============================================================================

class DocumentTotals(BaseModel):
    """Subtotal / VAT / total in a single currency."""

    subtotal: Decimal = Decimal("0.00")
    vat: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


# =============================================================================
# PERSISTED RECORDS
# =============================================================================

class LineItem(BaseModel):
    """
    A persisted line item.

    Both currency views are stored so a reader can recompute every
    base amount from the line itself.
    """

    id: str = Field(default_factory=new_id)
    document_id: str
    sort_order: int = Field(ge=0)
    description: str = ""
    quantity: Decimal
    vat_rate: Decimal
    account_id: Optional[str] = None
    product_id: Optional[str] = None

    # Document currency
    unit_price_fx: Decimal
    line_subtotal_fx: Decimal
    vat_amount_fx: Decimal
    line_total_fx: Decimal

    # Base currency
    unit_price: Decimal
    line_subtotal: Decimal
    vat_amount: Decimal
    line_total: Decimal

    def to_row(self) -> dict:
        """Flat storage row."""
        return self.model_dump(mode="json")


class Document(BaseModel):
    """
    A persisted quotation, invoice or purchase header.

    INVARIANT: when currency_code is the company base currency,
    fx_rate is 1 and both total sets are identical.
    """

    id: str = Field(default_factory=new_id)
    company_id: str
    document_type: DocumentType
    number: str = Field(..., min_length=1, max_length=50)
    party_id: Optional[str] = None
    reference: Optional[str] = None
    issue_date: date
    due_date: Optional[date] = None
    status: DocumentStatus
    currency_code: CurrencyCode
    fx_rate: Decimal = Field(default=Decimal("1"), gt=0)
    fx_rate_date: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    # Base currency
    subtotal: Decimal = Decimal("0.00")
    vat_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")

    # Document currency
    subtotal_fx: Decimal = Decimal("0.00")
    vat_amount_fx: Decimal = Decimal("0.00")
    total_fx: Decimal = Decimal("0.00")

    # Quotation -> invoice link (set on both sides)
    converted_invoice_id: Optional[str] = None
    source_quotation_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Loaded separately from the items table
    items: list[LineItem] = Field(default_factory=list)

    @field_validator('status', mode='before')
    @classmethod
    def coerce_status(cls, v, info: ValidationInfo):
        """Statuses are validated against the document's own type."""
        document_type = info.data.get("document_type")
        if document_type is None:
            raise ValueError("document_type is required to validate status")
        return parse_status(document_type, v)

    @property
    def totals_fx(self) -> DocumentTotals:
        return DocumentTotals(
            subtotal=self.subtotal_fx,
            vat=self.vat_amount_fx,
            total=self.total_fx,
        )

    @property
    def totals_base(self) -> DocumentTotals:
        return DocumentTotals(
            subtotal=self.subtotal,
            vat=self.vat_amount,
            total=self.total,
        )

    def to_row(self) -> dict:
        """Flat storage row (items live in their own table)."""
        return self.model_dump(mode="json", exclude={"items"})

    @classmethod
    def from_row(cls, row: dict, items: Optional[list[dict]] = None) -> 'Document':
        """Rebuild a document from storage rows."""
        data = dict(row)
        if items is not None:
            data["items"] = sorted(
                (LineItem.model_validate(item) for item in items),
                key=lambda item: item.sort_order,
            )
        return cls.model_validate(data)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue, e.g. 'party_id' or 'items[2].description'"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_enabled')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields, line content)
    Stage 2: Semantic validation (party, currency, number uniqueness)
    """

    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
