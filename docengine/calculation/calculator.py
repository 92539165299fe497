"""
Line-Item Calculator

Pure functions, no storage access.

ROUNDING RULES (applied per line, never on the aggregate):
- line_subtotal = round(quantity x unit_price)
- line_total    = round(quantity x unit_price x (1 + vat_rate / 100))
- line_vat      = line_total - line_subtotal

Deriving VAT as a difference means subtotal + vat == total holds
exactly on every line, and therefore on every document total, which
are plain sums of line values.

Base-currency values are converted per line from the line's own
document-currency values. Scaling the aggregate instead would let
the stored lines drift from the stored header by a cent.
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from docengine.errors import ValidationError
from docengine.fx.money import ZERO, convert, quantize_money, to_decimal
from docengine.models.document import DocumentTotals, LineItem, LineItemInput


ItemLike = Union[LineItemInput, dict]

HUNDRED = Decimal("100")


class PricedLine(BaseModel):
    """A line with every derived amount in both currencies."""

    sort_order: int = Field(ge=0)
    description: str
    quantity: Decimal
    vat_rate: Decimal
    account_id: Optional[str] = None
    product_id: Optional[str] = None

    unit_price_fx: Decimal
    line_subtotal_fx: Decimal
    vat_amount_fx: Decimal
    line_total_fx: Decimal

    unit_price: Decimal
    line_subtotal: Decimal
    vat_amount: Decimal
    line_total: Decimal

    def to_line_item(self, document_id: str) -> LineItem:
        return LineItem(document_id=document_id, **self.model_dump())


class PricedDocument(BaseModel):
    """Priced lines plus document totals in both currencies."""

    lines: list[PricedLine] = Field(default_factory=list)
    totals_fx: DocumentTotals = Field(default_factory=DocumentTotals)
    totals_base: DocumentTotals = Field(default_factory=DocumentTotals)


def coerce_items(items: Iterable[ItemLike]) -> list[LineItemInput]:
    """
    Accept form dicts or LineItemInput instances.

    Raises:
        ValidationError: If any item fails schema validation
    """
    coerced = []
    for index, item in enumerate(items):
        if isinstance(item, LineItemInput):
            coerced.append(item)
            continue
        try:
            coerced.append(LineItemInput.model_validate(item))
        except PydanticValidationError as e:
            issues = [
                f"Line {index + 1}: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ValidationError("; ".join(issues), issues=issues)
    return coerced


def line_subtotal(item: LineItemInput) -> Decimal:
    return quantize_money(item.quantity * item.unit_price)


def line_total(item: LineItemInput) -> Decimal:
    gross = item.quantity * item.unit_price * (1 + item.vat_rate / HUNDRED)
    return quantize_money(gross)


def is_blank(item: ItemLike) -> bool:
    """
    An untouched form row: no description and nothing to charge.

    Blank rows are silently dropped. A row with an amount but no
    description is NOT blank; the validator rejects it.
    """
    if isinstance(item, dict):
        item = coerce_items([item])[0]
    return not item.description.strip() and line_subtotal(item) == ZERO


def included_items(items: Iterable[ItemLike]) -> list[LineItemInput]:
    return [item for item in coerce_items(items) if not is_blank(item)]


def calculate_totals(items: Iterable[ItemLike]) -> DocumentTotals:
    """
    Document-currency totals over the non-blank lines.

    >>> calculate_totals([
    ...     {"description": "A", "quantity": 2, "unit_price": 100, "vat_rate": 15},
    ...     {"description": "B", "quantity": 1, "unit_price": 50, "vat_rate": 15},
    ... ])
    DocumentTotals(subtotal=Decimal('250.00'), vat=Decimal('37.50'), total=Decimal('287.50'))
    """
    subtotal = ZERO
    total = ZERO
    for item in included_items(items):
        subtotal += line_subtotal(item)
        total += line_total(item)
    return DocumentTotals(subtotal=subtotal, vat=total - subtotal, total=total)


def price_line(item: ItemLike, fx_rate, sort_order: int) -> PricedLine:
    """Derive both currency views of a single line."""
    if isinstance(item, dict):
        item = coerce_items([item])[0]
    rate = to_decimal(fx_rate, "fx_rate")

    subtotal_fx = line_subtotal(item)
    total_fx = line_total(item)
    subtotal_base = convert(subtotal_fx, rate)
    total_base = convert(total_fx, rate)

    return PricedLine(
        sort_order=sort_order,
        description=item.description,
        quantity=item.quantity,
        vat_rate=item.vat_rate,
        account_id=item.account_id,
        product_id=item.product_id,
        unit_price_fx=item.unit_price,
        line_subtotal_fx=subtotal_fx,
        vat_amount_fx=total_fx - subtotal_fx,
        line_total_fx=total_fx,
        unit_price=convert(item.unit_price, rate),
        line_subtotal=subtotal_base,
        vat_amount=total_base - subtotal_base,
        line_total=total_base,
    )


def price_document(items: Iterable[ItemLike], fx_rate) -> PricedDocument:
    """
    Price every non-blank line and sum the document totals.

    sort_order follows the position among the included lines, so
    dropped blank rows leave no gaps.
    """
    lines = [
        price_line(item, fx_rate, sort_order)
        for sort_order, item in enumerate(included_items(items))
    ]
    return PricedDocument(
        lines=lines,
        totals_fx=_sum_lines(lines, "_fx"),
        totals_base=_sum_lines(lines, ""),
    )


def reprice_lines(lines: Iterable[LineItem], fx_rate) -> list[PricedLine]:
    """Recompute base values of stored lines after an FX rate change."""
    return [
        price_line(
            LineItemInput(
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price_fx,
                vat_rate=line.vat_rate,
                account_id=line.account_id,
                product_id=line.product_id,
            ),
            fx_rate,
            line.sort_order,
        )
        for line in lines
    ]


def totals_of(lines: Iterable[PricedLine]) -> tuple[DocumentTotals, DocumentTotals]:
    """(document-currency totals, base-currency totals) of priced lines."""
    lines = list(lines)
    return _sum_lines(lines, "_fx"), _sum_lines(lines, "")


def _sum_lines(lines: list[PricedLine], suffix: str) -> DocumentTotals:
    subtotal = sum((getattr(line, f"line_subtotal{suffix}") for line in lines), ZERO)
    total = sum((getattr(line, f"line_total{suffix}") for line in lines), ZERO)
    return DocumentTotals(subtotal=subtotal, vat=total - subtotal, total=total)
