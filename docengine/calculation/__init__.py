"""Line-item pricing and document totals."""

from docengine.calculation.calculator import (
    PricedDocument,
    PricedLine,
    calculate_totals,
    coerce_items,
    included_items,
    is_blank,
    line_subtotal,
    line_total,
    price_document,
    price_line,
    reprice_lines,
    totals_of,
)

__all__ = [
    "PricedDocument",
    "PricedLine",
    "calculate_totals",
    "coerce_items",
    "included_items",
    "is_blank",
    "line_subtotal",
    "line_total",
    "price_document",
    "price_line",
    "reprice_lines",
    "totals_of",
]
