"""
Document Lifecycle State Machine

One explicit transition table per document type. Anything not in the
table is rejected with a StateConflictError that tells the user what
to do instead.

CRITICAL RULES:
1. "paid" is never set through a status update. Payments are recorded
   by the payment subsystem, which is the only writer of that status.
2. "converted" is reachable only by converting an accepted quotation.
3. Line items are editable only while a quotation or invoice is a
   draft. Purchases are locked from the moment they are captured.
"""

from datetime import date
from typing import Optional

from docengine.errors import StateConflictError, ValidationError
from docengine.models.document import (
    Document,
    DocumentStatus,
    DocumentType,
    InvoiceStatus,
    PurchaseStatus,
    QuotationStatus,
    parse_status,
)


TRANSITIONS: dict[DocumentType, dict[DocumentStatus, frozenset]] = {
    DocumentType.QUOTATION: {
        QuotationStatus.DRAFT: frozenset({QuotationStatus.SENT, QuotationStatus.DECLINED}),
        QuotationStatus.SENT: frozenset({
            QuotationStatus.ACCEPTED,
            QuotationStatus.DECLINED,
            QuotationStatus.EXPIRED,
        }),
        QuotationStatus.EXPIRED: frozenset({QuotationStatus.SENT}),
        QuotationStatus.ACCEPTED: frozenset({QuotationStatus.DECLINED}),
        QuotationStatus.DECLINED: frozenset(),
        QuotationStatus.CONVERTED: frozenset(),
    },
    DocumentType.INVOICE: {
        InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
        InvoiceStatus.SENT: frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
        InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
        InvoiceStatus.PAID: frozenset(),
        InvoiceStatus.CANCELLED: frozenset(),
    },
    DocumentType.PURCHASE: {
        PurchaseStatus.UNPAID: frozenset({PurchaseStatus.OVERDUE, PurchaseStatus.CANCELLED}),
        PurchaseStatus.OVERDUE: frozenset({PurchaseStatus.UNPAID, PurchaseStatus.CANCELLED}),
        PurchaseStatus.PAID: frozenset(),
        PurchaseStatus.CANCELLED: frozenset(),
    },
}

INITIAL_STATUS: dict[DocumentType, DocumentStatus] = {
    DocumentType.QUOTATION: QuotationStatus.DRAFT,
    DocumentType.INVOICE: InvoiceStatus.DRAFT,
    DocumentType.PURCHASE: PurchaseStatus.UNPAID,
}

# Statuses in which items may still be replaced
EDITABLE_STATUSES: dict[DocumentType, frozenset] = {
    DocumentType.QUOTATION: frozenset({QuotationStatus.DRAFT}),
    DocumentType.INVOICE: frozenset({InvoiceStatus.DRAFT}),
    DocumentType.PURCHASE: frozenset(),
}

UNDELETABLE_STATUSES: dict[DocumentType, frozenset] = {
    DocumentType.QUOTATION: frozenset({QuotationStatus.CONVERTED}),
    DocumentType.INVOICE: frozenset({InvoiceStatus.PAID}),
    DocumentType.PURCHASE: frozenset({PurchaseStatus.PAID}),
}

PAID_GUIDANCE = {
    DocumentType.INVOICE: "Use Record Payment to mark an invoice as paid.",
    DocumentType.PURCHASE: "Use Record Payment to record supplier payments (partial payments supported).",
}


def initial_status(document_type: DocumentType) -> DocumentStatus:
    return INITIAL_STATUS[document_type]


def allowed_transitions(document_type: DocumentType, current) -> frozenset:
    """Statuses reachable from `current` through a plain status update."""
    return TRANSITIONS[document_type][parse_status(document_type, current)]


def assert_transition(document_type: DocumentType, current, target) -> bool:
    """
    Check a generic status update.

    Returns:
        True if the status actually changes, False for a no-op
        (target equals current status)

    Raises:
        ValidationError: If the target is not a status of this document type
        StateConflictError: If the transition isn't allowed
    """
    current = parse_status(document_type, current)
    try:
        target = parse_status(document_type, target)
    except ValueError as e:
        raise ValidationError(str(e))

    # Paid is refused before anything else, even when already paid
    if target.value == "paid":
        raise StateConflictError(PAID_GUIDANCE[document_type])
    if target == QuotationStatus.CONVERTED:
        raise StateConflictError(
            "Quotations become converted only by converting them to an invoice."
        )

    if current == target:
        return False

    reachable = allowed_transitions(document_type, current)
    if target not in reachable:
        allowed = ", ".join(sorted(s.value for s in reachable))
        raise StateConflictError(
            f"Cannot change {document_type.value} status from {current.value} "
            f"to {target.value}. Allowed: {allowed or 'none'}"
        )
    return True


def items_editable(document_type: DocumentType, status) -> bool:
    return parse_status(document_type, status) in EDITABLE_STATUSES[document_type]


def assert_items_editable(document: Document) -> None:
    """
    Raises:
        StateConflictError: If the document's items are locked
    """
    if items_editable(document.document_type, document.status):
        return
    if document.document_type == DocumentType.PURCHASE:
        raise StateConflictError(
            "Purchase line items are locked once captured. "
            "Delete and recapture the purchase to change them."
        )
    raise StateConflictError(
        f"Line items can only be edited while the {document.document_type.value} "
        f"is a draft (current status: {document.status.value})"
    )


def assert_deletable(document: Document) -> None:
    """
    Raises:
        StateConflictError: If the document's status forbids deletion
    """
    if document.status in UNDELETABLE_STATUSES[document.document_type]:
        raise StateConflictError(
            f"Cannot delete a {document.status.value} {document.document_type.value}"
        )


def assert_convertible(quotation: Document) -> None:
    """
    Raises:
        StateConflictError: Unless the quotation is accepted and not yet converted
    """
    if quotation.document_type != DocumentType.QUOTATION:
        raise StateConflictError("Only quotations can be converted to invoices")
    if quotation.status == QuotationStatus.CONVERTED or quotation.converted_invoice_id:
        raise StateConflictError("Quotation has already been converted to an invoice")
    if quotation.status != QuotationStatus.ACCEPTED:
        raise StateConflictError(
            f"Only accepted quotations can be converted (current status: {quotation.status.value})"
        )


def overdue_target(document: Document, as_of: date) -> Optional[DocumentStatus]:
    """
    Status a time-based sweep should move this document to, if any.

    - sent invoice past its due date -> overdue
    - unpaid purchase past its due date -> overdue
    - sent quotation past its expiry date -> expired
    """
    if document.due_date is None or document.due_date >= as_of:
        return None
    if document.document_type == DocumentType.INVOICE and document.status == InvoiceStatus.SENT:
        return InvoiceStatus.OVERDUE
    if document.document_type == DocumentType.PURCHASE and document.status == PurchaseStatus.UNPAID:
        return PurchaseStatus.OVERDUE
    if document.document_type == DocumentType.QUOTATION and document.status == QuotationStatus.SENT:
        return QuotationStatus.EXPIRED
    return None
