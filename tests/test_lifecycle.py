"""Tests for the document status state machine."""

from datetime import date
from decimal import Decimal

import pytest

from docengine.errors import StateConflictError, ValidationError
from docengine.lifecycle import (
    INITIAL_STATUS,
    assert_convertible,
    assert_deletable,
    assert_items_editable,
    assert_transition,
    items_editable,
    overdue_target,
)
from docengine.models import (
    Document,
    DocumentType,
    InvoiceStatus,
    PurchaseStatus,
    QuotationStatus,
)


def make_document(document_type: DocumentType, status, **overrides) -> Document:
    data = {
        "company_id": "company-1",
        "document_type": document_type,
        "number": "X-0001",
        "issue_date": date(2026, 2, 1),
        "due_date": date(2026, 2, 10),
        "status": status,
        "currency_code": "ZAR",
        "fx_rate": Decimal("1"),
    }
    data.update(overrides)
    return Document(**data)


class TestInitialStatus:

    def test_initial_statuses(self):
        assert INITIAL_STATUS[DocumentType.QUOTATION] == QuotationStatus.DRAFT
        assert INITIAL_STATUS[DocumentType.INVOICE] == InvoiceStatus.DRAFT
        assert INITIAL_STATUS[DocumentType.PURCHASE] == PurchaseStatus.UNPAID


class TestTransitions:
    """Allowed and forbidden status changes."""

    @pytest.mark.parametrize("current,target", [
        ("draft", "sent"),
        ("draft", "declined"),
        ("sent", "accepted"),
        ("sent", "expired"),
        ("expired", "sent"),
        ("accepted", "declined"),
    ])
    def test_quotation_allowed(self, current, target):
        assert assert_transition(DocumentType.QUOTATION, current, target) is True

    @pytest.mark.parametrize("current,target", [
        ("draft", "sent"),
        ("draft", "cancelled"),
        ("sent", "overdue"),
        ("overdue", "sent"),
        ("overdue", "cancelled"),
    ])
    def test_invoice_allowed(self, current, target):
        assert assert_transition(DocumentType.INVOICE, current, target) is True

    def test_same_status_is_noop(self):
        assert assert_transition(DocumentType.INVOICE, "sent", "sent") is False

    @pytest.mark.parametrize("current", ["draft", "sent", "overdue", "paid", "cancelled"])
    def test_invoice_paid_always_refused_with_guidance(self, current):
        """Paid is written by the payment subsystem only, whatever the current status."""
        with pytest.raises(StateConflictError, match="Record Payment"):
            assert_transition(DocumentType.INVOICE, current, "paid")

    @pytest.mark.parametrize("current", ["unpaid", "overdue"])
    def test_purchase_paid_refused_with_guidance(self, current):
        with pytest.raises(StateConflictError, match="partial payments supported"):
            assert_transition(DocumentType.PURCHASE, current, PurchaseStatus.PAID)

    def test_converted_only_by_conversion(self):
        with pytest.raises(StateConflictError, match="converting"):
            assert_transition(DocumentType.QUOTATION, "accepted", "converted")

    @pytest.mark.parametrize("document_type,current,target", [
        (DocumentType.QUOTATION, "draft", "accepted"),
        (DocumentType.QUOTATION, "declined", "sent"),
        (DocumentType.QUOTATION, "converted", "draft"),
        (DocumentType.INVOICE, "cancelled", "draft"),
        (DocumentType.INVOICE, "sent", "draft"),
        (DocumentType.PURCHASE, "cancelled", "unpaid"),
    ])
    def test_forbidden(self, document_type, current, target):
        with pytest.raises(StateConflictError):
            assert_transition(document_type, current, target)

    def test_unknown_status_is_validation_error(self):
        """Statuses of another document type are not statuses at all."""
        with pytest.raises(ValidationError):
            assert_transition(DocumentType.INVOICE, "draft", "accepted")


class TestEditAndDeleteGuards:
    """Item locks and delete rules."""

    def test_only_drafts_are_editable(self):
        assert items_editable(DocumentType.INVOICE, "draft")
        assert not items_editable(DocumentType.INVOICE, "sent")
        assert items_editable(DocumentType.QUOTATION, "draft")
        assert not items_editable(DocumentType.QUOTATION, "accepted")

    def test_purchases_locked_from_creation(self):
        purchase = make_document(DocumentType.PURCHASE, "unpaid")
        with pytest.raises(StateConflictError, match="locked"):
            assert_items_editable(purchase)

    def test_sent_invoice_items_locked(self):
        with pytest.raises(StateConflictError, match="draft"):
            assert_items_editable(make_document(DocumentType.INVOICE, "sent"))

    def test_converted_quotation_cannot_be_deleted(self):
        with pytest.raises(StateConflictError):
            assert_deletable(make_document(DocumentType.QUOTATION, "converted"))
        assert_deletable(make_document(DocumentType.QUOTATION, "declined"))

    def test_paid_invoice_cannot_be_deleted(self):
        with pytest.raises(StateConflictError):
            assert_deletable(make_document(DocumentType.INVOICE, "paid"))
        assert_deletable(make_document(DocumentType.INVOICE, "cancelled"))


class TestConversionGuard:

    def test_accepted_is_convertible(self):
        assert_convertible(make_document(DocumentType.QUOTATION, "accepted"))

    def test_already_converted(self):
        with pytest.raises(StateConflictError, match="already been converted"):
            assert_convertible(make_document(DocumentType.QUOTATION, "converted"))

    def test_sent_is_not_convertible(self):
        with pytest.raises(StateConflictError, match="accepted"):
            assert_convertible(make_document(DocumentType.QUOTATION, "sent"))


class TestOverdueTarget:
    """Time-based sweep decisions."""

    def test_sent_invoice_past_due(self):
        invoice = make_document(DocumentType.INVOICE, "sent")
        assert overdue_target(invoice, date(2026, 2, 11)) == InvoiceStatus.OVERDUE
        assert overdue_target(invoice, date(2026, 2, 10)) is None

    def test_draft_invoice_never_overdue(self):
        assert overdue_target(make_document(DocumentType.INVOICE, "draft"), date(2026, 3, 1)) is None

    def test_unpaid_purchase_past_due(self):
        purchase = make_document(DocumentType.PURCHASE, "unpaid")
        assert overdue_target(purchase, date(2026, 3, 1)) == PurchaseStatus.OVERDUE

    def test_sent_quotation_expires(self):
        quotation = make_document(DocumentType.QUOTATION, "sent")
        assert overdue_target(quotation, date(2026, 3, 1)) == QuotationStatus.EXPIRED

    def test_no_due_date(self):
        invoice = make_document(DocumentType.INVOICE, "sent", due_date=None)
        assert overdue_target(invoice, date(2026, 3, 1)) is None
