"""
Tests for the engine's Pydantic models.

Test strategy:
1. Unit tests for individual models (documents, plans, audit events)
2. Storage row round-trips where a model owns its row format
3. No storage or network access
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from docengine.models import (
    PLAN_LIMITS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    CurrencyCode,
    Document,
    DocumentDraft,
    DocumentPatch,
    DocumentType,
    ExchangeRate,
    Feature,
    InvoiceStatus,
    LimitKind,
    LineItemInput,
    Plan,
    QuotationStatus,
    ValidationIssue,
    ValidationResult,
)


class TestDocumentModels:
    """Tests for document models."""

    def test_line_item_input_defaults(self):
        """Test LineItemInput defaults to one unit at 15% VAT."""
        item = LineItemInput(description="  Consulting  ")
        assert item.description == "Consulting"
        assert item.quantity == Decimal("1")
        assert item.vat_rate == Decimal("15")

    def test_line_item_input_float_noise(self):
        """Test floats are read through their repr."""
        item = LineItemInput(description="Fuel", unit_price=0.1)
        assert item.unit_price == Decimal("0.1")

    def test_line_item_input_rejects_negative_price(self):
        """Test that negative prices are rejected."""
        with pytest.raises(ValueError):
            LineItemInput(description="Refund", unit_price=Decimal("-10"))

    def test_line_item_input_rejects_vat_over_100(self):
        """Test VAT rate must be a percentage."""
        with pytest.raises(ValueError):
            LineItemInput(description="Test", vat_rate=Decimal("101"))

    def test_draft_date_validation(self):
        """Test that due_date cannot be before issue_date."""
        with pytest.raises(ValueError, match="Due date cannot be before issue date"):
            DocumentDraft(
                document_type=DocumentType.INVOICE,
                issue_date=date(2026, 2, 15),
                due_date=date(2026, 2, 1),
            )

    def test_draft_rejects_unknown_currency(self):
        """Test currencies are a closed set."""
        with pytest.raises(ValueError):
            DocumentDraft(
                document_type=DocumentType.INVOICE,
                issue_date=date(2026, 2, 15),
                currency_code="XYZ",
            )

    def test_patch_has_no_status(self):
        """Test that status can't be patched."""
        with pytest.raises(ValueError):
            DocumentPatch(status="paid")

    def test_document_status_by_type(self):
        """Test statuses are parsed with the enum of the document type."""
        quotation = Document(
            company_id="c",
            document_type=DocumentType.QUOTATION,
            number="QTN-0001",
            issue_date=date(2026, 2, 15),
            status="accepted",
            currency_code=CurrencyCode.ZAR,
        )
        assert quotation.status == QuotationStatus.ACCEPTED

        with pytest.raises(ValueError):
            Document(
                company_id="c",
                document_type=DocumentType.INVOICE,
                number="INV-0001",
                issue_date=date(2026, 2, 15),
                status="accepted",
                currency_code=CurrencyCode.ZAR,
            )

    def test_document_row_round_trip(self):
        """Test a stored row rebuilds the same document."""
        document = Document(
            company_id="c",
            document_type=DocumentType.INVOICE,
            number="INV-0001",
            issue_date=date(2026, 2, 15),
            status=InvoiceStatus.SENT,
            currency_code=CurrencyCode.USD,
            fx_rate=Decimal("18.5"),
            total_fx=Decimal("287.50"),
            total=Decimal("5318.75"),
        )
        row = document.to_row()
        assert "items" not in row
        assert row["status"] == "sent"

        rebuilt = Document.from_row(row)
        assert rebuilt.total == Decimal("5318.75")
        assert rebuilt.fx_rate == Decimal("18.5")
        assert rebuilt.status == InvoiceStatus.SENT

    def test_exchange_rate_pair_must_differ(self):
        """Test that a currency can't have a rate against itself."""
        with pytest.raises(ValueError, match="must differ"):
            ExchangeRate(
                company_id="c",
                base_currency=CurrencyCode.ZAR,
                quote_currency=CurrencyCode.ZAR,
                rate=Decimal("1"),
                effective_date=date(2026, 1, 1),
            )


class TestPlanLimits:
    """Tests for the plan table."""

    def test_starter_ceilings(self):
        """Test the starter plan's limits."""
        starter = PLAN_LIMITS[Plan.STARTER]
        assert starter.ceiling(LimitKind.INVOICE) == 100
        assert starter.ceiling(LimitKind.COMPANY) == 1
        assert starter.ceiling(LimitKind.EMPLOYEE) == 0
        assert starter.has_feature(Feature.MULTI_CURRENCY) is False

    def test_business_unlimited(self):
        """Test None means unlimited."""
        business = PLAN_LIMITS[Plan.BUSINESS]
        for kind in LimitKind:
            assert business.ceiling(kind) is None

    def test_expired_blocks_everything(self):
        """Test every ceiling is zero when expired."""
        expired = PLAN_LIMITS[Plan.EXPIRED]
        for kind in LimitKind:
            assert expired.ceiling(kind) == 0
        assert expired.has_feature(Feature.INVENTORY) is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.DOCUMENT_CREATED,
            description="Invoice created",
        )
        assert event.event_type == AuditEventType.DOCUMENT_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_row(self):
        """Test conversion to a flat audit_log row."""
        event = AuditEvent(
            event_type=AuditEventType.QUOTA_DENIED,
            description="Invoice limit reached",
            details={"kind": "invoice"},
        )
        row = event.to_row()
        assert row["event_type"] == "quota_denied"
        assert json.loads(row["details"]) == {"kind": "invoice"}

    def test_audit_event_builder_document_created(self):
        """Test AuditEventBuilder.document_created."""
        correlation_id = uuid4()
        event = AuditEventBuilder.document_created(
            document_type="invoice",
            document_id="doc-1",
            number="INV-0001",
            total="287.50",
            currency="ZAR",
            company_id="c",
            user_id="u",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.DOCUMENT_CREATED
        assert event.entity_id == "doc-1"
        assert event.correlation_id == correlation_id
        assert "INV-0001" in event.description

    def test_audit_event_builder_items_replaced(self):
        """Test item replacement gets its own event type."""
        event = AuditEventBuilder.document_updated(
            document_type="quotation",
            document_id="doc-1",
            fields=[],
            items_replaced=True,
            company_id="c",
            user_id="u",
        )
        assert event.event_type == AuditEventType.ITEMS_REPLACED


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_errors(self):
        """Test the errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            issues=[
                ValidationIssue(
                    field="party_id",
                    issue_type="missing",
                    message="Please select a client",
                    severity="error",
                ),
            ],
        )
        assert result.is_valid is False
        assert len(result.errors) == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            issues=[
                ValidationIssue(
                    field="items[0].unit_price",
                    issue_type="zero_amount",
                    message="Line 1 (Sample) has no amount",
                    severity="warning",
                ),
            ],
        )
        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == ["Line 1 (Sample) has no amount"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
