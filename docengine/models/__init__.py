"""
Data Models Package

This package contains all Pydantic models used by the document engine.
All data flowing through the engine must conform to these schemas.
"""

from docengine.models.company import (
    Company,
    CompanyCurrency,
    ConversionDirection,
    CurrencyCode,
    ExchangeRate,
    RateSource,
)
from docengine.models.context import OperationContext
from docengine.models.document import (
    DOCUMENT_TABLES,
    Document,
    DocumentDraft,
    DocumentPatch,
    DocumentStatus,
    DocumentTotals,
    DocumentType,
    InvoiceStatus,
    LineItem,
    LineItemInput,
    PurchaseStatus,
    QuotationStatus,
    ValidationIssue,
    ValidationResult,
    parse_status,
)
from docengine.models.subscription import (
    PLAN_LIMITS,
    Feature,
    LimitCheck,
    LimitKind,
    OutboxStatus,
    Plan,
    PlanLimits,
    Subscription,
    SubscriptionStatus,
    SubscriptionSummary,
    UsageCounter,
    UsageOutboxEntry,
)
from docengine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Company models
    "Company",
    "CompanyCurrency",
    "ConversionDirection",
    "CurrencyCode",
    "ExchangeRate",
    "RateSource",
    "OperationContext",
    # Document models
    "DOCUMENT_TABLES",
    "Document",
    "DocumentDraft",
    "DocumentPatch",
    "DocumentStatus",
    "DocumentTotals",
    "DocumentType",
    "InvoiceStatus",
    "LineItem",
    "LineItemInput",
    "PurchaseStatus",
    "QuotationStatus",
    "ValidationIssue",
    "ValidationResult",
    "parse_status",
    # Subscription models
    "PLAN_LIMITS",
    "Feature",
    "LimitCheck",
    "LimitKind",
    "OutboxStatus",
    "Plan",
    "PlanLimits",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionSummary",
    "UsageCounter",
    "UsageOutboxEntry",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
