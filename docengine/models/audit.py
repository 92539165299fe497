"""
Audit Models for the Document Engine

Every document mutation is logged for audit purposes.
This provides:
1. Complete traceability of numbers, totals and status changes
2. Debugging information when things go wrong
3. Evidence that sent documents were never altered
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from docengine.models.company import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of a document's life has its own event type.
    """
    # Documents
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_UPDATED = "document_updated"
    DOCUMENT_DELETED = "document_deleted"
    ITEMS_REPLACED = "items_replaced"
    STATUS_CHANGED = "status_changed"
    QUOTATION_CONVERTED = "quotation_converted"
    CREATE_ROLLED_BACK = "create_rolled_back"

    # Subscription gating
    QUOTA_DENIED = "quota_denied"
    USAGE_RECORDED = "usage_recorded"
    USAGE_RECORDING_FAILED = "usage_recording_failed"

    # Company configuration
    EXCHANGE_RATE_RECORDED = "exchange_rate_recorded"
    EXCHANGE_RATE_DELETED = "exchange_rate_deleted"
    CURRENCY_ENABLED = "currency_enabled"
    CURRENCY_DISABLED = "currency_disabled"
    BASE_CURRENCY_CHANGED = "base_currency_changed"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'invoice', 'exchange_rate')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one conversion)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "company_id": self.company_id,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> dict:
        """
        Convert to an audit_log storage row.

        Details are JSON-encoded so every backend stores a flat row.
        """
        row = self.to_log_dict()
        row["details"] = json.dumps(self.details, default=str) if self.details else ""
        return row


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.document_created(document, correlation_id)
        event = AuditEventBuilder.quota_denied("invoice", reason, ...)
    """

    @staticmethod
    def document_created(
        document_type: str,
        document_id: str,
        number: str,
        total: str,
        currency: str,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_CREATED,
            company_id=company_id,
            user_id=user_id,
            entity_type=document_type,
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"{document_type.capitalize()} {number} created: {currency} {total}",
            details={
                "number": number,
                "total_fx": total,
                "currency": currency,
            },
        )

    @staticmethod
    def document_updated(
        document_type: str,
        document_id: str,
        fields: list[str],
        items_replaced: bool,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.ITEMS_REPLACED
                if items_replaced
                else AuditEventType.DOCUMENT_UPDATED
            ),
            company_id=company_id,
            user_id=user_id,
            entity_type=document_type,
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"{document_type.capitalize()} updated",
            details={
                "fields": fields,
                "items_replaced": items_replaced,
            },
        )

    @staticmethod
    def document_deleted(
        document_type: str,
        document_id: str,
        number: str,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_DELETED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            user_id=user_id,
            entity_type=document_type,
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"{document_type.capitalize()} {number} deleted",
            details={"number": number},
        )

    @staticmethod
    def status_changed(
        document_type: str,
        document_id: str,
        old_status: str,
        new_status: str,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_CHANGED,
            company_id=company_id,
            user_id=user_id,
            entity_type=document_type,
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"{document_type.capitalize()} status {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
            },
        )

    @staticmethod
    def quotation_converted(
        quotation_id: str,
        invoice_id: str,
        invoice_number: str,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUOTATION_CONVERTED,
            company_id=company_id,
            user_id=user_id,
            entity_type="quotation",
            entity_id=quotation_id,
            correlation_id=correlation_id,
            description=f"Quotation converted to invoice {invoice_number}",
            details={
                "invoice_id": invoice_id,
                "invoice_number": invoice_number,
            },
        )

    @staticmethod
    def create_rolled_back(
        document_type: str,
        document_id: str,
        error_message: str,
        company_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREATE_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            user_id=user_id,
            entity_type=document_type,
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"{document_type.capitalize()} creation rolled back",
            error_message=error_message,
        )

    @staticmethod
    def quota_denied(
        kind: str,
        reason: str,
        company_id: Optional[str],
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUOTA_DENIED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Plan limit reached: {kind}",
            details={
                "kind": kind,
                "reason": reason,
            },
        )

    @staticmethod
    def usage_recorded(
        invoice_id: str,
        month: str,
        company_id: str,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USAGE_RECORDED,
            severity=AuditSeverity.DEBUG,
            company_id=company_id,
            user_id=user_id,
            entity_type="invoice",
            entity_id=invoice_id,
            description=f"Invoice usage recorded for {month}",
            details={"month": month},
        )

    @staticmethod
    def usage_recording_failed(
        invoice_id: str,
        error_message: str,
        company_id: str,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USAGE_RECORDING_FAILED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            user_id=user_id,
            entity_type="invoice",
            entity_id=invoice_id,
            description="Invoice usage could not be recorded yet",
            error_message=error_message,
        )

    @staticmethod
    def exchange_rate_recorded(
        rate_id: str,
        pair: str,
        rate: str,
        effective_date: str,
        company_id: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCHANGE_RATE_RECORDED,
            company_id=company_id,
            user_id=user_id,
            entity_type="exchange_rate",
            entity_id=rate_id,
            description=f"Rate {pair} = {rate} from {effective_date}",
            details={
                "pair": pair,
                "rate": rate,
                "effective_date": effective_date,
            },
        )

    @staticmethod
    def exchange_rate_deleted(
        rate_id: str,
        company_id: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCHANGE_RATE_DELETED,
            company_id=company_id,
            user_id=user_id,
            entity_type="exchange_rate",
            entity_id=rate_id,
            description="Exchange rate deleted",
        )

    @staticmethod
    def currency_changed(
        currency: str,
        enabled: bool,
        company_id: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CURRENCY_ENABLED
                if enabled
                else AuditEventType.CURRENCY_DISABLED
            ),
            company_id=company_id,
            user_id=user_id,
            entity_type="company",
            entity_id=company_id,
            description=f"Currency {currency} {'enabled' if enabled else 'disabled'}",
            details={"currency": currency},
        )

    @staticmethod
    def base_currency_changed(
        old_currency: str,
        new_currency: str,
        company_id: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BASE_CURRENCY_CHANGED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            user_id=user_id,
            entity_type="company",
            entity_id=company_id,
            description=f"Base currency changed {old_currency} -> {new_currency}",
            details={
                "old_currency": old_currency,
                "new_currency": new_currency,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        company_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            correlation_id=correlation_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
