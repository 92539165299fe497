"""
Audit Logger

DESIGN DECISION: Every document mutation in the engine is logged.
This provides:
1. Complete traceability of numbers, totals and status changes
2. Debugging capability
3. Evidence for accountants that sent documents were not altered
4. Compliance readiness

The audit logger:
- Is async so it slots into the engine's storage calls
- Gracefully handles failures (doesn't fail an operation if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional

import structlog

from docengine.models.audit import AuditEvent, AuditEventBuilder
from docengine.models.context import OperationContext
from docengine.models.document import Document
from docengine.services.storage import StorageInterface


AUDIT_TABLE = "audit_log"


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_log table (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("docengine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                await self._storage.insert(AUDIT_TABLE, [event.to_row()])
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_document_created(
        self,
        document: Document,
        ctx: OperationContext,
    ) -> None:
        """Log document creation."""
        await self.log(AuditEventBuilder.document_created(
            document_type=document.document_type.value,
            document_id=document.id,
            number=document.number,
            total=str(document.total_fx),
            currency=document.currency_code.value,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_document_updated(
        self,
        document: Document,
        fields: list[str],
        items_replaced: bool,
        ctx: OperationContext,
    ) -> None:
        """Log a header patch and/or item replacement."""
        await self.log(AuditEventBuilder.document_updated(
            document_type=document.document_type.value,
            document_id=document.id,
            fields=fields,
            items_replaced=items_replaced,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_document_deleted(
        self,
        document: Document,
        ctx: OperationContext,
    ) -> None:
        """Log document deletion."""
        await self.log(AuditEventBuilder.document_deleted(
            document_type=document.document_type.value,
            document_id=document.id,
            number=document.number,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_status_changed(
        self,
        document: Document,
        old_status: str,
        ctx: OperationContext,
    ) -> None:
        """Log a lifecycle transition."""
        await self.log(AuditEventBuilder.status_changed(
            document_type=document.document_type.value,
            document_id=document.id,
            old_status=old_status,
            new_status=document.status.value,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_quotation_converted(
        self,
        quotation_id: str,
        invoice: Document,
        ctx: OperationContext,
    ) -> None:
        """Log quotation to invoice conversion."""
        await self.log(AuditEventBuilder.quotation_converted(
            quotation_id=quotation_id,
            invoice_id=invoice.id,
            invoice_number=invoice.number,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_create_rolled_back(
        self,
        document: Document,
        error_message: str,
        ctx: OperationContext,
    ) -> None:
        """Log that a half-written document was removed again."""
        await self.log(AuditEventBuilder.create_rolled_back(
            document_type=document.document_type.value,
            document_id=document.id,
            error_message=error_message,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_quota_denied(
        self,
        kind: str,
        reason: str,
        ctx: OperationContext,
    ) -> None:
        """Log a plan limit rejection."""
        await self.log(AuditEventBuilder.quota_denied(
            kind=kind,
            reason=reason,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        """Log a storage failure that is about to propagate."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            company_id=ctx.company_id if ctx else None,
            correlation_id=ctx.correlation_id if ctx else None,
        ))
