"""
Invoice Usage Recording (outbox)

DESIGN DECISION: Usage accounting must never fail or roll back an
invoice that was already saved. Instead of incrementing the monthly
counter inline, the aggregate writes a pending outbox entry right
after the invoice is persisted. flush() later applies pending entries
to usage_monthly with retries.

Each entry is counted AT MOST ONCE: it is claimed (marked recorded)
before the counter is incremented. If the increment then fails for
good, the claim is released and the entry is retried on the next
flush. A crash between claim and increment under-counts by one, which
is the acceptable direction for a billing limit.

Every failure here is logged and swallowed.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docengine.audit import AuditLogger
from docengine.config import EngineSettings, get_settings
from docengine.models.audit import AuditEventBuilder
from docengine.models.company import utcnow
from docengine.models.subscription import OutboxStatus, UsageCounter, UsageOutboxEntry
from docengine.quota.guard import USAGE_TABLE, month_key
from docengine.services.storage import StorageError, StorageInterface, eq, is_in


OUTBOX_TABLE = "usage_outbox"

logger = structlog.get_logger(__name__)


class UsageRecorder:
    """Writes and applies invoice usage outbox entries."""

    def __init__(
        self,
        storage: StorageInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
        wait=None,
    ):
        """
        Args:
            storage: Storage backend
            settings: Engine settings (retry attempts)
            audit_logger: Optional audit trail
            clock: Current time, injectable for tests
            wait: tenacity wait strategy between increment attempts
        """
        self._storage = storage
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger
        self._clock = clock
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=10)

    async def enqueue(
        self,
        user_id: str,
        company_id: str,
        invoice_id: str,
    ) -> Optional[UsageOutboxEntry]:
        """
        Record that an invoice was created.

        Returns:
            The outbox entry, or None if it couldn't be written
        """
        entry = UsageOutboxEntry(
            user_id=user_id,
            company_id=company_id,
            invoice_id=invoice_id,
            month_yyyymm=month_key(self._clock()),
        )
        try:
            await self._storage.insert(OUTBOX_TABLE, [entry.model_dump(mode="json")])
        except StorageError as e:
            logger.warning(
                "usage_enqueue_failed",
                invoice_id=invoice_id,
                company_id=company_id,
                error=str(e),
            )
            await self._log_failure(entry, str(e))
            return None
        return entry

    async def flush(self) -> int:
        """
        Apply every pending (or previously failed) entry.

        Returns:
            Number of entries recorded by this flush
        """
        try:
            rows = await self._storage.query(
                OUTBOX_TABLE,
                [is_in("status", [OutboxStatus.PENDING, OutboxStatus.FAILED])],
                order_by="created_at",
            )
        except StorageError as e:
            logger.warning("usage_flush_failed", error=str(e))
            return 0

        recorded = 0
        for row in rows:
            entry = UsageOutboxEntry.model_validate(row)
            if await self._apply(entry):
                recorded += 1
        return recorded

    async def _apply(self, entry: UsageOutboxEntry) -> bool:
        # Claim first so a counted entry can never be counted again
        try:
            claimed = await self._storage.update(
                OUTBOX_TABLE,
                [eq("id", entry.id), is_in("status", [OutboxStatus.PENDING, OutboxStatus.FAILED])],
                {
                    "status": OutboxStatus.RECORDED.value,
                    "attempts": entry.attempts + 1,
                    "recorded_at": self._clock().isoformat(),
                },
            )
        except StorageError as e:
            logger.warning("usage_claim_failed", entry_id=entry.id, error=str(e))
            return False
        if not claimed:
            return False

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.usage_retry_attempts),
                wait=self._wait,
                retry=retry_if_exception_type(StorageError),
                reraise=True,
            ):
                with attempt:
                    await self._increment(entry)
        except StorageError as e:
            await self._release(entry, str(e))
            return False

        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.usage_recorded(
                invoice_id=entry.invoice_id,
                month=entry.month_yyyymm,
                company_id=entry.company_id,
                user_id=entry.user_id,
            ))
        return True

    async def _increment(self, entry: UsageOutboxEntry) -> None:
        filters = [
            eq("user_id", entry.user_id),
            eq("company_id", entry.company_id),
            eq("month_yyyymm", entry.month_yyyymm),
        ]
        existing = await self._storage.get_one(USAGE_TABLE, filters)
        if existing is None:
            counter = UsageCounter(
                user_id=entry.user_id,
                company_id=entry.company_id,
                month_yyyymm=entry.month_yyyymm,
                invoices_created=1,
            )
            await self._storage.insert(USAGE_TABLE, [counter.model_dump(mode="json")])
            return

        counter = UsageCounter.model_validate(existing)
        await self._storage.update(
            USAGE_TABLE,
            filters,
            {"invoices_created": counter.invoices_created + 1},
        )

    async def _release(self, entry: UsageOutboxEntry, error_message: str) -> None:
        logger.warning(
            "usage_recording_failed",
            entry_id=entry.id,
            invoice_id=entry.invoice_id,
            error=error_message,
        )
        try:
            await self._storage.update(
                OUTBOX_TABLE,
                [eq("id", entry.id)],
                {
                    "status": OutboxStatus.FAILED.value,
                    "last_error": error_message[:500],
                    "recorded_at": None,
                },
            )
        except StorageError as e:
            logger.error("usage_release_failed", entry_id=entry.id, error=str(e))
        await self._log_failure(entry, error_message)

    async def _log_failure(self, entry: UsageOutboxEntry, error_message: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.usage_recording_failed(
                invoice_id=entry.invoice_id,
                error_message=error_message,
                company_id=entry.company_id,
                user_id=entry.user_id,
            ))

    async def pending(self) -> list[UsageOutboxEntry]:
        """Entries still waiting to be counted."""
        rows = await self._storage.query(
            OUTBOX_TABLE,
            [is_in("status", [OutboxStatus.PENDING, OutboxStatus.FAILED])],
            order_by="created_at",
        )
        return [UsageOutboxEntry.model_validate(row) for row in rows]
