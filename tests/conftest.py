"""
Shared fixtures for the document engine tests.

Test strategy:
1. Unit tests for the pure components (money, numbering, calculator, lifecycle)
2. Integration tests for the aggregate on in-memory storage
3. No real API calls in tests (Google Sheets is replaced by a fake worksheet)

Async code is driven with asyncio.run so no event-loop plugin is needed.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from tenacity import wait_none

from docengine.audit import AuditLogger
from docengine.config import EngineSettings
from docengine.models import OperationContext
from docengine.orchestrator import DocumentAggregate
from docengine.quota import QuotaGuard, UsageRecorder
from docengine.services.storage import InMemoryStorage


NOW = datetime(2026, 2, 15, 9, 30, tzinfo=timezone.utc)
TODAY = NOW.date()

COMPANY_ID = "company-1"
OWNER_ID = "user-1"
ADMIN_EMAIL = "admin@example.com"


def run(coro):
    """Run a coroutine to completion."""
    return asyncio.run(coro)


def clock() -> datetime:
    return NOW


def seed_tables(plan: str = "professional", status: str = "active") -> dict:
    return {
        "companies": [{
            "id": COMPANY_ID,
            "user_id": OWNER_ID,
            "name": "Acme Trading",
            "country": "ZA",
            "base_currency": "ZAR",
        }],
        "clients": [{"id": "client-1", "company_id": COMPANY_ID, "name": "Globex"}],
        "suppliers": [{"id": "supplier-1", "company_id": COMPANY_ID, "name": "Initech"}],
        "profiles": [{"id": OWNER_ID, "email": "owner@acme.example"}],
        "subscriptions": [{"user_id": OWNER_ID, "status": status, "plan": plan}],
    }


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        admin_emails=ADMIN_EMAIL,
        default_due_days=30,
        number_padding=4,
        usage_flush_inline=True,
        usage_retry_attempts=2,
        view_cache_enabled=True,
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage(seed_tables())


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext(company_id=COMPANY_ID, user_id=OWNER_ID)


@pytest.fixture
def audit_logger(storage) -> AuditLogger:
    return AuditLogger(storage)


@pytest.fixture
def quota_guard(storage, settings, audit_logger) -> QuotaGuard:
    return QuotaGuard(storage, settings, audit_logger, clock=clock)


@pytest.fixture
def usage_recorder(storage, settings, audit_logger) -> UsageRecorder:
    return UsageRecorder(storage, settings, audit_logger, clock=clock, wait=wait_none())


@pytest.fixture
def aggregate(storage, settings, audit_logger, quota_guard, usage_recorder) -> DocumentAggregate:
    return DocumentAggregate(
        storage,
        settings=settings,
        audit_logger=audit_logger,
        quota_guard=quota_guard,
        usage_recorder=usage_recorder,
        clock=clock,
    )


def quotation_draft(**overrides) -> dict:
    draft = {
        "document_type": "quotation",
        "party_id": "client-1",
        "issue_date": TODAY,
        "due_date": TODAY.replace(day=28),
    }
    draft.update(overrides)
    return draft


def invoice_draft(**overrides) -> dict:
    return quotation_draft(document_type="invoice", **overrides)


def purchase_draft(**overrides) -> dict:
    draft = quotation_draft(document_type="purchase", party_id="supplier-1")
    draft.update(overrides)
    return draft


TWO_LINES = [
    {"description": "Consulting", "quantity": 2, "unit_price": "100", "vat_rate": 15},
    {"description": "Travel", "quantity": 1, "unit_price": "50", "vat_rate": 15},
]
