"""Tests for plan limits and the invoice usage outbox."""

from datetime import datetime, timedelta

import pytest
from tenacity import wait_none

from conftest import ADMIN_EMAIL, COMPANY_ID, NOW, OWNER_ID, clock, run, seed_tables
from docengine.errors import QuotaExceededError, ValidationError
from docengine.models import (
    Feature,
    LimitKind,
    OperationContext,
    OutboxStatus,
    Plan,
    Subscription,
    SubscriptionStatus,
)
from docengine.quota import QuotaGuard, UsageRecorder, effective_plan
from docengine.services.storage import InMemoryStorage, StorageError


def guard_for(settings, plan="starter", status="active", **extra_tables):
    tables = seed_tables(plan=plan, status=status)
    tables.update(extra_tables)
    storage = InMemoryStorage(tables)
    return QuotaGuard(storage, settings, clock=clock), storage


def usage_row(count: int, month: str = "2026-02") -> dict:
    return {
        "user_id": OWNER_ID,
        "company_id": COMPANY_ID,
        "month_yyyymm": month,
        "invoices_created": count,
    }


class TestEffectivePlan:
    """Subscription status -> plan."""

    def test_no_subscription_is_expired(self):
        assert effective_plan(None, NOW) == Plan.EXPIRED

    def test_trial_running(self):
        sub = Subscription(
            user_id=OWNER_ID,
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW + timedelta(days=3),
        )
        assert effective_plan(sub, NOW) == Plan.TRIAL

    def test_trial_over(self):
        sub = Subscription(
            user_id=OWNER_ID,
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW - timedelta(seconds=1),
        )
        assert effective_plan(sub, NOW) == Plan.EXPIRED

    def test_naive_trial_end_treated_as_utc(self):
        sub = Subscription(
            user_id=OWNER_ID,
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=datetime(2026, 3, 1),
        )
        assert effective_plan(sub, NOW) == Plan.TRIAL

    def test_active_without_plan_is_starter(self):
        sub = Subscription(user_id=OWNER_ID, status=SubscriptionStatus.ACTIVE)
        assert effective_plan(sub, NOW) == Plan.STARTER

    def test_past_due_keeps_plan(self):
        sub = Subscription(user_id=OWNER_ID, status=SubscriptionStatus.PAST_DUE, plan=Plan.BUSINESS)
        assert effective_plan(sub, NOW) == Plan.BUSINESS

    def test_canceled_is_expired(self):
        sub = Subscription(user_id=OWNER_ID, status=SubscriptionStatus.CANCELED, plan=Plan.BUSINESS)
        assert effective_plan(sub, NOW) == Plan.EXPIRED


class TestCheckLimit:
    """Ceilings against live usage."""

    def test_starter_99_invoices_allowed(self, settings):
        guard, _ = guard_for(settings, usage_monthly=[usage_row(99)])
        result = run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID))
        assert result.allowed

    def test_starter_100_invoices_denied(self, settings):
        guard, _ = guard_for(settings, usage_monthly=[usage_row(100)])
        result = run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID))
        assert not result.allowed
        assert "monthly limit of 100 invoices" in result.reason

    def test_last_month_does_not_count(self, settings):
        guard, _ = guard_for(settings, usage_monthly=[usage_row(100, month="2026-01")])
        assert run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID)).allowed

    def test_unlimited_invoices(self, settings):
        guard, _ = guard_for(settings, plan="professional", usage_monthly=[usage_row(5000)])
        assert run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID)).allowed

    def test_expired_blocks_everything(self, settings):
        guard, _ = guard_for(settings, status="canceled")
        result = run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID))
        assert not result.allowed
        assert "expired" in result.reason

    def test_starter_company_limit(self, settings):
        """The seeded company already uses the single starter slot."""
        guard, _ = guard_for(settings)
        result = run(guard.check_limit(LimitKind.COMPANY, OWNER_ID))
        assert not result.allowed
        assert result.reason == "Your starter plan allows up to 1 company. Upgrade to add more."

    def test_starter_has_no_payroll(self, settings):
        guard, _ = guard_for(settings)
        result = run(guard.check_limit(LimitKind.EMPLOYEE, OWNER_ID, COMPANY_ID))
        assert not result.allowed
        assert "Payroll is not available" in result.reason

    def test_only_active_employees_count(self, settings):
        employees = [
            {"id": f"e{i}", "company_id": COMPANY_ID, "is_active": i < 9}
            for i in range(12)
        ]
        guard, _ = guard_for(settings, plan="professional", employees=employees)
        assert run(guard.check_limit(LimitKind.EMPLOYEE, OWNER_ID, COMPANY_ID)).allowed

    def test_team_limit_counts_active_members(self, settings):
        members = [
            {"id": f"m{i}", "company_id": COMPANY_ID, "status": "active"}
            for i in range(5)
        ]
        guard, _ = guard_for(settings, plan="professional", company_members=members)
        result = run(guard.check_limit(LimitKind.TEAM_MEMBER, OWNER_ID, COMPANY_ID))
        assert not result.allowed
        assert "5 team members" in result.reason

    def test_admin_bypasses_limits(self, settings):
        guard, storage = guard_for(settings, status="canceled", usage_monthly=[usage_row(100)])
        run(storage.update("profiles", [], {"email": ADMIN_EMAIL.upper()}))
        assert run(guard.check_limit(LimitKind.INVOICE, OWNER_ID, COMPANY_ID)).allowed

    def test_company_id_required(self, settings):
        guard, _ = guard_for(settings)
        with pytest.raises(ValidationError, match="company_id is required"):
            run(guard.check_limit(LimitKind.INVOICE, OWNER_ID))


class TestFeatures:
    """Boolean plan features."""

    def test_starter_has_no_multi_currency(self, settings):
        guard, _ = guard_for(settings)
        result = run(guard.check_feature(Feature.MULTI_CURRENCY, OWNER_ID))
        assert not result.allowed
        assert "Multi-currency" in result.reason

    def test_professional_has_multi_currency(self, settings):
        guard, _ = guard_for(settings, plan="professional")
        assert run(guard.check_feature(Feature.MULTI_CURRENCY, OWNER_ID)).allowed

    def test_enforce_raises_with_kind(self, settings):
        guard, _ = guard_for(settings, usage_monthly=[usage_row(100)])
        ctx = OperationContext(company_id=COMPANY_ID, user_id=OWNER_ID)
        with pytest.raises(QuotaExceededError) as exc_info:
            run(guard.enforce_limit(LimitKind.INVOICE, ctx))
        assert exc_info.value.kind == "invoice"
        assert "Upgrade" in exc_info.value.reason


class TestSummary:

    def test_trial_days_remaining(self, settings):
        guard, storage = guard_for(settings, status="trialing")
        run(storage.update("subscriptions", [], {
            "trial_ends_at": (NOW + timedelta(days=2, hours=3)).isoformat(),
        }))
        summary = run(guard.get_summary(OWNER_ID))
        assert summary.plan == Plan.TRIAL
        assert summary.trial_days_remaining == 3
        assert summary.is_trialing
        assert not summary.is_read_only

    def test_no_subscription(self, settings):
        storage = InMemoryStorage({"profiles": [{"id": OWNER_ID, "email": "x@example.com"}]})
        summary = run(QuotaGuard(storage, settings, clock=clock).get_summary(OWNER_ID))
        assert summary.status == "none"
        assert summary.is_expired
        assert summary.is_read_only

    def test_admin_summary(self, settings):
        guard, storage = guard_for(settings, status="canceled")
        run(storage.update("profiles", [], {"email": ADMIN_EMAIL}))
        summary = run(guard.get_summary(OWNER_ID))
        assert summary.is_admin
        assert summary.plan == Plan.BUSINESS


class FlakyStorage(InMemoryStorage):
    """Fails the first `failures` writes to usage_monthly."""

    def __init__(self, tables=None, failures: int = 0):
        super().__init__(tables)
        self.failures = failures

    async def insert(self, table, rows):
        if table == "usage_monthly" and self.failures > 0:
            self.failures -= 1
            raise StorageError("usage table unavailable")
        return await super().insert(table, rows)


class TestUsageRecorder:
    """The usage outbox."""

    def recorder(self, storage, settings):
        return UsageRecorder(storage, settings, clock=clock, wait=wait_none())

    def test_enqueue_then_flush_increments_once(self, settings):
        storage = InMemoryStorage()
        recorder = self.recorder(storage, settings)

        entry = run(recorder.enqueue(OWNER_ID, COMPANY_ID, "invoice-1"))
        assert entry.month_yyyymm == "2026-02"
        assert run(recorder.flush()) == 1
        # A second flush finds nothing left to count
        assert run(recorder.flush()) == 0

        counters = storage.dump("usage_monthly")
        assert counters[0]["invoices_created"] == 1
        assert storage.dump("usage_outbox")[0]["status"] == OutboxStatus.RECORDED.value

    def test_increments_existing_counter(self, settings):
        storage = InMemoryStorage({"usage_monthly": [usage_row(41)]})
        recorder = self.recorder(storage, settings)
        run(recorder.enqueue(OWNER_ID, COMPANY_ID, "invoice-1"))
        run(recorder.enqueue(OWNER_ID, COMPANY_ID, "invoice-2"))

        assert run(recorder.flush()) == 2
        assert storage.dump("usage_monthly")[0]["invoices_created"] == 43

    def test_transient_failure_is_retried(self, settings):
        storage = FlakyStorage(failures=1)
        recorder = self.recorder(storage, settings)
        run(recorder.enqueue(OWNER_ID, COMPANY_ID, "invoice-1"))

        assert run(recorder.flush()) == 1
        assert storage.dump("usage_monthly")[0]["invoices_created"] == 1

    def test_persistent_failure_left_for_next_flush(self, settings):
        """Failures are swallowed; the entry is counted later, exactly once."""
        storage = FlakyStorage(failures=settings.usage_retry_attempts)
        recorder = self.recorder(storage, settings)
        run(recorder.enqueue(OWNER_ID, COMPANY_ID, "invoice-1"))

        assert run(recorder.flush()) == 0
        pending = run(recorder.pending())
        assert len(pending) == 1
        assert pending[0].status == OutboxStatus.FAILED
        assert "unavailable" in pending[0].last_error

        assert run(recorder.flush()) == 1
        assert storage.dump("usage_monthly")[0]["invoices_created"] == 1
        assert run(recorder.pending()) == []
