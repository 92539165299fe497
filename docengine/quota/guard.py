"""
Quota Guard

Decides whether a user may create one more company, invoice, employee
or team member, and whether a plan feature is available.

Order of evaluation:
1. Admin allow-list (emails from settings) always passes
2. Effective plan from the subscription row
3. Ceiling 0 -> denied with an expiry/upgrade message
4. Unlimited -> allowed
5. Otherwise live usage is compared with the ceiling (used >= ceiling
   is denied)

The guard only reads. Recording invoice usage is the UsageRecorder's
job (see usage.py).
"""

import math
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from docengine.audit import AuditLogger
from docengine.config import EngineSettings, get_settings
from docengine.errors import QuotaExceededError, ValidationError
from docengine.models.company import utcnow
from docengine.models.context import OperationContext
from docengine.models.subscription import (
    PLAN_LIMITS,
    Feature,
    LimitCheck,
    LimitKind,
    Plan,
    Subscription,
    SubscriptionStatus,
    SubscriptionSummary,
)
from docengine.services.storage import StorageInterface, eq


SUBSCRIPTIONS_TABLE = "subscriptions"
PROFILES_TABLE = "profiles"
USAGE_TABLE = "usage_monthly"

logger = structlog.get_logger(__name__)


def month_key(moment: datetime) -> str:
    """Calendar month bucket, e.g. "2026-02"."""
    return moment.strftime("%Y-%m")


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def effective_plan(subscription: Optional[Subscription], now: datetime) -> Plan:
    """
    Plan the user is entitled to right now.

    - no subscription row -> expired
    - trialing -> trial while trial_ends_at is in the future, else expired
    - active / past_due -> their plan, starter if none is set
    - anything else -> expired
    """
    if subscription is None:
        return Plan.EXPIRED

    if subscription.status == SubscriptionStatus.TRIALING:
        if subscription.trial_ends_at and _aware(subscription.trial_ends_at) > _aware(now):
            return Plan.TRIAL
        return Plan.EXPIRED

    if subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE):
        return subscription.plan or Plan.STARTER

    return Plan.EXPIRED


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


class QuotaGuard:
    """Plan limit checks against live usage."""

    def __init__(
        self,
        storage: StorageInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger
        self._clock = clock

    # =========================================================================
    # Lookups
    # =========================================================================

    async def is_admin(self, user_id: str) -> bool:
        """Admins bypass every limit. Resolved through the user's profile email."""
        admins = self._settings.admin_emails_list
        if not admins:
            return False
        profile = await self._storage.get_one(PROFILES_TABLE, [eq("id", user_id)])
        email = (profile or {}).get("email")
        return bool(email) and email.strip().lower() in admins

    async def get_subscription(self, user_id: str) -> Optional[Subscription]:
        row = await self._storage.get_one(SUBSCRIPTIONS_TABLE, [eq("user_id", user_id)])
        if row is None:
            return None
        return Subscription.model_validate(row)

    async def effective_plan(self, user_id: str) -> Plan:
        return effective_plan(await self.get_subscription(user_id), self._clock())

    async def invoices_this_month(self, user_id: str, company_id: str) -> int:
        row = await self._storage.get_one(USAGE_TABLE, [
            eq("user_id", user_id),
            eq("company_id", company_id),
            eq("month_yyyymm", month_key(self._clock())),
        ])
        if row is None:
            return 0
        return int(row.get("invoices_created") or 0)

    async def _used(self, kind: LimitKind, user_id: str, company_id: Optional[str]) -> int:
        if kind == LimitKind.COMPANY:
            return await self._storage.count("companies", [eq("user_id", user_id)])
        if kind == LimitKind.INVOICE:
            return await self.invoices_this_month(user_id, company_id)
        if kind == LimitKind.EMPLOYEE:
            return await self._storage.count("employees", [
                eq("company_id", company_id),
                eq("is_active", True),
            ])
        # Team size includes the owner
        return await self._storage.count("company_members", [
            eq("company_id", company_id),
            eq("status", "active"),
        ])

    # =========================================================================
    # Checks
    # =========================================================================

    async def check_limit(
        self,
        kind: LimitKind,
        user_id: str,
        company_id: Optional[str] = None,
    ) -> LimitCheck:
        """
        May the user create one more `kind`?

        company_id is required for every kind except COMPANY.
        """
        kind = LimitKind(kind)
        if kind != LimitKind.COMPANY and not company_id:
            raise ValidationError(f"company_id is required to check the {kind.value} limit")

        if await self.is_admin(user_id):
            return LimitCheck(allowed=True)

        plan = await self.effective_plan(user_id)
        ceiling = PLAN_LIMITS[plan].ceiling(kind)

        if ceiling == 0:
            return LimitCheck(allowed=False, reason=self._blocked_reason(kind))
        if ceiling is None:
            return LimitCheck(allowed=True)

        used = await self._used(kind, user_id, company_id)
        if used >= ceiling:
            return LimitCheck(allowed=False, reason=self._ceiling_reason(kind, plan, ceiling))
        return LimitCheck(allowed=True)

    async def check_feature(self, feature: Feature, user_id: str) -> LimitCheck:
        """Is a boolean plan feature (inventory, multi-currency) available?"""
        feature = Feature(feature)
        if await self.is_admin(user_id):
            return LimitCheck(allowed=True)

        plan = await self.effective_plan(user_id)
        if plan == Plan.EXPIRED:
            return LimitCheck(
                allowed=False,
                reason="Your subscription has expired. Please subscribe to continue.",
            )
        if PLAN_LIMITS[plan].has_feature(feature):
            return LimitCheck(allowed=True)

        label = "Multi-currency" if feature == Feature.MULTI_CURRENCY else "Inventory"
        return LimitCheck(
            allowed=False,
            reason=f"{label} is not available on your current plan. Upgrade to Professional or Business.",
        )

    async def enforce_limit(self, kind: LimitKind, ctx: OperationContext) -> None:
        """
        check_limit() that raises.

        Raises:
            QuotaExceededError: If the limit is reached
        """
        result = await self.check_limit(kind, ctx.user_id, ctx.company_id)
        if not result.allowed:
            await self._deny(LimitKind(kind).value, result.reason, ctx)

    async def enforce_feature(self, feature: Feature, ctx: OperationContext) -> None:
        """
        check_feature() that raises.

        Raises:
            QuotaExceededError: If the feature isn't on the user's plan
        """
        result = await self.check_feature(feature, ctx.user_id)
        if not result.allowed:
            await self._deny(Feature(feature).value, result.reason, ctx)

    async def get_summary(self, user_id: str) -> SubscriptionSummary:
        """Plan, limits and trial state for the billing page."""
        subscription = await self.get_subscription(user_id)

        if await self.is_admin(user_id):
            return SubscriptionSummary(
                plan=Plan.BUSINESS,
                status=SubscriptionStatus.ACTIVE.value,
                limits=PLAN_LIMITS[Plan.BUSINESS],
                renews_at=subscription.renews_at if subscription else None,
                is_admin=True,
            )

        now = self._clock()
        plan = effective_plan(subscription, now)

        trial_days_remaining = 0
        if (
            subscription is not None
            and subscription.status == SubscriptionStatus.TRIALING
            and subscription.trial_ends_at
        ):
            seconds = (_aware(subscription.trial_ends_at) - _aware(now)).total_seconds()
            trial_days_remaining = max(0, math.ceil(seconds / 86400))

        return SubscriptionSummary(
            plan=plan,
            status=subscription.status.value if subscription else "none",
            limits=PLAN_LIMITS[plan],
            trial_days_remaining=trial_days_remaining,
            is_trialing=trial_days_remaining > 0,
            is_expired=plan == Plan.EXPIRED,
            renews_at=subscription.renews_at if subscription else None,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _deny(self, kind: str, reason: str, ctx: OperationContext) -> None:
        logger.info("quota_denied", kind=kind, user_id=ctx.user_id, company_id=ctx.company_id)
        if self._audit_logger:
            await self._audit_logger.log_quota_denied(kind, reason, ctx)
        raise QuotaExceededError(reason, kind=kind)

    @staticmethod
    def _blocked_reason(kind: LimitKind) -> str:
        if kind == LimitKind.EMPLOYEE:
            return "Payroll is not available on your current plan. Upgrade to Professional or Business."
        noun = {
            LimitKind.COMPANY: "create companies",
            LimitKind.INVOICE: "create invoices",
            LimitKind.TEAM_MEMBER: "invite team members",
        }[kind]
        return f"Your subscription has expired. Please subscribe to {noun}."

    @staticmethod
    def _ceiling_reason(kind: LimitKind, plan: Plan, ceiling: int) -> str:
        if kind == LimitKind.COMPANY:
            noun = _plural(ceiling, "company", "companies")
            return f"Your {plan.value} plan allows up to {ceiling} {noun}. Upgrade to add more."
        if kind == LimitKind.INVOICE:
            return (
                f"You've reached your monthly limit of {ceiling} invoices. "
                "Upgrade your plan for unlimited invoices."
            )
        if kind == LimitKind.EMPLOYEE:
            return f"Your plan allows up to {ceiling} employees. Upgrade to Business for unlimited payroll."
        noun = _plural(ceiling, "member", "members")
        return f"Your plan allows up to {ceiling} team {noun}. Upgrade for more."
