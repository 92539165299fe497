"""
Subscription, Plan Limit and Usage Models

Plan limits are expressed as ceilings:
- None  -> unlimited, always passes
- 0     -> blocked entirely
- n > 0 -> allowed while current usage < n
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from docengine.models.company import new_id, utcnow


class Plan(str, Enum):
    """Effective plan a user is entitled to."""
    TRIAL = "trial"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    BUSINESS = "business"
    EXPIRED = "expired"


class SubscriptionStatus(str, Enum):
    """Billing status as stored by the subscription provider."""
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"


class LimitKind(str, Enum):
    """Countable things a plan restricts."""
    COMPANY = "company"
    INVOICE = "invoice"
    EMPLOYEE = "employee"
    TEAM_MEMBER = "team_member"


class Feature(str, Enum):
    """Boolean plan features."""
    INVENTORY = "inventory"
    MULTI_CURRENCY = "multi_currency"


class OutboxStatus(str, Enum):
    """Processing state of a usage outbox entry."""
    PENDING = "pending"
    RECORDED = "recorded"
    FAILED = "failed"


class PlanLimits(BaseModel):
    """Ceilings and feature flags of one plan."""

    companies: Optional[int] = Field(default=None, ge=0)
    invoices: Optional[int] = Field(
        default=None,
        ge=0,
        description="Invoices per calendar month"
    )
    employees: Optional[int] = Field(default=None, ge=0)
    team_members: Optional[int] = Field(
        default=None,
        ge=0,
        description="Includes the owner"
    )
    inventory: bool = False
    multi_currency: bool = False

    def ceiling(self, kind: LimitKind) -> Optional[int]:
        return {
            LimitKind.COMPANY: self.companies,
            LimitKind.INVOICE: self.invoices,
            LimitKind.EMPLOYEE: self.employees,
            LimitKind.TEAM_MEMBER: self.team_members,
        }[kind]

    def has_feature(self, feature: Feature) -> bool:
        return getattr(self, feature.value)


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.TRIAL: PlanLimits(
        companies=3, invoices=None, employees=10, team_members=5,
        inventory=True, multi_currency=True,
    ),
    Plan.STARTER: PlanLimits(
        companies=1, invoices=100, employees=0, team_members=1,
        inventory=False, multi_currency=False,
    ),
    Plan.PROFESSIONAL: PlanLimits(
        companies=3, invoices=None, employees=10, team_members=5,
        inventory=True, multi_currency=True,
    ),
    Plan.BUSINESS: PlanLimits(
        companies=None, invoices=None, employees=None, team_members=None,
        inventory=True, multi_currency=True,
    ),
    Plan.EXPIRED: PlanLimits(
        companies=0, invoices=0, employees=0, team_members=0,
        inventory=False, multi_currency=False,
    ),
}


class Subscription(BaseModel):
    """A user's subscription row from the subscription provider."""

    user_id: str
    status: SubscriptionStatus
    plan: Optional[Plan] = None
    trial_ends_at: Optional[datetime] = None
    renews_at: Optional[datetime] = None


class UsageCounter(BaseModel):
    """Invoices created by a user for a company in one calendar month."""

    user_id: str
    company_id: str
    month_yyyymm: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    invoices_created: int = Field(default=0, ge=0)


class UsageOutboxEntry(BaseModel):
    """
    A pending usage increment.

    Written right after an invoice is persisted and applied to the
    monthly counter later, so usage accounting never blocks creation.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    company_id: str
    invoice_id: str
    month_yyyymm: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    recorded_at: Optional[datetime] = None


class LimitCheck(BaseModel):
    """Outcome of a quota check."""

    allowed: bool
    reason: Optional[str] = None


class SubscriptionSummary(BaseModel):
    """What the billing page needs to know about a user."""

    plan: Plan
    status: str = Field(
        ...,
        description="Raw subscription status, or 'none'"
    )
    limits: PlanLimits
    trial_days_remaining: int = Field(default=0, ge=0)
    is_trialing: bool = False
    is_expired: bool = False
    renews_at: Optional[datetime] = None
    is_admin: bool = False

    @property
    def is_read_only(self) -> bool:
        """Expired users may look but not create."""
        return self.is_expired
