"""Plan limits, feature gating and invoice usage recording."""

from docengine.quota.guard import QuotaGuard, effective_plan, month_key
from docengine.quota.usage import UsageRecorder

__all__ = [
    "QuotaGuard",
    "UsageRecorder",
    "effective_plan",
    "month_key",
]
