"""Explicit per-call context, replacing any ambient 'active company'."""

from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class OperationContext(BaseModel):
    """
    Who is acting, on which company.

    Passed to every engine operation. The correlation ID ties together
    all audit events produced by one user action.
    """
    model_config = ConfigDict(frozen=True)

    company_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    correlation_id: UUID = Field(default_factory=uuid4)
