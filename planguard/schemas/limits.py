"""
Pydantic schemas for resource limits, custom overrides and audit events.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.schemas.common import BaseSchema


class LimitStatus(BaseModel):
    """Current usage of one resource against the tenant's ceiling."""

    resource: ResourceKind
    current: int = Field(..., ge=0)
    limit: int | None = Field(None, description="None means unlimited")
    can_add: bool
    remaining: int | None = Field(None, description="None when unlimited")
    is_custom_limit: bool = False
    plan_name: str


class LimitSummary(BaseModel):
    """All three resources in one response."""

    plan_name: str
    limits: list[LimitStatus]


class EmailReservation(BaseModel):
    """Sent by the delivery service before dispatching a batch."""

    recipient_count: int = Field(..., ge=1, le=1_000_000)
    kind: str = Field("campaign", max_length=50)


class CustomLimitUpdate(BaseModel):
    """Operator-granted ceiling override; omitted fields follow the plan."""

    max_shops: int | None = Field(None, ge=0)
    max_users: int | None = Field(None, ge=1)
    monthly_email_limit: int | None = Field(None, ge=0)
    override_reason: str = Field(..., min_length=3, max_length=1000)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def require_one_ceiling(self) -> "CustomLimitUpdate":
        if self.max_shops is None and self.max_users is None and self.monthly_email_limit is None:
            raise ValueError("At least one of max_shops, max_users or monthly_email_limit is required")
        return self


class CustomLimitRead(BaseSchema):
    tenant_id: str
    max_shops: int | None
    max_users: int | None
    monthly_email_limit: int | None
    override_reason: str | None
    created_by_user_id: str | None
    expires_at: datetime | None
    is_active: bool
    created_at: datetime


class LimitEventRead(BaseSchema):
    """Audit record as exposed by the events endpoint."""

    id: str
    tenant_id: str
    event_type: LimitEventType
    resource: ResourceKind | None
    before_count: int
    after_count: int
    limit_value: int | None
    subscription_plan_id: str | None
    actor_user_id: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="details")
    created_at: datetime
