"""
Pydantic schemas for Tenant.
"""

from datetime import datetime

from pydantic import Field

from planguard.schemas.common import BaseSchema
from planguard.schemas.limits import LimitStatus


class TenantRead(BaseSchema):
    """Schema for reading tenant data."""

    id: str
    name: str = Field(..., description="Business name")
    slug: str
    is_active: bool
    created_at: datetime


class TenantReadWithUsage(TenantRead):
    """Tenant with its current plan and resource usage."""

    plan_name: str
    usage: list[LimitStatus] = Field(default_factory=list)
