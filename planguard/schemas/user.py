"""
Pydantic schemas for User.
"""

from datetime import datetime

from pydantic import EmailStr, Field

from planguard.features.rbac.permissions import Role
from planguard.schemas.common import BaseSchema


class UserBase(BaseSchema):
    """Base user schema."""

    email: EmailStr = Field(..., description="User email address")
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


class UserCreate(UserBase):
    """
    Schema for adding a user to the caller's tenant.

    New users cannot be created as Owner; promotion goes through the
    role change endpoint so the guard rules apply.
    """

    role: Role = Field(Role.EMPLOYEE, description="Administrator, Manager or Employee")


class UserRead(UserBase):
    """Schema for reading user data."""

    id: str
    full_name: str
    role: Role
    is_active: bool
    is_suspended: bool
    suspended_at: datetime | None = None
    tenant_id: str
    created_at: datetime


class RoleChangeRequest(BaseSchema):
    role: Role
