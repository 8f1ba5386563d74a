"""
Pydantic schemas for Shop.
"""

from datetime import datetime

from pydantic import Field

from planguard.schemas.common import BaseSchema


class ShopCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255, description="Shop name")
    city: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=2000)


class ShopRead(ShopCreate):
    id: str
    is_active: bool
    is_suspended: bool
    suspended_at: datetime | None = None
    tenant_id: str
    created_by_user_id: str | None = None
    created_at: datetime
