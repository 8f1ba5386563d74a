"""
Tenant endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.core.exceptions import NotFoundError
from planguard.features.auth.dependencies import CurrentSuperuser, CurrentUser
from planguard.features.limits.service import LimitService
from planguard.models.tenant import Tenant
from planguard.schemas.tenant import TenantRead, TenantReadWithUsage

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.get("/", response_model=list[TenantRead])
async def list_tenants(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: CurrentSuperuser,  # Only superusers can list all tenants
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
) -> list[Tenant]:
    """
    List all tenants (superuser only).

    Regular users can only see their own tenant via GET /tenants/me
    """
    result = await db.execute(
        select(Tenant)
        .offset(skip)
        .limit(limit)
        .order_by(Tenant.created_at.desc())
    )
    return list(result.scalars().all())


@router.get("/me", response_model=TenantReadWithUsage)
async def get_my_tenant(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TenantReadWithUsage:
    """
    Get current user's tenant with its effective plan and usage.

    Any authenticated user can access their own tenant.
    """
    result = await db.execute(select(Tenant).where(Tenant.id == current_user.tenant_id))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NotFoundError("Tenant not found", details={"tenant_id": current_user.tenant_id})

    usage = await LimitService.check_all(db, tenant.id)
    return TenantReadWithUsage(
        **TenantRead.model_validate(tenant).model_dump(),
        plan_name=usage[0].plan_name,
        usage=usage,
    )
