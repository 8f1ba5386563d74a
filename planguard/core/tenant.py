"""
Tenant isolation utilities.

Every tenant-owned row is looked up through these helpers so a caller
never sees another tenant's data; a foreign id is reported as missing.
"""

import logging
from typing import Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.exceptions import NotFoundError
from planguard.models.base import BaseModel
from planguard.models.tenant import Tenant

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def get_tenant_scoped_query(model: Type[T], tenant_id: str) -> Select:
    """
    Create a query scoped to one tenant.

    Usage:
        query = get_tenant_scoped_query(Shop, user.tenant_id)
        result = await db.execute(query.where(Shop.is_active.is_(True)))
    """
    return select(model).where(model.tenant_id == tenant_id)


async def get_tenant_scoped(
    db: AsyncSession,
    model: Type[T],
    resource_id: str,
    tenant_id: str,
) -> T:
    """
    Fetch a tenant-owned resource.

    Raises:
        NotFoundError: if the row does not exist or belongs to another tenant
    """
    result = await db.execute(
        get_tenant_scoped_query(model, tenant_id).where(model.id == resource_id)
    )
    resource = result.scalar_one_or_none()

    if resource is None:
        raise NotFoundError(
            f"{model.__name__} not found",
            details={"resource": model.__tablename__, "id": resource_id},
        )
    return resource


async def lock_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    """
    Take the per-tenant row lock for the current transaction.

    Check-then-act sequences on counted resources (seats, shops, email
    quota, owner counts) and plan transitions all run after this call,
    so concurrent requests for the same tenant are serialized.
    """
    result = await db.execute(
        select(Tenant).where(Tenant.id == tenant_id).with_for_update()
    )
    tenant = result.scalar_one_or_none()

    if tenant is None:
        logger.warning(f"Tenant lock requested for missing tenant: {tenant_id}")
        raise NotFoundError("Tenant not found", details={"tenant_id": tenant_id})
    return tenant
