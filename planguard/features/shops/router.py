"""
Shop endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.features.auth.dependencies import require_permission
from planguard.features.limits.service import LimitService
from planguard.features.shops.service import ShopService
from planguard.models.limit_event import ResourceKind
from planguard.models.user import User
from planguard.schemas.limits import LimitStatus
from planguard.schemas.shop import ShopCreate, ShopRead

router = APIRouter(prefix="/shops", tags=["Shops"])


@router.get("/", response_model=list[ShopRead])
async def list_shops(
    current_user: Annotated[User, Depends(require_permission("shops.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    include_closed: bool = Query(False, description="Include closed shops"),
) -> list[ShopRead]:
    """List the tenant's shops, suspended ones included."""
    shops = await ShopService.list_shops(db, current_user.tenant_id, include_closed=include_closed)
    return [ShopRead.model_validate(shop) for shop in shops]


@router.get("/limits", response_model=LimitStatus)
async def get_shop_limits(
    current_user: Annotated[User, Depends(require_permission("shops.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LimitStatus:
    return await LimitService.check_limit(db, current_user.tenant_id, ResourceKind.SHOPS)


@router.post("/", response_model=ShopRead, status_code=status.HTTP_201_CREATED)
async def create_shop(
    shop_in: ShopCreate,
    current_user: Annotated[User, Depends(require_permission("shops.create"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ShopRead:
    """
    Create a shop.

    Returns 403 with code limit_exceeded when the plan's shop ceiling
    is reached.
    """
    shop = await ShopService.create_shop(db, current_user, shop_in)
    return ShopRead.model_validate(shop)


@router.delete("/{shop_id}", response_model=ShopRead)
async def close_shop(
    shop_id: str,
    current_user: Annotated[User, Depends(require_permission("shops.delete"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ShopRead:
    """Close a shop; closed shops no longer count against the plan."""
    shop = await ShopService.close_shop(db, current_user, shop_id)
    return ShopRead.model_validate(shop)
