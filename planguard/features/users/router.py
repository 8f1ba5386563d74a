"""
User management endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.features.auth.dependencies import require_permission
from planguard.features.limits.service import LimitService
from planguard.features.rbac.guard import RoleGuard
from planguard.features.subscriptions.catalog import PlanCatalog
from planguard.features.users.service import UserService
from planguard.models.limit_event import ResourceKind
from planguard.models.user import User
from planguard.schemas.limits import LimitStatus
from planguard.schemas.user import UserCreate, UserRead

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=list[UserRead])
async def list_users(
    current_user: Annotated[User, Depends(require_permission("users.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[UserRead]:
    users = await UserService.list_users(db, current_user.tenant_id)
    return [UserRead.model_validate(user) for user in users]


@router.get("/limits", response_model=LimitStatus)
async def get_user_limits(
    current_user: Annotated[User, Depends(require_permission("users.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LimitStatus:
    return await LimitService.check_limit(db, current_user.tenant_id, ResourceKind.USERS)


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: UserCreate,
    current_user: Annotated[User, Depends(require_permission("users.create"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserRead:
    """
    Add a user to the tenant.

    Requires a plan with user management and a free seat.
    """
    await PlanCatalog.ensure_feature(db, current_user.tenant_id, "allow_users_management")
    user = await UserService.create_user(db, current_user, user_in)
    return UserRead.model_validate(user)


@router.post("/{user_id}/deactivate", response_model=UserRead)
async def deactivate_user(
    user_id: str,
    current_user: Annotated[User, Depends(require_permission("users.edit"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserRead:
    user = await RoleGuard.deactivate_user(db, current_user, user_id)
    return UserRead.model_validate(user)


@router.post("/{user_id}/reactivate", response_model=UserRead)
async def reactivate_user(
    user_id: str,
    current_user: Annotated[User, Depends(require_permission("users.edit"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserRead:
    user = await RoleGuard.reactivate_user(db, current_user, user_id)
    return UserRead.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    current_user: Annotated[User, Depends(require_permission("users.delete"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Permanently delete a user. Owners must be demoted first."""
    await RoleGuard.delete_user(db, current_user, user_id)
