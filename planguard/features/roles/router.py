"""
Role catalog and role assignment endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.features.auth.dependencies import CurrentUser, require_permission
from planguard.features.rbac.guard import RoleGuard
from planguard.features.rbac.permissions import (
    PERMISSION_CATEGORIES,
    ROLE_DESCRIPTIONS,
    ROLE_LEVELS,
    Role,
    permissions_for,
)
from planguard.features.subscriptions.catalog import PlanCatalog
from planguard.features.users.service import UserService
from planguard.models.user import User
from planguard.schemas.role import MyPermissions, PermissionCategory, RoleCatalog, RoleRead
from planguard.schemas.user import RoleChangeRequest, UserRead

router = APIRouter(prefix="/roles", tags=["Roles"])


@router.get("/", response_model=RoleCatalog)
async def list_roles(
    current_user: Annotated[User, Depends(require_permission("users.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RoleCatalog:
    """The four system roles with their bundles and active user counts."""
    counts = await UserService.count_by_role(db, current_user.tenant_id)
    roles = [
        RoleRead(
            name=role,
            level=ROLE_LEVELS[role],
            description=ROLE_DESCRIPTIONS[role],
            user_count=counts.get(role.value, 0),
            permissions=permissions_for(role),
        )
        for role in sorted(Role, key=lambda r: ROLE_LEVELS[r], reverse=True)
    ]
    return RoleCatalog(
        roles=roles,
        permission_categories=[PermissionCategory(**category) for category in PERMISSION_CATEGORIES],
    )


@router.get("/me/permissions", response_model=MyPermissions)
async def get_my_permissions(current_user: CurrentUser) -> MyPermissions:
    return MyPermissions(role=current_user.role, permissions=permissions_for(current_user.role))


@router.patch("/users/{user_id}/role", response_model=UserRead)
async def change_user_role(
    user_id: str,
    role_in: RoleChangeRequest,
    current_user: Annotated[User, Depends(require_permission("users.manage_roles"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserRead:
    """
    Change another user's role.

    Requires a plan with role management. The guard then rejects self
    changes, non-Owners touching Owners and demotion of the last Owner.
    """
    await PlanCatalog.ensure_feature(db, current_user.tenant_id, "allow_roles_management")
    user = await RoleGuard.change_role(db, current_user, user_id, role_in.role)
    return UserRead.model_validate(user)
