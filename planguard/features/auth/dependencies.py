"""
Authentication dependencies for dependency injection.

Every authenticated request resolves to a (user, tenant, role) triple;
the role always comes from the user row, never from the token.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.context import set_request_context
from planguard.core.database import get_db
from planguard.core.exceptions import PermissionDenied, forbidden, unauthorized
from planguard.core.metrics import permission_denials_total
from planguard.core.security import decode_token
from planguard.features.rbac.permissions import PERMISSION_KEYS, PermissionTableError, role_value
from planguard.models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Get current authenticated user from a JWT bearer token.

    Deactivated users and users suspended by a plan downgrade are
    rejected.
    """
    if not credentials:
        raise unauthorized("Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise unauthorized("Invalid or expired token")

    user_id: str | None = payload.get("sub")
    if not user_id:
        raise unauthorized("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        logger.warning(f"Token valid but user not found: {user_id}")
        raise unauthorized("User not found")

    if not user.is_active:
        raise forbidden("User account is inactive")

    if user.is_suspended:
        raise forbidden("User account is suspended by the current subscription plan")

    request.state.user_id = user.id
    request.state.tenant_id = user.tenant_id
    set_request_context(user_id=user.id, tenant_id=user.tenant_id, role=role_value(user.role))

    return user


async def get_current_active_superuser(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require platform operator privileges."""
    if not current_user.is_superuser:
        raise forbidden("Superuser access required")
    return current_user


def require_permission(permission_key: str):
    """
    Dependency factory for permission-based access control.

    Unknown keys fail when the route module is imported, so every key
    the API uses exists in all four role bundles.

    Usage:
        @router.post("/shops")
        async def create_shop(
            user: Annotated[User, Depends(require_permission("shops.create"))],
        ):
            ...
    """
    if permission_key not in PERMISSION_KEYS:
        raise PermissionTableError(f"Unknown permission key: {permission_key}")

    async def permission_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if not current_user.has_permission(permission_key):
            permission_denials_total.labels(permission=permission_key).inc()
            raise PermissionDenied(
                f"Permission required: {permission_key}",
                details={"permission": permission_key, "role": role_value(current_user.role)},
            )
        return current_user

    return permission_checker


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentSuperuser = Annotated[User, Depends(get_current_active_superuser)]
