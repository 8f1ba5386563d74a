"""
User business logic: listing and adding members of a tenant.

Role changes and status mutations live in the role assignment guard.
"""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.exceptions import InsufficientPrivilege, InvalidStateError
from planguard.core.tenant import get_tenant_scoped_query
from planguard.features.audit.service import AuditService
from planguard.features.limits.service import LimitService
from planguard.features.rbac.permissions import Role
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.user import User
from planguard.schemas.user import UserCreate

logger = structlog.get_logger(__name__)


class UserService:

    @staticmethod
    async def list_users(db: AsyncSession, tenant_id: str) -> list[User]:
        query = get_tenant_scoped_query(User, tenant_id).order_by(User.created_at.asc(), User.id.asc())
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count_by_role(db: AsyncSession, tenant_id: str) -> dict[str, int]:
        result = await db.execute(
            select(User.role, func.count(User.id))
            .where(User.tenant_id == tenant_id, User.is_active.is_(True))
            .group_by(User.role)
        )
        return {role: count for role, count in result.all()}

    @staticmethod
    async def create_user(db: AsyncSession, requester: User, data: UserCreate) -> User:
        """
        Add a user to the requester's tenant.

        Raises:
            InsufficientPrivilege: asked to create an Owner
            InvalidStateError: email already registered
            LimitExceededError: no free seat on the plan
        """
        tenant_id = requester.tenant_id

        if data.role == Role.OWNER:
            raise InsufficientPrivilege(
                "Users cannot be created as Owner; change their role afterwards",
                details={"role": Role.OWNER.value},
            )

        status = await LimitService.ensure_can_add(
            db, tenant_id, ResourceKind.USERS, actor_user_id=requester.id
        )

        existing = await db.execute(select(User.id).where(func.lower(User.email) == data.email.lower()))
        if existing.scalar_one_or_none() is not None:
            raise InvalidStateError(
                "A user with this email already exists",
                details={"email": data.email},
            )

        user = User(
            tenant_id=tenant_id,
            email=data.email.lower(),
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role.value,
        )
        db.add(user)
        await db.flush()

        after = status.current + 1
        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.USER_CREATED,
            before_count=status.current,
            after_count=after,
            resource=ResourceKind.USERS,
            limit_value=status.limit,
            actor_user_id=requester.id,
            metadata={"user_id": user.id, "role": data.role.value},
        )
        await LimitService.record_limit_reached(db, tenant_id, status, after, actor_user_id=requester.id)
        await db.commit()
        await db.refresh(user)

        logger.info("user_created", tenant_id=tenant_id, user_id=user.id, role=data.role.value)
        return user
