"""
Role assignment guard.

Mutations of another user's role or status within a tenant. Each
operation evaluates its preconditions in a fixed order (the first
failure wins) while holding the tenant row lock, so two concurrent
demotions of the last two Owners cannot both succeed.
"""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.exceptions import (
    InsufficientPrivilege,
    OwnerDeletionForbidden,
    SelfModificationForbidden,
    SelfRoleChangeForbidden,
    SoleOwnerProtection,
)
from planguard.core.tenant import get_tenant_scoped, lock_tenant
from planguard.features.audit.service import AuditService
from planguard.features.limits.service import LimitService
from planguard.features.rbac.permissions import Role, role_value
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.user import User

logger = structlog.get_logger(__name__)


async def count_seated_owners(db: AsyncSession, tenant_id: str) -> int:
    """Owners that are active and not suspended."""
    await db.flush()
    result = await db.execute(
        select(func.count(User.id)).where(
            User.tenant_id == tenant_id,
            User.role == Role.OWNER.value,
            User.is_active.is_(True),
            User.is_suspended.is_(False),
        )
    )
    return int(result.scalar_one())


def _is_owner(user: User) -> bool:
    return role_value(user.role) == Role.OWNER.value


class RoleGuard:
    """Guarded user mutations, all scoped to the requester's tenant."""

    @staticmethod
    async def change_role(
        db: AsyncSession,
        requester: User,
        target_user_id: str,
        new_role: Role,
    ) -> User:
        """
        Change another user's role.

        Raises, in order:
            NotFoundError: target not in the requester's tenant
            SelfRoleChangeForbidden: requester is the target
            InsufficientPrivilege: non-Owner touching an Owner
            SoleOwnerProtection: demoting the last seated Owner
            InsufficientPrivilege: non-Owner promoting to Owner
        """
        new_role = Role(new_role)
        tenant_id = requester.tenant_id
        await lock_tenant(db, tenant_id)

        target = await get_tenant_scoped(db, User, target_user_id, tenant_id)

        if target.id == requester.id:
            raise SelfRoleChangeForbidden(
                "You cannot change your own role",
                details={"user_id": requester.id},
            )

        if _is_owner(target) and not _is_owner(requester):
            raise InsufficientPrivilege(
                "Only an Owner can change another Owner's role",
                details={"target_role": Role.OWNER.value, "requester_role": role_value(requester.role)},
            )

        if _is_owner(target) and new_role != Role.OWNER:
            owners = await count_seated_owners(db, tenant_id)
            if owners <= 1:
                raise SoleOwnerProtection(
                    "Cannot demote the only Owner of this account",
                    details={"owner_count": owners},
                )

        if new_role == Role.OWNER and not _is_owner(requester):
            raise InsufficientPrivilege(
                "Only an Owner can grant the Owner role",
                details={"new_role": new_role.value, "requester_role": role_value(requester.role)},
            )

        old_role = role_value(target.role)
        target.role = new_role.value
        await db.flush()

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.ROLE_CHANGED,
            actor_user_id=requester.id,
            metadata={
                "target_user_id": target.id,
                "old_role": old_role,
                "new_role": new_role.value,
            },
        )
        await db.commit()

        logger.info(
            "role_changed",
            tenant_id=tenant_id,
            target_user_id=target.id,
            old_role=old_role,
            new_role=new_role.value,
        )
        return target

    @staticmethod
    async def deactivate_user(
        db: AsyncSession,
        requester: User,
        target_user_id: str,
    ) -> User:
        """
        Manually deactivate a user (frees a seat).

        Raises, in order: NotFoundError, SelfModificationForbidden,
        InsufficientPrivilege, SoleOwnerProtection.
        """
        tenant_id = requester.tenant_id
        await lock_tenant(db, tenant_id)

        target = await get_tenant_scoped(db, User, target_user_id, tenant_id)

        if target.id == requester.id:
            raise SelfModificationForbidden(
                "You cannot deactivate your own account",
                details={"user_id": requester.id},
            )

        if _is_owner(target) and not _is_owner(requester):
            raise InsufficientPrivilege(
                "Only an Owner can deactivate another Owner",
                details={"requester_role": role_value(requester.role)},
            )

        if _is_owner(target) and target.occupies_seat:
            owners = await count_seated_owners(db, tenant_id)
            if owners <= 1:
                raise SoleOwnerProtection(
                    "Cannot deactivate the only Owner of this account",
                    details={"owner_count": owners},
                )

        if not target.is_active:
            return target

        before = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)
        target.is_active = False
        await db.flush()
        after = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.USER_DEACTIVATED,
            before_count=before,
            after_count=after,
            resource=ResourceKind.USERS,
            actor_user_id=requester.id,
            metadata={"target_user_id": target.id},
        )
        await db.commit()

        logger.info("user_deactivated", tenant_id=tenant_id, target_user_id=target.id)
        return target

    @staticmethod
    async def reactivate_user(
        db: AsyncSession,
        requester: User,
        target_user_id: str,
    ) -> User:
        """
        Reactivate a manually deactivated user.

        The user takes a seat again, so the user ceiling is checked
        (LimitExceededError) after the guard rules.
        """
        tenant_id = requester.tenant_id
        await lock_tenant(db, tenant_id)

        target = await get_tenant_scoped(db, User, target_user_id, tenant_id)

        if target.id == requester.id:
            raise SelfModificationForbidden(
                "You cannot reactivate your own account",
                details={"user_id": requester.id},
            )

        if _is_owner(target) and not _is_owner(requester):
            raise InsufficientPrivilege(
                "Only an Owner can reactivate another Owner",
                details={"requester_role": role_value(requester.role)},
            )

        if target.is_active:
            return target

        # A user still suspended by the plan does not take a seat here
        status = None
        if not target.is_suspended:
            status = await LimitService.ensure_can_add(
                db, tenant_id, ResourceKind.USERS, actor_user_id=requester.id
            )

        before = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)
        target.is_active = True
        await db.flush()
        after = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.USER_REACTIVATED,
            before_count=before,
            after_count=after,
            resource=ResourceKind.USERS,
            limit_value=status.limit if status else None,
            actor_user_id=requester.id,
            metadata={"target_user_id": target.id},
        )
        if status is not None:
            await LimitService.record_limit_reached(db, tenant_id, status, after, actor_user_id=requester.id)
        await db.commit()

        logger.info("user_reactivated", tenant_id=tenant_id, target_user_id=target.id)
        return target

    @staticmethod
    async def delete_user(
        db: AsyncSession,
        requester: User,
        target_user_id: str,
    ) -> None:
        """
        Permanently delete a user.

        Owners cannot be deleted; they must be demoted first, which
        keeps the sole-owner rule in one place.
        """
        tenant_id = requester.tenant_id
        await lock_tenant(db, tenant_id)

        target = await get_tenant_scoped(db, User, target_user_id, tenant_id)

        if target.id == requester.id:
            raise SelfModificationForbidden(
                "You cannot delete your own account",
                details={"user_id": requester.id},
            )

        if _is_owner(target):
            raise OwnerDeletionForbidden(
                "Owners cannot be deleted; change their role first",
                details={"target_user_id": target.id},
            )

        before = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)
        target_id, target_email = target.id, target.email
        await db.delete(target)
        await db.flush()
        after = await LimitService.current_usage(db, tenant_id, ResourceKind.USERS)

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.USER_DELETED,
            before_count=before,
            after_count=after,
            resource=ResourceKind.USERS,
            actor_user_id=requester.id,
            metadata={"target_user_id": target_id, "email": target_email},
        )
        await db.commit()

        logger.info("user_deleted", tenant_id=tenant_id, target_user_id=target_id)
