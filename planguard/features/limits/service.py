"""
Resource limit checker.

Resolves a tenant's ceilings (plan, optionally replaced by an operator
override) and compares them with live usage. Create operations call
ensure_can_add() inside their own transaction; it takes the tenant row
lock so the check and the insert cannot interleave with another
request for the same tenant.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.exceptions import LimitExceededError
from planguard.core.metrics import limit_checks_total, limit_rejections_total
from planguard.core.tenant import lock_tenant
from planguard.features.audit.service import AuditService
from planguard.features.subscriptions.catalog import EffectivePlan, PlanCatalog
from planguard.models.email_send import EmailSendRecord
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.shop import Shop
from planguard.models.subscription import Subscription
from planguard.models.tenant_limit import TenantLimit
from planguard.models.user import User
from planguard.schemas.limits import CustomLimitUpdate, LimitStatus

logger = structlog.get_logger(__name__)

OVERRIDE_FIELDS = {
    ResourceKind.SHOPS: "max_shops",
    ResourceKind.USERS: "max_users",
    ResourceKind.EMAILS: "monthly_email_limit",
}


@dataclass
class ResolvedLimits:
    """Ceilings in force for a tenant at one point in a transaction."""

    plan: EffectivePlan
    subscription: Subscription | None
    override: TenantLimit | None

    def limit_for(self, resource: ResourceKind) -> tuple[int | None, bool]:
        """(ceiling, comes_from_override). None means unlimited."""
        if self.override is not None:
            value = getattr(self.override, OVERRIDE_FIELDS[resource])
            if value is not None:
                return value, True
        return self.plan.limit_for(resource), False


def month_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """[first instant of this UTC month, first instant of next month)."""
    now = now or datetime.now(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def build_status(
    resource: ResourceKind,
    current: int,
    limit: int | None,
    is_custom: bool,
    plan_name: str,
) -> LimitStatus:
    if limit is None:
        return LimitStatus(
            resource=resource,
            current=current,
            limit=None,
            can_add=True,
            remaining=None,
            is_custom_limit=is_custom,
            plan_name=plan_name,
        )
    return LimitStatus(
        resource=resource,
        current=current,
        limit=limit,
        can_add=current < limit,
        remaining=max(0, limit - current),
        is_custom_limit=is_custom,
        plan_name=plan_name,
    )


class LimitService:
    """Per-tenant resource ceilings and usage."""

    @staticmethod
    async def get_active_override(db: AsyncSession, tenant_id: str) -> TenantLimit | None:
        """Active, unexpired override (compared in SQL)."""
        result = await db.execute(
            select(TenantLimit).where(
                and_(
                    TenantLimit.tenant_id == tenant_id,
                    TenantLimit.is_active.is_(True),
                    or_(
                        TenantLimit.expires_at.is_(None),
                        TenantLimit.expires_at > datetime.now(timezone.utc),
                    ),
                )
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_limits(db: AsyncSession, tenant_id: str) -> ResolvedLimits:
        plan, subscription = await PlanCatalog.effective_plan(db, tenant_id)
        override = await LimitService.get_active_override(db, tenant_id)
        return ResolvedLimits(plan=plan, subscription=subscription, override=override)

    @staticmethod
    def email_window(subscription: Subscription | None) -> tuple[datetime, datetime]:
        """Billing period of a live subscription, otherwise the calendar month."""
        if (
            subscription is not None
            and subscription.is_live
            and subscription.current_period_start is not None
            and subscription.current_period_end is not None
        ):
            return subscription.current_period_start, subscription.current_period_end
        return month_window()

    @staticmethod
    async def current_usage(
        db: AsyncSession,
        tenant_id: str,
        resource: ResourceKind,
        subscription: Subscription | None = None,
    ) -> int:
        """Seat-occupying users, counted shops, or emails sent in the window."""
        resource = ResourceKind(resource)

        if resource == ResourceKind.USERS:
            query = select(func.count(User.id)).where(
                User.tenant_id == tenant_id,
                User.is_active.is_(True),
                User.is_suspended.is_(False),
            )
        elif resource == ResourceKind.SHOPS:
            query = select(func.count(Shop.id)).where(
                Shop.tenant_id == tenant_id,
                Shop.is_active.is_(True),
                Shop.is_suspended.is_(False),
            )
        else:
            start, end = LimitService.email_window(subscription)
            query = select(func.coalesce(func.sum(EmailSendRecord.recipient_count), 0)).where(
                EmailSendRecord.tenant_id == tenant_id,
                EmailSendRecord.sent_at >= start,
                EmailSendRecord.sent_at < end,
            )

        result = await db.execute(query)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def check_limit(
        db: AsyncSession,
        tenant_id: str,
        resource: ResourceKind,
        resolved: ResolvedLimits | None = None,
    ) -> LimitStatus:
        """
        Current usage of one resource against its ceiling.

        A null ceiling is unlimited: can_add is always true and
        remaining is null.
        """
        resource = ResourceKind(resource)
        await db.flush()

        if resolved is None:
            resolved = await LimitService.resolve_limits(db, tenant_id)

        current = await LimitService.current_usage(db, tenant_id, resource, resolved.subscription)
        limit, is_custom = resolved.limit_for(resource)

        limit_checks_total.labels(resource=resource.value).inc()
        return build_status(resource, current, limit, is_custom, resolved.plan.name)

    @staticmethod
    async def check_all(db: AsyncSession, tenant_id: str) -> list[LimitStatus]:
        resolved = await LimitService.resolve_limits(db, tenant_id)
        return [
            await LimitService.check_limit(db, tenant_id, resource, resolved)
            for resource in ResourceKind
        ]

    @staticmethod
    async def ensure_can_add(
        db: AsyncSession,
        tenant_id: str,
        resource: ResourceKind,
        amount: int = 1,
        actor_user_id: str | None = None,
    ) -> LimitStatus:
        """
        Lock the tenant and verify that `amount` more units fit.

        Must run in the same transaction as the insert it guards. On
        rejection the limit_exceeded audit record is committed before
        LimitExceededError is raised, so the caller's rollback does not
        discard it.
        """
        resource = ResourceKind(resource)
        await lock_tenant(db, tenant_id)

        resolved = await LimitService.resolve_limits(db, tenant_id)
        status = await LimitService.check_limit(db, tenant_id, resource, resolved)

        if status.limit is not None and status.current + amount > status.limit:
            limit_rejections_total.labels(resource=resource.value).inc()
            logger.info(
                "limit_exceeded",
                tenant_id=tenant_id,
                resource=resource.value,
                current=status.current,
                limit=status.limit,
                requested=amount,
            )
            await AuditService.record(
                db,
                tenant_id,
                LimitEventType.LIMIT_EXCEEDED,
                before_count=status.current,
                after_count=status.current,
                resource=resource,
                limit_value=status.limit,
                plan_id=resolved.plan.id,
                actor_user_id=actor_user_id,
                metadata={"requested": amount, "is_custom_limit": status.is_custom_limit},
            )
            await db.commit()
            raise LimitExceededError(
                f"{resource.value.capitalize()} limit reached for plan {status.plan_name}",
                details={
                    "resource": resource.value,
                    "current": status.current,
                    "limit": status.limit,
                    "requested": amount,
                    "plan_name": status.plan_name,
                },
            )

        return status

    @staticmethod
    async def record_limit_reached(
        db: AsyncSession,
        tenant_id: str,
        before: LimitStatus,
        after_count: int,
        plan_id: str | None = None,
        actor_user_id: str | None = None,
    ) -> None:
        """Audit the create that brought usage exactly onto the ceiling."""
        if before.limit is None or after_count < before.limit or before.current >= before.limit:
            return
        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.LIMIT_REACHED,
            before_count=before.current,
            after_count=after_count,
            resource=before.resource,
            limit_value=before.limit,
            plan_id=plan_id,
            actor_user_id=actor_user_id,
        )

    @staticmethod
    async def record_email_sends(
        db: AsyncSession,
        tenant_id: str,
        recipient_count: int,
        kind: str = "campaign",
        actor_user_id: str | None = None,
    ) -> LimitStatus:
        """
        Reserve email quota for a batch and append it to the ledger.

        Returns the status after the reservation.
        """
        before = await LimitService.ensure_can_add(
            db,
            tenant_id,
            ResourceKind.EMAILS,
            amount=recipient_count,
            actor_user_id=actor_user_id,
        )

        db.add(EmailSendRecord(tenant_id=tenant_id, recipient_count=recipient_count, kind=kind))
        after_count = before.current + recipient_count
        await LimitService.record_limit_reached(db, tenant_id, before, after_count, actor_user_id=actor_user_id)
        await db.commit()

        logger.info(
            "email_quota_reserved",
            tenant_id=tenant_id,
            recipient_count=recipient_count,
            kind=kind,
            used=after_count,
            limit=before.limit,
        )
        return build_status(
            ResourceKind.EMAILS,
            after_count,
            before.limit,
            before.is_custom_limit,
            before.plan_name,
        )

    # Custom overrides

    @staticmethod
    async def get_custom_limit(db: AsyncSession, tenant_id: str) -> TenantLimit | None:
        result = await db.execute(select(TenantLimit).where(TenantLimit.tenant_id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def set_custom_limit(
        db: AsyncSession,
        tenant_id: str,
        data: CustomLimitUpdate,
        actor_user_id: str | None = None,
    ) -> TenantLimit:
        """
        Create or replace a tenant's override.

        Each resource whose effective ceiling moves gets a
        limit_increased or limit_decreased record. Lowering a ceiling
        below current usage blocks further creates but suspends nothing.
        """
        await lock_tenant(db, tenant_id)
        before = await LimitService.resolve_limits(db, tenant_id)

        override = await LimitService.get_custom_limit(db, tenant_id)
        if override is None:
            override = TenantLimit(tenant_id=tenant_id)
            db.add(override)

        override.max_shops = data.max_shops
        override.max_users = data.max_users
        override.monthly_email_limit = data.monthly_email_limit
        override.override_reason = data.override_reason
        override.expires_at = data.expires_at
        override.created_by_user_id = actor_user_id
        override.is_active = True
        await db.flush()

        after = await LimitService.resolve_limits(db, tenant_id)
        await LimitService._audit_ceiling_changes(db, tenant_id, before, after, actor_user_id, data.override_reason)

        await db.commit()
        logger.info("custom_limit_set", tenant_id=tenant_id, actor_user_id=actor_user_id)
        return override

    @staticmethod
    async def remove_custom_limit(
        db: AsyncSession,
        tenant_id: str,
        actor_user_id: str | None = None,
    ) -> bool:
        """Deactivate the override; returns False if there was none."""
        await lock_tenant(db, tenant_id)
        override = await LimitService.get_custom_limit(db, tenant_id)
        if override is None or not override.is_active:
            return False

        before = await LimitService.resolve_limits(db, tenant_id)
        override.is_active = False
        await db.flush()
        after = await LimitService.resolve_limits(db, tenant_id)

        await LimitService._audit_ceiling_changes(db, tenant_id, before, after, actor_user_id, "override removed")
        await db.commit()
        logger.info("custom_limit_removed", tenant_id=tenant_id, actor_user_id=actor_user_id)
        return True

    @staticmethod
    async def _audit_ceiling_changes(
        db: AsyncSession,
        tenant_id: str,
        before: ResolvedLimits,
        after: ResolvedLimits,
        actor_user_id: str | None,
        reason: str | None,
    ) -> None:
        for resource in ResourceKind:
            old_limit, _ = before.limit_for(resource)
            new_limit, is_custom = after.limit_for(resource)
            if old_limit == new_limit:
                continue

            # None is unlimited, the largest possible ceiling
            increased = new_limit is None or (old_limit is not None and new_limit > old_limit)
            current = await LimitService.current_usage(db, tenant_id, resource, after.subscription)
            await AuditService.record(
                db,
                tenant_id,
                LimitEventType.LIMIT_INCREASED if increased else LimitEventType.LIMIT_DECREASED,
                before_count=current,
                after_count=current,
                resource=resource,
                limit_value=new_limit,
                plan_id=after.plan.id,
                actor_user_id=actor_user_id,
                metadata={
                    "previous_limit": old_limit,
                    "is_custom_limit": is_custom,
                    "reason": reason,
                },
            )
