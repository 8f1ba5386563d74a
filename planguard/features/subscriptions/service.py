"""
Plan transition engine.

Moves a tenant between subscription plans and keeps its counted
resources within the new ceilings:

- a cheaper plan is applied at once and suspends the excess, most
  recently created first (Owners are never suspended);
- a pricier plan is only granted after the billing provider confirms
  payment, and restores suspended resources oldest first up to the
  ceiling;
- an equally priced plan is applied at once, restoring or suspending
  as the new ceilings require.

Every transition runs under the tenant row lock in a single
transaction, including its audit records. Billing calls that follow a
committed transition never roll it back.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from planguard.config import settings
from planguard.core.error_tracking import error_tracker
from planguard.core.exceptions import (
    BillingError,
    ConcurrentModificationError,
    InvalidStateError,
    NoActiveSubscriptionError,
    PaymentRequiredError,
    PlanNotFoundError,
    TechnicalFailureError,
)
from planguard.core.metrics import (
    plan_transitions_total,
    resources_restored_total,
    resources_suspended_total,
)
from planguard.core.tenant import lock_tenant
from planguard.features.audit.service import AuditService
from planguard.features.limits.service import LimitService, ResolvedLimits
from planguard.features.rbac.permissions import Role
from planguard.features.subscriptions.billing import BillingClient
from planguard.features.subscriptions.catalog import PlanCatalog
from planguard.models.base import utcnow
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.shop import Shop
from planguard.models.subscription import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from planguard.models.user import User
from planguard.schemas.subscription import (
    CheckoutResponse,
    SubscriptionRead,
    TenantPlan,
    TransitionDirection,
    TransitionOutcome,
)

logger = structlog.get_logger(__name__)

SUSPENDABLE = {
    ResourceKind.SHOPS: Shop,
    ResourceKind.USERS: User,
}

DIRECTION_EVENTS = {
    TransitionDirection.UPGRADE: LimitEventType.PLAN_UPGRADED,
    TransitionDirection.DOWNGRADE: LimitEventType.PLAN_DOWNGRADED,
    TransitionDirection.LATERAL: LimitEventType.PLAN_CHANGED,
}

# Provider subscription statuses mapped onto ours
PROVIDER_STATUSES = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


@dataclass
class ResourceChange:
    before: int
    after: int
    limit: int | None
    suspended: int = 0
    restored: int = 0


def _period_length(cycle: BillingCycle) -> timedelta:
    if cycle == BillingCycle.YEARLY:
        return timedelta(days=365)
    return timedelta(days=settings.subscription_period_days)


def _from_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class SubscriptionService:
    """Plan transitions, payment flow and scheduled changes."""

    # Suspension / restoration

    @staticmethod
    async def suspend_excess(
        db: AsyncSession,
        tenant_id: str,
        resource: ResourceKind,
        limit: int | None,
    ) -> int:
        """
        Suspend counted resources above `limit`, newest first.

        Returns the number suspended. Owners are skipped, so a tenant
        whose Owners alone exceed the seat ceiling stays over it.
        """
        if limit is None:
            return 0

        active = await LimitService.current_usage(db, tenant_id, resource)
        excess = active - limit
        if excess <= 0:
            return 0

        model = SUSPENDABLE[resource]
        query = select(model).where(
            model.tenant_id == tenant_id,
            model.is_active.is_(True),
            model.is_suspended.is_(False),
        )
        if resource == ResourceKind.USERS:
            query = query.where(User.role != Role.OWNER.value)
        query = query.order_by(model.created_at.desc(), model.id.desc()).limit(excess)

        rows = list((await db.execute(query)).scalars().all())
        now = utcnow()
        for row in rows:
            row.is_suspended = True
            row.suspended_at = now
        await db.flush()

        if len(rows) < excess:
            logger.warning(
                "suspension_shortfall",
                tenant_id=tenant_id,
                resource=resource.value,
                excess=excess,
                suspended=len(rows),
            )

        if rows:
            resources_suspended_total.labels(resource=resource.value).inc(len(rows))
        return len(rows)

    @staticmethod
    async def restore_within(
        db: AsyncSession,
        tenant_id: str,
        resource: ResourceKind,
        limit: int | None,
    ) -> int:
        """
        Lift suspensions, oldest first, without exceeding `limit`.

        Only suspended rows are touched, so calling this twice restores
        nothing the second time.
        """
        model = SUSPENDABLE[resource]
        query = (
            select(model)
            .where(
                model.tenant_id == tenant_id,
                model.is_active.is_(True),
                model.is_suspended.is_(True),
            )
            .order_by(model.created_at.asc(), model.id.asc())
        )

        if limit is not None:
            active = await LimitService.current_usage(db, tenant_id, resource)
            capacity = limit - active
            if capacity <= 0:
                return 0
            query = query.limit(capacity)

        rows = list((await db.execute(query)).scalars().all())
        for row in rows:
            row.is_suspended = False
            row.suspended_at = None
        await db.flush()

        if rows:
            resources_restored_total.labels(resource=resource.value).inc(len(rows))
        return len(rows)

    @staticmethod
    async def _enforce_ceilings(
        db: AsyncSession,
        tenant_id: str,
        allow_restore: bool,
    ) -> tuple[ResolvedLimits, dict[ResourceKind, ResourceChange]]:
        await db.flush()
        resolved = await LimitService.resolve_limits(db, tenant_id)
        changes: dict[ResourceKind, ResourceChange] = {}

        for resource in SUSPENDABLE:
            limit, _ = resolved.limit_for(resource)
            before = await LimitService.current_usage(db, tenant_id, resource)
            restored = 0
            if allow_restore:
                restored = await SubscriptionService.restore_within(db, tenant_id, resource, limit)
            suspended = await SubscriptionService.suspend_excess(db, tenant_id, resource, limit)
            after = await LimitService.current_usage(db, tenant_id, resource)
            changes[resource] = ResourceChange(
                before=before,
                after=after,
                limit=limit,
                suspended=suspended,
                restored=restored,
            )

        return resolved, changes

    @staticmethod
    async def _commit_transition(
        db: AsyncSession,
        tenant_id: str,
        direction: TransitionDirection,
        event_type: LimitEventType,
        previous_plan_id: str | None,
        actor_user_id: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        """Re-apply ceilings, audit each resource and commit."""
        try:
            resolved, changes = await SubscriptionService._enforce_ceilings(
                db,
                tenant_id,
                allow_restore=direction != TransitionDirection.DOWNGRADE,
            )

            for resource, change in changes.items():
                await AuditService.record(
                    db,
                    tenant_id,
                    event_type,
                    before_count=change.before,
                    after_count=change.after,
                    resource=resource,
                    limit_value=change.limit,
                    plan_id=resolved.plan.id,
                    actor_user_id=actor_user_id,
                    metadata={
                        "direction": direction.value,
                        "previous_plan_id": previous_plan_id,
                        "suspended": change.suspended,
                        "restored": change.restored,
                        **(metadata or {}),
                    },
                )

            await db.commit()
        except StaleDataError as exc:
            await db.rollback()
            logger.warning("subscription_concurrent_modification", tenant_id=tenant_id)
            raise ConcurrentModificationError(
                "Subscription was modified by another request; retry",
                details={"tenant_id": tenant_id},
            ) from exc
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("plan_transition_failed", tenant_id=tenant_id, error=str(exc))
            error_tracker.capture_exception(exc, context={"tenant_id": tenant_id})
            raise TechnicalFailureError(
                "Plan transition could not be stored",
                details={"tenant_id": tenant_id},
            ) from exc

        plan_transitions_total.labels(kind=direction.value).inc()

        shops = changes[ResourceKind.SHOPS]
        users = changes[ResourceKind.USERS]
        logger.info(
            "plan_transition_applied",
            tenant_id=tenant_id,
            direction=direction.value,
            plan_name=resolved.plan.name,
            suspended_shops=shops.suspended,
            suspended_users=users.suspended,
            restored_shops=shops.restored,
            restored_users=users.restored,
        )

        return TransitionOutcome(
            direction=direction,
            previous_plan_id=previous_plan_id,
            plan_id=resolved.plan.id,
            plan_name=resolved.plan.name,
            suspended_shops=shops.suspended,
            suspended_users=users.suspended,
            restored_shops=shops.restored,
            restored_users=users.restored,
        )

    # Plan selection

    @staticmethod
    async def _get_active_plan(db: AsyncSession, plan_id: str) -> SubscriptionPlan:
        plan = await PlanCatalog.get_plan(db, plan_id)
        if not plan.is_active:
            raise PlanNotFoundError("Subscription plan is not available", details={"plan_id": plan_id})
        return plan

    @staticmethod
    async def _current_monthly_price(db: AsyncSession, subscription: Subscription | None) -> Decimal:
        """Per-month price of the live plan in the cycle it is billed; no live subscription costs 0."""
        if subscription is None or not subscription.is_live:
            return Decimal("0")
        plan = await PlanCatalog.get_plan(db, subscription.plan_id)
        return plan.monthly_price_for(subscription.billing_cycle)

    @staticmethod
    def _requires_payment(
        subscription: Subscription | None,
        current_price: Decimal,
        target: SubscriptionPlan,
        cycle: BillingCycle,
    ) -> bool:
        if target.monthly_price_for(cycle) > current_price:
            return True
        # A paid plan in another billing cycle is a new provider subscription
        return (
            subscription is not None
            and subscription.is_live
            and subscription.billing_cycle != cycle
            and target.price_for(cycle) > 0
        )

    @staticmethod
    async def transition_plan(
        db: AsyncSession,
        tenant_id: str,
        target_plan_id: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        actor_user_id: str | None = None,
        billing: BillingClient | None = None,
    ) -> TransitionOutcome:
        """
        Switch a tenant to a plan that needs no new payment.

        Raises:
            PlanNotFoundError: unknown or inactive plan
            PaymentRequiredError: the plan costs more per month than the
                current one, or changes the billing cycle of a paid plan
            InvalidStateError: a checkout is awaiting payment
        """
        cycle = BillingCycle(billing_cycle)
        await lock_tenant(db, tenant_id)

        target = await SubscriptionService._get_active_plan(db, target_plan_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)

        if subscription is not None and subscription.pending_checkout_id is not None:
            raise InvalidStateError(
                "A checkout is awaiting payment; wait for it to complete or expire",
                details={
                    "tenant_id": tenant_id,
                    "pending_plan_id": subscription.pending_plan_id,
                    "checkout_id": subscription.pending_checkout_id,
                },
            )

        current_price = await SubscriptionService._current_monthly_price(db, subscription)
        target_price = target.monthly_price_for(cycle)

        if SubscriptionService._requires_payment(subscription, current_price, target, cycle):
            raise PaymentRequiredError(
                f"Plan {target.name} requires payment; start a checkout",
                details={
                    "plan_id": target.id,
                    "plan_name": target.name,
                    "price": str(target.price_for(cycle)),
                    "monthly_price": str(target_price),
                    "current_price": str(current_price),
                    "billing_cycle": cycle.value,
                },
            )

        direction = (
            TransitionDirection.DOWNGRADE
            if target_price < current_price
            else TransitionDirection.LATERAL
        )

        outcome = await SubscriptionService._apply_plan(
            db,
            tenant_id,
            subscription,
            target,
            cycle,
            direction,
            actor_user_id,
        )

        if direction == TransitionDirection.DOWNGRADE and target_price == 0:
            outcome.billing_warning = await SubscriptionService._cancel_provider_at_period_end(
                db, tenant_id, billing
            )

        return outcome

    @staticmethod
    async def _apply_plan(
        db: AsyncSession,
        tenant_id: str,
        subscription: Subscription | None,
        target: SubscriptionPlan,
        cycle: BillingCycle,
        direction: TransitionDirection,
        actor_user_id: str | None,
        period: tuple[datetime, datetime] | None = None,
    ) -> TransitionOutcome:
        previous_plan_id = (
            subscription.plan_id if subscription is not None and subscription.is_live else None
        )

        if subscription is None:
            subscription = Subscription(
                tenant_id=tenant_id,
                plan_id=target.id,
                status=SubscriptionStatus.ACTIVE.value,
            )
            db.add(subscription)
        elif subscription.plan_id != target.id:
            subscription.previous_plan_id = subscription.plan_id

        subscription.plan_id = target.id
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.is_yearly = cycle == BillingCycle.YEARLY
        subscription.downgrade_target_plan_id = None
        subscription.downgrade_scheduled_at = None
        subscription.pending_plan_id = None
        subscription.pending_checkout_id = None

        if target.price_for(cycle) == 0:
            # Free usage is metered per calendar month
            subscription.current_period_start = None
            subscription.current_period_end = None
        elif period is not None:
            subscription.current_period_start, subscription.current_period_end = period

        return await SubscriptionService._commit_transition(
            db,
            tenant_id,
            direction,
            DIRECTION_EVENTS[direction],
            previous_plan_id,
            actor_user_id,
            metadata={"billing_cycle": cycle.value},
        )

    @staticmethod
    async def _cancel_provider_at_period_end(
        db: AsyncSession,
        tenant_id: str,
        billing: BillingClient | None,
    ) -> str | None:
        """
        After a committed move to a free plan, stop provider renewals.

        Returns a warning message when the provider call fails; the
        committed transition stands either way.
        """
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        if subscription is None or not subscription.stripe_subscription_id or billing is None:
            return None

        try:
            await billing.set_cancel_at_period_end(subscription.stripe_subscription_id, True)
        except BillingError as exc:
            logger.warning(
                "billing_cancel_after_downgrade_failed",
                tenant_id=tenant_id,
                error=exc.message,
            )
            error_tracker.capture_exception(exc, context={"tenant_id": tenant_id})
            return f"Plan changed, but the billing provider could not be updated: {exc.message}"

        subscription.cancel_at_period_end = True
        await db.commit()
        return None

    # Payment flow

    @staticmethod
    async def start_checkout(
        db: AsyncSession,
        tenant_id: str,
        target_plan_id: str,
        billing: BillingClient,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        actor_user_id: str | None = None,
    ) -> CheckoutResponse:
        """
        Open a provider checkout for a plan change that needs payment.

        The plan is only recorded as pending; confirm_payment grants it.
        """
        cycle = BillingCycle(billing_cycle)
        await lock_tenant(db, tenant_id)

        target = await SubscriptionService._get_active_plan(db, target_plan_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        current_price = await SubscriptionService._current_monthly_price(db, subscription)

        if not SubscriptionService._requires_payment(subscription, current_price, target, cycle):
            raise InvalidStateError(
                "This plan change does not require payment",
                details={"plan_id": target.id, "current_price": str(current_price)},
            )

        price_id = target.stripe_yearly_price_id if cycle == BillingCycle.YEARLY else target.stripe_price_id
        if not price_id:
            raise InvalidStateError(
                f"Plan {target.name} cannot be purchased with {cycle.value} billing",
                details={"plan_id": target.id, "billing_cycle": cycle.value},
            )

        session = await billing.create_checkout_session(
            price_id=price_id,
            tenant_id=tenant_id,
            plan_id=target.id,
            billing_cycle=cycle.value,
            customer_id=subscription.stripe_customer_id if subscription else None,
        )

        if subscription is None:
            subscription = Subscription(
                tenant_id=tenant_id,
                plan_id=target.id,
                status=SubscriptionStatus.PENDING_PAYMENT.value,
                is_yearly=cycle == BillingCycle.YEARLY,
            )
            db.add(subscription)
        elif not subscription.is_live:
            subscription.status = SubscriptionStatus.PENDING_PAYMENT.value

        subscription.pending_plan_id = target.id
        subscription.pending_checkout_id = session.id
        await db.commit()

        logger.info(
            "checkout_started",
            tenant_id=tenant_id,
            plan_name=target.name,
            checkout_id=session.id,
            actor_user_id=actor_user_id,
        )
        return CheckoutResponse(
            checkout_id=session.id,
            url=session.url,
            plan_id=target.id,
            billing_cycle=cycle,
        )

    @staticmethod
    async def confirm_payment(
        db: AsyncSession,
        tenant_id: str,
        plan_id: str,
        checkout_id: str | None = None,
        customer_id: str | None = None,
        provider_subscription_id: str | None = None,
        billing_cycle: BillingCycle | str | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> TransitionOutcome:
        """
        Grant a paid plan once the provider reports the checkout as paid.

        Raises:
            InvalidStateError: no pending checkout for this plan. A
                provider subscription created by the payment is still
                stored, so it can be found and cancelled.
        """
        await lock_tenant(db, tenant_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)

        if (
            subscription is None
            or subscription.pending_plan_id != plan_id
            or (
                checkout_id is not None
                and subscription.pending_checkout_id is not None
                and subscription.pending_checkout_id != checkout_id
            )
        ):
            if (
                subscription is not None
                and provider_subscription_id
                and subscription.stripe_subscription_id != provider_subscription_id
            ):
                logger.error(
                    "paid_checkout_not_applied",
                    tenant_id=tenant_id,
                    plan_id=plan_id,
                    checkout_id=checkout_id,
                    provider_subscription_id=provider_subscription_id,
                    replaced_subscription_id=subscription.stripe_subscription_id,
                )
                subscription.stripe_subscription_id = provider_subscription_id
                if customer_id:
                    subscription.stripe_customer_id = customer_id
                await db.commit()
            raise InvalidStateError(
                "No pending checkout matches this payment",
                details={"tenant_id": tenant_id, "plan_id": plan_id, "checkout_id": checkout_id},
            )

        target = await PlanCatalog.get_plan(db, plan_id)
        cycle = BillingCycle(billing_cycle) if billing_cycle else subscription.billing_cycle

        if customer_id:
            subscription.stripe_customer_id = customer_id
        if provider_subscription_id:
            subscription.stripe_subscription_id = provider_subscription_id
        subscription.cancel_at_period_end = False

        start = period_start or utcnow()
        end = period_end or start + _period_length(cycle)

        return await SubscriptionService._apply_plan(
            db,
            tenant_id,
            subscription,
            target,
            cycle,
            TransitionDirection.UPGRADE,
            actor_user_id=None,
            period=(start, end),
        )

    @staticmethod
    async def expire_checkout(db: AsyncSession, tenant_id: str, checkout_id: str) -> bool:
        """
        Drop a pending checkout the provider reports as expired.

        Returns False when the checkout is not the tenant's pending one.
        """
        await lock_tenant(db, tenant_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        if subscription is None or subscription.pending_checkout_id != checkout_id:
            await db.rollback()
            return False

        subscription.pending_plan_id = None
        subscription.pending_checkout_id = None
        if subscription.status == SubscriptionStatus.PENDING_PAYMENT:
            subscription.status = SubscriptionStatus.CANCELLED.value
        await db.commit()

        logger.info("checkout_expired", tenant_id=tenant_id, checkout_id=checkout_id)
        return True

    # Scheduled downgrades

    @staticmethod
    async def schedule_downgrade(
        db: AsyncSession,
        tenant_id: str,
        target_plan_id: str,
        actor_user_id: str | None = None,
    ) -> Subscription:
        """Queue a cheaper plan for the end of the current period."""
        await lock_tenant(db, tenant_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        if subscription is None or not subscription.is_live:
            raise NoActiveSubscriptionError(
                "There is no active subscription to downgrade",
                details={"tenant_id": tenant_id},
            )

        target = await SubscriptionService._get_active_plan(db, target_plan_id)
        cycle = subscription.billing_cycle
        current_price = await SubscriptionService._current_monthly_price(db, subscription)

        if target.monthly_price_for(cycle) >= current_price:
            raise InvalidStateError(
                "Only a cheaper plan can be scheduled as a downgrade",
                details={"plan_id": target.id, "current_price": str(current_price)},
            )

        subscription.downgrade_target_plan_id = target.id
        subscription.downgrade_scheduled_at = subscription.current_period_end or utcnow()
        await db.flush()

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.DOWNGRADE_SCHEDULED,
            plan_id=subscription.plan_id,
            actor_user_id=actor_user_id,
            metadata={
                "target_plan_id": target.id,
                "scheduled_at": subscription.downgrade_scheduled_at.isoformat(),
            },
        )
        await db.commit()

        logger.info("downgrade_scheduled", tenant_id=tenant_id, target_plan=target.name)
        return subscription

    @staticmethod
    async def cancel_scheduled_downgrade(
        db: AsyncSession,
        tenant_id: str,
        actor_user_id: str | None = None,
    ) -> Subscription:
        await lock_tenant(db, tenant_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        if subscription is None or subscription.downgrade_target_plan_id is None:
            raise NoActiveSubscriptionError(
                "No downgrade is scheduled",
                details={"tenant_id": tenant_id},
            )

        target_plan_id = subscription.downgrade_target_plan_id
        subscription.downgrade_target_plan_id = None
        subscription.downgrade_scheduled_at = None
        await db.flush()

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.DOWNGRADE_CANCELLED,
            plan_id=subscription.plan_id,
            actor_user_id=actor_user_id,
            metadata={"target_plan_id": target_plan_id},
        )
        await db.commit()

        logger.info("downgrade_cancelled", tenant_id=tenant_id)
        return subscription

    @staticmethod
    async def apply_due_downgrades(
        db: AsyncSession,
        billing: BillingClient | None = None,
        now: datetime | None = None,
    ) -> int:
        """Apply every scheduled downgrade whose time has come."""
        now = now or utcnow()
        result = await db.execute(
            select(
                Subscription.tenant_id,
                Subscription.downgrade_target_plan_id,
                Subscription.is_yearly,
            ).where(
                Subscription.downgrade_target_plan_id.is_not(None),
                Subscription.downgrade_scheduled_at <= now,
            )
        )
        due = result.all()
        await db.rollback()

        applied = 0
        for tenant_id, target_plan_id, is_yearly in due:
            cycle = BillingCycle.YEARLY if is_yearly else BillingCycle.MONTHLY
            try:
                await SubscriptionService.transition_plan(
                    db,
                    tenant_id,
                    target_plan_id,
                    billing_cycle=cycle,
                    billing=billing,
                )
            except (PaymentRequiredError, PlanNotFoundError, InvalidStateError, TechnicalFailureError) as exc:
                await db.rollback()
                logger.error(
                    "scheduled_downgrade_failed",
                    tenant_id=tenant_id,
                    target_plan_id=target_plan_id,
                    error=exc.message,
                )
                continue
            applied += 1

        logger.info("scheduled_downgrades_applied", due=len(due), applied=applied)
        return applied

    # Cancellation

    @staticmethod
    async def _get_provider_subscription(db: AsyncSession, tenant_id: str) -> Subscription:
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        if subscription is None or not subscription.is_live or not subscription.stripe_subscription_id:
            raise NoActiveSubscriptionError(
                "There is no paid subscription to act on",
                details={"tenant_id": tenant_id},
            )
        return subscription

    @staticmethod
    async def _end_subscription(
        db: AsyncSession,
        tenant_id: str,
        subscription: Subscription,
        actor_user_id: str | None,
        reason: str,
    ) -> TransitionOutcome:
        """
        Mark cancelled and hold the tenant to the default plan.

        An open checkout stays pending; its payment still grants the plan.
        """
        previous_plan_id = subscription.plan_id
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancel_at_period_end = False
        subscription.downgrade_target_plan_id = None
        subscription.downgrade_scheduled_at = None

        return await SubscriptionService._commit_transition(
            db,
            tenant_id,
            TransitionDirection.DOWNGRADE,
            LimitEventType.PLAN_DOWNGRADED,
            previous_plan_id,
            actor_user_id,
            metadata={"reason": reason},
        )

    @staticmethod
    async def cancel_subscription(
        db: AsyncSession,
        tenant_id: str,
        billing: BillingClient,
        at_period_end: bool = True,
        actor_user_id: str | None = None,
    ) -> Subscription:
        """
        Cancel the paid subscription with the provider.

        At period end the plan stays in force until the provider reports
        the cancellation; otherwise the tenant drops to the default plan
        now. Provider failures propagate as BillingError.
        """
        await lock_tenant(db, tenant_id)
        subscription = await SubscriptionService._get_provider_subscription(db, tenant_id)

        if at_period_end:
            await billing.set_cancel_at_period_end(subscription.stripe_subscription_id, True)
            subscription.cancel_at_period_end = True
            await db.commit()
            logger.info("subscription_cancel_scheduled", tenant_id=tenant_id)
            return subscription

        await billing.cancel_subscription(subscription.stripe_subscription_id)
        await SubscriptionService._end_subscription(
            db, tenant_id, subscription, actor_user_id, reason="cancelled_by_tenant"
        )
        return subscription

    @staticmethod
    async def reactivate_subscription(
        db: AsyncSession,
        tenant_id: str,
        billing: BillingClient,
        actor_user_id: str | None = None,
    ) -> Subscription:
        """Undo a pending cancel-at-period-end."""
        await lock_tenant(db, tenant_id)
        subscription = await SubscriptionService._get_provider_subscription(db, tenant_id)

        if not subscription.cancel_at_period_end:
            raise InvalidStateError(
                "Subscription is not scheduled for cancellation",
                details={"tenant_id": tenant_id},
            )

        await billing.set_cancel_at_period_end(subscription.stripe_subscription_id, False)
        subscription.cancel_at_period_end = False
        await db.commit()

        logger.info("subscription_reactivated", tenant_id=tenant_id, actor_user_id=actor_user_id)
        return subscription

    @staticmethod
    async def mark_provider_status(
        db: AsyncSession,
        provider_subscription_id: str,
        status: SubscriptionStatus,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        cancel_at_period_end: bool | None = None,
    ) -> TransitionOutcome | None:
        """
        Mirror a provider-side status change.

        Cancellation drops the tenant to the default plan (suspending
        any excess); a return to active restores within the ceiling.
        """
        status = SubscriptionStatus(status)
        result = await db.execute(
            select(Subscription.tenant_id).where(
                Subscription.stripe_subscription_id == provider_subscription_id
            )
        )
        tenant_id = result.scalar_one_or_none()
        if tenant_id is None:
            logger.warning("provider_subscription_unknown", provider_subscription_id=provider_subscription_id)
            return None

        await lock_tenant(db, tenant_id)
        subscription = await PlanCatalog.get_subscription(db, tenant_id)
        await db.refresh(subscription)

        if period_start is not None and period_end is not None:
            subscription.current_period_start = period_start
            subscription.current_period_end = period_end
        if cancel_at_period_end is not None:
            subscription.cancel_at_period_end = cancel_at_period_end

        if status == SubscriptionStatus.CANCELLED:
            if subscription.status == SubscriptionStatus.CANCELLED:
                await db.commit()
                return None
            return await SubscriptionService._end_subscription(
                db, tenant_id, subscription, None, reason="cancelled_by_provider"
            )

        if subscription.status == SubscriptionStatus.PENDING_PAYMENT:
            # Plan is granted by the checkout completion event only
            await db.commit()
            return None

        was_live = subscription.is_live
        subscription.status = status.value

        if status == SubscriptionStatus.PAST_DUE or was_live:
            await db.commit()
            logger.info("subscription_status_updated", tenant_id=tenant_id, status=status.value)
            return None

        return await SubscriptionService._commit_transition(
            db,
            tenant_id,
            TransitionDirection.UPGRADE,
            LimitEventType.PLAN_UPGRADED,
            None,
            None,
            metadata={"reason": "reactivated_by_provider"},
        )

    @staticmethod
    async def restore_suspended(
        db: AsyncSession,
        tenant_id: str,
        actor_user_id: str | None = None,
    ) -> TransitionOutcome:
        """Re-apply the current ceilings: restore what fits, suspend what does not."""
        await lock_tenant(db, tenant_id)
        return await SubscriptionService._commit_transition(
            db,
            tenant_id,
            TransitionDirection.LATERAL,
            LimitEventType.RESOURCES_RESTORED,
            None,
            actor_user_id,
        )

    # Webhooks

    @staticmethod
    async def handle_billing_event(db: AsyncSession, event: dict[str, Any]) -> bool:
        """
        Dispatch a verified provider event.

        Returns False for event types this service does not act on.
        """
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "checkout.session.completed":
            metadata = obj.get("metadata") or {}
            tenant_id = metadata.get("tenant_id") or obj.get("client_reference_id")
            plan_id = metadata.get("plan_id")
            if not tenant_id or not plan_id:
                logger.warning("checkout_event_missing_metadata", checkout_id=obj.get("id"))
                return False

            try:
                await SubscriptionService.confirm_payment(
                    db,
                    tenant_id,
                    plan_id,
                    checkout_id=obj.get("id"),
                    customer_id=obj.get("customer"),
                    provider_subscription_id=obj.get("subscription"),
                    billing_cycle=metadata.get("billing_cycle"),
                )
            except InvalidStateError:
                await db.rollback()
                subscription = await PlanCatalog.get_subscription(db, tenant_id)
                if subscription is not None and subscription.is_live and subscription.plan_id == plan_id:
                    logger.info("checkout_event_duplicate", tenant_id=tenant_id, plan_id=plan_id)
                    return True
                raise
            return True

        if event_type == "checkout.session.expired":
            tenant_id = (obj.get("metadata") or {}).get("tenant_id") or obj.get("client_reference_id")
            if not tenant_id or not obj.get("id"):
                return False
            return await SubscriptionService.expire_checkout(db, tenant_id, obj["id"])

        if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
            provider_status = "canceled" if event_type.endswith("deleted") else obj.get("status", "")
            status = PROVIDER_STATUSES.get(provider_status)
            if status is None or not obj.get("id"):
                logger.info("provider_status_ignored", provider_status=provider_status)
                return False
            await SubscriptionService.mark_provider_status(
                db,
                obj["id"],
                status,
                period_start=_from_timestamp(obj.get("current_period_start")),
                period_end=_from_timestamp(obj.get("current_period_end")),
                cancel_at_period_end=obj.get("cancel_at_period_end"),
            )
            return True

        if event_type == "invoice.payment_failed" and obj.get("subscription"):
            await SubscriptionService.mark_provider_status(
                db,
                obj["subscription"],
                SubscriptionStatus.PAST_DUE,
            )
            return True

        logger.debug("billing_event_ignored", event_type=event_type)
        return False

    # Reads

    @staticmethod
    async def get_tenant_plan(db: AsyncSession, tenant_id: str) -> TenantPlan:
        resolved = await LimitService.resolve_limits(db, tenant_id)
        limits = [
            await LimitService.check_limit(db, tenant_id, resource, resolved)
            for resource in ResourceKind
        ]
        plan = resolved.plan
        return TenantPlan(
            plan_id=plan.id,
            plan_name=plan.name,
            display_name=plan.display_name,
            is_default_plan=resolved.subscription is None or not resolved.subscription.is_live,
            allow_users_management=plan.allow_users_management,
            allow_roles_management=plan.allow_roles_management,
            subscription=(
                SubscriptionRead.model_validate(resolved.subscription)
                if resolved.subscription is not None
                else None
            ),
            limits=limits,
        )
