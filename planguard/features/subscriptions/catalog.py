"""
Subscription plan catalog and effective-plan resolution.

Plan rows are immutable once referenced, so lookups by id are cached in
Redis. The cache is optional; every path falls back to the database.
"""

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.config import settings
from planguard.core.cache import cache_manager
from planguard.core.exceptions import PlanFeatureUnavailable, PlanNotFoundError
from planguard.models.limit_event import ResourceKind
from planguard.models.subscription import (
    BillingCycle,
    LIVE_STATUSES,
    Subscription,
    SubscriptionPlan,
)
from planguard.schemas.subscription import PlanRead

logger = structlog.get_logger(__name__)

CACHE_NAMESPACE = "plans"


@dataclass(frozen=True)
class EffectivePlan:
    """Snapshot of the plan whose ceilings currently apply to a tenant."""

    id: str | None
    name: str
    display_name: str
    price: Decimal
    yearly_price: Decimal | None
    max_users: int | None
    max_shops: int | None
    monthly_email_limit: int | None
    allow_users_management: bool
    allow_roles_management: bool
    is_builtin: bool = False

    @classmethod
    def from_model(cls, plan: SubscriptionPlan) -> "EffectivePlan":
        return cls(
            id=plan.id,
            name=plan.name,
            display_name=plan.display_name,
            price=Decimal(plan.price),
            yearly_price=Decimal(plan.yearly_price) if plan.yearly_price is not None else None,
            max_users=plan.max_users,
            max_shops=plan.max_shops,
            monthly_email_limit=plan.monthly_email_limit,
            allow_users_management=plan.allow_users_management,
            allow_roles_management=plan.allow_roles_management,
        )

    @classmethod
    def builtin_free(cls) -> "EffectivePlan":
        """Used only when the catalog has no default plan row."""
        return cls(
            id=None,
            name=settings.default_plan_name,
            display_name=settings.default_plan_name,
            price=Decimal("0"),
            yearly_price=Decimal("0"),
            max_users=settings.free_plan_max_users,
            max_shops=settings.free_plan_max_shops,
            monthly_email_limit=settings.free_plan_monthly_email_limit,
            allow_users_management=False,
            allow_roles_management=False,
            is_builtin=True,
        )

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "EffectivePlan":
        data = dict(data)
        data["price"] = Decimal(data["price"])
        if data.get("yearly_price") is not None:
            data["yearly_price"] = Decimal(data["yearly_price"])
        return cls(**data)

    def to_cache(self) -> dict[str, Any]:
        return asdict(self)

    def limit_for(self, resource: ResourceKind | str) -> int | None:
        resource = ResourceKind(resource)
        if resource == ResourceKind.USERS:
            return self.max_users
        if resource == ResourceKind.SHOPS:
            return self.max_shops
        return self.monthly_email_limit

    def price_for(self, cycle: BillingCycle | str) -> Decimal:
        if cycle == BillingCycle.YEARLY:
            return self.yearly_price if self.yearly_price is not None else self.price * 12
        return self.price


class PlanCatalog:
    """Read access to subscription plans."""

    @staticmethod
    async def get_plan(db: AsyncSession, plan_id: str) -> SubscriptionPlan:
        """
        Load a plan row.

        Raises:
            PlanNotFoundError: unknown id
        """
        plan = await db.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise PlanNotFoundError("Subscription plan not found", details={"plan_id": plan_id})
        return plan

    @staticmethod
    async def get_plan_by_name(db: AsyncSession, name: str) -> SubscriptionPlan | None:
        result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.name == name))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_plans(db: AsyncSession) -> list[dict[str, Any]]:
        """Active plans, cheapest first, as JSON-ready dicts."""
        cached = await cache_manager.get(CACHE_NAMESPACE, "catalog")
        if cached is not None:
            return cached

        result = await db.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price, SubscriptionPlan.sort_order)
        )
        plans = [
            PlanRead.model_validate(plan).model_dump(mode="json")
            for plan in result.scalars().all()
        ]
        await cache_manager.set(CACHE_NAMESPACE, "catalog", plans, ttl=settings.cache_plan_ttl)
        return plans

    @staticmethod
    async def invalidate() -> int:
        """Drop every cached plan entry (after catalog edits)."""
        return await cache_manager.invalidate_namespace(CACHE_NAMESPACE)

    @staticmethod
    async def snapshot(db: AsyncSession, plan_id: str) -> EffectivePlan:
        """Cached EffectivePlan for a plan id."""
        cached = await cache_manager.get(CACHE_NAMESPACE, f"id:{plan_id}")
        if cached is not None:
            return EffectivePlan.from_cache(cached)

        plan = await PlanCatalog.get_plan(db, plan_id)
        snapshot = EffectivePlan.from_model(plan)
        await cache_manager.set(
            CACHE_NAMESPACE,
            f"id:{plan_id}",
            snapshot.to_cache(),
            ttl=settings.cache_plan_ttl,
        )
        return snapshot

    @staticmethod
    async def default_plan(db: AsyncSession) -> EffectivePlan:
        """The plan a tenant without a live subscription is held to."""
        plan = await PlanCatalog.get_plan_by_name(db, settings.default_plan_name)
        if plan is None:
            logger.warning("default_plan_missing", plan_name=settings.default_plan_name)
            return EffectivePlan.builtin_free()
        return EffectivePlan.from_model(plan)

    @staticmethod
    async def get_subscription(db: AsyncSession, tenant_id: str) -> Subscription | None:
        result = await db.execute(select(Subscription).where(Subscription.tenant_id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def effective_plan(
        db: AsyncSession,
        tenant_id: str,
    ) -> tuple[EffectivePlan, Subscription | None]:
        """
        Resolve the plan whose ceilings apply to a tenant.

        The subscribed plan applies while the subscription is active,
        trialing or past due; otherwise the default plan does. Never
        returns no plan.
        """
        subscription = await PlanCatalog.get_subscription(db, tenant_id)

        if subscription is not None and subscription.status in LIVE_STATUSES:
            return await PlanCatalog.snapshot(db, subscription.plan_id), subscription

        return await PlanCatalog.default_plan(db), subscription

    @staticmethod
    async def ensure_feature(db: AsyncSession, tenant_id: str, feature: str) -> None:
        """
        Raise PlanFeatureUnavailable unless the effective plan enables
        `feature` (allow_users_management or allow_roles_management).
        """
        plan, _ = await PlanCatalog.effective_plan(db, tenant_id)
        if not getattr(plan, feature):
            raise PlanFeatureUnavailable(
                f"Your {plan.display_name} plan does not include this feature",
                details={"feature": feature, "plan_name": plan.name},
            )
