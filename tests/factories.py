"""
Factory pattern for creating test data.

Provides easy-to-use functions for creating test objects
with sensible defaults and optional overrides.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.security import create_access_token
from planguard.features.rbac.permissions import Role
from planguard.models import (
    Shop,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    Tenant,
    User,
)

fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


class TenantFactory:
    """Factory for creating test tenants."""

    @staticmethod
    async def create(
        db: AsyncSession,
        **kwargs: Any,
    ) -> Tenant:
        """
        Create a test tenant.

        Usage:
            tenant = await TenantFactory.create(db, name="Custom Corp")
        """
        defaults = {
            "name": fake.company(),
            "slug": f"{fake.slug()}-{fake.unique.random_int(1, 10_000_000)}",
            "is_active": True,
        }
        defaults.update(kwargs)

        tenant = Tenant(**defaults)
        db.add(tenant)
        await db.commit()
        await db.refresh(tenant)
        return tenant


class UserFactory:
    """Factory for creating test users."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant: Tenant,
        role: Role = Role.EMPLOYEE,
        **kwargs: Any,
    ) -> User:
        """
        Create a test user.

        Usage:
            user = await UserFactory.create(db, tenant, role=Role.MANAGER)
        """
        defaults = {
            "email": fake.unique.email(),
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "role": Role(role).value,
            "is_active": True,
            "is_suspended": False,
            "is_superuser": False,
            "tenant_id": tenant.id,
        }
        defaults.update(kwargs)

        user = User(**defaults)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def create_batch(
        db: AsyncSession,
        tenant: Tenant,
        count: int = 5,
        start: datetime | None = None,
        **kwargs: Any,
    ) -> list[User]:
        """Users with strictly increasing created_at, oldest first."""
        start = start or datetime.now(timezone.utc) - timedelta(days=30)
        return [
            await UserFactory.create(db, tenant, created_at=start + timedelta(minutes=i), **kwargs)
            for i in range(count)
        ]


class ShopFactory:
    """Factory for creating test shops."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant: Tenant,
        **kwargs: Any,
    ) -> Shop:
        defaults = {
            "name": f"{fake.city()} store",
            "city": fake.city(),
            "address": fake.street_address(),
            "is_active": True,
            "is_suspended": False,
            "tenant_id": tenant.id,
        }
        defaults.update(kwargs)

        shop = Shop(**defaults)
        db.add(shop)
        await db.commit()
        await db.refresh(shop)
        return shop

    @staticmethod
    async def create_batch(
        db: AsyncSession,
        tenant: Tenant,
        count: int = 5,
        start: datetime | None = None,
        **kwargs: Any,
    ) -> list[Shop]:
        """Shops with strictly increasing created_at, oldest first."""
        start = start or datetime.now(timezone.utc) - timedelta(days=30)
        return [
            await ShopFactory.create(db, tenant, created_at=start + timedelta(minutes=i), **kwargs)
            for i in range(count)
        ]


class PlanFactory:
    """Factory for creating catalog plans."""

    @staticmethod
    async def create(
        db: AsyncSession,
        **kwargs: Any,
    ) -> SubscriptionPlan:
        name = kwargs.pop("name", f"Plan {fake.unique.random_int(1, 1_000_000)}")
        defaults = {
            "name": name,
            "display_name": name,
            "description": fake.sentence(),
            "price": Decimal("0.00"),
            "yearly_price": None,
            "stripe_price_id": f"price_{name.lower().replace(' ', '_')}_monthly",
            "stripe_yearly_price_id": f"price_{name.lower().replace(' ', '_')}_yearly",
            "max_users": None,
            "max_shops": None,
            "monthly_email_limit": None,
            "allow_users_management": True,
            "allow_roles_management": True,
            "is_active": True,
        }
        defaults.update(kwargs)

        plan = SubscriptionPlan(**defaults)
        db.add(plan)
        await db.commit()
        await db.refresh(plan)
        return plan


class SubscriptionFactory:
    """Factory for creating tenant subscriptions."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant: Tenant,
        plan: SubscriptionPlan,
        **kwargs: Any,
    ) -> Subscription:
        """
        An active subscription on `plan`.

        Usage:
            sub = await SubscriptionFactory.create(db, tenant, pro_plan, stripe_subscription_id="sub_1")
        """
        defaults = {
            "tenant_id": tenant.id,
            "plan_id": plan.id,
            "status": SubscriptionStatus.ACTIVE.value,
            "is_yearly": False,
        }
        defaults.update(kwargs)

        subscription = Subscription(**defaults)
        db.add(subscription)
        await db.commit()
        await db.refresh(subscription)
        return subscription


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a user, as issued by the identity provider."""
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}
