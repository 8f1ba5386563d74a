"""
Seed the plan catalog (and optionally a demo tenant).

Usage:
    python scripts/seed_plans.py [--demo]
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from planguard.core.cache import cache_manager
from planguard.core.database import db_manager
from planguard.core.security import create_access_token
from planguard.features.rbac.permissions import Role
from planguard.features.subscriptions.catalog import PlanCatalog
from planguard.models import SubscriptionPlan, Tenant, User


PLANS = [
    {
        "name": "Free",
        "display_name": "Free",
        "description": "One shop, one seat",
        "price": Decimal("0"),
        "yearly_price": Decimal("0"),
        "max_users": 1,
        "max_shops": 1,
        "monthly_email_limit": 100,
        "allow_users_management": False,
        "allow_roles_management": False,
        "sort_order": 0,
    },
    {
        "name": "Plus",
        "display_name": "Plus",
        "description": "Small teams with a few locations",
        "price": Decimal("49.00"),
        "yearly_price": Decimal("470.40"),
        "stripe_price_id": "price_plus_monthly",
        "stripe_yearly_price_id": "price_plus_yearly",
        "max_users": 3,
        "max_shops": 3,
        "monthly_email_limit": 500,
        "allow_users_management": True,
        "allow_roles_management": True,
        "trial_days": 14,
        "sort_order": 1,
    },
    {
        "name": "Pro",
        "display_name": "Pro",
        "description": "Growing businesses",
        "price": Decimal("79.00"),
        "yearly_price": Decimal("758.40"),
        "stripe_price_id": "price_pro_monthly",
        "stripe_yearly_price_id": "price_pro_yearly",
        "max_users": 20,
        "max_shops": 10,
        "monthly_email_limit": 1000,
        "allow_users_management": True,
        "allow_roles_management": True,
        "trial_days": 14,
        "sort_order": 2,
    },
]


async def seed_plans(with_demo: bool = False):
    """Insert missing catalog plans and the optional demo tenant."""
    db_manager.init()
    await cache_manager.init()

    async for db in db_manager.get_session():
        for values in PLANS:
            result = await db.execute(
                select(SubscriptionPlan).where(SubscriptionPlan.name == values["name"])
            )
            if result.scalar_one_or_none():
                print(f"ℹ️  Plan already exists: {values['name']}")
                continue

            db.add(SubscriptionPlan(**values))
            print(f"✅ Created plan: {values['name']}")

        await db.commit()

        if with_demo:
            result = await db.execute(select(Tenant).where(Tenant.slug == "demo-bakery"))
            if result.scalar_one_or_none():
                print("ℹ️  Demo tenant already exists, skipping")
            else:
                tenant = Tenant(name="Demo Bakery", slug="demo-bakery", is_active=True)
                db.add(tenant)
                await db.flush()

                owner = User(
                    email="owner@demo-bakery.test",
                    first_name="Demo",
                    last_name="Owner",
                    role=Role.OWNER,
                    tenant_id=tenant.id,
                )
                db.add(owner)
                await db.commit()

                print(f"✅ Created tenant: {tenant.name} ({tenant.id})")
                print(f"✅ Created owner: {owner.email}")
                print(f"🔑 Bearer token: {create_access_token(subject=owner.id)}")

    dropped = await PlanCatalog.invalidate()
    print(f"🧹 Cleared {dropped} cached catalog entries")

    await cache_manager.close()
    await db_manager.close()


if __name__ == "__main__":
    asyncio.run(seed_plans(with_demo="--demo" in sys.argv[1:]))
