"""
Shop business logic.

Shops are counted against the plan's max_shops. Creation checks the
ceiling under the tenant lock in the same transaction as the insert.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.tenant import get_tenant_scoped, get_tenant_scoped_query, lock_tenant
from planguard.features.audit.service import AuditService
from planguard.features.limits.service import LimitService
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.shop import Shop
from planguard.models.user import User
from planguard.schemas.shop import ShopCreate

logger = structlog.get_logger(__name__)


class ShopService:
    """Shop operations, scoped to the caller's tenant."""

    @staticmethod
    async def list_shops(
        db: AsyncSession,
        tenant_id: str,
        include_closed: bool = False,
    ) -> list[Shop]:
        query = get_tenant_scoped_query(Shop, tenant_id)
        if not include_closed:
            query = query.where(Shop.is_active.is_(True))
        result = await db.execute(query.order_by(Shop.created_at.asc(), Shop.id.asc()))
        return list(result.scalars().all())

    @staticmethod
    async def create_shop(db: AsyncSession, user: User, data: ShopCreate) -> Shop:
        """
        Create a shop if the tenant has room for one.

        Raises:
            LimitExceededError: the shop ceiling is reached
        """
        tenant_id = user.tenant_id
        status = await LimitService.ensure_can_add(
            db, tenant_id, ResourceKind.SHOPS, actor_user_id=user.id
        )

        shop = Shop(
            tenant_id=tenant_id,
            created_by_user_id=user.id,
            **data.model_dump(),
        )
        db.add(shop)
        await db.flush()

        after = status.current + 1
        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.SHOP_CREATED,
            before_count=status.current,
            after_count=after,
            resource=ResourceKind.SHOPS,
            limit_value=status.limit,
            actor_user_id=user.id,
            metadata={"shop_id": shop.id, "name": shop.name},
        )
        await LimitService.record_limit_reached(db, tenant_id, status, after, actor_user_id=user.id)
        await db.commit()
        await db.refresh(shop)

        logger.info("shop_created", tenant_id=tenant_id, shop_id=shop.id, used=after, limit=status.limit)
        return shop

    @staticmethod
    async def close_shop(db: AsyncSession, user: User, shop_id: str) -> Shop:
        """Close a shop; it stops counting against the plan."""
        tenant_id = user.tenant_id
        await lock_tenant(db, tenant_id)

        shop = await get_tenant_scoped(db, Shop, shop_id, tenant_id)
        if not shop.is_active:
            return shop

        before = await LimitService.current_usage(db, tenant_id, ResourceKind.SHOPS)
        shop.is_active = False
        await db.flush()
        after = await LimitService.current_usage(db, tenant_id, ResourceKind.SHOPS)

        await AuditService.record(
            db,
            tenant_id,
            LimitEventType.SHOP_DELETED,
            before_count=before,
            after_count=after,
            resource=ResourceKind.SHOPS,
            actor_user_id=user.id,
            metadata={"shop_id": shop.id, "name": shop.name},
        )
        await db.commit()

        logger.info("shop_closed", tenant_id=tenant_id, shop_id=shop.id)
        return shop
