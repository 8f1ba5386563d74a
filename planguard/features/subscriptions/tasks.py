"""
Background tasks for subscription maintenance.

Tasks run in Celery workers, separate from the API server.
"""

import asyncio

import structlog

from planguard.core.celery_app import celery_app
from planguard.core.database import db_manager
from planguard.features.subscriptions.billing import get_billing_client
from planguard.features.subscriptions.service import SubscriptionService

logger = structlog.get_logger(__name__)


@celery_app.task(
    bind=True,
    name="planguard.features.subscriptions.tasks.apply_scheduled_downgrades",
)
def apply_scheduled_downgrades(self) -> dict:
    """
    Apply every downgrade whose scheduled time has passed.

    Each tenant is handled in its own transaction, so one failure does
    not hold back the rest of the sweep.
    """
    logger.info("downgrade_sweep_started", task_id=self.request.id)

    db_manager.init()
    applied = asyncio.run(_apply_scheduled_downgrades_async())

    logger.info("downgrade_sweep_finished", task_id=self.request.id, applied=applied)
    return {"applied": applied}


async def _apply_scheduled_downgrades_async() -> int:
    applied = 0
    try:
        async for db in db_manager.get_session():
            applied = await SubscriptionService.apply_due_downgrades(db, billing=get_billing_client())
        return applied
    finally:
        await db_manager.close()
