"""
Audit logger for limit and plan events.

Records are written inside a SAVEPOINT so a failing insert rolls back
only the audit row. The triggering operation never fails because its
audit record could not be stored.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.error_tracking import error_tracker
from planguard.core.logging_config import AUDIT_TECHNICAL_LOGGER
from planguard.core.metrics import audit_write_failures_total
from planguard.models.limit_event import LimitEvent, LimitEventType, ResourceKind

logger = structlog.get_logger(__name__)
technical_logger = structlog.get_logger(AUDIT_TECHNICAL_LOGGER)


def _value(item: Any) -> Any:
    return getattr(item, "value", item)


class AuditService:
    """Append-only writer and reader for LimitEvent rows."""

    @staticmethod
    async def record(
        db: AsyncSession,
        tenant_id: str,
        event_type: LimitEventType,
        before_count: int = 0,
        after_count: int = 0,
        resource: ResourceKind | None = None,
        limit_value: int | None = None,
        plan_id: str | None = None,
        actor_user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Append one audit record to the caller's transaction.

        The record commits or rolls back together with the caller's unit
        of work. Storage errors are reported on the technical channel and
        swallowed.
        """
        event = LimitEvent(
            tenant_id=tenant_id,
            event_type=_value(event_type),
            resource=_value(resource),
            before_count=before_count,
            after_count=after_count,
            limit_value=limit_value,
            subscription_plan_id=plan_id,
            actor_user_id=actor_user_id,
            details=metadata or {},
        )

        try:
            async with db.begin_nested():
                db.add(event)
        except SQLAlchemyError as exc:
            technical_logger.error(
                "audit_write_failed",
                tenant_id=tenant_id,
                event_type=_value(event_type),
                resource=_value(resource),
                error=str(exc),
            )
            audit_write_failures_total.labels(event_type=_value(event_type)).inc()
            error_tracker.capture_exception(
                exc,
                context={"tenant_id": tenant_id, "event_type": _value(event_type)},
            )
            return

        logger.debug(
            "audit_recorded",
            tenant_id=tenant_id,
            event_type=_value(event_type),
            resource=_value(resource),
            before_count=before_count,
            after_count=after_count,
        )

    @staticmethod
    async def list_events(
        db: AsyncSession,
        tenant_id: str,
        event_type: LimitEventType | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 100,
    ) -> list[LimitEvent]:
        """Newest first, optionally filtered by type and time range."""
        query = select(LimitEvent).where(LimitEvent.tenant_id == tenant_id)

        if event_type:
            query = query.where(LimitEvent.event_type == _value(event_type))
        if from_date:
            query = query.where(LimitEvent.created_at >= from_date)
        if to_date:
            query = query.where(LimitEvent.created_at <= to_date)

        query = query.order_by(LimitEvent.created_at.desc(), LimitEvent.id.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())
