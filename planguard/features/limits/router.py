"""
Resource limit endpoints: usage, audit events, email quota and
operator overrides.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.core.exceptions import NotFoundError
from planguard.features.audit.service import AuditService
from planguard.features.auth.dependencies import CurrentSuperuser, CurrentUser, require_permission
from planguard.features.limits.service import LimitService
from planguard.models.limit_event import LimitEventType, ResourceKind
from planguard.models.user import User
from planguard.schemas.common import MessageResponse
from planguard.schemas.limits import (
    CustomLimitRead,
    CustomLimitUpdate,
    EmailReservation,
    LimitEventRead,
    LimitStatus,
    LimitSummary,
)

router = APIRouter(prefix="/limits", tags=["Limits"])


@router.get("/", response_model=list[LimitStatus])
async def get_limits(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[LimitStatus]:
    return await LimitService.check_all(db, current_user.tenant_id)


@router.get("/summary", response_model=LimitSummary)
async def get_limit_summary(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LimitSummary:
    limits = await LimitService.check_all(db, current_user.tenant_id)
    return LimitSummary(plan_name=limits[0].plan_name, limits=limits)


@router.get("/events", response_model=list[LimitEventRead])
async def list_limit_events(
    current_user: Annotated[User, Depends(require_permission("subscriptions.view"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    event_type: LimitEventType | None = Query(None, description="Filter by event type"),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
) -> list[LimitEventRead]:
    """Audit trail of limit checks, plan changes and user mutations, newest first."""
    events = await AuditService.list_events(
        db,
        current_user.tenant_id,
        event_type=event_type,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
    )
    return [LimitEventRead.model_validate(event) for event in events]


@router.post("/emails/reserve", response_model=LimitStatus)
async def reserve_emails(
    reservation: EmailReservation,
    current_user: Annotated[User, Depends(require_permission("emails.send"))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LimitStatus:
    """
    Reserve quota for an email batch before it is dispatched.

    Returns 403 with code limit_exceeded when the batch does not fit in
    the current period.
    """
    return await LimitService.record_email_sends(
        db,
        current_user.tenant_id,
        reservation.recipient_count,
        kind=reservation.kind,
        actor_user_id=current_user.id,
    )


@router.put("/tenants/{tenant_id}/custom", response_model=CustomLimitRead)
async def set_custom_limit(
    tenant_id: str,
    limit_in: CustomLimitUpdate,
    current_user: CurrentSuperuser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CustomLimitRead:
    """Grant a tenant ceilings that differ from its plan (superuser only)."""
    override = await LimitService.set_custom_limit(db, tenant_id, limit_in, actor_user_id=current_user.id)
    await db.refresh(override)
    return CustomLimitRead.model_validate(override)


@router.delete("/tenants/{tenant_id}/custom", response_model=MessageResponse)
async def remove_custom_limit(
    tenant_id: str,
    current_user: CurrentSuperuser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    removed = await LimitService.remove_custom_limit(db, tenant_id, actor_user_id=current_user.id)
    if not removed:
        raise NotFoundError("Tenant has no active custom limit", details={"tenant_id": tenant_id})
    return MessageResponse(message="Custom limit removed; plan ceilings apply")


@router.get("/{resource}", response_model=LimitStatus)
async def get_limit(
    resource: ResourceKind,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LimitStatus:
    return await LimitService.check_limit(db, current_user.tenant_id, resource)
