"""
Subscription endpoints: plan catalog, plan changes, checkout and the
billing provider webhook.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from planguard.core.database import get_db
from planguard.features.auth.dependencies import CurrentUser, require_permission
from planguard.features.subscriptions.billing import BillingClient, get_billing_client
from planguard.features.subscriptions.catalog import PlanCatalog
from planguard.features.subscriptions.service import SubscriptionService
from planguard.models.user import User
from planguard.schemas.subscription import (
    CancelRequest,
    CheckoutResponse,
    PlanChangeRequest,
    PlanRead,
    ScheduleDowngradeRequest,
    SubscriptionRead,
    TenantPlan,
    TransitionOutcome,
    WebhookAck,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])

Billing = Annotated[BillingClient, Depends(get_billing_client)]
Manager = Annotated[User, Depends(require_permission("subscriptions.manage"))]
Db = Annotated[AsyncSession, Depends(get_db)]


@router.get("/plans", response_model=list[PlanRead])
async def list_plans(current_user: CurrentUser, db: Db) -> list[dict]:
    """Active plans, cheapest first."""
    return await PlanCatalog.list_plans(db)


@router.get("/tenant-plan", response_model=TenantPlan)
async def get_tenant_plan(current_user: CurrentUser, db: Db) -> TenantPlan:
    """The plan whose ceilings apply now, with usage of every resource."""
    return await SubscriptionService.get_tenant_plan(db, current_user.tenant_id)


@router.get("/me", response_model=SubscriptionRead | None)
async def get_my_subscription(
    current_user: Annotated[User, Depends(require_permission("subscriptions.view"))],
    db: Db,
) -> SubscriptionRead | None:
    subscription = await PlanCatalog.get_subscription(db, current_user.tenant_id)
    if subscription is None:
        return None
    return SubscriptionRead.model_validate(subscription)


@router.post("/change-plan", response_model=TransitionOutcome)
async def change_plan(
    change: PlanChangeRequest,
    current_user: Manager,
    db: Db,
    billing: Billing,
) -> TransitionOutcome:
    """
    Switch to a plan that costs the same or less, effective immediately.

    A pricier plan answers 402 payment_required; use /checkout instead.
    Resources above the new ceilings are suspended, newest first.
    """
    return await SubscriptionService.transition_plan(
        db,
        current_user.tenant_id,
        change.plan_id,
        billing_cycle=change.billing_cycle,
        actor_user_id=current_user.id,
        billing=billing,
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def start_checkout(
    change: PlanChangeRequest,
    current_user: Manager,
    db: Db,
    billing: Billing,
) -> CheckoutResponse:
    """Open a checkout session; the plan activates when payment is confirmed."""
    return await SubscriptionService.start_checkout(
        db,
        current_user.tenant_id,
        change.plan_id,
        billing,
        billing_cycle=change.billing_cycle,
        actor_user_id=current_user.id,
    )


@router.post("/scheduled-downgrade", response_model=SubscriptionRead)
async def schedule_downgrade(
    downgrade: ScheduleDowngradeRequest,
    current_user: Manager,
    db: Db,
) -> SubscriptionRead:
    subscription = await SubscriptionService.schedule_downgrade(
        db, current_user.tenant_id, downgrade.plan_id, actor_user_id=current_user.id
    )
    return SubscriptionRead.model_validate(subscription)


@router.delete("/scheduled-downgrade", response_model=SubscriptionRead)
async def cancel_scheduled_downgrade(current_user: Manager, db: Db) -> SubscriptionRead:
    subscription = await SubscriptionService.cancel_scheduled_downgrade(
        db, current_user.tenant_id, actor_user_id=current_user.id
    )
    return SubscriptionRead.model_validate(subscription)


@router.post("/cancel", response_model=SubscriptionRead)
async def cancel_subscription(
    cancel: CancelRequest,
    current_user: Manager,
    db: Db,
    billing: Billing,
) -> SubscriptionRead:
    """
    Cancel the paid subscription.

    With at_period_end the plan stays until the period ends; otherwise
    the tenant drops to the default plan now.
    """
    subscription = await SubscriptionService.cancel_subscription(
        db,
        current_user.tenant_id,
        billing,
        at_period_end=cancel.at_period_end,
        actor_user_id=current_user.id,
    )
    await db.refresh(subscription)
    return SubscriptionRead.model_validate(subscription)


@router.post("/reactivate", response_model=SubscriptionRead)
async def reactivate_subscription(current_user: Manager, db: Db, billing: Billing) -> SubscriptionRead:
    subscription = await SubscriptionService.reactivate_subscription(
        db, current_user.tenant_id, billing, actor_user_id=current_user.id
    )
    return SubscriptionRead.model_validate(subscription)


@router.post("/restore", response_model=TransitionOutcome)
async def restore_suspended(current_user: Manager, db: Db) -> TransitionOutcome:
    """Restore suspended shops and users that fit under the current ceilings."""
    return await SubscriptionService.restore_suspended(
        db, current_user.tenant_id, actor_user_id=current_user.id
    )


@router.post("/webhook", response_model=WebhookAck)
async def billing_webhook(
    request: Request,
    db: Db,
    billing: Billing,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookAck:
    """
    Billing provider webhook.

    Unauthenticated; the payload must carry a valid signature.
    """
    payload = await request.body()
    event = billing.verify_webhook(payload, stripe_signature)
    event_type = event.get("type", "")

    logger.info("billing_webhook_received", event_type=event_type, event_id=event.get("id"))
    handled = await SubscriptionService.handle_billing_event(db, event)
    return WebhookAck(event_type=event_type, handled=handled)
