"""
Pydantic schemas for plans, subscriptions and plan transitions.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from planguard.models.subscription import BillingCycle, SubscriptionStatus
from planguard.schemas.common import BaseSchema
from planguard.schemas.limits import LimitStatus


class PlanRead(BaseSchema):
    """Catalog entry."""

    id: str
    name: str
    display_name: str
    description: str | None = None
    price: Decimal
    yearly_price: Decimal | None = None
    max_users: int | None = None
    max_shops: int | None = None
    monthly_email_limit: int | None = None
    allow_users_management: bool
    allow_roles_management: bool
    trial_days: int = 0
    sort_order: int = 0


class SubscriptionRead(BaseSchema):
    id: str
    tenant_id: str
    plan_id: str
    status: SubscriptionStatus
    is_yearly: bool
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool
    previous_plan_id: str | None = None
    downgrade_target_plan_id: str | None = None
    downgrade_scheduled_at: datetime | None = None
    pending_plan_id: str | None = None


class TenantPlan(BaseModel):
    """The plan whose ceilings apply right now, with usage."""

    plan_id: str | None
    plan_name: str
    display_name: str
    is_default_plan: bool
    allow_users_management: bool
    allow_roles_management: bool
    subscription: SubscriptionRead | None = None
    limits: list[LimitStatus]


class PlanChangeRequest(BaseModel):
    plan_id: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class ScheduleDowngradeRequest(BaseModel):
    plan_id: str


class CancelRequest(BaseModel):
    at_period_end: bool = True


class TransitionDirection(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    LATERAL = "lateral"


class TransitionOutcome(BaseModel):
    """Result of a plan change or a re-application of the current ceiling."""

    direction: TransitionDirection
    previous_plan_id: str | None = None
    plan_id: str | None = None
    plan_name: str
    suspended_shops: int = 0
    suspended_users: int = 0
    restored_shops: int = 0
    restored_users: int = 0
    billing_warning: str | None = Field(None, description="Set when the provider call after commit failed")


class CheckoutResponse(BaseModel):
    checkout_id: str
    url: str
    plan_id: str
    billing_cycle: BillingCycle


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    handled: bool
