"""
Subscription plan catalog and per-tenant subscription models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planguard.models.base import BaseModel


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PENDING_PAYMENT = "pending_payment"  # Checkout started, plan not yet granted
    PAST_DUE = "past_due"                # Provider retrying payment, plan still granted
    CANCELLED = "cancelled"


# Statuses under which the subscribed plan's ceilings apply
LIVE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)


class SubscriptionPlan(BaseModel):
    """
    Global plan catalog row.

    A null ceiling means unlimited. Rows are never edited once a
    subscription references them; a pricing change is a new row.
    """

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="Stable plan identifier (e.g., 'Pro')"
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pricing
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Monthly price"
    )

    yearly_price: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    stripe_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    stripe_yearly_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Ceilings (null = unlimited)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)

    max_shops: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_email_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Feature gates
    allow_users_management: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    allow_roles_management: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    trial_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def price_for(self, cycle: BillingCycle | str) -> Decimal:
        """Price for a billing cycle; yearly falls back to 12x monthly."""
        if cycle == BillingCycle.YEARLY:
            if self.yearly_price is not None:
                return Decimal(self.yearly_price)
            return Decimal(self.price) * 12
        return Decimal(self.price)

    def monthly_price_for(self, cycle: BillingCycle | str) -> Decimal:
        """Per-month equivalent, so prices billed in different cycles compare."""
        if cycle == BillingCycle.YEARLY:
            return self.price_for(cycle) / 12
        return self.price_for(cycle)

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(name={self.name}, price={self.price})>"


class Subscription(BaseModel):
    """
    A tenant's subscription (at most one per tenant).

    The version column gives optimistic concurrency on top of the
    tenant row lock: a write based on a stale read fails instead of
    silently overwriting.
    """

    __tablename__ = "subscriptions"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Tenant ID"
    )

    plan_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subscription_plans.id"),
        nullable=False,
        index=True,
    )

    status: Mapped[SubscriptionStatus] = mapped_column(
        String(50),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
        index=True,
    )

    is_yearly: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Billing provider references
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Transition bookkeeping
    previous_plan_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    downgrade_target_plan_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("subscription_plans.id"),
        nullable=True,
    )

    downgrade_scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    # Payment bookkeeping
    pending_plan_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("subscription_plans.id"),
        nullable=True,
    )

    pending_checkout_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="subscription")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def billing_cycle(self) -> BillingCycle:
        return BillingCycle.YEARLY if self.is_yearly else BillingCycle.MONTHLY

    def __repr__(self) -> str:
        return f"<Subscription(tenant_id={self.tenant_id}, plan_id={self.plan_id}, status={self.status})>"
