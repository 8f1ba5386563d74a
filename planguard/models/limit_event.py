"""
Append-only audit trail of limit and plan events.
"""

from enum import Enum
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from planguard.models.base import BaseModel


class ResourceKind(str, Enum):
    """Resources with a plan ceiling."""
    SHOPS = "shops"
    USERS = "users"
    EMAILS = "emails"


class LimitEventType(str, Enum):
    """Audit event type."""
    LIMIT_REACHED = "limit_reached"
    LIMIT_EXCEEDED = "limit_exceeded"
    LIMIT_INCREASED = "limit_increased"
    LIMIT_DECREASED = "limit_decreased"
    SHOP_CREATED = "shop_created"
    SHOP_DELETED = "shop_deleted"
    PLAN_UPGRADED = "plan_upgraded"
    PLAN_DOWNGRADED = "plan_downgraded"
    PLAN_CHANGED = "plan_changed"
    DOWNGRADE_SCHEDULED = "downgrade_scheduled"
    DOWNGRADE_CANCELLED = "downgrade_cancelled"
    RESOURCES_RESTORED = "resources_restored"
    ROLE_CHANGED = "role_changed"
    USER_CREATED = "user_created"
    USER_DEACTIVATED = "user_deactivated"
    USER_REACTIVATED = "user_reactivated"
    USER_DELETED = "user_deleted"


class LimitEvent(BaseModel):
    """
    Audit record.

    Never updated or deleted. The plan id is stored without a foreign
    key so catalog changes never rewrite history.
    """

    __tablename__ = "limit_events"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    event_type: Mapped[LimitEventType] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )

    resource: Mapped[ResourceKind | None] = mapped_column(String(20), nullable=True)

    before_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    after_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    limit_value: Mapped[int | None] = mapped_column(Integer, nullable=True)

    subscription_plan_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    actor_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    __table_args__ = (
        Index("idx_limit_event_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LimitEvent(tenant_id={self.tenant_id}, event_type={self.event_type})>"
