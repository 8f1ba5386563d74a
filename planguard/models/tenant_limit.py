"""
Per-tenant custom limit overrides granted by platform operators.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from planguard.models.base import BaseModel


class TenantLimit(BaseModel):
    """
    Custom ceiling override.

    A non-null field replaces the plan's ceiling for that resource while
    the override is active and not expired; null fields fall through to
    the plan.
    """

    __tablename__ = "tenant_limits"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    max_shops: Mapped[int | None] = mapped_column(Integer, nullable=True)

    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_email_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Override lapses after this instant"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<TenantLimit(tenant_id={self.tenant_id})>"
