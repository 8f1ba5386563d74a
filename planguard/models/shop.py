"""
Shop model: a tenant's physical location, counted against the plan.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planguard.models.base import BaseModel


class Shop(BaseModel):
    """
    Shop (location) model.

    Counts toward the plan's max_shops while active and not suspended.
    """

    __tablename__ = "shops"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Shop name"
    )

    city: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    address: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Cleared when the shop is closed by a user"
    )

    is_suspended: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set by plan downgrades only"
    )

    suspended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Ownership & tenant isolation
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Tenant ID"
    )

    created_by_user_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="User who created the shop"
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="shops")

    __table_args__ = (
        Index("idx_shop_tenant_status", "tenant_id", "is_active", "is_suspended"),
        Index("idx_shop_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, name={self.name})>"
