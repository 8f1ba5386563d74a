"""
User model for authentication and authorization.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planguard.features.rbac.permissions import Role, has_permission
from planguard.models.base import BaseModel


class User(BaseModel):
    """
    User account model.

    A user occupies a seat while it is active and not suspended.
    Manual deactivation (is_active) and plan suspension (is_suspended)
    are kept apart so that restoring a plan never revives a user an
    administrator switched off.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="User email address (unique)"
    )

    # Profile
    first_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    last_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    role: Mapped[Role] = mapped_column(
        String(50),
        nullable=False,
        default=Role.EMPLOYEE,
        comment="Owner, Administrator, Manager or Employee"
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Cleared by manual deactivation"
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

    is_superuser: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Platform operator privileges"
    )

    # Multi-tenancy
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Associated tenant ID"
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(
        "Tenant",
        back_populates="users",
        lazy="selectin"
    )

    __table_args__ = (
        Index("idx_user_tenant_role", "tenant_id", "role"),
    )

    @property
    def occupies_seat(self) -> bool:
        return self.is_active and not self.is_suspended

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def has_permission(self, permission_key: str) -> bool:
        """
        Check if user has a specific permission.

        Args:
            permission_key: Permission identifier (e.g., "shops.create")

        Returns:
            True if the user's role grants it (superusers always pass)
        """
        if self.is_superuser:
            return True
        return has_permission(self.role, permission_key)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
