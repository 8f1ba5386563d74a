"""
Tenant model for multi-tenancy.

Each tenant is one customer business. Its row doubles as the lock that
serializes quota checks and plan transitions for that tenant.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planguard.models.base import BaseModel


class Tenant(BaseModel):
    """
    Tenant (organization) model.

    Provides:
    - Data isolation between businesses
    - Anchor for the subscription and its resource ceilings
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Business name"
    )

    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="URL-friendly identifier (e.g., 'acme-corp')"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Tenant active status"
    )

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="tenant",
        cascade="all, delete-orphan"
    )

    shops: Mapped[list["Shop"]] = relationship(
        "Shop",
        back_populates="tenant",
        cascade="all, delete-orphan"
    )

    subscription: Mapped["Subscription | None"] = relationship(
        "Subscription",
        back_populates="tenant",
        uselist=False,
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"
