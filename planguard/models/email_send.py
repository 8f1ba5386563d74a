"""
Email send ledger used for the monthly email quota.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from planguard.models.base import BaseModel, utcnow


class EmailSendRecord(BaseModel):
    """One outbound batch reported by the delivery service."""

    __tablename__ = "email_sends"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    recipient_count: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="campaign",
        comment="newsletter, campaign, ecard, transactional, ..."
    )

    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_email_send_tenant_sent", "tenant_id", "sent_at"),
    )
