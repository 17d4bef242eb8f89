"""Responding companion membership for an emergency alert."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sereno.db.base import Base


class AlertResponder(Base):
    """A companion in an alert's responder set. One row per (alert, companion)."""

    __tablename__ = "alert_responders"
    __table_args__ = (
        UniqueConstraint("alert_id", "companion_id", name="uq_alert_responder_alert_companion"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(ForeignKey("emergency_alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    companion_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    responded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
