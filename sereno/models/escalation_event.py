"""Escalation audit record."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from sereno.db.base import Base


class EscalationEvent(Base):
    """A participant handed the emergency to medical, police or a crisis center."""

    __tablename__ = "escalation_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(ForeignKey("chat_channels.id", ondelete="CASCADE"), nullable=False, index=True)
    alert_id: Mapped[int | None] = mapped_column(ForeignKey("emergency_alerts.id", ondelete="CASCADE"), nullable=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # medical | police | crisis_center
    requested_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
