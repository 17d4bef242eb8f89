"""Companion profile model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from sereno.db.base import Base


class CompanionProfile(Base):
    """Volunteer responder data. Deactivated, never deleted."""

    __tablename__ = "companion_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    specializations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    availability_start: Mapped[str] = mapped_column(String(5), nullable=False)  # "22:00"
    availability_end: Mapped[str] = mapped_column(String(5), nullable=False)    # "06:00"
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    max_response_distance_km: Mapped[float] = mapped_column(Float, nullable=False, default=50.0)
    verification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending | verified
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
