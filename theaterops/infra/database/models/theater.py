"""Theater and TheaterBooking ORM models."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class Theater(Base, TimestampMixin):
    """A bookable operating theater."""

    __tablename__ = "theaters"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    theater_type: Mapped[str] = mapped_column(String(32), nullable=False, default="MAJOR")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class TheaterBooking(Base, TimestampMixin):
    """
    Reservation of a theater for the half-open window [start_time, end_time).

    status: PROVISIONAL (locked, expires at lock_expires_at) | CONFIRMED | CANCELLED
    """

    __tablename__ = "theater_bookings"
    __table_args__ = (
        Index("ix_theater_bookings_theater_window", "theater_id", "start_time", "end_time"),
        Index("ix_theater_bookings_status", "status"),
        Index("ix_theater_bookings_locked_by", "locked_by"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    theater_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("theaters.id", ondelete="RESTRICT"),
        nullable=False,
    )
    surgical_case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("surgical_cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PROVISIONAL")

    locked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lock_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    confirmed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
