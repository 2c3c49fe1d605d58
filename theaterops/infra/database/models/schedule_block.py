"""ScheduleBlock ORM: a doctor's unavailability window."""
from __future__ import annotations

import datetime as _dt
import uuid
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, String, Text, Time
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class ScheduleBlock(Base, TimestampMixin):
    """
    Inclusive date range [start_date, end_date]. With both start_time and
    end_time unset the block covers every whole day in the range; otherwise it
    is a single-day block over [start_time, end_time).
    """

    __tablename__ = "schedule_blocks"
    __table_args__ = (
        Index("ix_schedule_blocks_doctor_dates", "doctor_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[_dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[_dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[Optional[_dt.time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[_dt.time]] = mapped_column(Time, nullable=True)
    block_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None and self.end_time is None
