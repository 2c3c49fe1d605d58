"""SurgicalCase aggregate root and its append-only status history."""
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class SurgicalCase(Base, TimestampMixin):
    """A patient's procedure, from planning intake to completion. Never deleted."""

    __tablename__ = "surgical_cases"
    __table_args__ = (
        Index("ix_surgical_cases_status", "status"),
        Index("ix_surgical_cases_primary_surgeon_id", "primary_surgeon_id"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    primary_surgeon_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="SET NULL"),
        nullable=True,
    )
    procedure_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    diagnosis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    urgency: Mapped[str] = mapped_column(String(16), nullable=False, default="ELECTIVE")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PLANNING")


class SurgicalCaseStatusHistory(Base, TimestampMixin):
    """One row per status change, written in the same transaction as the change."""

    __tablename__ = "surgical_case_status_history"

    id: Mapped[uuid.UUID] = _uuid_pk()
    surgical_case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("surgical_cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
