"""CasePlan (doctor planning + nursing readiness), consent forms and plan images."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class CasePlan(Base, TimestampMixin):
    __tablename__ = "case_plans"

    id: Mapped[uuid.UUID] = _uuid_pk()
    surgical_case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("surgical_cases.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Doctor planning fields (procedure_plan may hold rich-text markup)
    procedure_plan: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    risk_factors: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    planned_anesthesia: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    implant_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pre_op_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Nursing pre-op readiness
    readiness_status: Mapped[str] = mapped_column(String(32), nullable=False, default="NOT_STARTED")
    ready_for_surgery: Mapped[bool] = mapped_column(nullable=False, default=False)


class ConsentForm(Base, TimestampMixin):
    __tablename__ = "consent_forms"

    id: Mapped[uuid.UUID] = _uuid_pk()
    case_plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("case_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    consent_type: Mapped[str] = mapped_column(String(32), nullable=False, default="GENERAL_PROCEDURE")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class CasePlanImage(Base, TimestampMixin):
    __tablename__ = "case_plan_images"

    id: Mapped[uuid.UUID] = _uuid_pk()
    case_plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("case_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    timepoint: Mapped[str] = mapped_column(String(32), nullable=False, default="PRE_OP")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
