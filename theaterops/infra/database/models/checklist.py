"""ChecklistPhaseRecord ORM: one WHO checklist phase of one surgical case."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class ChecklistPhaseRecord(Base, TimestampMixin):
    """
    status: DRAFT | FINAL. A FINAL row is never reopened.
    items: ``[{"key": ..., "label": ..., "confirmed": bool, "note": ...}, ...]``
    """

    __tablename__ = "checklist_phases"
    __table_args__ = (
        UniqueConstraint("surgical_case_id", "phase", name="uq_checklist_phases_case_phase"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    surgical_case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("surgical_cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    completed_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    completed_by_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_payload(self) -> dict[str, Any]:
        """Dict shape accepted by ``parse_phase_payload``."""
        out: dict[str, Any] = {"status": self.status, "items": list(self.items or [])}
        if self.status == "FINAL":
            out.update(
                completed_by_user_id=self.completed_by_user_id,
                completed_by_role=self.completed_by_role,
                completed_at=self.completed_at,
            )
        return out
