"""SurgicalCase and status-history repositories."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from theaterops.infra.database.models.surgical_case import (
    SurgicalCase,
    SurgicalCaseStatusHistory,
)
from theaterops.infra.database.repositories.base import BaseRepository


class SurgicalCaseRepository(BaseRepository[SurgicalCase]):
    model = SurgicalCase

    async def list_by_status(self, status: str, limit: int = 100) -> List[SurgicalCase]:
        stmt = (
            select(SurgicalCase)
            .where(SurgicalCase.status == status)
            .order_by(SurgicalCase.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class StatusHistoryRepository(BaseRepository[SurgicalCaseStatusHistory]):
    model = SurgicalCaseStatusHistory

    async def record(
        self,
        case_id: UUID,
        from_status: str,
        to_status: str,
        actor_user_id: Optional[str],
        reason: Optional[str] = None,
    ) -> SurgicalCaseStatusHistory:
        return await self.create({
            "surgical_case_id": case_id,
            "from_status": from_status,
            "to_status": to_status,
            "actor_user_id": actor_user_id,
            "reason": reason,
        })

    async def list_for_case(self, case_id: UUID) -> List[SurgicalCaseStatusHistory]:
        stmt = (
            select(SurgicalCaseStatusHistory)
            .where(SurgicalCaseStatusHistory.surgical_case_id == case_id)
            .order_by(SurgicalCaseStatusHistory.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
