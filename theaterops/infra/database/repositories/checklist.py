"""ChecklistPhaseRecord repository."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from theaterops.infra.database.models.checklist import ChecklistPhaseRecord
from theaterops.infra.database.repositories.base import BaseRepository


class ChecklistRepository(BaseRepository[ChecklistPhaseRecord]):
    model = ChecklistPhaseRecord

    async def get_phase(
        self,
        case_id: UUID,
        phase: str,
        *,
        for_update: bool = False,
    ) -> Optional[ChecklistPhaseRecord]:
        stmt = (
            select(ChecklistPhaseRecord)
            .where(ChecklistPhaseRecord.surgical_case_id == case_id)
            .where(ChecklistPhaseRecord.phase == phase)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_case(self, case_id: UUID) -> List[ChecklistPhaseRecord]:
        stmt = select(ChecklistPhaseRecord).where(ChecklistPhaseRecord.surgical_case_id == case_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
