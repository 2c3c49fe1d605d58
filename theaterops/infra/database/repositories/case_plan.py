"""CasePlan, ConsentForm and CasePlanImage repositories."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from theaterops.infra.database.models.case_plan import CasePlan, CasePlanImage, ConsentForm
from theaterops.infra.database.repositories.base import BaseRepository


class CasePlanRepository(BaseRepository[CasePlan]):
    model = CasePlan

    async def get_by_case_id(self, case_id: UUID) -> Optional[CasePlan]:
        stmt = select(CasePlan).where(CasePlan.surgical_case_id == case_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, case_id: UUID) -> CasePlan:
        plan = await self.get_by_case_id(case_id)
        if plan is not None:
            return plan
        return await self.create({"surgical_case_id": case_id})


class ConsentFormRepository(BaseRepository[ConsentForm]):
    model = ConsentForm

    async def list_for_plan(self, case_plan_id: UUID) -> List[ConsentForm]:
        stmt = (
            select(ConsentForm)
            .where(ConsentForm.case_plan_id == case_plan_id)
            .order_by(ConsentForm.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class CasePlanImageRepository(BaseRepository[CasePlanImage]):
    model = CasePlanImage

    async def list_for_plan(self, case_plan_id: UUID) -> List[CasePlanImage]:
        stmt = (
            select(CasePlanImage)
            .where(CasePlanImage.case_plan_id == case_plan_id)
            .order_by(CasePlanImage.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
