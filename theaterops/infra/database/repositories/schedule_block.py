"""Doctor and ScheduleBlock repositories."""
from __future__ import annotations

import datetime as _dt
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from theaterops.infra.database.models.doctor import Doctor
from theaterops.infra.database.models.schedule_block import ScheduleBlock
from theaterops.infra.database.repositories.base import BaseRepository


class DoctorRepository(BaseRepository[Doctor]):
    model = Doctor


class ScheduleBlockRepository(BaseRepository[ScheduleBlock]):
    model = ScheduleBlock

    async def list_overlapping(
        self,
        doctor_id: UUID,
        start_date: _dt.date,
        end_date: _dt.date,
    ) -> List[ScheduleBlock]:
        """Blocks for ``doctor_id`` whose inclusive date range intersects [start_date, end_date]."""
        stmt = (
            select(ScheduleBlock)
            .where(ScheduleBlock.doctor_id == doctor_id)
            .where(ScheduleBlock.start_date <= end_date)
            .where(ScheduleBlock.end_date >= start_date)
            .order_by(ScheduleBlock.start_date, ScheduleBlock.start_time)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_doctor(
        self,
        doctor_id: UUID,
        *,
        date_from: Optional[_dt.date] = None,
        date_to: Optional[_dt.date] = None,
    ) -> List[ScheduleBlock]:
        stmt = select(ScheduleBlock).where(ScheduleBlock.doctor_id == doctor_id)
        if date_from is not None:
            stmt = stmt.where(ScheduleBlock.end_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(ScheduleBlock.start_date <= date_to)
        stmt = stmt.order_by(ScheduleBlock.start_date, ScheduleBlock.start_time)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
