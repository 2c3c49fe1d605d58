"""ScheduleBlockService: doctor unavailability blocks and their overlap rules.

A block covers an inclusive date range. Without time bounds it is full-day and
acts as a wildcard over the whole day; with time bounds it is a single-day
block over [start_time, end_time). Abutting partial blocks do not conflict.
"""
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.core.exceptions import ConflictError, NotFoundError, ValidationError
from theaterops.infra.database.engine import atomic
from theaterops.infra.database.models.schedule_block import ScheduleBlock
from theaterops.infra.database.repositories import DoctorRepository, ScheduleBlockRepository
from theaterops.workflow.intervals import (
    dates_overlap,
    is_hhmm,
    iter_days,
    minute_of_day,
    overlaps,
    parse_hhmm,
)
from theaterops.workflow.types import ScheduleBlockType

logger = logging.getLogger(__name__)

_ENTITY = "ScheduleBlock"

DateInput = Union[_dt.date, str]


@dataclass(frozen=True)
class BlockWindow:
    start_date: _dt.date
    end_date: _dt.date
    start_time: Optional[_dt.time] = None
    end_time: Optional[_dt.time] = None

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None and self.end_time is None


@dataclass(frozen=True)
class BlockConflict:
    block: Any
    reason: str
    conflicting_date: Optional[_dt.date] = None


def find_block_conflict(candidate: Any, existing: Iterable[Any]) -> Optional[BlockConflict]:
    """First existing block that ``candidate`` may not coexist with, or None.

    Rules run in order over every block whose date range intersects the
    candidate's, so a full-day clash is reported before any partial one.
    """
    shared = [
        b for b in existing
        if dates_overlap(candidate.start_date, candidate.end_date, b.start_date, b.end_date)
    ]

    if candidate.is_full_day:
        for block in shared:
            if not block.is_full_day:
                return BlockConflict(block, "Cannot create a full-day block: partial-day blocks exist on these dates")
        for block in shared:
            return BlockConflict(block, "A full-day block already exists on these dates")
        return None

    for block in shared:
        if block.is_full_day:
            return BlockConflict(block, "Cannot create a partial-day block: a full-day block exists on this date")

    start = minute_of_day(candidate.start_time)
    end = minute_of_day(candidate.end_time)
    for day in iter_days(candidate.start_date, candidate.end_date):
        for block in shared:
            if not (block.start_date <= day <= block.end_date):
                continue
            if overlaps(start, end, minute_of_day(block.start_time), minute_of_day(block.end_time)):
                return BlockConflict(
                    block,
                    f"Time range overlaps an existing block on {day.isoformat()}",
                    conflicting_date=day,
                )
    return None


class ScheduleBlockService:
    def __init__(self, session: AsyncSession, audit: Any) -> None:
        self._session = session
        self._audit = audit
        self._repo = ScheduleBlockRepository(session)
        self._doctor_repo = DoctorRepository(session)

    async def create_block(
        self,
        doctor_id: UUID,
        start_date: DateInput,
        end_date: DateInput,
        *,
        block_type: Union[ScheduleBlockType, str],
        created_by: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ScheduleBlock:
        async with atomic(self._session):
            doctor = await self._doctor_repo.get_for_update(doctor_id)
            if doctor is None:
                raise NotFoundError(f"Doctor {doctor_id} not found")
            window = _build_window(start_date, end_date, start_time, end_time)
            kind = _coerce_block_type(block_type)

            existing = await self._repo.list_overlapping(doctor_id, window.start_date, window.end_date)
            conflict = find_block_conflict(window, existing)
            if conflict is not None:
                logger.info(
                    "ScheduleBlockService: rejected %s block for doctor %s: %s",
                    kind.value, doctor_id, conflict.reason,
                )
                raise ConflictError(conflict.reason, details=_conflict_details(conflict))

            block = await self._repo.create({
                "doctor_id": doctor_id,
                "start_date": window.start_date,
                "end_date": window.end_date,
                "start_time": window.start_time,
                "end_time": window.end_time,
                "block_type": kind.value,
                "reason": reason,
                "created_by": created_by,
            })

        await self._audit.record(
            actor_user_id=created_by,
            action_type="SCHEDULE_BLOCK_CREATED",
            entity_type=_ENTITY,
            entity_id=block.id,
            metadata={
                "doctor_id": doctor_id,
                "block_type": kind,
                "start_date": window.start_date,
                "end_date": window.end_date,
                "start_time": start_time,
                "end_time": end_time,
            },
        )
        return block

    async def delete_block(self, block_id: UUID, actor_id: str) -> None:
        async with atomic(self._session):
            block = await self._repo.get_for_update(block_id)
            if block is None:
                raise NotFoundError(f"Schedule block {block_id} not found")
            doctor_id = block.doctor_id
            await self._repo.delete(block_id)
        await self._audit.record(
            actor_user_id=actor_id,
            action_type="SCHEDULE_BLOCK_DELETED",
            entity_type=_ENTITY,
            entity_id=block_id,
            metadata={"doctor_id": doctor_id},
        )

    async def list_blocks(
        self,
        doctor_id: UUID,
        *,
        date_from: Optional[DateInput] = None,
        date_to: Optional[DateInput] = None,
    ) -> List[ScheduleBlock]:
        return await self._repo.list_for_doctor(
            doctor_id,
            date_from=_parse_date(date_from, "date_from") if date_from is not None else None,
            date_to=_parse_date(date_to, "date_to") if date_to is not None else None,
        )

    async def blocks_overlapping(
        self,
        doctor_id: UUID,
        start: _dt.datetime,
        end: _dt.datetime,
    ) -> List[ScheduleBlock]:
        """Blocks that make ``doctor_id`` unavailable somewhere in [start, end)."""
        candidates = await self._repo.list_overlapping(doctor_id, start.date(), end.date())
        hits = []
        for block in candidates:
            for day in iter_days(max(block.start_date, start.date()), min(block.end_date, end.date())):
                if block.is_full_day:
                    block_start = _dt.datetime.combine(day, _dt.time.min, tzinfo=start.tzinfo)
                    block_end = block_start + _dt.timedelta(days=1)
                else:
                    block_start = _dt.datetime.combine(day, block.start_time, tzinfo=start.tzinfo)
                    block_end = _dt.datetime.combine(day, block.end_time, tzinfo=start.tzinfo)
                if overlaps(start, end, block_start, block_end):
                    hits.append(block)
                    break
        return hits


def _build_window(
    start_date: DateInput,
    end_date: DateInput,
    start_time: Optional[str],
    end_time: Optional[str],
) -> BlockWindow:
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if start > end:
        raise ValidationError(
            "start_date must be on or before end_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if start_time is None and end_time is None:
        return BlockWindow(start, end)
    if start_time is None or end_time is None:
        raise ValidationError("Both start_time and end_time are required for a partial-day block")
    if not is_hhmm(start_time) or not is_hhmm(end_time):
        raise ValidationError(
            "Times must use 24h HH:MM format",
            details={"start_time": start_time, "end_time": end_time},
        )
    t_start, t_end = parse_hhmm(start_time), parse_hhmm(end_time)
    if t_end <= t_start:
        raise ValidationError(
            "end_time must be after start_time",
            details={"start_time": start_time, "end_time": end_time},
        )
    if start != end:
        raise ValidationError("Custom hours are only allowed on single-day blocks")
    return BlockWindow(start, end, t_start, t_end)


def _parse_date(value: DateInput, field_name: str) -> _dt.date:
    if isinstance(value, _dt.datetime):
        return value.date()
    if isinstance(value, _dt.date):
        return value
    try:
        return _dt.date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}", details={"field": field_name})


def _coerce_block_type(value: Union[ScheduleBlockType, str]) -> ScheduleBlockType:
    try:
        return ScheduleBlockType(value.upper() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(
            f"Invalid block type: {value!r}",
            details={"allowed": [t.value for t in ScheduleBlockType]},
        )


def _conflict_details(conflict: BlockConflict) -> dict:
    block = conflict.block
    details = {
        "existing_block": {
            "id": str(block.id),
            "block_type": block.block_type,
            "start_date": block.start_date.isoformat(),
            "end_date": block.end_date.isoformat(),
            "start_time": block.start_time.strftime("%H:%M") if block.start_time else None,
            "end_time": block.end_time.strftime("%H:%M") if block.end_time else None,
        },
    }
    if conflict.conflicting_date is not None:
        details["conflicting_date"] = conflict.conflicting_date.isoformat()
    return details
