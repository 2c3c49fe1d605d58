"""Doctor schedule blocks router: create, delete, list, and unavailability lookup."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.api.dependencies import get_actor, get_audit, get_session
from theaterops.api.schemas.schedule_blocks import ScheduleBlockCreateRequest, ScheduleBlockResponse
from theaterops.services.audit_service import AuditService
from theaterops.services.schedule_block_service import ScheduleBlockService
from theaterops.workflow.types import Actor

router = APIRouter(prefix="/schedule-blocks", tags=["schedule-blocks"])


def _hhmm(value) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


def _to_schema(block) -> ScheduleBlockResponse:
    return ScheduleBlockResponse(
        id=block.id,
        doctor_id=block.doctor_id,
        start_date=block.start_date,
        end_date=block.end_date,
        start_time=_hhmm(block.start_time),
        end_time=_hhmm(block.end_time),
        block_type=block.block_type,
        reason=block.reason,
        created_by=block.created_by,
        is_full_day=block.is_full_day,
    )


@router.post("", response_model=ScheduleBlockResponse, status_code=status.HTTP_201_CREATED)
async def create_block(
    body: ScheduleBlockCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    block = await ScheduleBlockService(session, audit).create_block(
        body.doctor_id,
        body.start_date,
        body.end_date,
        block_type=body.block_type,
        created_by=actor.user_id,
        start_time=body.start_time,
        end_time=body.end_time,
        reason=body.reason,
    )
    return _to_schema(block)


@router.delete("/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_block(
    block_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    await ScheduleBlockService(session, audit).delete_block(block_id, actor.user_id)


@router.get("/doctors/{doctor_id}", response_model=List[ScheduleBlockResponse])
async def list_blocks(
    doctor_id: UUID,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    blocks = await ScheduleBlockService(session, audit).list_blocks(
        doctor_id, date_from=date_from, date_to=date_to,
    )
    return [_to_schema(b) for b in blocks]


@router.get("/doctors/{doctor_id}/unavailable", response_model=List[ScheduleBlockResponse])
async def blocks_overlapping(
    doctor_id: UUID,
    start: datetime = Query(...),
    end: datetime = Query(...),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    """Blocks that make the doctor unavailable somewhere inside [start, end)."""
    blocks = await ScheduleBlockService(session, audit).blocks_overlapping(doctor_id, start, end)
    return [_to_schema(b) for b in blocks]
