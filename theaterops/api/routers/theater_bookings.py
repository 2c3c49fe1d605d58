"""Theater bookings router: lock, confirm, cancel, legacy one-step book, schedule view."""
from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.api.dependencies import get_actor, get_audit, get_booking_config, get_session
from theaterops.api.schemas.bookings import (
    BookingResponse,
    CancelBookingRequest,
    LockSlotRequest,
    TheaterScheduleResponse,
)
from theaterops.config.booking import BookingConfig
from theaterops.services.audit_service import AuditService
from theaterops.services.theater_booking_service import TheaterBookingService
from theaterops.workflow.types import Actor

router = APIRouter(prefix="/theater-bookings", tags=["theater-bookings"])


def _service(session: AsyncSession, audit: AuditService, config: BookingConfig) -> TheaterBookingService:
    return TheaterBookingService(session, audit, config=config)


@router.post("/lock", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def lock_slot(
    body: LockSlotRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
    config: BookingConfig = Depends(get_booking_config),
):
    booking = await _service(session, audit, config).lock_slot(
        body.surgical_case_id, body.theater_id, body.start_time, body.end_time, actor.user_id,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
    config: BookingConfig = Depends(get_booking_config),
):
    booking = await _service(session, audit, config).confirm_booking(booking_id, actor.user_id, actor.role)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    body: CancelBookingRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
    config: BookingConfig = Depends(get_booking_config),
):
    booking = await _service(session, audit, config).cancel_booking(
        booking_id, body.reason, actor_id=actor.user_id,
    )
    return BookingResponse.model_validate(booking)


@router.post("/book", response_model=BookingResponse, status_code=status.HTTP_201_CREATED, deprecated=True)
async def book_slot(
    body: LockSlotRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
    config: BookingConfig = Depends(get_booking_config),
):
    """One-step booking for older clients. Use /lock then /{id}/confirm instead."""
    booking = await _service(session, audit, config).book_slot(
        body.surgical_case_id, body.theater_id, body.start_time, body.end_time, actor.user_id,
    )
    return BookingResponse.model_validate(booking)


@router.get("/schedule", response_model=List[TheaterScheduleResponse])
async def theater_schedule(
    start: datetime = Query(...),
    end: datetime = Query(...),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
    config: BookingConfig = Depends(get_booking_config),
):
    schedules = await _service(session, audit, config).list_theater_schedule(start, end)
    return [
        TheaterScheduleResponse(
            theater_id=s.theater.id,
            name=s.theater.name,
            theater_type=s.theater.theater_type,
            bookings=[BookingResponse.model_validate(b) for b in s.bookings],
        )
        for s in schedules
    ]
