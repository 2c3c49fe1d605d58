"""Pydantic v2 schemas for the theater booking API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class LockSlotRequest(BaseModel):
    surgical_case_id: UUID
    theater_id: UUID
    start_time: datetime
    end_time: datetime


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BookingResponse(BaseModel):
    id: UUID
    theater_id: UUID
    surgical_case_id: UUID
    start_time: datetime
    end_time: datetime
    status: str
    locked_by: Optional[str] = None
    locked_at: Optional[datetime] = None
    lock_expires_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class TheaterScheduleResponse(BaseModel):
    theater_id: UUID
    name: str
    theater_type: str
    bookings: List[BookingResponse] = Field(default_factory=list)
