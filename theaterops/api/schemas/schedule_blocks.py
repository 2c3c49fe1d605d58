"""Pydantic v2 schemas for the doctor schedule block API."""
from __future__ import annotations

import datetime as _dt
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ScheduleBlockCreateRequest(BaseModel):
    doctor_id: UUID
    start_date: str
    end_date: str
    start_time: Optional[str] = Field(default=None, description="HH:MM, 24h")
    end_time: Optional[str] = Field(default=None, description="HH:MM, 24h")
    block_type: str
    reason: Optional[str] = None


class ScheduleBlockResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    start_date: _dt.date
    end_date: _dt.date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    block_type: str
    reason: Optional[str] = None
    created_by: str
    is_full_day: bool
