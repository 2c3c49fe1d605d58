"""Pydantic v2 schemas for the surgical case API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CaseCreateRequest(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    primary_surgeon_id: Optional[UUID] = None
    procedure_name: Optional[str] = None
    diagnosis: Optional[str] = None
    urgency: str = Field(default="ELECTIVE", max_length=16)


class CaseResponse(BaseModel):
    id: UUID
    patient_id: str
    primary_surgeon_id: Optional[UUID] = None
    procedure_name: Optional[str] = None
    diagnosis: Optional[str] = None
    urgency: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StatusHistoryResponse(BaseModel):
    id: UUID
    from_status: str
    to_status: str
    actor_user_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NurseReadinessRequest(BaseModel):
    readiness_status: str = Field(..., min_length=1, max_length=32)


class CasePlanPatchRequest(BaseModel):
    procedure_plan: Optional[str] = None
    risk_factors: Optional[str] = None
    planned_anesthesia: Optional[str] = None
    implant_details: Optional[str] = None
    pre_op_notes: Optional[str] = None
    special_instructions: Optional[str] = None


class ConsentCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    consent_type: str = Field(default="GENERAL_PROCEDURE", max_length=32)


class ConsentResponse(BaseModel):
    id: UUID
    title: str
    consent_type: str
    status: str
    signed_at: Optional[datetime] = None
    signed_by: Optional[str] = None

    model_config = {"from_attributes": True}


class PlanImageCreateRequest(BaseModel):
    image_url: str = Field(..., min_length=1)
    timepoint: str = Field(default="PRE_OP", max_length=32)
    description: Optional[str] = None


class PlanImageResponse(BaseModel):
    id: UUID
    image_url: str
    timepoint: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class ReadinessItemResponse(BaseModel):
    key: str
    label: str
    done: bool


class PlanningReadinessResponse(BaseModel):
    is_complete: bool
    missing_required: List[str]
    completed_count: int
    total_required: int
    items: List[ReadinessItemResponse]


class NurseReadinessResponse(BaseModel):
    case: CaseResponse
    readiness_status: str
    transitioned: bool
    reverted: bool
    missing_items: List[str]
    planning: PlanningReadinessResponse


class TransitionRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=32)
    reason: Optional[str] = Field(default=None, max_length=1000)


class TransitionResponse(BaseModel):
    case_id: UUID
    previous_status: str
    new_status: str
    transitioned_by: str
    transitioned_at: datetime
    released_bookings: int = 0
