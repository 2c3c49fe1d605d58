"""Surgical cases router: intake, dual readiness, case plan, and day-of-surgery transitions."""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.api.dependencies import get_actor, get_audit, get_session
from theaterops.api.schemas.cases import (
    CaseCreateRequest,
    CasePlanPatchRequest,
    CaseResponse,
    ConsentCreateRequest,
    ConsentResponse,
    NurseReadinessRequest,
    NurseReadinessResponse,
    PlanImageCreateRequest,
    PlanImageResponse,
    PlanningReadinessResponse,
    StatusHistoryResponse,
    TransitionRequest,
    TransitionResponse,
)
from theaterops.services.audit_service import AuditService
from theaterops.services.surgical_case_service import SurgicalCaseService
from theaterops.workflow.planning import PlanningReadiness
from theaterops.workflow.types import Actor

router = APIRouter(prefix="/surgical-cases", tags=["surgical-cases"])


def _readiness(r: PlanningReadiness) -> PlanningReadinessResponse:
    return PlanningReadinessResponse.model_validate(r.to_dict())


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    body: CaseCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    case = await SurgicalCaseService(session, audit).create_case(
        body.patient_id,
        actor,
        primary_surgeon_id=body.primary_surgeon_id,
        procedure_name=body.procedure_name,
        diagnosis=body.diagnosis,
        urgency=body.urgency,
    )
    return CaseResponse.model_validate(case)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    return CaseResponse.model_validate(await SurgicalCaseService(session, audit).get_case(case_id))


@router.get("/{case_id}/history", response_model=List[StatusHistoryResponse])
async def get_status_history(
    case_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    rows = await SurgicalCaseService(session, audit).get_status_history(case_id)
    return [StatusHistoryResponse.model_validate(r) for r in rows]


@router.get("/{case_id}/readiness", response_model=PlanningReadinessResponse)
async def get_planning_readiness(
    case_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    return _readiness(await SurgicalCaseService(session, audit).get_planning_readiness(case_id))


@router.put("/{case_id}/nurse-readiness", response_model=NurseReadinessResponse)
async def update_nurse_readiness(
    case_id: UUID,
    body: NurseReadinessRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    """Record nursing pre-op readiness; may move the case to READY_FOR_SCHEDULING."""
    outcome = await SurgicalCaseService(session, audit).update_nurse_readiness(
        case_id, body.readiness_status, actor,
    )
    return NurseReadinessResponse(
        case=CaseResponse.model_validate(outcome.case),
        readiness_status=outcome.plan.readiness_status,
        transitioned=outcome.transitioned,
        reverted=outcome.reverted,
        missing_items=outcome.missing_items,
        planning=_readiness(outcome.readiness),
    )


@router.patch("/{case_id}/plan", response_model=PlanningReadinessResponse)
async def update_case_plan(
    case_id: UUID,
    body: CasePlanPatchRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    changes = body.model_dump(exclude_unset=True)
    readiness = await SurgicalCaseService(session, audit).update_case_plan(case_id, changes, actor)
    return _readiness(readiness)


@router.post("/{case_id}/consents", response_model=ConsentResponse, status_code=status.HTTP_201_CREATED)
async def add_consent(
    case_id: UUID,
    body: ConsentCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    consent = await SurgicalCaseService(session, audit).add_consent(
        case_id, body.title, actor, consent_type=body.consent_type,
    )
    return ConsentResponse.model_validate(consent)


@router.post("/{case_id}/consents/{consent_id}/sign", response_model=ConsentResponse)
async def sign_consent(
    case_id: UUID,
    consent_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    consent = await SurgicalCaseService(session, audit).sign_consent(case_id, consent_id, actor)
    return ConsentResponse.model_validate(consent)


@router.post("/{case_id}/images", response_model=PlanImageResponse, status_code=status.HTTP_201_CREATED)
async def add_plan_image(
    case_id: UUID,
    body: PlanImageCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    image = await SurgicalCaseService(session, audit).add_plan_image(
        case_id, body.image_url, actor, timepoint=body.timepoint, description=body.description,
    )
    return PlanImageResponse.model_validate(image)


@router.post("/{case_id}/transition", response_model=TransitionResponse)
async def transition_case(
    case_id: UUID,
    body: TransitionRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    result = await SurgicalCaseService(session, audit).transition_case(
        case_id, body.action, actor, reason=body.reason,
    )
    return TransitionResponse(
        case_id=result.case_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        transitioned_by=result.transitioned_by,
        transitioned_at=result.transitioned_at,
        released_bookings=result.released_bookings,
    )
