"""WHO surgical safety checklist router: per-phase draft, finalize and status."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.api.dependencies import get_actor, get_audit, get_session
from theaterops.api.schemas.checklists import (
    ChecklistPhaseRequest,
    ChecklistPhaseResponse,
    ChecklistStatusResponse,
)
from theaterops.services.audit_service import AuditService
from theaterops.services.checklist_service import ChecklistService
from theaterops.workflow.types import Actor

router = APIRouter(prefix="/surgical-cases/{case_id}/checklist", tags=["checklists"])


@router.get("", response_model=ChecklistStatusResponse)
async def get_checklist_status(
    case_id: UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    phases = await ChecklistService(session, audit).get_checklist_status(case_id)
    return ChecklistStatusResponse(phases=phases)


@router.put("/{phase}/draft", response_model=ChecklistPhaseResponse)
async def save_checklist_draft(
    case_id: UUID,
    phase: str,
    body: ChecklistPhaseRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    draft = await ChecklistService(session, audit).save_checklist_draft(case_id, phase, body.items, actor)
    return ChecklistPhaseResponse(phase=phase.upper(), status=draft.status, items=draft.items)


@router.post("/{phase}/complete", response_model=ChecklistPhaseResponse)
async def complete_checklist_phase(
    case_id: UUID,
    phase: str,
    body: ChecklistPhaseRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    audit: AuditService = Depends(get_audit),
):
    """Finalize a phase. Re-finalizing returns the stored record with ``already_completed``."""
    result = await ChecklistService(session, audit).complete_checklist_phase(case_id, phase, body.items, actor)
    state = result.state
    return ChecklistPhaseResponse(
        phase=result.phase.value,
        status=state.status,
        already_completed=result.already_completed,
        items=state.items,
        completed_by_user_id=state.completed_by_user_id,
        completed_by_role=state.completed_by_role,
        completed_at=state.completed_at,
    )
