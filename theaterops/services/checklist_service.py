"""ChecklistService: the three WHO surgical safety checklist phases of a case.

A phase is saved as a DRAFT any number of times and finalized once. Finalizing
requires every submitted item to be confirmed and every canonical WHO item of
the phase to be among them; re-finalizing a FINAL phase is a no-op that returns
the stored record. Both outcomes are audited.
"""
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.core.exceptions import (
    GateIncompleteError,
    NotFoundError,
    StateMachineViolationError,
    ValidationError,
)
from theaterops.infra.database.engine import atomic
from theaterops.infra.database.models.checklist import ChecklistPhaseRecord
from theaterops.infra.database.repositories import ChecklistRepository, SurgicalCaseRepository
from theaterops.workflow.checklist import (
    PHASE_TITLES,
    WHO_ITEMS,
    ChecklistItem,
    DraftPhase,
    FinalPhase,
    missing_who_items,
    parse_phase_payload,
    unconfirmed_items,
)
from theaterops.workflow.intervals import utcnow
from theaterops.workflow.types import Actor, ChecklistPhaseName, ChecklistPhaseStatus

logger = logging.getLogger(__name__)

_ENTITY = "SurgicalChecklist"

ItemsInput = Iterable[Union[ChecklistItem, Dict[str, Any]]]


@dataclass
class PhaseCompletion:
    phase: ChecklistPhaseName
    state: FinalPhase
    already_completed: bool


class ChecklistService:
    def __init__(
        self,
        session: AsyncSession,
        audit: Any,
        clock: Optional[Callable[[], _dt.datetime]] = None,
    ) -> None:
        self._session = session
        self._audit = audit
        self._clock = clock or utcnow
        self._repo = ChecklistRepository(session)
        self._case_repo = SurgicalCaseRepository(session)

    async def complete_checklist_phase(
        self,
        case_id: UUID,
        phase: Union[ChecklistPhaseName, str],
        items: ItemsInput,
        actor: Actor,
    ) -> PhaseCompletion:
        phase = _coerce_phase(phase)
        parsed = _parse_items(items)
        pending = unconfirmed_items(parsed)
        if pending:
            raise ValidationError(
                f"All {PHASE_TITLES[phase]} items must be confirmed: {', '.join(pending)}",
                details={"phase": phase.value, "unconfirmed_items": pending},
            )
        missing = missing_who_items(phase, parsed)
        if missing:
            raise GateIncompleteError(
                f"{PHASE_TITLES[phase]} cannot be finalized until every WHO item is confirmed",
                missing_items=missing,
                details={"phase": phase.value},
            )

        async with atomic(self._session):
            await self._require_case(case_id)
            record = await self._repo.get_phase(case_id, phase.value, for_update=True)
            already = record is not None and record.status == ChecklistPhaseStatus.FINAL.value
            if not already:
                state = FinalPhase(
                    items=parsed,
                    completed_by_user_id=actor.user_id,
                    completed_by_role=actor.role.value,
                    completed_at=self._clock(),
                )
                record = await self._store(case_id, phase, record, state)

        state = parse_phase_payload(record.to_payload())
        action = "NOOP" if already else "COMPLETED"
        logger.info("ChecklistService: %s %s for case %s", phase.value, action.lower(), case_id)
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type=f"CHECKLIST_{phase.value}_{action}",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={
                "phase": phase,
                "role": actor.role,
                "item_count": len(state.items),
                "completed_at": state.completed_at,
            },
        )
        return PhaseCompletion(phase=phase, state=state, already_completed=already)

    async def save_checklist_draft(
        self,
        case_id: UUID,
        phase: Union[ChecklistPhaseName, str],
        items: ItemsInput,
        actor: Actor,
    ) -> DraftPhase:
        """Store partial confirmations. A finalized phase cannot go back to draft."""
        phase = _coerce_phase(phase)
        draft = DraftPhase(items=_parse_items(items))

        async with atomic(self._session):
            await self._require_case(case_id)
            record = await self._repo.get_phase(case_id, phase.value, for_update=True)
            if record is not None and record.status == ChecklistPhaseStatus.FINAL.value:
                raise StateMachineViolationError(
                    f"{PHASE_TITLES[phase]} is already finalized",
                    details={"case_id": str(case_id), "phase": phase.value},
                )
            await self._store(case_id, phase, record, draft)

        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type=f"CHECKLIST_{phase.value}_DRAFT",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={
                "phase": phase,
                "role": actor.role,
                "confirmed": len(draft.items) - len(unconfirmed_items(draft.items)),
                "total": len(draft.items),
            },
        )
        return draft

    async def get_checklist_status(self, case_id: UUID) -> Dict[str, Dict[str, Any]]:
        """Per-phase progress keyed by phase name, for dashboards and gate messaging."""
        await self._require_case(case_id)
        records = {r.phase: r for r in await self._repo.list_for_case(case_id)}
        status: Dict[str, Dict[str, Any]] = {}
        for phase in ChecklistPhaseName:
            record = records.get(phase.value)
            state = parse_phase_payload(record.to_payload()) if record is not None else None
            items = state.items if state is not None else []
            finalized = isinstance(state, FinalPhase)
            status[phase.value] = {
                "title": PHASE_TITLES[phase],
                "status": state.status if state is not None else None,
                "completed": finalized,
                "completed_at": state.completed_at if finalized else None,
                "completed_by_user_id": state.completed_by_user_id if finalized else None,
                "completed_by_role": state.completed_by_role if finalized else None,
                "confirmed": sum(1 for i in items if i.confirmed),
                "total": max(len(items), len(WHO_ITEMS[phase])),
                "items": [i.model_dump() for i in items],
            }
        return status

    async def is_phase_complete(self, case_id: UUID, phase: Union[ChecklistPhaseName, str]) -> bool:
        return not await self.missing_items(case_id, phase)

    async def missing_items(self, case_id: UUID, phase: Union[ChecklistPhaseName, str]) -> List[str]:
        """Labels that keep ``phase`` from gating a transition; empty once FINAL with every WHO item."""
        phase = _coerce_phase(phase)
        record = await self._repo.get_phase(case_id, phase.value)
        if record is None:
            return missing_who_items(phase, None)
        state = parse_phase_payload(record.to_payload())
        missing = missing_who_items(phase, state.items)
        if isinstance(state, FinalPhase):
            return missing
        return missing or [f"{PHASE_TITLES[phase]} checklist not finalized"]

    async def _require_case(self, case_id: UUID) -> None:
        if not await self._case_repo.exists(case_id):
            raise NotFoundError(f"Surgical case {case_id} not found")

    async def _store(
        self,
        case_id: UUID,
        phase: ChecklistPhaseName,
        record: Optional[ChecklistPhaseRecord],
        state: Union[DraftPhase, FinalPhase],
    ) -> ChecklistPhaseRecord:
        values = {
            "status": state.status,
            "items": [i.model_dump(mode="json", exclude_none=True) for i in state.items],
            "completed_by_user_id": getattr(state, "completed_by_user_id", None),
            "completed_by_role": getattr(state, "completed_by_role", None),
            "completed_at": getattr(state, "completed_at", None),
        }
        if record is None:
            return await self._repo.create({"surgical_case_id": case_id, "phase": phase.value, **values})
        return await self._repo.apply(record, values)


def _coerce_phase(phase: Union[ChecklistPhaseName, str]) -> ChecklistPhaseName:
    try:
        return ChecklistPhaseName(phase.upper() if isinstance(phase, str) else phase)
    except ValueError:
        raise ValidationError(
            f"Unknown checklist phase {phase!r}",
            details={"allowed": [p.value for p in ChecklistPhaseName]},
        )


def _parse_items(items: ItemsInput) -> List[ChecklistItem]:
    try:
        parsed = [i if isinstance(i, ChecklistItem) else ChecklistItem.model_validate(i) for i in items]
    except PydanticValidationError as exc:
        raise ValidationError(
            "Malformed checklist items",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            cause=exc,
        )
    if not parsed:
        raise ValidationError("At least one checklist item is required")
    return parsed
