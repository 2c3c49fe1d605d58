"""SurgicalCaseService: the surgical case lifecycle and its readiness and checklist gates.

Status changes and who may cause them:
  PLANNING -> READY_FOR_SCHEDULING   nurse readiness update, when nursing says READY
                                     and the doctor's plan is complete at that moment
  READY_FOR_SCHEDULING -> SCHEDULED  TheaterBookingService.confirm_booking only
  SCHEDULED onward                   transition_case (theater technician / admin),
                                     checked against the legal-transition table
                                     after the WHO checklist gates
Every change writes a status-history row in the same transaction and an
audit event; blocked transition attempts are audited too.
"""
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.core.exceptions import (
    ForbiddenError,
    GateIncompleteError,
    NotFoundError,
    StateMachineViolationError,
    ValidationError,
)
from theaterops.infra.database.engine import atomic
from theaterops.infra.database.models.case_plan import CasePlan, CasePlanImage, ConsentForm
from theaterops.infra.database.models.surgical_case import SurgicalCase, SurgicalCaseStatusHistory
from theaterops.infra.database.repositories import (
    CasePlanImageRepository,
    CasePlanRepository,
    ConsentFormRepository,
    StatusHistoryRepository,
    SurgicalCaseRepository,
    TheaterBookingRepository,
)
from theaterops.services.checklist_service import ChecklistService
from theaterops.workflow.case_states import (
    RESERVED_TARGETS,
    can_transition,
    required_phase,
    resolve_action,
)
from theaterops.workflow.checklist import PHASE_TITLES
from theaterops.workflow.intervals import utcnow
from theaterops.workflow.planning import PlanningReadiness, evaluate_planning_readiness
from theaterops.workflow.types import (
    Actor,
    AnesthesiaType,
    CaseReadinessStatus,
    ConsentStatus,
    ConsentType,
    ImageTimepoint,
    Role,
    SurgicalCaseStatus,
)

logger = logging.getLogger(__name__)

_ENTITY = "SurgicalCase"

_NURSING = frozenset({Role.NURSE, Role.ADMIN})
_PLANNING = frozenset({Role.DOCTOR, Role.ADMIN})
_THEATER = frozenset({Role.THEATER_TECHNICIAN, Role.ADMIN})

_PLAN_FIELDS = (
    "procedure_plan",
    "risk_factors",
    "planned_anesthesia",
    "implant_details",
    "pre_op_notes",
    "special_instructions",
)

# Going back to PLANNING or cancelling frees the theater time the case held.
_RELEASES_BOOKINGS = frozenset({SurgicalCaseStatus.PLANNING, SurgicalCaseStatus.CANCELLED})


@dataclass
class ReadinessOutcome:
    case: SurgicalCase
    plan: CasePlan
    readiness: PlanningReadiness
    transitioned: bool = False
    reverted: bool = False

    @property
    def missing_items(self) -> List[str]:
        return self.readiness.missing_required


@dataclass
class TransitionResult:
    case_id: UUID
    previous_status: str
    new_status: str
    transitioned_by: str
    transitioned_at: _dt.datetime
    released_bookings: int = 0


class SurgicalCaseService:
    def __init__(
        self,
        session: AsyncSession,
        audit: Any,
        clock: Optional[Callable[[], _dt.datetime]] = None,
    ) -> None:
        self._session = session
        self._audit = audit
        self._clock = clock or utcnow
        self._case_repo = SurgicalCaseRepository(session)
        self._history_repo = StatusHistoryRepository(session)
        self._plan_repo = CasePlanRepository(session)
        self._consent_repo = ConsentFormRepository(session)
        self._image_repo = CasePlanImageRepository(session)
        self._booking_repo = TheaterBookingRepository(session)
        self._checklist = ChecklistService(session, audit, clock=self._clock)

    # ── Intake & queries ──────────────────────────────────────────────────────

    async def create_case(
        self,
        patient_id: str,
        actor: Actor,
        *,
        primary_surgeon_id: Optional[UUID] = None,
        procedure_name: Optional[str] = None,
        diagnosis: Optional[str] = None,
        urgency: str = "ELECTIVE",
    ) -> SurgicalCase:
        _require_role(actor, _PLANNING, "open a surgical case")
        if not (patient_id or "").strip():
            raise ValidationError("patient_id is required")
        async with atomic(self._session):
            case = await self._case_repo.create({
                "patient_id": patient_id.strip(),
                "primary_surgeon_id": primary_surgeon_id,
                "procedure_name": procedure_name,
                "diagnosis": diagnosis,
                "urgency": urgency,
                "status": SurgicalCaseStatus.PLANNING.value,
            })
            await self._plan_repo.create({"surgical_case_id": case.id})
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CASE_CREATED",
            entity_type=_ENTITY,
            entity_id=case.id,
            metadata={"patient_id": patient_id, "procedure_name": procedure_name},
        )
        return case

    async def get_case(self, case_id: UUID) -> SurgicalCase:
        case = await self._case_repo.get_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Surgical case {case_id} not found")
        return case

    async def get_planning_readiness(self, case_id: UUID) -> PlanningReadiness:
        await self.get_case(case_id)
        plan = await self._plan_repo.get_by_case_id(case_id)
        return await self._evaluate_plan(plan)

    async def get_status_history(self, case_id: UUID) -> List[SurgicalCaseStatusHistory]:
        await self.get_case(case_id)
        return await self._history_repo.list_for_case(case_id)

    # ── Dual readiness ────────────────────────────────────────────────────────

    async def update_nurse_readiness(
        self,
        case_id: UUID,
        readiness_status: Union[CaseReadinessStatus, str],
        actor: Actor,
    ) -> ReadinessOutcome:
        """Persist nursing readiness, then evaluate dual readiness.

        The value is stored even when the doctor's plan is incomplete; the
        case then stays in PLANNING and ``missing_items`` says why.
        Withdrawing readiness from a READY_FOR_SCHEDULING case returns it
        to PLANNING.
        """
        _require_role(actor, _NURSING, "update pre-op readiness")
        status = _coerce(CaseReadinessStatus, readiness_status, "readiness_status")
        nurse_ready = status == CaseReadinessStatus.READY

        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            plan = await self._plan_repo.get_or_create(case.id)
            plan = await self._plan_repo.apply(plan, {
                "readiness_status": status.value,
                "ready_for_surgery": nurse_ready,
            })
            readiness = await self._evaluate_plan(plan)
            previous = case.status

            outcome = ReadinessOutcome(case=case, plan=plan, readiness=readiness)
            if nurse_ready and readiness.is_complete and previous == SurgicalCaseStatus.PLANNING.value:
                await self._set_status(
                    case, SurgicalCaseStatus.READY_FOR_SCHEDULING, actor.user_id,
                    "Nursing and doctor readiness complete",
                )
                outcome.transitioned = True
            elif not nurse_ready and previous == SurgicalCaseStatus.READY_FOR_SCHEDULING.value:
                await self._set_status(
                    case, SurgicalCaseStatus.PLANNING, actor.user_id,
                    f"Nursing readiness changed to {status.value}",
                )
                outcome.reverted = True

        if nurse_ready and not readiness.is_complete:
            logger.info(
                "SurgicalCaseService: case %s marked READY by nursing but plan incomplete (%s)",
                case_id, ", ".join(readiness.missing_required),
            )
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="NURSE_READINESS_UPDATED",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={
                "readiness_status": status,
                "doctor_plan_complete": readiness.is_complete,
                "missing_items": readiness.missing_required,
                "previous_status": previous,
                "new_status": case.status,
            },
        )
        if outcome.transitioned or outcome.reverted:
            await self._audit.record(
                actor_user_id=actor.user_id,
                action_type="CASE_TRANSITION",
                entity_type=_ENTITY,
                entity_id=case_id,
                metadata={
                    "previous_status": previous,
                    "new_status": case.status,
                    "action": "NURSE_READINESS",
                    "user_role": actor.role,
                },
            )
        return outcome

    async def update_case_plan(
        self,
        case_id: UUID,
        changes: Dict[str, Any],
        actor: Actor,
    ) -> PlanningReadiness:
        """Update doctor planning fields; returns the recomputed plan readiness."""
        _require_role(actor, _PLANNING, "edit the case plan")
        unknown = sorted(set(changes) - set(_PLAN_FIELDS))
        if unknown:
            raise ValidationError(
                f"Unknown case plan fields: {', '.join(unknown)}",
                details={"allowed": list(_PLAN_FIELDS)},
            )
        anesthesia = changes.get("planned_anesthesia")
        if anesthesia:
            changes = {**changes, "planned_anesthesia": _coerce(AnesthesiaType, anesthesia, "planned_anesthesia").value}

        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            plan = await self._plan_repo.get_or_create(case.id)
            plan = await self._plan_repo.apply(plan, changes)
            readiness = await self._evaluate_plan(plan)

        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CASE_PLAN_UPDATED",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={"fields": sorted(changes), "missing_items": readiness.missing_required},
        )
        return readiness

    async def add_consent(
        self,
        case_id: UUID,
        title: str,
        actor: Actor,
        *,
        consent_type: Union[ConsentType, str] = ConsentType.GENERAL_PROCEDURE,
    ) -> ConsentForm:
        _require_role(actor, _PLANNING, "add a consent form")
        if not (title or "").strip():
            raise ValidationError("Consent title is required")
        kind = _coerce(ConsentType, consent_type, "consent_type")
        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            plan = await self._plan_repo.get_or_create(case.id)
            consent = await self._consent_repo.create({
                "case_plan_id": plan.id,
                "title": title.strip(),
                "consent_type": kind.value,
                "status": ConsentStatus.PENDING_SIGNATURE.value,
            })
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CONSENT_ADDED",
            entity_type="ConsentForm",
            entity_id=consent.id,
            metadata={"case_id": case_id, "consent_type": kind},
        )
        return consent

    async def sign_consent(self, case_id: UUID, consent_id: UUID, actor: Actor) -> ConsentForm:
        _require_role(actor, _PLANNING, "record a signed consent")
        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            plan = await self._plan_repo.get_by_case_id(case.id)
            consent = await self._consent_repo.get_for_update(consent_id)
            if consent is None or plan is None or consent.case_plan_id != plan.id:
                raise NotFoundError(f"Consent {consent_id} not found on case {case_id}")
            if consent.status == ConsentStatus.SIGNED.value:
                return consent
            if consent.status in (ConsentStatus.REVOKED.value, ConsentStatus.EXPIRED.value):
                raise StateMachineViolationError(
                    f"Consent {consent_id} is {consent.status} and cannot be signed",
                    details={"consent_id": str(consent_id), "status": consent.status},
                )
            consent = await self._consent_repo.apply(consent, {
                "status": ConsentStatus.SIGNED.value,
                "signed_at": self._clock(),
                "signed_by": actor.user_id,
            })
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CONSENT_SIGNED",
            entity_type="ConsentForm",
            entity_id=consent_id,
            metadata={"case_id": case_id},
        )
        return consent

    async def add_plan_image(
        self,
        case_id: UUID,
        image_url: str,
        actor: Actor,
        *,
        timepoint: Union[ImageTimepoint, str] = ImageTimepoint.PRE_OP,
        description: Optional[str] = None,
    ) -> CasePlanImage:
        _require_role(actor, _PLANNING, "attach case photos")
        if not (image_url or "").strip():
            raise ValidationError("image_url is required")
        point = _coerce(ImageTimepoint, timepoint, "timepoint")
        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            plan = await self._plan_repo.get_or_create(case.id)
            image = await self._image_repo.create({
                "case_plan_id": plan.id,
                "image_url": image_url.strip(),
                "timepoint": point.value,
                "description": description,
            })
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CASE_IMAGE_ADDED",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={"image_id": image.id, "timepoint": point},
        )
        return image

    # ── Day-of-surgery transitions ────────────────────────────────────────────

    async def transition_case(
        self,
        case_id: UUID,
        action: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Move a case along the day-of-surgery flow.

        Checklist gates are checked before the transition table, so entering
        IN_THEATER without a finalized Sign-In reports the missing items.
        Blocked attempts are audited and re-raised.
        """
        _require_role(actor, _THEATER, "move a case through theater")
        target = resolve_action(action)
        if target is None:
            raise ValidationError(
                f"Invalid transition action: {action}",
                details={"action": action},
            )

        blocked: Optional[Exception] = None
        released = 0
        async with atomic(self._session):
            case = await self._case_for_update(case_id)
            previous = case.status
            try:
                await self._check_transition(case, target)
            except (GateIncompleteError, StateMachineViolationError) as exc:
                blocked = exc
            else:
                await self._set_status(case, target, actor.user_id, reason)
                if target in _RELEASES_BOOKINGS:
                    released = await self._booking_repo.cancel_live_for_case(
                        case.id, reason or f"Case moved to {target.value}", self._clock(),
                    )

        if blocked is not None:
            logger.warning(
                "SurgicalCaseService: transition BLOCKED %s -> %s for case %s by %s: %s",
                previous, target.value, case_id, actor.user_id, blocked,
            )
            await self._audit.record(
                actor_user_id=actor.user_id,
                action_type="CASE_TRANSITION_BLOCKED",
                entity_type=_ENTITY,
                entity_id=case_id,
                metadata={
                    "previous_status": previous,
                    "attempted_status": target,
                    "action": action,
                    "reason": reason,
                    "user_role": actor.role,
                    "block_reason": str(blocked),
                    "blockers": getattr(blocked, "missing_items", []),
                },
            )
            raise blocked

        logger.info(
            "SurgicalCaseService: case %s %s -> %s by %s", case_id, previous, target.value, actor.user_id,
        )
        await self._audit.record(
            actor_user_id=actor.user_id,
            action_type="CASE_TRANSITION",
            entity_type=_ENTITY,
            entity_id=case_id,
            metadata={
                "previous_status": previous,
                "new_status": target,
                "action": action,
                "reason": reason,
                "user_role": actor.role,
                "released_bookings": released,
            },
        )
        return TransitionResult(
            case_id=case_id,
            previous_status=previous,
            new_status=target.value,
            transitioned_by=actor.user_id,
            transitioned_at=self._clock(),
            released_bookings=released,
        )

    async def _check_transition(self, case: SurgicalCase, target: SurgicalCaseStatus) -> None:
        current = SurgicalCaseStatus(case.status)
        if target in RESERVED_TARGETS:
            raise StateMachineViolationError(
                f"{target.value} is set by the scheduling workflow, not by a manual transition",
                details={"from": current.value, "to": target.value},
            )
        phase = required_phase(target)
        if phase is not None:
            missing = await self._checklist.missing_items(case.id, phase)
            if missing:
                raise GateIncompleteError(
                    f"Cannot transition to {target.value}: WHO {PHASE_TITLES[phase]} checklist must be finalized",
                    missing_items=missing,
                    details={"gate": f"WHO_CHECKLIST_{phase.value}", "case_id": str(case.id)},
                )
        if not can_transition(current, target):
            raise StateMachineViolationError(
                f"Illegal transition {current.value} -> {target.value}",
                details={"from": current.value, "to": target.value},
            )

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _case_for_update(self, case_id: UUID) -> SurgicalCase:
        case = await self._case_repo.get_for_update(case_id)
        if case is None:
            raise NotFoundError(f"Surgical case {case_id} not found")
        return case

    async def _evaluate_plan(self, plan: Optional[CasePlan]) -> PlanningReadiness:
        if plan is None:
            return evaluate_planning_readiness(None)
        consents = await self._consent_repo.list_for_plan(plan.id)
        images = await self._image_repo.list_for_plan(plan.id)
        return evaluate_planning_readiness(plan, consents, images)

    async def _set_status(
        self,
        case: SurgicalCase,
        status: SurgicalCaseStatus,
        actor_id: Optional[str],
        reason: Optional[str],
    ) -> None:
        previous = case.status
        await self._case_repo.apply(case, {"status": status.value})
        await self._history_repo.record(case.id, previous, status.value, actor_id, reason)


def _require_role(actor: Actor, allowed: Iterable[Role], what: str) -> None:
    if actor.role not in allowed:
        raise ForbiddenError(
            f"Role {actor.role.value} may not {what}",
            details={"role": actor.role.value, "allowed": sorted(r.value for r in allowed)},
        )


def _coerce(enum_cls: Any, value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value.upper() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            details={"field": field_name, "allowed": [m.value for m in enum_cls]},
        )
