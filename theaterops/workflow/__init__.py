"""Pure workflow rules: enums, case state machine, WHO checklist, planning readiness."""
from theaterops.workflow.case_states import (
    LEGAL_TRANSITIONS,
    can_transition,
    required_phase,
    resolve_action,
)
from theaterops.workflow.checklist import (
    WHO_ITEMS,
    ChecklistItem,
    DraftPhase,
    FinalPhase,
    missing_who_items,
    parse_phase_payload,
)
from theaterops.workflow.planning import PlanningReadiness, evaluate_planning_readiness
from theaterops.workflow.types import (
    Actor,
    CaseReadinessStatus,
    ChecklistPhaseName,
    ChecklistPhaseStatus,
    Role,
    ScheduleBlockType,
    SurgicalCaseStatus,
    TheaterBookingStatus,
)

__all__ = [
    "Actor",
    "Role",
    "SurgicalCaseStatus",
    "TheaterBookingStatus",
    "CaseReadinessStatus",
    "ChecklistPhaseName",
    "ChecklistPhaseStatus",
    "ScheduleBlockType",
    "LEGAL_TRANSITIONS",
    "can_transition",
    "resolve_action",
    "required_phase",
    "WHO_ITEMS",
    "ChecklistItem",
    "DraftPhase",
    "FinalPhase",
    "missing_who_items",
    "parse_phase_payload",
    "PlanningReadiness",
    "evaluate_planning_readiness",
]
