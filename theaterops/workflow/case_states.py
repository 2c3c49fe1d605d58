"""Surgical case state machine: legal edges, technician actions and checklist gates."""
from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from theaterops.workflow.types import ChecklistPhaseName, SurgicalCaseStatus

S = SurgicalCaseStatus

LEGAL_TRANSITIONS: Dict[SurgicalCaseStatus, FrozenSet[SurgicalCaseStatus]] = {
    S.PLANNING: frozenset({S.READY_FOR_SCHEDULING, S.CANCELLED}),
    S.READY_FOR_SCHEDULING: frozenset({S.SCHEDULED, S.PLANNING, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.IN_PREP, S.IN_THEATER, S.READY_FOR_SCHEDULING, S.PLANNING, S.CANCELLED}),
    S.IN_PREP: frozenset({S.IN_THEATER, S.PLANNING, S.CANCELLED}),
    S.IN_THEATER: frozenset({S.RECOVERY}),
    S.RECOVERY: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Entering READY_FOR_SCHEDULING belongs to the dual-readiness evaluation and
# entering SCHEDULED to booking confirmation; transition_case never targets them.
RESERVED_TARGETS: FrozenSet[SurgicalCaseStatus] = frozenset({S.READY_FOR_SCHEDULING, S.SCHEDULED})

ACTION_TO_STATUS: Dict[str, SurgicalCaseStatus] = {
    "IN_PREP": S.IN_PREP,
    "IN_THEATER": S.IN_THEATER,
    "RECOVERY": S.RECOVERY,
    "COMPLETED": S.COMPLETED,
    "PLANNING": S.PLANNING,
    "CANCELLED": S.CANCELLED,
    "READY_FOR_SCHEDULING": S.READY_FOR_SCHEDULING,
    "SCHEDULED": S.SCHEDULED,
}

GATED_TARGETS: Dict[SurgicalCaseStatus, ChecklistPhaseName] = {
    S.IN_THEATER: ChecklistPhaseName.SIGN_IN,
    S.RECOVERY: ChecklistPhaseName.SIGN_OUT,
}

# Once the patient is in prep, the theater booking is no longer releasable.
DAY_OF_SURGERY: FrozenSet[SurgicalCaseStatus] = frozenset(
    {S.IN_PREP, S.IN_THEATER, S.RECOVERY, S.COMPLETED}
)


def can_transition(current: SurgicalCaseStatus, target: SurgicalCaseStatus) -> bool:
    return target in LEGAL_TRANSITIONS.get(current, frozenset())


def resolve_action(action: str) -> Optional[SurgicalCaseStatus]:
    return ACTION_TO_STATUS.get((action or "").strip().upper())


def required_phase(target: SurgicalCaseStatus) -> Optional[ChecklistPhaseName]:
    return GATED_TARGETS.get(target)
