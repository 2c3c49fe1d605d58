"""WHO surgical safety checklist: canonical items and the DRAFT/FINAL phase payloads.

A stored phase is either a DRAFT (partial confirmations, no sign-off fields)
or FINAL (every item confirmed, signed off by a user at a time). The two shapes
are a pydantic union discriminated on ``status``, so a FINAL record missing its
sign-off cannot be constructed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from theaterops.workflow.types import ChecklistPhaseName


@dataclass(frozen=True)
class WhoItemDef:
    key: str
    label: str


WHO_ITEMS: Dict[ChecklistPhaseName, Sequence[WhoItemDef]] = {
    # Before induction of anesthesia
    ChecklistPhaseName.SIGN_IN: (
        WhoItemDef("patient_identity", "Patient identity confirmed (name, DOB, wristband)"),
        WhoItemDef("site_marked", "Surgical site marked / not applicable"),
        WhoItemDef("consent_verified", "Consent signed and verified"),
        WhoItemDef("anesthesia_check", "Anesthesia safety check completed"),
        WhoItemDef("pulse_oximeter", "Pulse oximeter on patient and functioning"),
        WhoItemDef("allergy_check", "Known allergies reviewed"),
        WhoItemDef("airway_risk", "Difficult airway / aspiration risk assessed"),
        WhoItemDef("blood_loss_risk", "Risk of >500ml blood loss assessed"),
    ),
    # Before skin incision
    ChecklistPhaseName.TIME_OUT: (
        WhoItemDef("team_intro", "All team members introduced by name and role"),
        WhoItemDef("patient_confirm", "Patient name, procedure, and incision site confirmed"),
        WhoItemDef("antibiotic_prophylaxis", "Antibiotic prophylaxis given within last 60 minutes"),
        WhoItemDef("critical_events_surgeon", "Anticipated critical events: surgeon reviewed"),
        WhoItemDef("critical_events_anesthesia", "Anticipated critical events: anesthesia reviewed"),
        WhoItemDef("critical_events_nursing", "Anticipated critical events: nursing reviewed"),
        WhoItemDef("imaging_displayed", "Essential imaging displayed"),
        WhoItemDef("equipment_sterile", "Equipment sterility confirmed (indicator results)"),
    ),
    # Before the patient leaves the theater
    ChecklistPhaseName.SIGN_OUT: (
        WhoItemDef("procedure_recorded", "Procedure name / description recorded"),
        WhoItemDef("instrument_count", "Instrument, sponge, and needle counts correct"),
        WhoItemDef("specimen_labeled", "Specimen labeled (including patient name)"),
        WhoItemDef("equipment_issues", "Equipment problems addressed"),
        WhoItemDef("recovery_plan", "Key concerns for recovery and management reviewed"),
    ),
}

PHASE_TITLES: Dict[ChecklistPhaseName, str] = {
    ChecklistPhaseName.SIGN_IN: "Sign-In",
    ChecklistPhaseName.TIME_OUT: "Time-Out",
    ChecklistPhaseName.SIGN_OUT: "Sign-Out",
}


class ChecklistItem(BaseModel):
    key: str = Field(..., min_length=1, max_length=64)
    label: Optional[str] = Field(None, max_length=255)
    confirmed: bool
    note: Optional[str] = Field(None, max_length=500)

    @property
    def display_name(self) -> str:
        return self.label or self.key


class DraftPhase(BaseModel):
    status: Literal["DRAFT"] = "DRAFT"
    items: List[ChecklistItem] = Field(..., min_length=1)


class FinalPhase(BaseModel):
    status: Literal["FINAL"] = "FINAL"
    items: List[ChecklistItem] = Field(..., min_length=1)
    completed_by_user_id: str = Field(..., min_length=1)
    completed_by_role: Optional[str] = None
    completed_at: datetime

    @model_validator(mode="after")
    def _all_items_confirmed(self) -> "FinalPhase":
        pending = unconfirmed_items(self.items)
        if pending:
            raise ValueError(f"FINAL phase has unconfirmed items: {', '.join(pending)}")
        return self


PhasePayload = Annotated[Union[DraftPhase, FinalPhase], Field(discriminator="status")]
_phase_adapter: TypeAdapter = TypeAdapter(PhasePayload)


def parse_phase_payload(data: Dict[str, Any]) -> Union[DraftPhase, FinalPhase]:
    """Validate a stored phase row (as a dict) into its DRAFT or FINAL shape."""
    return _phase_adapter.validate_python(data)


def unconfirmed_items(items: Iterable[ChecklistItem]) -> List[str]:
    return [i.display_name for i in items if not i.confirmed]


def missing_who_items(
    phase: ChecklistPhaseName,
    items: Optional[Iterable[ChecklistItem]],
) -> List[str]:
    """Labels of canonical WHO items for ``phase`` that are not confirmed in ``items``."""
    defs = WHO_ITEMS[phase]
    confirmed = {i.key for i in (items or ()) if i.confirmed}
    return [d.label for d in defs if d.key not in confirmed]


def who_template(phase: ChecklistPhaseName) -> List[ChecklistItem]:
    """Blank item list for a phase, handy for rendering an empty checklist."""
    return [ChecklistItem(key=d.key, label=d.label, confirmed=False) for d in WHO_ITEMS[phase]]
