"""Enumerations shared by the booking ledger, case lifecycle, checklist gate and schedule blocks.

Values are stored as plain strings in the database, so every enum subclasses str.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "ADMIN"
    NURSE = "NURSE"
    DOCTOR = "DOCTOR"
    THEATER_TECHNICIAN = "THEATER_TECHNICIAN"


class SurgicalCaseStatus(str, Enum):
    PLANNING = "PLANNING"
    READY_FOR_SCHEDULING = "READY_FOR_SCHEDULING"
    SCHEDULED = "SCHEDULED"
    IN_PREP = "IN_PREP"
    IN_THEATER = "IN_THEATER"
    RECOVERY = "RECOVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TheaterBookingStatus(str, Enum):
    PROVISIONAL = "PROVISIONAL"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class CaseReadinessStatus(str, Enum):
    """Nursing pre-op readiness. Only READY counts toward dual readiness."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_LABS = "PENDING_LABS"
    PENDING_CONSENT = "PENDING_CONSENT"
    PENDING_REVIEW = "PENDING_REVIEW"
    READY = "READY"
    ON_HOLD = "ON_HOLD"


class ConsentStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class ConsentType(str, Enum):
    GENERAL_PROCEDURE = "GENERAL_PROCEDURE"
    ANESTHESIA = "ANESTHESIA"
    BLOOD_TRANSFUSION = "BLOOD_TRANSFUSION"
    PHOTOGRAPHY = "PHOTOGRAPHY"
    SPECIAL_PROCEDURE = "SPECIAL_PROCEDURE"


class ImageTimepoint(str, Enum):
    PRE_OP = "PRE_OP"
    ONE_WEEK_POST_OP = "ONE_WEEK_POST_OP"
    ONE_MONTH_POST_OP = "ONE_MONTH_POST_OP"
    THREE_MONTHS_POST_OP = "THREE_MONTHS_POST_OP"
    SIX_MONTHS_POST_OP = "SIX_MONTHS_POST_OP"
    ONE_YEAR_POST_OP = "ONE_YEAR_POST_OP"
    CUSTOM = "CUSTOM"


class AnesthesiaType(str, Enum):
    GENERAL = "GENERAL"
    REGIONAL = "REGIONAL"
    LOCAL = "LOCAL"
    SEDATION = "SEDATION"
    TIVA = "TIVA"
    MAC = "MAC"


class ChecklistPhaseName(str, Enum):
    """WHO surgical safety checklist phases, in the order they are performed."""
    SIGN_IN = "SIGN_IN"
    TIME_OUT = "TIME_OUT"
    SIGN_OUT = "SIGN_OUT"


class ChecklistPhaseStatus(str, Enum):
    DRAFT = "DRAFT"
    FINAL = "FINAL"


class ScheduleBlockType(str, Enum):
    LEAVE = "LEAVE"
    SURGERY = "SURGERY"
    CLINIC = "CLINIC"
    ADMIN = "ADMIN"
    EMERGENCY = "EMERGENCY"
    CONFERENCE = "CONFERENCE"
    BURNOUT_PROTECTION = "BURNOUT_PROTECTION"
    TRAINING = "TRAINING"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Actor:
    """Authenticated identity supplied by upstream auth middleware."""
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def parse_role(raw: Optional[str]) -> Optional[Role]:
    if not raw:
        return None
    try:
        return Role(raw.strip().upper())
    except ValueError:
        return None
