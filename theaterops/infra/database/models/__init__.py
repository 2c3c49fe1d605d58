"""
theaterops.infra.database.models – SQLAlchemy 2.0 ORM models.

Exports Base, mixins, and all model classes.
"""
from theaterops.infra.database.models.audit_event import AuditEvent
from theaterops.infra.database.models.base import Base, TimestampMixin, _uuid_pk
from theaterops.infra.database.models.case_plan import CasePlan, CasePlanImage, ConsentForm
from theaterops.infra.database.models.checklist import ChecklistPhaseRecord
from theaterops.infra.database.models.doctor import Doctor
from theaterops.infra.database.models.schedule_block import ScheduleBlock
from theaterops.infra.database.models.surgical_case import SurgicalCase, SurgicalCaseStatusHistory
from theaterops.infra.database.models.theater import Theater, TheaterBooking

__all__ = [
    "Base",
    "TimestampMixin",
    "_uuid_pk",
    "AuditEvent",
    "CasePlan",
    "CasePlanImage",
    "ConsentForm",
    "ChecklistPhaseRecord",
    "Doctor",
    "ScheduleBlock",
    "SurgicalCase",
    "SurgicalCaseStatusHistory",
    "Theater",
    "TheaterBooking",
]
