"""Repositories for the theaterops database."""
from theaterops.infra.database.repositories.audit_event import AuditEventRepository
from theaterops.infra.database.repositories.base import BaseRepository
from theaterops.infra.database.repositories.case_plan import (
    CasePlanImageRepository,
    CasePlanRepository,
    ConsentFormRepository,
)
from theaterops.infra.database.repositories.checklist import ChecklistRepository
from theaterops.infra.database.repositories.schedule_block import (
    DoctorRepository,
    ScheduleBlockRepository,
)
from theaterops.infra.database.repositories.surgical_case import (
    StatusHistoryRepository,
    SurgicalCaseRepository,
)
from theaterops.infra.database.repositories.theater import (
    TheaterBookingRepository,
    TheaterRepository,
)

__all__ = [
    "BaseRepository",
    "AuditEventRepository",
    "CasePlanRepository",
    "ConsentFormRepository",
    "CasePlanImageRepository",
    "ChecklistRepository",
    "DoctorRepository",
    "ScheduleBlockRepository",
    "SurgicalCaseRepository",
    "StatusHistoryRepository",
    "TheaterRepository",
    "TheaterBookingRepository",
]
