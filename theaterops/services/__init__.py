"""Service layer: theater booking, surgical case lifecycle, WHO checklists, schedule blocks and audit."""
from theaterops.services.audit_service import AuditService
from theaterops.services.checklist_service import ChecklistService
from theaterops.services.schedule_block_service import ScheduleBlockService
from theaterops.services.surgical_case_service import SurgicalCaseService
from theaterops.services.theater_booking_service import TheaterBookingService

__all__ = [
    "AuditService",
    "ChecklistService",
    "ScheduleBlockService",
    "SurgicalCaseService",
    "TheaterBookingService",
]
