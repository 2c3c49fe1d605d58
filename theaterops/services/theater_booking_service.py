"""TheaterBookingService: two-phase lock -> confirm reservations of operating theaters.

A lock is a PROVISIONAL booking row that expires ``lock_ttl`` after it was
taken; expiry is evaluated when rows are read, never swept. Every
check-then-act sequence runs inside one ``atomic`` block that first takes a
``FOR UPDATE`` lock on the theater row, so concurrent attempts on the same
theater serialize and two overlapping windows cannot both pass the conflict
check.
"""
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.config.booking import BookingConfig
from theaterops.core.exceptions import (
    ConflictError,
    ForbiddenError,
    LockExpiredError,
    NotFoundError,
    QuotaExceededError,
    StateMachineViolationError,
    ValidationError,
)
from theaterops.infra.database.engine import atomic
from theaterops.infra.database.models.surgical_case import SurgicalCase
from theaterops.infra.database.models.theater import Theater, TheaterBooking
from theaterops.infra.database.repositories import (
    StatusHistoryRepository,
    SurgicalCaseRepository,
    TheaterBookingRepository,
    TheaterRepository,
)
from theaterops.workflow.case_states import DAY_OF_SURGERY, can_transition
from theaterops.workflow.intervals import to_utc, utcnow
from theaterops.workflow.types import Role, SurgicalCaseStatus, TheaterBookingStatus

logger = logging.getLogger(__name__)

_ENTITY = "TheaterBooking"


@dataclass
class TheaterSchedule:
    theater: Theater
    bookings: List[TheaterBooking] = field(default_factory=list)


class TheaterBookingService:
    def __init__(
        self,
        session: AsyncSession,
        audit: Any,
        config: Optional[BookingConfig] = None,
        clock: Optional[Callable[[], _dt.datetime]] = None,
    ) -> None:
        self._session = session
        self._audit = audit
        self._config = config or BookingConfig()
        self._clock = clock or utcnow
        self._theater_repo = TheaterRepository(session)
        self._booking_repo = TheaterBookingRepository(session)
        self._case_repo = SurgicalCaseRepository(session)
        self._history_repo = StatusHistoryRepository(session)

    # ── Two-phase protocol ────────────────────────────────────────────────────

    async def lock_slot(
        self,
        case_id: UUID,
        theater_id: UUID,
        start: _dt.datetime,
        end: _dt.datetime,
        user_id: str,
    ) -> TheaterBooking:
        """Take (or re-take) a provisional lock on [start, end) for a case.

        Retrying with the same case, theater, window and user returns the
        existing unexpired lock unchanged: no duplicate row, no second unit
        of quota, and no TTL extension.
        """
        start, end = _validate_window(start, end)

        async with atomic(self._session):
            await self._get_bookable_theater(theater_id)
            case = await self._get_case(case_id)
            if case.status != SurgicalCaseStatus.READY_FOR_SCHEDULING.value:
                raise StateMachineViolationError(
                    f"Case {case_id} is {case.status}; only READY_FOR_SCHEDULING cases can be booked",
                    details={"case_id": str(case_id), "status": case.status},
                )

            now = self._clock()
            existing = await self._booking_repo.find_active_lock(
                case_id=case_id,
                theater_id=theater_id,
                start=start,
                end=end,
                user_id=user_id,
                now=now,
            )
            if existing is not None:
                logger.info(
                    "TheaterBookingService: reusing lock %s for case %s (user %s)",
                    existing.id, case_id, user_id,
                )
                return existing

            await self._raise_if_case_held_by_other(case_id, user_id, now)

            await self._booking_repo.lock_user_quota(user_id)
            held = await self._booking_repo.count_active_locks(
                user_id, now, exclude_case_id=case_id,
            )
            if held >= self._config.max_active_locks:
                raise QuotaExceededError(
                    f"You already hold {held} active slot locks; confirm or release one first",
                    details={"held": held, "limit": self._config.max_active_locks},
                )

            # The caller's own lock on this case is superseded, anything else blocks.
            conflicts = [
                b for b in await self._booking_repo.find_conflicts(theater_id, start, end, now)
                if not _is_own_lock(b, case_id, user_id)
            ]
            if conflicts:
                raise ConflictError(
                    "This theater slot is already booked or being booked by someone else",
                    details=_conflict_details(conflicts[0]),
                )

            superseded = await self._booking_repo.delete_stale_for_case(case_id, user_id, now)
            booking = await self._booking_repo.create({
                "theater_id": theater_id,
                "surgical_case_id": case_id,
                "start_time": start,
                "end_time": end,
                "status": TheaterBookingStatus.PROVISIONAL.value,
                "locked_by": user_id,
                "locked_at": now,
                "lock_expires_at": now + self._config.lock_ttl,
            })

        logger.info(
            "TheaterBookingService: locked theater %s %s-%s for case %s (user %s, superseded %d)",
            theater_id, start.isoformat(), end.isoformat(), case_id, user_id, superseded,
        )
        await self._audit.record(
            actor_user_id=user_id,
            action_type="BOOKING_LOCKED",
            entity_type=_ENTITY,
            entity_id=booking.id,
            metadata={
                "case_id": case_id,
                "theater_id": theater_id,
                "start_time": start,
                "end_time": end,
                "lock_expires_at": booking.lock_expires_at,
                "superseded_rows": superseded,
            },
        )
        return booking

    async def confirm_booking(self, booking_id: UUID, user_id: str, role: Role) -> TheaterBooking:
        """Make a provisional lock durable and move the case to SCHEDULED.

        The booking update and the case status change commit together. An
        ADMIN may confirm another user's lock; the override is audited.
        """
        override_of: Optional[str] = None

        async with atomic(self._session):
            booking = await self._booking_repo.get_for_update(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if booking.status == TheaterBookingStatus.CONFIRMED.value:
                return booking
            if booking.status != TheaterBookingStatus.PROVISIONAL.value:
                raise ConflictError(
                    f"Booking {booking_id} is {booking.status} and cannot be confirmed",
                    details={"booking_id": str(booking_id), "status": booking.status},
                )

            now = self._clock()
            if booking.lock_expires_at is None or booking.lock_expires_at <= now:
                raise LockExpiredError(
                    "The lock on this slot has expired; lock the slot again",
                    details={
                        "booking_id": str(booking_id),
                        "lock_expires_at": _iso(booking.lock_expires_at),
                    },
                )

            if booking.locked_by != user_id:
                if role != Role.ADMIN:
                    raise ForbiddenError(
                        "This slot is locked by another user",
                        details={"booking_id": str(booking_id)},
                    )
                override_of = booking.locked_by

            clashes = await self._booking_repo.find_confirmed_overlaps(
                booking.theater_id, booking.start_time, booking.end_time,
                exclude_booking_id=booking.id,
            )
            if clashes:
                raise ConflictError(
                    "A confirmed booking already covers this slot",
                    details=_conflict_details(clashes[0]),
                )

            case = await self._case_repo.get_for_update(booking.surgical_case_id)
            if case is None:
                raise NotFoundError(f"Surgical case {booking.surgical_case_id} not found")
            previous = case.status
            if not can_transition(SurgicalCaseStatus(previous), SurgicalCaseStatus.SCHEDULED):
                raise StateMachineViolationError(
                    f"Case {case.id} is {previous} and cannot be scheduled",
                    details={"case_id": str(case.id), "status": previous},
                )

            booking = await self._booking_repo.apply(booking, {
                "status": TheaterBookingStatus.CONFIRMED.value,
                "confirmed_by": user_id,
                "confirmed_at": now,
            })
            await self._set_case_status(case, SurgicalCaseStatus.SCHEDULED, user_id, "Theater booking confirmed")

        if override_of is not None:
            logger.warning(
                "TheaterBookingService: admin %s confirmed booking %s locked by %s",
                user_id, booking_id, override_of,
            )
            await self._audit.record(
                actor_user_id=user_id,
                action_type="BOOKING_LOCK_OVERRIDE",
                entity_type=_ENTITY,
                entity_id=booking_id,
                metadata={"lock_holder": override_of, "role": role},
            )
        logger.info("TheaterBookingService: confirmed booking %s for case %s", booking_id, booking.surgical_case_id)
        await self._audit.record(
            actor_user_id=user_id,
            action_type="BOOKING_CONFIRMED",
            entity_type=_ENTITY,
            entity_id=booking_id,
            metadata={
                "case_id": booking.surgical_case_id,
                "theater_id": booking.theater_id,
                "previous_case_status": previous,
                "new_case_status": SurgicalCaseStatus.SCHEDULED,
            },
        )
        return booking

    async def cancel_booking(
        self,
        booking_id: UUID,
        reason: Optional[str],
        *,
        actor_id: Optional[str] = None,
    ) -> TheaterBooking:
        """Release a booking; a SCHEDULED case goes back to READY_FOR_SCHEDULING.

        Refused once the case has entered the day-of-surgery flow (IN_PREP onward).
        """
        reverted_from: Optional[str] = None

        async with atomic(self._session):
            booking = await self._booking_repo.get_for_update(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if booking.status == TheaterBookingStatus.CANCELLED.value:
                return booking

            case = await self._case_repo.get_for_update(booking.surgical_case_id)
            if case is not None and case.status in {s.value for s in DAY_OF_SURGERY}:
                raise StateMachineViolationError(
                    f"Case {case.id} is already {case.status}; its booking can no longer be cancelled",
                    details={"case_id": str(case.id), "status": case.status},
                )

            booking = await self._booking_repo.apply(booking, {
                "status": TheaterBookingStatus.CANCELLED.value,
                "cancelled_at": self._clock(),
                "cancellation_reason": reason,
            })
            if case is not None and case.status == SurgicalCaseStatus.SCHEDULED.value:
                reverted_from = case.status
                await self._set_case_status(
                    case, SurgicalCaseStatus.READY_FOR_SCHEDULING, actor_id,
                    reason or "Theater booking cancelled",
                )

        logger.info("TheaterBookingService: cancelled booking %s (%s)", booking_id, reason)
        await self._audit.record(
            actor_user_id=actor_id,
            action_type="BOOKING_CANCELLED",
            entity_type=_ENTITY,
            entity_id=booking_id,
            metadata={
                "case_id": booking.surgical_case_id,
                "reason": reason,
                "case_reverted_from": reverted_from,
            },
        )
        return booking

    async def book_slot(
        self,
        case_id: UUID,
        theater_id: UUID,
        start: _dt.datetime,
        end: _dt.datetime,
        user_id: str,
    ) -> TheaterBooking:
        """Legacy one-step booking, kept for older integrations; prefer lock_slot + confirm_booking.

        Any overlapping booking that is not CANCELLED is a conflict, including
        provisional holds whose lock has lapsed.
        """
        logger.warning(
            "TheaterBookingService: deprecated book_slot used by %s for case %s", user_id, case_id,
        )
        start, end = _validate_window(start, end)

        async with atomic(self._session):
            await self._get_bookable_theater(theater_id)
            case = await self._get_case(case_id)
            if not can_transition(SurgicalCaseStatus(case.status), SurgicalCaseStatus.SCHEDULED):
                raise StateMachineViolationError(
                    f"Case {case_id} is {case.status} and cannot be scheduled",
                    details={"case_id": str(case_id), "status": case.status},
                )

            now = self._clock()
            await self._raise_if_case_held_by_other(case_id, user_id, now)
            overlaps = await self._booking_repo.find_non_cancelled_overlaps(theater_id, start, end)
            if overlaps:
                raise ConflictError(
                    "This theater slot overlaps an existing booking",
                    details=_conflict_details(overlaps[0]),
                )

            await self._booking_repo.delete_stale_for_case(case_id, user_id, now)
            booking = await self._booking_repo.create({
                "theater_id": theater_id,
                "surgical_case_id": case_id,
                "start_time": start,
                "end_time": end,
                "status": TheaterBookingStatus.CONFIRMED.value,
                "locked_by": user_id,
                "locked_at": now,
                "confirmed_by": user_id,
                "confirmed_at": now,
            })
            await self._set_case_status(case, SurgicalCaseStatus.SCHEDULED, user_id, "Booked via legacy book_slot")

        await self._audit.record(
            actor_user_id=user_id,
            action_type="BOOKING_FORCED",
            entity_type=_ENTITY,
            entity_id=booking.id,
            metadata={"case_id": case_id, "theater_id": theater_id, "start_time": start, "end_time": end},
        )
        return booking

    # ── Queries ───────────────────────────────────────────────────────────────

    async def list_theater_schedule(
        self,
        start: _dt.datetime,
        end: _dt.datetime,
    ) -> List[TheaterSchedule]:
        """Active theaters with their non-cancelled bookings intersecting [start, end)."""
        start, end = _validate_window(start, end)
        theaters = await self._theater_repo.list_active()
        bookings = await self._booking_repo.list_for_window([t.id for t in theaters], start, end)
        by_theater: dict = {t.id: TheaterSchedule(theater=t) for t in theaters}
        for b in bookings:
            if b.theater_id in by_theater:
                by_theater[b.theater_id].bookings.append(b)
        return list(by_theater.values())

    def is_lock_live(self, booking: TheaterBooking) -> bool:
        return (
            booking.status == TheaterBookingStatus.PROVISIONAL.value
            and booking.lock_expires_at is not None
            and booking.lock_expires_at > self._clock()
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _get_bookable_theater(self, theater_id: UUID) -> Theater:
        theater = await self._theater_repo.get_for_update(theater_id)
        if theater is None:
            raise NotFoundError(f"Theater {theater_id} not found")
        if not theater.is_active:
            raise ValidationError(
                f"Theater {theater.name} is not active",
                details={"theater_id": str(theater_id)},
            )
        return theater

    async def _raise_if_case_held_by_other(self, case_id: UUID, user_id: str, now: _dt.datetime) -> None:
        held = await self._booking_repo.find_foreign_live_locks(case_id, user_id, now)
        if held:
            raise ConflictError(
                "This case is being booked by someone else",
                details={**_conflict_details(held[0]), "case_id": str(case_id)},
            )

    async def _get_case(self, case_id: UUID) -> SurgicalCase:
        case = await self._case_repo.get_for_update(case_id)
        if case is None:
            raise NotFoundError(f"Surgical case {case_id} not found")
        return case

    async def _set_case_status(
        self,
        case: SurgicalCase,
        status: SurgicalCaseStatus,
        actor_id: Optional[str],
        reason: Optional[str],
    ) -> None:
        previous = case.status
        await self._case_repo.apply(case, {"status": status.value})
        await self._history_repo.record(case.id, previous, status.value, actor_id, reason)


def _validate_window(start: _dt.datetime, end: _dt.datetime) -> tuple:
    start, end = to_utc(start), to_utc(end)
    if start >= end:
        raise ValidationError(
            "Slot start must be before its end",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )
    return start, end


def _conflict_details(booking: TheaterBooking) -> dict:
    return {
        "conflicting_booking_id": str(booking.id),
        "status": booking.status,
        "start_time": _iso(booking.start_time),
        "end_time": _iso(booking.end_time),
    }


def _is_own_lock(booking: TheaterBooking, case_id: UUID, user_id: str) -> bool:
    return (
        booking.surgical_case_id == case_id
        and booking.locked_by == user_id
        and booking.status == TheaterBookingStatus.PROVISIONAL.value
    )


def _iso(value: Optional[_dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
