"""Theater and TheaterBooking repositories.

Conflict queries take ``FOR UPDATE`` row locks; callers run them inside the
booking transaction after locking the theater row itself.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, delete as sa_delete, func, or_, select, update as sa_update

from theaterops.infra.database.models.theater import Theater, TheaterBooking
from theaterops.infra.database.repositories.base import BaseRepository

_PROVISIONAL = "PROVISIONAL"
_CONFIRMED = "CONFIRMED"
_CANCELLED = "CANCELLED"


def _live_lock(now: datetime):
    return and_(
        TheaterBooking.status == _PROVISIONAL,
        TheaterBooking.lock_expires_at.is_not(None),
        TheaterBooking.lock_expires_at > now,
    )


def _overlapping(theater_id: UUID, start: datetime, end: datetime):
    return and_(
        TheaterBooking.theater_id == theater_id,
        TheaterBooking.start_time < end,
        TheaterBooking.end_time > start,
    )


class TheaterRepository(BaseRepository[Theater]):
    model = Theater

    async def list_active(self) -> List[Theater]:
        stmt = select(Theater).where(Theater.is_active.is_(True)).order_by(Theater.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class TheaterBookingRepository(BaseRepository[TheaterBooking]):
    model = TheaterBooking

    async def find_active_lock(
        self,
        *,
        case_id: UUID,
        theater_id: UUID,
        start: datetime,
        end: datetime,
        user_id: str,
        now: datetime,
    ) -> Optional[TheaterBooking]:
        """The caller's own unexpired lock on exactly this case, theater and window."""
        stmt = (
            select(TheaterBooking)
            .where(TheaterBooking.surgical_case_id == case_id)
            .where(TheaterBooking.theater_id == theater_id)
            .where(TheaterBooking.start_time == start)
            .where(TheaterBooking.end_time == end)
            .where(TheaterBooking.locked_by == user_id)
            .where(_live_lock(now))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active_locks(
        self,
        user_id: str,
        now: datetime,
        *,
        exclude_case_id: Optional[UUID] = None,
    ) -> int:
        """Unexpired provisional locks held by ``user_id`` on cases other than ``exclude_case_id``."""
        stmt = (
            select(func.count())
            .select_from(TheaterBooking)
            .where(TheaterBooking.locked_by == user_id)
            .where(_live_lock(now))
        )
        if exclude_case_id is not None:
            stmt = stmt.where(TheaterBooking.surgical_case_id != exclude_case_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def find_conflicts(
        self,
        theater_id: UUID,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> List[TheaterBooking]:
        """Overlapping bookings that block a new lock: CONFIRMED or unexpired PROVISIONAL."""
        stmt = (
            select(TheaterBooking)
            .where(_overlapping(theater_id, start, end))
            .where(or_(TheaterBooking.status == _CONFIRMED, _live_lock(now)))
            .order_by(TheaterBooking.start_time)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_non_cancelled_overlaps(
        self,
        theater_id: UUID,
        start: datetime,
        end: datetime,
    ) -> List[TheaterBooking]:
        """Every overlapping booking that is not CANCELLED, expired provisional rows included."""
        stmt = (
            select(TheaterBooking)
            .where(_overlapping(theater_id, start, end))
            .where(TheaterBooking.status != _CANCELLED)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_confirmed_overlaps(
        self,
        theater_id: UUID,
        start: datetime,
        end: datetime,
        *,
        exclude_booking_id: UUID,
    ) -> List[TheaterBooking]:
        stmt = (
            select(TheaterBooking)
            .where(_overlapping(theater_id, start, end))
            .where(TheaterBooking.status == _CONFIRMED)
            .where(TheaterBooking.id != exclude_booking_id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_foreign_live_locks(self, case_id: UUID, user_id: str, now: datetime) -> List[TheaterBooking]:
        """Unexpired locks on ``case_id`` held by anyone other than ``user_id``, in any theater."""
        stmt = (
            select(TheaterBooking)
            .where(TheaterBooking.surgical_case_id == case_id)
            .where(TheaterBooking.locked_by != user_id)
            .where(_live_lock(now))
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_stale_for_case(self, case_id: UUID, user_id: str, now: datetime) -> int:
        """Remove a case's abandoned rows before it is re-booked. Returns rows deleted.

        Abandoned means CANCELLED, PROVISIONAL with a lapsed lock, or a
        PROVISIONAL lock held by ``user_id`` (superseded by the new one).
        Another user's live lock and CONFIRMED rows are never touched.
        ``synchronize_session=False``: bulk DML bypasses the identity map.
        """
        stmt = (
            sa_delete(TheaterBooking)
            .where(TheaterBooking.surgical_case_id == case_id)
            .where(or_(
                TheaterBooking.status == _CANCELLED,
                and_(
                    TheaterBooking.status == _PROVISIONAL,
                    or_(
                        TheaterBooking.lock_expires_at.is_(None),
                        TheaterBooking.lock_expires_at <= now,
                        TheaterBooking.locked_by == user_id,
                    ),
                ),
            ))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def lock_user_quota(self, user_id: str) -> None:
        """Serialize lock-taking per user until the transaction ends (PostgreSQL advisory lock)."""
        await self.session.execute(
            select(func.pg_advisory_xact_lock(func.hashtext(f"theater-lock-quota:{user_id}")))
        )

    async def list_for_window(
        self,
        theater_ids: Iterable[UUID],
        start: datetime,
        end: datetime,
    ) -> List[TheaterBooking]:
        ids = list(theater_ids)
        if not ids:
            return []
        stmt = (
            select(TheaterBooking)
            .where(TheaterBooking.theater_id.in_(ids))
            .where(TheaterBooking.status != _CANCELLED)
            .where(TheaterBooking.start_time < end)
            .where(TheaterBooking.end_time > start)
            .order_by(TheaterBooking.theater_id, TheaterBooking.start_time)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def cancel_live_for_case(self, case_id: UUID, reason: str, now: datetime) -> int:
        """Cancel every non-cancelled booking of a case. Returns rows updated."""
        stmt = (
            sa_update(TheaterBooking)
            .where(TheaterBooking.surgical_case_id == case_id)
            .where(TheaterBooking.status != _CANCELLED)
            .values(status=_CANCELLED, cancelled_at=now, cancellation_reason=reason)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
