"""Unit tests for TheaterBookingService with mocked repositories."""
from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

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
from theaterops.services.theater_booking_service import TheaterBookingService
from theaterops.workflow.types import Role

NOW = datetime(2025, 6, 10, 7, 30, tzinfo=timezone.utc)
START = datetime(2025, 6, 10, 9, 0, tzinfo=timezone.utc)
END = datetime(2025, 6, 10, 11, 0, tzinfo=timezone.utc)


# ─── helpers ─────────────────────────────────────────────────────────────────

def _run(coro):
    return asyncio.run(coro)


class _NullTx:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        return False


def _fake_session():
    session = MagicMock()
    session.in_transaction.return_value = True
    session.begin_nested.side_effect = lambda: _NullTx()
    return session


async def _apply(instance, data):
    for key, value in data.items():
        setattr(instance, key, value)
    return instance


def _fake_theater(**kwargs):
    defaults = {"id": uuid4(), "name": "OR 1", "theater_type": "MAJOR", "is_active": True}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _fake_case(**kwargs):
    defaults = {"id": uuid4(), "patient_id": "P-1", "status": "READY_FOR_SCHEDULING"}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _fake_booking(**kwargs):
    defaults = {
        "id": uuid4(),
        "theater_id": uuid4(),
        "surgical_case_id": uuid4(),
        "start_time": START,
        "end_time": END,
        "status": "PROVISIONAL",
        "locked_by": "u1",
        "locked_at": NOW,
        "lock_expires_at": NOW + timedelta(minutes=5),
        "confirmed_by": None,
        "confirmed_at": None,
        "cancelled_at": None,
        "cancellation_reason": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _make_service(**config):
    audit = MagicMock()
    audit.record = AsyncMock()
    svc = TheaterBookingService(
        _fake_session(), audit, config=BookingConfig(**config), clock=lambda: NOW,
    )
    svc._booking_repo.apply = AsyncMock(side_effect=_apply)
    svc._case_repo.apply = AsyncMock(side_effect=_apply)
    svc._history_repo.record = AsyncMock()
    return svc, audit


def _audited_actions(audit):
    return [c.kwargs["action_type"] for c in audit.record.await_args_list]


def _prime_lock(svc, theater=None, case=None):
    theater = theater or _fake_theater()
    case = case or _fake_case()
    svc._theater_repo.get_for_update = AsyncMock(return_value=theater)
    svc._case_repo.get_for_update = AsyncMock(return_value=case)
    svc._booking_repo.find_active_lock = AsyncMock(return_value=None)
    svc._booking_repo.count_active_locks = AsyncMock(return_value=0)
    svc._booking_repo.find_conflicts = AsyncMock(return_value=[])
    svc._booking_repo.find_foreign_live_locks = AsyncMock(return_value=[])
    svc._booking_repo.lock_user_quota = AsyncMock()
    svc._booking_repo.delete_stale_for_case = AsyncMock(return_value=0)
    svc._booking_repo.create = AsyncMock(side_effect=lambda data: _fake_booking(**data))
    return theater, case


# ─── lock_slot ────────────────────────────────────────────────────────────────

class TestLockSlot(unittest.TestCase):
    def test_creates_provisional_lock_with_expiry(self):
        svc, audit = _make_service(lock_ttl_seconds=300)
        theater, case = _prime_lock(svc)

        booking = _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(booking.status, "PROVISIONAL")
        self.assertEqual(booking.locked_by, "u1")
        self.assertEqual(booking.lock_expires_at, NOW + timedelta(seconds=300))
        svc._booking_repo.find_conflicts.assert_awaited_once_with(theater.id, START, END, NOW)
        svc._booking_repo.lock_user_quota.assert_awaited_once_with("u1")
        svc._booking_repo.delete_stale_for_case.assert_awaited_once_with(case.id, "u1", NOW)
        self.assertEqual(_audited_actions(audit), ["BOOKING_LOCKED"])

    def test_retry_returns_existing_lock_without_new_row(self):
        svc, audit = _make_service()
        theater, case = _prime_lock(svc)
        existing = _fake_booking(theater_id=theater.id, surgical_case_id=case.id)
        svc._booking_repo.find_active_lock = AsyncMock(return_value=existing)

        booking = _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertIs(booking, existing)
        self.assertEqual(booking.lock_expires_at, NOW + timedelta(minutes=5))
        svc._booking_repo.create.assert_not_awaited()
        svc._booking_repo.count_active_locks.assert_not_awaited()

    def test_quota_exceeded_when_user_holds_max_locks(self):
        svc, audit = _make_service(max_active_locks=3)
        theater, case = _prime_lock(svc)
        svc._booking_repo.count_active_locks = AsyncMock(return_value=3)

        with self.assertRaises(QuotaExceededError) as ctx:
            _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(ctx.exception.details["limit"], 3)
        svc._booking_repo.find_conflicts.assert_not_awaited()
        svc._booking_repo.create.assert_not_awaited()

    def test_quota_allows_below_limit(self):
        svc, _ = _make_service(max_active_locks=3)
        theater, case = _prime_lock(svc)
        svc._booking_repo.count_active_locks = AsyncMock(return_value=2)

        booking = _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(booking.status, "PROVISIONAL")

    def test_conflict_with_live_lock_of_another_case(self):
        svc, audit = _make_service()
        theater, case = _prime_lock(svc)
        other = _fake_booking(theater_id=theater.id, locked_by="u2")
        svc._booking_repo.find_conflicts = AsyncMock(return_value=[other])

        with self.assertRaises(ConflictError) as ctx:
            _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(ctx.exception.details["conflicting_booking_id"], str(other.id))
        self.assertNotIsInstance(ctx.exception, QuotaExceededError)
        svc._booking_repo.create.assert_not_awaited()
        audit.record.assert_not_awaited()

    def test_live_lock_of_another_user_on_same_case_conflicts(self):
        svc, audit = _make_service()
        theater, case = _prime_lock(svc)
        held = _fake_booking(theater_id=theater.id, surgical_case_id=case.id, locked_by="u2")
        svc._booking_repo.find_foreign_live_locks = AsyncMock(return_value=[held])

        with self.assertRaises(ConflictError) as ctx:
            _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(ctx.exception.details["conflicting_booking_id"], str(held.id))
        svc._booking_repo.delete_stale_for_case.assert_not_awaited()
        svc._booking_repo.create.assert_not_awaited()
        audit.record.assert_not_awaited()

    def test_own_lock_on_same_case_is_superseded_by_new_window(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc)
        mine = _fake_booking(
            theater_id=theater.id, surgical_case_id=case.id, locked_by="u1",
            start_time=START - timedelta(hours=1), end_time=START + timedelta(hours=1),
        )
        svc._booking_repo.find_conflicts = AsyncMock(return_value=[mine])

        booking = _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(booking.start_time, START)
        svc._booking_repo.delete_stale_for_case.assert_awaited_once_with(case.id, "u1", NOW)

    def test_case_must_be_ready_for_scheduling(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc, case=_fake_case(status="PLANNING"))

        with self.assertRaises(StateMachineViolationError):
            _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

    def test_inactive_theater_is_rejected(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc, theater=_fake_theater(is_active=False))

        with self.assertRaises(ValidationError):
            _run(svc.lock_slot(case.id, theater.id, START, END, "u1"))

    def test_unknown_theater_is_not_found(self):
        svc, _ = _make_service()
        _prime_lock(svc)
        svc._theater_repo.get_for_update = AsyncMock(return_value=None)

        with self.assertRaises(NotFoundError):
            _run(svc.lock_slot(uuid4(), uuid4(), START, END, "u1"))

    def test_inverted_window_is_rejected(self):
        svc, _ = _make_service()
        _prime_lock(svc)

        with self.assertRaises(ValidationError):
            _run(svc.lock_slot(uuid4(), uuid4(), END, START, "u1"))
        svc._theater_repo.get_for_update.assert_not_awaited()

    def test_naive_datetimes_are_treated_as_utc(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc)

        booking = _run(svc.lock_slot(
            case.id, theater.id, START.replace(tzinfo=None), END.replace(tzinfo=None), "u1",
        ))

        self.assertEqual(booking.start_time, START)
        self.assertEqual(booking.end_time, END)


# ─── confirm_booking ──────────────────────────────────────────────────────────

def _prime_confirm(svc, booking, case=None):
    case = case or _fake_case(id=booking.surgical_case_id)
    svc._booking_repo.get_for_update = AsyncMock(return_value=booking)
    svc._booking_repo.find_confirmed_overlaps = AsyncMock(return_value=[])
    svc._case_repo.get_for_update = AsyncMock(return_value=case)
    return case


class TestConfirmBooking(unittest.TestCase):
    def test_confirms_and_schedules_case(self):
        svc, audit = _make_service()
        booking = _fake_booking()
        case = _prime_confirm(svc, booking)

        result = _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))

        self.assertEqual(result.status, "CONFIRMED")
        self.assertEqual(result.confirmed_by, "u1")
        self.assertEqual(result.confirmed_at, NOW)
        self.assertEqual(case.status, "SCHEDULED")
        svc._history_repo.record.assert_awaited_once_with(
            case.id, "READY_FOR_SCHEDULING", "SCHEDULED", "u1", "Theater booking confirmed",
        )
        self.assertEqual(_audited_actions(audit), ["BOOKING_CONFIRMED"])

    def test_already_confirmed_is_a_noop(self):
        svc, audit = _make_service()
        booking = _fake_booking(status="CONFIRMED", confirmed_by="u1")
        _prime_confirm(svc, booking)

        result = _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))

        self.assertIs(result, booking)
        svc._booking_repo.apply.assert_not_awaited()
        svc._case_repo.apply.assert_not_awaited()

    def test_expired_lock_is_rejected(self):
        svc, _ = _make_service()
        booking = _fake_booking(lock_expires_at=NOW - timedelta(seconds=1))
        case = _prime_confirm(svc, booking)

        with self.assertRaises(LockExpiredError) as ctx:
            _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))

        self.assertIsInstance(ctx.exception, ConflictError)
        self.assertEqual(case.status, "READY_FOR_SCHEDULING")

    def test_lock_expiring_exactly_now_is_expired(self):
        svc, _ = _make_service()
        booking = _fake_booking(lock_expires_at=NOW)
        _prime_confirm(svc, booking)

        with self.assertRaises(LockExpiredError):
            _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))

    def test_other_users_lock_is_forbidden(self):
        svc, _ = _make_service()
        booking = _fake_booking(locked_by="u1")
        _prime_confirm(svc, booking)

        with self.assertRaises(ForbiddenError):
            _run(svc.confirm_booking(booking.id, "u2", Role.DOCTOR))
        svc._booking_repo.apply.assert_not_awaited()

    def test_admin_override_is_audited(self):
        svc, audit = _make_service()
        booking = _fake_booking(locked_by="u1")
        case = _prime_confirm(svc, booking)

        result = _run(svc.confirm_booking(booking.id, "admin", Role.ADMIN))

        self.assertEqual(result.status, "CONFIRMED")
        self.assertEqual(case.status, "SCHEDULED")
        self.assertEqual(_audited_actions(audit), ["BOOKING_LOCK_OVERRIDE", "BOOKING_CONFIRMED"])
        override = audit.record.await_args_list[0].kwargs
        self.assertEqual(override["metadata"]["lock_holder"], "u1")

    def test_cancelled_booking_cannot_be_confirmed(self):
        svc, _ = _make_service()
        booking = _fake_booking(status="CANCELLED")
        _prime_confirm(svc, booking)

        with self.assertRaises(ConflictError):
            _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))

    def test_missing_booking_is_not_found(self):
        svc, _ = _make_service()
        svc._booking_repo.get_for_update = AsyncMock(return_value=None)

        with self.assertRaises(NotFoundError):
            _run(svc.confirm_booking(uuid4(), "u1", Role.NURSE))

    def test_case_no_longer_ready_is_a_state_violation(self):
        svc, _ = _make_service()
        booking = _fake_booking()
        _prime_confirm(svc, booking, case=_fake_case(id=booking.surgical_case_id, status="PLANNING"))

        with self.assertRaises(StateMachineViolationError):
            _run(svc.confirm_booking(booking.id, "u1", Role.NURSE))
        svc._booking_repo.apply.assert_not_awaited()


# ─── cancel_booking ───────────────────────────────────────────────────────────

class TestCancelBooking(unittest.TestCase):
    def test_cancel_reverts_scheduled_case(self):
        svc, audit = _make_service()
        booking = _fake_booking(status="CONFIRMED")
        case = _prime_confirm(svc, booking, case=_fake_case(status="SCHEDULED"))

        result = _run(svc.cancel_booking(booking.id, "Surgeon unwell", actor_id="u1"))

        self.assertEqual(result.status, "CANCELLED")
        self.assertEqual(result.cancellation_reason, "Surgeon unwell")
        self.assertEqual(case.status, "READY_FOR_SCHEDULING")
        self.assertEqual(_audited_actions(audit), ["BOOKING_CANCELLED"])

    def test_cancel_provisional_leaves_case_status(self):
        svc, _ = _make_service()
        booking = _fake_booking()
        case = _prime_confirm(svc, booking)

        _run(svc.cancel_booking(booking.id, None, actor_id="u1"))

        self.assertEqual(case.status, "READY_FOR_SCHEDULING")
        svc._history_repo.record.assert_not_awaited()

    def test_cancel_is_refused_once_case_is_in_prep(self):
        svc, _ = _make_service()
        booking = _fake_booking(status="CONFIRMED")
        _prime_confirm(svc, booking, case=_fake_case(status="IN_PREP"))

        with self.assertRaises(StateMachineViolationError):
            _run(svc.cancel_booking(booking.id, "late", actor_id="u1"))

    def test_cancel_twice_is_a_noop(self):
        svc, audit = _make_service()
        booking = _fake_booking(status="CANCELLED")
        _prime_confirm(svc, booking)

        result = _run(svc.cancel_booking(booking.id, "again"))

        self.assertIs(result, booking)
        audit.record.assert_not_awaited()


# ─── book_slot (legacy) ───────────────────────────────────────────────────────

class TestBookSlot(unittest.TestCase):
    def test_any_non_cancelled_overlap_conflicts(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc)
        expired_hold = _fake_booking(lock_expires_at=NOW - timedelta(hours=1))
        svc._booking_repo.find_non_cancelled_overlaps = AsyncMock(return_value=[expired_hold])

        with self.assertRaises(ConflictError):
            _run(svc.book_slot(case.id, theater.id, START, END, "u1"))
        svc._booking_repo.create.assert_not_awaited()

    def test_books_confirmed_and_schedules(self):
        svc, audit = _make_service()
        theater, case = _prime_lock(svc)
        svc._booking_repo.find_non_cancelled_overlaps = AsyncMock(return_value=[])

        booking = _run(svc.book_slot(case.id, theater.id, START, END, "u1"))

        self.assertEqual(booking.status, "CONFIRMED")
        self.assertEqual(case.status, "SCHEDULED")
        self.assertEqual(_audited_actions(audit), ["BOOKING_FORCED"])

    def test_live_hold_of_another_user_on_same_case_conflicts(self):
        svc, _ = _make_service()
        theater, case = _prime_lock(svc)
        held = _fake_booking(theater_id=theater.id, surgical_case_id=case.id, locked_by="u2")
        svc._booking_repo.find_foreign_live_locks = AsyncMock(return_value=[held])
        svc._booking_repo.find_non_cancelled_overlaps = AsyncMock(return_value=[])

        with self.assertRaises(ConflictError):
            _run(svc.book_slot(case.id, theater.id, START, END, "u1"))
        svc._booking_repo.delete_stale_for_case.assert_not_awaited()
        self.assertEqual(case.status, "READY_FOR_SCHEDULING")


class TestIsLockLive(unittest.TestCase):
    def test_live_and_expired(self):
        svc, _ = _make_service()
        self.assertTrue(svc.is_lock_live(_fake_booking()))
        self.assertFalse(svc.is_lock_live(_fake_booking(lock_expires_at=NOW - timedelta(seconds=1))))
        self.assertFalse(svc.is_lock_live(_fake_booking(status="CONFIRMED")))


if __name__ == "__main__":
    unittest.main()
