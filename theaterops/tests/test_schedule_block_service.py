"""Unit tests for schedule block conflict rules and ScheduleBlockService."""
from __future__ import annotations

import asyncio
import unittest
from datetime import date, datetime, time, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from theaterops.core.exceptions import ConflictError, NotFoundError, ValidationError
from theaterops.services.schedule_block_service import (
    BlockWindow,
    ScheduleBlockService,
    find_block_conflict,
)

JUNE_10 = date(2025, 6, 10)
JUNE_11 = date(2025, 6, 11)


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


def _block(start_date, end_date=None, start_time=None, end_time=None, block_type="LEAVE"):
    ns = SimpleNamespace(
        id=uuid4(),
        doctor_id=uuid4(),
        start_date=start_date,
        end_date=end_date or start_date,
        start_time=start_time,
        end_time=end_time,
        block_type=block_type,
        reason=None,
        created_by="u1",
    )
    ns.is_full_day = start_time is None and end_time is None
    return ns


def _make_service(existing=(), doctor=True):
    audit = MagicMock()
    audit.record = AsyncMock()
    svc = ScheduleBlockService(_fake_session(), audit)
    svc._doctor_repo.get_for_update = AsyncMock(
        return_value=SimpleNamespace(id=uuid4()) if doctor else None
    )
    svc._repo.list_overlapping = AsyncMock(return_value=list(existing))
    svc._repo.create = AsyncMock(side_effect=lambda data: _block(
        data["start_date"], data["end_date"], data["start_time"], data["end_time"], data["block_type"],
    ))
    return svc, audit


# ─── find_block_conflict ──────────────────────────────────────────────────────

class TestFindBlockConflict:
    def test_partial_inside_full_day_conflicts(self) -> None:
        leave = _block(JUNE_10)
        hit = find_block_conflict(BlockWindow(JUNE_10, JUNE_10, time(9), time(11)), [leave])
        assert hit is not None and hit.block is leave

    def test_full_day_over_partial_conflicts(self) -> None:
        clinic = _block(JUNE_11, start_time=time(9), end_time=time(11))
        hit = find_block_conflict(BlockWindow(JUNE_10, JUNE_11), [clinic])
        assert hit is not None
        assert "partial-day" in hit.reason

    def test_full_day_ranges_sharing_a_date_conflict(self) -> None:
        hit = find_block_conflict(BlockWindow(JUNE_11, date(2025, 6, 12)), [_block(JUNE_10, JUNE_11)])
        assert hit is not None

    def test_abutting_partial_blocks_do_not_conflict(self) -> None:
        morning = _block(JUNE_10, start_time=time(8), end_time=time(10))
        assert find_block_conflict(BlockWindow(JUNE_10, JUNE_10, time(10), time(12)), [morning]) is None

    def test_overlapping_partial_blocks_report_date(self) -> None:
        morning = _block(JUNE_10, start_time=time(8), end_time=time(10))
        hit = find_block_conflict(BlockWindow(JUNE_10, JUNE_10, time(9, 30), time(12)), [morning])
        assert hit is not None
        assert hit.conflicting_date == JUNE_10

    def test_blocks_on_other_dates_are_ignored(self) -> None:
        leave = _block(JUNE_10)
        assert find_block_conflict(BlockWindow(JUNE_11, JUNE_11, time(9), time(11)), [leave]) is None


# ─── ScheduleBlockService.create_block ────────────────────────────────────────

class TestCreateBlock(unittest.TestCase):
    def test_scenario_a_leave_day_rejects_surgery_but_next_day_clinic_succeeds(self):
        leave = _block(JUNE_10, block_type="LEAVE")
        svc, audit = _make_service(existing=[leave])

        with self.assertRaises(ConflictError) as ctx:
            _run(svc.create_block(
                uuid4(), "2025-06-10", "2025-06-10",
                block_type="SURGERY", created_by="u1", start_time="09:00", end_time="11:00",
            ))
        self.assertIn("full-day block exists", str(ctx.exception))
        self.assertEqual(ctx.exception.details["existing_block"]["id"], str(leave.id))

        svc._repo.list_overlapping = AsyncMock(return_value=[])
        block = _run(svc.create_block(
            uuid4(), "2025-06-11", "2025-06-11",
            block_type="CLINIC", created_by="u1", start_time="09:00", end_time="11:00",
        ))

        self.assertEqual(block.start_time, time(9))
        self.assertEqual(block.block_type, "CLINIC")
        self.assertEqual([c.kwargs["action_type"] for c in audit.record.await_args_list], ["SCHEDULE_BLOCK_CREATED"])

    def test_abutting_partial_blocks_are_accepted(self):
        morning = _block(JUNE_10, start_time=time(8), end_time=time(10), block_type="CLINIC")
        svc, _ = _make_service(existing=[morning])

        block = _run(svc.create_block(
            uuid4(), JUNE_10, JUNE_10,
            block_type="ADMIN", created_by="u1", start_time="10:00", end_time="12:00",
        ))

        self.assertEqual(block.end_time, time(12))

    def test_validation_errors(self):
        svc, _ = _make_service()
        cases = [
            dict(start_date="2025-06-12", end_date="2025-06-10", block_type="LEAVE"),
            dict(start_date="2025-06-10", end_date="2025-06-10", block_type="HOLIDAY"),
            dict(start_date="2025-06-10", end_date="2025-06-10", block_type="CLINIC", start_time="09:00"),
            dict(start_date="2025-06-10", end_date="2025-06-10", block_type="CLINIC",
                 start_time="9:00", end_time="11:00"),
            dict(start_date="2025-06-10", end_date="2025-06-10", block_type="CLINIC",
                 start_time="11:00", end_time="11:00"),
            dict(start_date="2025-06-10", end_date="2025-06-11", block_type="CLINIC",
                 start_time="09:00", end_time="11:00"),
            dict(start_date="10/06/2025", end_date="2025-06-10", block_type="LEAVE"),
        ]
        for kwargs in cases:
            with self.subTest(**kwargs):
                start_date = kwargs.pop("start_date")
                end_date = kwargs.pop("end_date")
                with self.assertRaises(ValidationError):
                    _run(svc.create_block(uuid4(), start_date, end_date, created_by="u1", **kwargs))
        svc._repo.create.assert_not_awaited()

    def test_unknown_doctor_is_not_found(self):
        svc, _ = _make_service(doctor=False)

        with self.assertRaises(NotFoundError):
            _run(svc.create_block(uuid4(), JUNE_10, JUNE_10, block_type="LEAVE", created_by="u1"))


class TestDeleteAndQuery(unittest.TestCase):
    def test_delete_missing_block_is_not_found(self):
        svc, _ = _make_service()
        svc._repo.get_for_update = AsyncMock(return_value=None)

        with self.assertRaises(NotFoundError):
            _run(svc.delete_block(uuid4(), "u1"))

    def test_delete_is_audited(self):
        svc, audit = _make_service()
        block = _block(JUNE_10)
        svc._repo.get_for_update = AsyncMock(return_value=block)
        svc._repo.delete = AsyncMock(return_value=True)

        _run(svc.delete_block(block.id, "u1"))

        svc._repo.delete.assert_awaited_once_with(block.id)
        self.assertEqual(audit.record.await_args.kwargs["action_type"], "SCHEDULE_BLOCK_DELETED")

    def test_blocks_overlapping_checks_time_of_day(self):
        svc, _ = _make_service()
        clinic = _block(JUNE_10, start_time=time(9), end_time=time(11), block_type="CLINIC")
        leave = _block(JUNE_11)
        svc._repo.list_overlapping = AsyncMock(return_value=[clinic, leave])
        utc = timezone.utc

        afternoon = _run(svc.blocks_overlapping(
            uuid4(), datetime(2025, 6, 10, 13, tzinfo=utc), datetime(2025, 6, 10, 15, tzinfo=utc),
        ))
        spanning = _run(svc.blocks_overlapping(
            uuid4(), datetime(2025, 6, 10, 10, tzinfo=utc), datetime(2025, 6, 11, 9, tzinfo=utc),
        ))

        self.assertEqual(afternoon, [])
        self.assertEqual(spanning, [clinic, leave])


if __name__ == "__main__":
    unittest.main()
