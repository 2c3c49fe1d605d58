"""Unit tests for SurgicalCaseService: dual readiness, transitions and checklist gates."""
from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from theaterops.core.exceptions import (
    ForbiddenError,
    GateIncompleteError,
    NotFoundError,
    StateMachineViolationError,
    ValidationError,
)
from theaterops.infra.database.models.checklist import ChecklistPhaseRecord
from theaterops.services.surgical_case_service import SurgicalCaseService
from theaterops.workflow.checklist import WHO_ITEMS
from theaterops.workflow.types import Actor, ChecklistPhaseName, Role

NOW = datetime(2025, 6, 10, 8, 0, tzinfo=timezone.utc)

NURSE = Actor("nurse-1", Role.NURSE)
DOCTOR = Actor("doc-1", Role.DOCTOR)
TECH = Actor("tech-1", Role.THEATER_TECHNICIAN)
ADMIN = Actor("admin-1", Role.ADMIN)


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


def _fake_case(**kwargs):
    defaults = {"id": uuid4(), "patient_id": "P-1", "status": "PLANNING"}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _complete_plan(**kwargs):
    defaults = {
        "id": uuid4(),
        "procedure_plan": "<p>Left knee arthroscopy with meniscal repair</p>",
        "risk_factors": "Type 2 diabetes",
        "planned_anesthesia": "GENERAL",
        "readiness_status": "NOT_STARTED",
        "ready_for_surgery": False,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _make_service(case, plan=None, consents=None, images=None):
    audit = MagicMock()
    audit.record = AsyncMock()
    svc = SurgicalCaseService(_fake_session(), audit, clock=lambda: NOW)
    svc._case_repo.get_for_update = AsyncMock(return_value=case)
    svc._case_repo.get_by_id = AsyncMock(return_value=case)
    svc._case_repo.apply = AsyncMock(side_effect=_apply)
    svc._history_repo.record = AsyncMock()
    plan = plan if plan is not None else _complete_plan()
    svc._plan_repo.get_or_create = AsyncMock(return_value=plan)
    svc._plan_repo.get_by_case_id = AsyncMock(return_value=plan)
    svc._plan_repo.apply = AsyncMock(side_effect=_apply)
    svc._consent_repo.list_for_plan = AsyncMock(
        return_value=consents if consents is not None else [SimpleNamespace(status="SIGNED")]
    )
    svc._image_repo.list_for_plan = AsyncMock(
        return_value=images if images is not None else [SimpleNamespace(timepoint="PRE_OP")]
    )
    svc._booking_repo.cancel_live_for_case = AsyncMock(return_value=0)
    return svc, audit


def _audited_actions(audit):
    return [c.kwargs["action_type"] for c in audit.record.await_args_list]


def _phase_record(case_id, phase, *, final, confirmed_keys=None):
    defs = WHO_ITEMS[phase]
    keys = {d.key for d in defs} if confirmed_keys is None else set(confirmed_keys)
    record = ChecklistPhaseRecord(
        surgical_case_id=case_id,
        phase=phase.value,
        status="FINAL" if final else "DRAFT",
        items=[{"key": d.key, "label": d.label, "confirmed": d.key in keys} for d in defs],
    )
    if final:
        record.completed_by_user_id = "nurse-1"
        record.completed_by_role = "NURSE"
        record.completed_at = NOW
    return record


# ─── Dual readiness ───────────────────────────────────────────────────────────

class TestNurseReadiness(unittest.TestCase):
    def test_ready_with_complete_plan_moves_to_ready_for_scheduling(self):
        case = _fake_case()
        svc, audit = _make_service(case)

        outcome = _run(svc.update_nurse_readiness(case.id, "READY", NURSE))

        self.assertTrue(outcome.transitioned)
        self.assertEqual(case.status, "READY_FOR_SCHEDULING")
        self.assertEqual(outcome.plan.readiness_status, "READY")
        self.assertTrue(outcome.plan.ready_for_surgery)
        svc._history_repo.record.assert_awaited_once()
        self.assertEqual(_audited_actions(audit), ["NURSE_READINESS_UPDATED", "CASE_TRANSITION"])

    def test_scenario_b_unsigned_consent_keeps_planning_then_advances(self):
        case = _fake_case()
        plan = _complete_plan()
        consent = SimpleNamespace(id=uuid4(), case_plan_id=plan.id, status="PENDING_SIGNATURE")
        svc, _ = _make_service(case, plan=plan, consents=[consent])

        first = _run(svc.update_nurse_readiness(case.id, "READY", NURSE))

        self.assertFalse(first.transitioned)
        self.assertEqual(case.status, "PLANNING")
        self.assertEqual(plan.readiness_status, "READY")
        self.assertEqual(first.missing_items, ["Consent Signed"])

        svc._consent_repo.get_for_update = AsyncMock(return_value=consent)
        svc._consent_repo.apply = AsyncMock(side_effect=_apply)
        _run(svc.sign_consent(case.id, consent.id, DOCTOR))
        self.assertEqual(consent.status, "SIGNED")
        self.assertEqual(case.status, "PLANNING")

        second = _run(svc.update_nurse_readiness(case.id, "READY", NURSE))

        self.assertTrue(second.transitioned)
        self.assertEqual(case.status, "READY_FOR_SCHEDULING")

    def test_missing_pre_op_photo_blocks_advance(self):
        case = _fake_case()
        svc, _ = _make_service(case, images=[SimpleNamespace(timepoint="ONE_WEEK_POST_OP")])

        outcome = _run(svc.update_nurse_readiness(case.id, "READY", NURSE))

        self.assertFalse(outcome.transitioned)
        self.assertEqual(outcome.missing_items, ["Pre-Op Photos"])

    def test_not_ready_status_never_advances(self):
        case = _fake_case()
        svc, _ = _make_service(case)

        outcome = _run(svc.update_nurse_readiness(case.id, "PENDING_LABS", NURSE))

        self.assertFalse(outcome.transitioned)
        self.assertEqual(case.status, "PLANNING")
        self.assertFalse(outcome.plan.ready_for_surgery)

    def test_withdrawing_readiness_reverts_to_planning(self):
        case = _fake_case(status="READY_FOR_SCHEDULING")
        svc, _ = _make_service(case)

        outcome = _run(svc.update_nurse_readiness(case.id, "ON_HOLD", NURSE))

        self.assertTrue(outcome.reverted)
        self.assertEqual(case.status, "PLANNING")

    def test_doctor_cannot_update_nursing_readiness(self):
        case = _fake_case()
        svc, _ = _make_service(case)

        with self.assertRaises(ForbiddenError):
            _run(svc.update_nurse_readiness(case.id, "READY", DOCTOR))

    def test_unknown_readiness_value_is_rejected(self):
        case = _fake_case()
        svc, _ = _make_service(case)

        with self.assertRaises(ValidationError):
            _run(svc.update_nurse_readiness(case.id, "READY_FOR_SCHEDULING", NURSE))

    def test_doctor_plan_update_reports_readiness_without_transition(self):
        case = _fake_case()
        plan = _complete_plan(procedure_plan=None)
        svc, _ = _make_service(case, plan=plan)

        readiness = _run(svc.update_case_plan(
            case.id, {"procedure_plan": "Laparoscopic cholecystectomy"}, DOCTOR,
        ))

        self.assertTrue(readiness.is_complete)
        self.assertEqual(case.status, "PLANNING")

    def test_plan_update_rejects_unknown_field(self):
        case = _fake_case()
        svc, _ = _make_service(case)

        with self.assertRaises(ValidationError):
            _run(svc.update_case_plan(case.id, {"status": "SCHEDULED"}, DOCTOR))


# ─── transition_case ──────────────────────────────────────────────────────────

class TestTransitionCase(unittest.TestCase):
    def test_sign_in_gate_blocks_then_allows_in_theater(self):
        case = _fake_case(status="SCHEDULED")
        svc, audit = _make_service(case)
        draft = _phase_record(
            case.id, ChecklistPhaseName.SIGN_IN, final=False,
            confirmed_keys=[d.key for d in WHO_ITEMS[ChecklistPhaseName.SIGN_IN]][1:],
        )
        svc._checklist._repo.get_phase = AsyncMock(return_value=draft)

        with self.assertRaises(GateIncompleteError) as ctx:
            _run(svc.transition_case(case.id, "IN_THEATER", TECH))

        self.assertEqual(
            ctx.exception.missing_items,
            ["Patient identity confirmed (name, DOB, wristband)"],
        )
        self.assertEqual(case.status, "SCHEDULED")
        self.assertEqual(_audited_actions(audit), ["CASE_TRANSITION_BLOCKED"])
        blocked = audit.record.await_args_list[0].kwargs["metadata"]
        self.assertEqual(blocked["previous_status"], "SCHEDULED")
        self.assertEqual(blocked["blockers"], ctx.exception.missing_items)

        svc._checklist._repo.get_phase = AsyncMock(
            return_value=_phase_record(case.id, ChecklistPhaseName.SIGN_IN, final=True)
        )
        result = _run(svc.transition_case(case.id, "in_theater", TECH, reason="Patient on table"))

        self.assertEqual(result.previous_status, "SCHEDULED")
        self.assertEqual(result.new_status, "IN_THEATER")
        self.assertEqual(case.status, "IN_THEATER")
        svc._history_repo.record.assert_awaited_once_with(
            case.id, "SCHEDULED", "IN_THEATER", "tech-1", "Patient on table",
        )

    def test_all_items_confirmed_draft_still_blocks(self):
        case = _fake_case(status="IN_PREP")
        svc, _ = _make_service(case)
        svc._checklist._repo.get_phase = AsyncMock(
            return_value=_phase_record(case.id, ChecklistPhaseName.SIGN_IN, final=False)
        )

        with self.assertRaises(GateIncompleteError) as ctx:
            _run(svc.transition_case(case.id, "IN_THEATER", TECH))

        self.assertEqual(ctx.exception.missing_items, ["Sign-In checklist not finalized"])

    def test_final_sign_in_with_one_made_up_item_blocks(self):
        case = _fake_case(status="IN_PREP")
        svc, _ = _make_service(case)
        record = ChecklistPhaseRecord(
            surgical_case_id=case.id,
            phase="SIGN_IN",
            status="FINAL",
            items=[{"key": "x", "confirmed": True}],
            completed_by_user_id="nurse-1",
            completed_by_role="NURSE",
            completed_at=NOW,
        )
        svc._checklist._repo.get_phase = AsyncMock(return_value=record)

        with self.assertRaises(GateIncompleteError) as ctx:
            _run(svc.transition_case(case.id, "IN_THEATER", TECH))

        self.assertEqual(len(ctx.exception.missing_items), len(WHO_ITEMS[ChecklistPhaseName.SIGN_IN]))
        self.assertEqual(case.status, "IN_PREP")

    def test_recovery_requires_sign_out(self):
        case = _fake_case(status="IN_THEATER")
        svc, _ = _make_service(case)
        svc._checklist._repo.get_phase = AsyncMock(return_value=None)

        with self.assertRaises(GateIncompleteError) as ctx:
            _run(svc.transition_case(case.id, "RECOVERY", TECH))

        self.assertEqual(len(ctx.exception.missing_items), len(WHO_ITEMS[ChecklistPhaseName.SIGN_OUT]))

    def test_illegal_edge_is_a_state_violation(self):
        case = _fake_case(status="SCHEDULED")
        svc, audit = _make_service(case)

        with self.assertRaises(StateMachineViolationError):
            _run(svc.transition_case(case.id, "COMPLETED", TECH))

        self.assertEqual(case.status, "SCHEDULED")
        self.assertEqual(_audited_actions(audit), ["CASE_TRANSITION_BLOCKED"])

    def test_skipping_from_planning_to_prep_is_illegal(self):
        case = _fake_case(status="PLANNING")
        svc, _ = _make_service(case)

        with self.assertRaises(StateMachineViolationError):
            _run(svc.transition_case(case.id, "IN_PREP", TECH))

    def test_scheduled_cannot_be_set_manually(self):
        case = _fake_case(status="READY_FOR_SCHEDULING")
        svc, _ = _make_service(case)

        with self.assertRaises(StateMachineViolationError):
            _run(svc.transition_case(case.id, "SCHEDULED", ADMIN))

    def test_nurse_cannot_transition(self):
        case = _fake_case(status="SCHEDULED")
        svc, _ = _make_service(case)

        with self.assertRaises(ForbiddenError):
            _run(svc.transition_case(case.id, "IN_PREP", NURSE))
        svc._case_repo.get_for_update.assert_not_awaited()

    def test_unknown_action_is_rejected(self):
        case = _fake_case(status="SCHEDULED")
        svc, _ = _make_service(case)

        with self.assertRaises(ValidationError):
            _run(svc.transition_case(case.id, "TELEPORT", TECH))

    def test_cancelling_releases_bookings(self):
        case = _fake_case(status="SCHEDULED")
        svc, audit = _make_service(case)
        svc._booking_repo.cancel_live_for_case = AsyncMock(return_value=1)

        result = _run(svc.transition_case(case.id, "CANCELLED", ADMIN, reason="Patient withdrew"))

        self.assertEqual(result.released_bookings, 1)
        svc._booking_repo.cancel_live_for_case.assert_awaited_once_with(case.id, "Patient withdrew", NOW)
        self.assertEqual(_audited_actions(audit), ["CASE_TRANSITION"])

    def test_missing_case_is_not_found(self):
        svc, _ = _make_service(None)

        with self.assertRaises(NotFoundError):
            _run(svc.transition_case(uuid4(), "IN_PREP", TECH))


class TestCreateCase(unittest.TestCase):
    def test_doctor_opens_case_in_planning_with_empty_plan(self):
        svc, audit = _make_service(None)
        created = _fake_case()
        svc._case_repo.create = AsyncMock(return_value=created)
        svc._plan_repo.create = AsyncMock()

        case = _run(svc.create_case("P-42", DOCTOR, procedure_name="Hernia repair"))

        self.assertIs(case, created)
        data = svc._case_repo.create.await_args.args[0]
        self.assertEqual(data["status"], "PLANNING")
        svc._plan_repo.create.assert_awaited_once_with({"surgical_case_id": created.id})
        self.assertEqual(_audited_actions(audit), ["CASE_CREATED"])

    def test_technician_cannot_open_case(self):
        svc, _ = _make_service(None)

        with self.assertRaises(ForbiddenError):
            _run(svc.create_case("P-42", TECH))


class TestConsentsAndImages(unittest.TestCase):
    def test_new_consent_awaits_signature(self):
        case = _fake_case()
        svc, audit = _make_service(case)
        svc._consent_repo.create = AsyncMock(side_effect=lambda data: SimpleNamespace(id=uuid4(), **data))

        consent = _run(svc.add_consent(case.id, "  Anaesthesia consent ", DOCTOR, consent_type="anesthesia"))

        self.assertEqual(consent.status, "PENDING_SIGNATURE")
        self.assertEqual(consent.title, "Anaesthesia consent")
        self.assertEqual(consent.consent_type, "ANESTHESIA")
        self.assertEqual(_audited_actions(audit), ["CONSENT_ADDED"])

    def test_signing_records_signer_and_time(self):
        case = _fake_case()
        plan = _complete_plan()
        consent = SimpleNamespace(id=uuid4(), case_plan_id=plan.id, status="PENDING_SIGNATURE")
        svc, audit = _make_service(case, plan=plan)
        svc._consent_repo.get_for_update = AsyncMock(return_value=consent)
        svc._consent_repo.apply = AsyncMock(side_effect=_apply)

        _run(svc.sign_consent(case.id, consent.id, DOCTOR))

        self.assertEqual(consent.status, "SIGNED")
        self.assertEqual(consent.signed_by, "doc-1")
        self.assertEqual(consent.signed_at, NOW)
        self.assertEqual(_audited_actions(audit), ["CONSENT_SIGNED"])

    def test_signing_twice_is_a_noop(self):
        case = _fake_case()
        plan = _complete_plan()
        consent = SimpleNamespace(id=uuid4(), case_plan_id=plan.id, status="SIGNED")
        svc, audit = _make_service(case, plan=plan)
        svc._consent_repo.get_for_update = AsyncMock(return_value=consent)
        svc._consent_repo.apply = AsyncMock(side_effect=_apply)

        _run(svc.sign_consent(case.id, consent.id, DOCTOR))

        svc._consent_repo.apply.assert_not_awaited()
        audit.record.assert_not_awaited()

    def test_revoked_consent_cannot_be_signed(self):
        case = _fake_case()
        plan = _complete_plan()
        consent = SimpleNamespace(id=uuid4(), case_plan_id=plan.id, status="REVOKED")
        svc, _ = _make_service(case, plan=plan)
        svc._consent_repo.get_for_update = AsyncMock(return_value=consent)

        with self.assertRaises(StateMachineViolationError):
            _run(svc.sign_consent(case.id, consent.id, DOCTOR))

    def test_consent_from_another_case_is_not_found(self):
        case = _fake_case()
        svc, _ = _make_service(case)
        other = SimpleNamespace(id=uuid4(), case_plan_id=uuid4(), status="PENDING_SIGNATURE")
        svc._consent_repo.get_for_update = AsyncMock(return_value=other)

        with self.assertRaises(NotFoundError):
            _run(svc.sign_consent(case.id, other.id, DOCTOR))

    def test_pre_op_image_is_attached_to_plan(self):
        case = _fake_case()
        plan = _complete_plan()
        svc, audit = _make_service(case, plan=plan)
        svc._image_repo.create = AsyncMock(side_effect=lambda data: SimpleNamespace(id=uuid4(), **data))

        image = _run(svc.add_plan_image(case.id, "https://img.example/knee.jpg", DOCTOR))

        self.assertEqual(image.case_plan_id, plan.id)
        self.assertEqual(image.timepoint, "PRE_OP")
        self.assertEqual(_audited_actions(audit), ["CASE_IMAGE_ADDED"])

    def test_blank_image_url_is_rejected(self):
        svc, _ = _make_service(_fake_case())

        with self.assertRaises(ValidationError):
            _run(svc.add_plan_image(uuid4(), "  ", DOCTOR))


class TestQueries(unittest.TestCase):
    def test_planning_readiness_lists_missing_labels(self):
        case = _fake_case()
        svc, _ = _make_service(case, images=[])

        readiness = _run(svc.get_planning_readiness(case.id))

        self.assertFalse(readiness.is_complete)
        self.assertEqual(len(readiness.missing_required), 1)

    def test_history_for_missing_case_is_not_found(self):
        svc, _ = _make_service(None)

        with self.assertRaises(NotFoundError):
            _run(svc.get_status_history(uuid4()))

    def test_history_is_read_from_repository(self):
        case = _fake_case()
        svc, _ = _make_service(case)
        rows = [SimpleNamespace(from_status="PLANNING", to_status="READY_FOR_SCHEDULING")]
        svc._history_repo.list_for_case = AsyncMock(return_value=rows)

        self.assertEqual(_run(svc.get_status_history(case.id)), rows)


if __name__ == "__main__":
    unittest.main()
