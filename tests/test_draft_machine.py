from __future__ import annotations

import datetime
import unittest

from staffing.draft import AssignmentDraftMachine, DraftStep
from staffing.errors import EngineError
from staffing.rules import RuleSet
from staffing.validation import ViolationKind

TUESDAY = datetime.date(2024, 4, 2)
SATURDAY = datetime.date(2024, 4, 6)


class DraftMachineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rules = RuleSet()
        self.committed = []
        self.machine = AssignmentDraftMachine(self.rules, sink=self.committed.append)

    def fill(self, *, date_value=TUESDAY, start="09:00", end="12:00", tag="1") -> None:
        self.assertTrue(self.machine.select_physician("P1").ok)
        self.assertTrue(self.machine.select_institution("I1").ok)
        self.assertTrue(self.machine.select_date(date_value).ok)
        self.assertTrue(self.machine.select_time(start, end).ok)
        self.assertTrue(self.machine.select_group_tag(tag).ok)

    def test_steps_advance_in_order(self) -> None:
        self.assertIs(self.machine.step, DraftStep.PHYSICIAN)
        self.machine.select_physician("P1")
        self.assertIs(self.machine.step, DraftStep.INSTITUTION)
        self.machine.select_institution("I1")
        self.assertIs(self.machine.step, DraftStep.DATE)
        self.machine.select_date("2024-04-02")
        self.assertIs(self.machine.step, DraftStep.TIME)
        self.machine.select_time("09:00", "12:00")
        self.assertIs(self.machine.step, DraftStep.GROUP)
        self.machine.select_group_tag("")
        self.assertIs(self.machine.step, DraftStep.CONFIRM)

        draft = self.machine.draft
        self.assertEqual(draft.date, TUESDAY)
        self.assertEqual((draft.start_time, draft.end_time), (540, 720))
        self.assertEqual(draft.group_tag, "")

    def test_out_of_order_calls_leave_draft_untouched(self) -> None:
        self.machine.select_physician("P1")
        before = self.machine.draft

        calls = [
            lambda: self.machine.select_physician("P2"),
            lambda: self.machine.select_date(TUESDAY),
            lambda: self.machine.select_time("09:00", "12:00"),
            lambda: self.machine.select_group_tag("x"),
        ]
        for call in calls:
            outcome = call()
            self.assertFalse(outcome.ok)
            self.assertIs(outcome.error, EngineError.INVALID_STEP_ORDER)
        self.assertEqual(self.machine.draft, before)

    def test_confirm_requires_confirm_step(self) -> None:
        self.machine.select_physician("P1")
        result = self.machine.confirm()
        self.assertIs(result.outcome.error, EngineError.INVALID_STEP_ORDER)
        self.assertEqual(result.violations, [])
        self.assertEqual(self.committed, [])

    def test_invalid_inputs_do_not_advance(self) -> None:
        self.assertIs(self.machine.select_physician("  ").error, EngineError.INVALID_INPUT)
        self.machine.select_physician("P1")
        self.assertIs(self.machine.select_institution(None).error, EngineError.INVALID_INPUT)
        self.machine.select_institution("I1")
        self.assertIs(self.machine.select_date("next tuesday").error, EngineError.INVALID_INPUT)
        self.machine.select_date(TUESDAY)
        self.assertIs(self.machine.select_time("12:00", "09:00").error, EngineError.INVALID_INPUT)
        self.assertIs(self.machine.select_time("9am", "noon").error, EngineError.INVALID_INPUT)
        self.assertIs(self.machine.step, DraftStep.TIME)
        self.assertIsNone(self.machine.draft.start_time)
        self.machine.select_time("09:00", "12:00")
        self.assertIs(self.machine.select_group_tag(None).error, EngineError.INVALID_INPUT)
        self.assertIs(self.machine.step, DraftStep.GROUP)

    def test_restricted_institution_is_accepted_until_confirm(self) -> None:
        self.rules.restrictions["P1"] = {"I1"}
        self.machine.select_physician("P1")
        self.assertTrue(self.machine.select_institution("I1").ok)
        self.assertEqual(
            [violation.kind for violation in self.machine.preview()],
            [ViolationKind.RESTRICTED_INSTITUTION],
        )

    def test_confirm_with_violations_stays_in_confirm(self) -> None:
        self.fill(date_value=SATURDAY)
        result = self.machine.confirm()

        self.assertFalse(result.committed)
        self.assertEqual([v.kind for v in result.violations], [ViolationKind.OUT_OF_BUSINESS_DAY])
        self.assertIs(self.machine.step, DraftStep.CONFIRM)
        self.assertEqual(self.machine.draft.date, SATURDAY)
        self.assertEqual(self.committed, [])

    def test_confirm_uses_live_rules(self) -> None:
        self.fill(date_value=SATURDAY)
        self.assertTrue(self.machine.confirm().violations)
        self.rules.toggle_business_day(6)
        self.assertTrue(self.machine.confirm().committed)

    def test_successful_confirm_commits_and_clears(self) -> None:
        self.fill(tag="North team")
        result = self.machine.confirm()

        self.assertTrue(result.committed)
        self.assertEqual(result.assignment.physician_id, "P1")
        self.assertEqual(result.assignment.status, "Confirmed")
        self.assertEqual(self.committed, [result.assignment])
        self.assertIs(self.machine.step, DraftStep.NONE)
        self.assertIsNone(self.machine.draft.physician_id)

    def test_committed_machine_only_accepts_reset(self) -> None:
        self.fill()
        self.machine.confirm()
        self.assertIs(self.machine.select_physician("P2").error, EngineError.INVALID_STEP_ORDER)
        self.assertIs(self.machine.confirm().outcome.error, EngineError.INVALID_STEP_ORDER)
        self.assertTrue(self.machine.reset().ok)
        self.assertIs(self.machine.step, DraftStep.PHYSICIAN)
        self.assertFalse(self.machine.committed)
        self.assertTrue(self.machine.select_physician("P2").ok)
        self.assertEqual(len(self.committed), 1)

    def test_reset_discards_fields_from_any_step(self) -> None:
        self.fill(date_value=SATURDAY)
        self.machine.confirm()
        self.assertTrue(self.machine.reset().ok)
        self.assertIs(self.machine.step, DraftStep.PHYSICIAN)
        self.assertFalse(self.machine.draft.is_complete)
        self.assertIsNone(self.machine.draft.institution_id)

    def test_sink_failure_does_not_undo_commit(self) -> None:
        def broken_sink(_assignment):
            raise RuntimeError("store offline")

        machine = AssignmentDraftMachine(self.rules, sink=broken_sink)
        machine.select_physician("P1")
        machine.select_institution("I1")
        machine.select_date(TUESDAY)
        machine.select_time("09:00", "12:00")
        machine.select_group_tag("")

        with self.assertLogs("staffing", level="ERROR"):
            result = machine.confirm()
        self.assertTrue(result.committed)
        self.assertTrue(machine.committed)

    def test_history_records_each_transition(self) -> None:
        self.fill()
        self.assertEqual(
            self.machine.history,
            [
                "Selected physician P1",
                "Selected institution I1",
                "Selected date 2024-04-02",
                "Selected time block 09:00-12:00",
                "Selected group tag '1'",
            ],
        )
