from __future__ import annotations

import datetime
import unittest

from staffing.draft import Draft
from staffing.rules import RuleSet
from staffing.validation import (
    Candidate,
    ViolationKind,
    candidate_from_payload,
    preview,
    validate,
    validation_report,
)

SATURDAY = datetime.date(2024, 4, 6)
TUESDAY = datetime.date(2024, 4, 2)


def _candidate(date_value=TUESDAY, start="09:00", end="12:00", physician="P1", institution="I1") -> Candidate:
    return candidate_from_payload(
        {
            "physician_id": physician,
            "institution_id": institution,
            "date": date_value.isoformat(),
            "start_time": start,
            "end_time": end,
        }
    )


class CandidateValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        # 08:00-20:00, Mon..Fri, 3-6 hours, no restrictions.
        self.rules = RuleSet()

    def kinds(self, candidate: Candidate):
        return [violation.kind for violation in validate(self.rules, candidate)]

    def test_compliant_candidate_has_no_violations(self) -> None:
        self.assertEqual(validate(self.rules, _candidate()), [])

    def test_saturday_is_only_a_business_day_violation(self) -> None:
        self.assertEqual(self.kinds(_candidate(date_value=SATURDAY)), [ViolationKind.OUT_OF_BUSINESS_DAY])

    def test_early_short_shift_flags_hours_and_duration(self) -> None:
        kinds = self.kinds(_candidate(start="07:00", end="09:00"))
        self.assertIn(ViolationKind.OUT_OF_BUSINESS_HOURS, kinds)
        self.assertIn(ViolationKind.DURATION_OUT_OF_BOUNDS, kinds)

    def test_restricted_institution_is_reported_alone(self) -> None:
        self.rules.restrictions["P1"] = {"I1"}
        self.assertEqual(self.kinds(_candidate()), [ViolationKind.RESTRICTED_INSTITUTION])

    def test_restriction_of_other_physician_does_not_apply(self) -> None:
        self.rules.restrictions["P2"] = {"I1"}
        self.assertEqual(self.kinds(_candidate()), [])

    def test_each_business_hour_bound_is_reported_separately(self) -> None:
        self.rules.set_duration_bounds(1, 24)
        violations = validate(self.rules, _candidate(start="06:00", end="21:00"))
        bounds = [v.details.get("bound") for v in violations if v.kind is ViolationKind.OUT_OF_BUSINESS_HOURS]
        self.assertEqual(sorted(bounds), ["end", "start"])

    def test_non_positive_duration_skips_bound_checks(self) -> None:
        kinds = self.kinds(_candidate(start="12:00", end="10:00"))
        self.assertIn(ViolationKind.INVALID_TIME_RANGE, kinds)
        self.assertNotIn(ViolationKind.DURATION_OUT_OF_BOUNDS, kinds)

    def test_duration_limits_are_inclusive(self) -> None:
        self.assertEqual(self.kinds(_candidate(start="09:00", end="12:00")), [])
        self.assertEqual(self.kinds(_candidate(start="09:00", end="15:00")), [])
        self.assertEqual(self.kinds(_candidate(start="09:00", end="15:01")), [ViolationKind.DURATION_OUT_OF_BOUNDS])

    def test_violations_follow_check_order(self) -> None:
        self.rules.restrictions["P1"] = {"I1"}
        kinds = self.kinds(_candidate(date_value=SATURDAY, start="19:00", end="21:00"))
        self.assertEqual(
            kinds,
            [
                ViolationKind.OUT_OF_BUSINESS_DAY,
                ViolationKind.OUT_OF_BUSINESS_HOURS,
                ViolationKind.DURATION_OUT_OF_BOUNDS,
                ViolationKind.RESTRICTED_INSTITUTION,
            ],
        )

    def test_validate_is_pure(self) -> None:
        self.rules.restrictions["P1"] = {"I1"}
        snapshot = self.rules.copy()
        candidate = _candidate(date_value=SATURDAY, start="07:00", end="09:00")
        first = validate(self.rules, candidate)
        second = validate(self.rules, candidate)
        self.assertEqual(first, second)
        self.assertEqual(self.rules, snapshot)


class PreviewTests(unittest.TestCase):
    def test_preview_skips_checks_for_unset_fields(self) -> None:
        rules = RuleSet()
        rules.restrictions["P1"] = {"I1"}
        draft = Draft(physician_id="P1")
        self.assertEqual(preview(rules, draft), [])

        draft.institution_id = "I1"
        draft.date = SATURDAY
        kinds = [violation.kind for violation in preview(rules, draft)]
        self.assertEqual(kinds, [ViolationKind.OUT_OF_BUSINESS_DAY, ViolationKind.RESTRICTED_INSTITUTION])


class ReportTests(unittest.TestCase):
    def test_report_marks_failed_checks(self) -> None:
        violations = validate(RuleSet(), _candidate(date_value=SATURDAY))
        report = validation_report(violations)
        self.assertFalse(report["accepted"])
        statuses = {check["label"]: check["status"] for check in report["checks"]}
        self.assertEqual(statuses["Scheduled on a business day?"], "fail")
        self.assertEqual(statuses["Within business hours?"], "ok")
        self.assertEqual(report["issues"][0]["type"], "out_of_business_day")
        self.assertEqual(report["issues"][0]["day"], "Sat")

    def test_candidate_payload_rejects_malformed_fields(self) -> None:
        self.assertIsNone(candidate_from_payload({"physician_id": "P1"}))
        self.assertIsNone(
            candidate_from_payload(
                {
                    "physician_id": "P1",
                    "institution_id": "I1",
                    "date": "2024-13-40",
                    "start_time": "09:00",
                    "end_time": "12:00",
                }
            )
        )
