from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from staffing.rules import DAY_TOKENS, RuleSet, coerce_minutes, format_minutes, weekday_index


class ViolationKind(Enum):
    OUT_OF_BUSINESS_DAY = "out_of_business_day"
    OUT_OF_BUSINESS_HOURS = "out_of_business_hours"
    INVALID_TIME_RANGE = "invalid_time_range"
    DURATION_OUT_OF_BOUNDS = "duration_out_of_bounds"
    RESTRICTED_INSTITUTION = "restricted_institution"


CHECK_LABELS = [
    (ViolationKind.OUT_OF_BUSINESS_DAY, "Scheduled on a business day?"),
    (ViolationKind.OUT_OF_BUSINESS_HOURS, "Within business hours?"),
    (ViolationKind.INVALID_TIME_RANGE, "Ends after it starts?"),
    (ViolationKind.DURATION_OUT_OF_BOUNDS, "Shift length within limits?"),
    (ViolationKind.RESTRICTED_INSTITUTION, "Institution allowed for physician?"),
]


@dataclass(frozen=True, slots=True)
class Candidate:
    """A proposed assignment. Times are minutes since midnight."""

    physician_id: str
    institution_id: str
    date: datetime.date
    start_time: int
    end_time: int


@dataclass(frozen=True, slots=True)
class Violation:
    """One failed constraint plus the field values that caused it."""

    kind: ViolationKind
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.kind.value,
            "severity": "error",
            "message": self.message,
        }
        payload.update(self.details)
        return payload


def validate(rule_set: RuleSet, candidate: Candidate) -> List[Violation]:
    """Return the violations for ``candidate`` in check order; empty means acceptable."""
    violations: List[Violation] = []
    violations.extend(_business_day_violations(rule_set, candidate.date))
    violations.extend(_business_hours_violations(rule_set, candidate.start_time, candidate.end_time))
    violations.extend(_duration_violations(rule_set, candidate.start_time, candidate.end_time))
    violations.extend(_restriction_violations(rule_set, candidate.physician_id, candidate.institution_id))
    return violations


def preview(rule_set: RuleSet, draft) -> List[Violation]:
    """Run the checks whose inputs are already present on a partial draft.

    Unset draft fields are ``None`` sentinels; a check runs only once every
    field it reads is set. The result is early feedback, not an acceptance
    decision.
    """
    violations: List[Violation] = []
    if draft.date is not None:
        violations.extend(_business_day_violations(rule_set, draft.date))
    if draft.start_time is not None and draft.end_time is not None:
        violations.extend(_business_hours_violations(rule_set, draft.start_time, draft.end_time))
        violations.extend(_duration_violations(rule_set, draft.start_time, draft.end_time))
    if draft.physician_id is not None and draft.institution_id is not None:
        violations.extend(_restriction_violations(rule_set, draft.physician_id, draft.institution_id))
    return violations


def validation_report(violations: List[Violation]) -> Dict[str, Any]:
    """Checklist view of a validation run, one line per rule."""
    kinds = {violation.kind for violation in violations}
    checks: List[Dict[str, Any]] = []
    for kind, label in CHECK_LABELS:
        failed = [violation.message for violation in violations if violation.kind == kind]
        checks.append(
            {
                "label": label,
                "status": "fail" if kind in kinds else "ok",
                "details": "; ".join(failed),
            }
        )
    return {
        "accepted": not violations,
        "checks": checks,
        "issues": [violation.to_dict() for violation in violations],
    }


def _business_day_violations(rule_set: RuleSet, date_value: datetime.date) -> List[Violation]:
    day = weekday_index(date_value)
    if day in rule_set.business_days:
        return []
    return [
        Violation(
            kind=ViolationKind.OUT_OF_BUSINESS_DAY,
            message=f"{DAY_TOKENS[day]} {date_value.isoformat()} is not a business day.",
            details={"date": date_value.isoformat(), "day": DAY_TOKENS[day]},
        )
    ]


def _business_hours_violations(rule_set: RuleSet, start: int, end: int) -> List[Violation]:
    violations: List[Violation] = []
    if start < rule_set.business_start:
        violations.append(
            Violation(
                kind=ViolationKind.OUT_OF_BUSINESS_HOURS,
                message=f"Shift starts at {format_minutes(start)}, before business hours open at "
                f"{format_minutes(rule_set.business_start)}.",
                details={"bound": "start", "start_time": format_minutes(start)},
            )
        )
    if end > rule_set.business_end:
        violations.append(
            Violation(
                kind=ViolationKind.OUT_OF_BUSINESS_HOURS,
                message=f"Shift ends at {format_minutes(end)}, after business hours close at "
                f"{format_minutes(rule_set.business_end)}.",
                details={"bound": "end", "end_time": format_minutes(end)},
            )
        )
    return violations


def _duration_violations(rule_set: RuleSet, start: int, end: int) -> List[Violation]:
    duration_minutes = end - start
    if duration_minutes <= 0:
        return [
            Violation(
                kind=ViolationKind.INVALID_TIME_RANGE,
                message=f"Shift {format_minutes(start)}-{format_minutes(end)} does not end after it starts.",
                details={"start_time": format_minutes(start), "end_time": format_minutes(end)},
            )
        ]
    hours = duration_minutes / 60
    if hours < rule_set.min_shift_hours or hours > rule_set.max_shift_hours:
        return [
            Violation(
                kind=ViolationKind.DURATION_OUT_OF_BOUNDS,
                message=f"Shift lasts {hours:g}h; allowed range is "
                f"{rule_set.min_shift_hours:g}h-{rule_set.max_shift_hours:g}h.",
                details={
                    "hours": round(hours, 2),
                    "min_hours": rule_set.min_shift_hours,
                    "max_hours": rule_set.max_shift_hours,
                },
            )
        ]
    return []


def _restriction_violations(rule_set: RuleSet, physician_id: str, institution_id: str) -> List[Violation]:
    if institution_id not in rule_set.restrictions.get(physician_id, ()):
        return []
    return [
        Violation(
            kind=ViolationKind.RESTRICTED_INSTITUTION,
            message=f"Physician {physician_id} is barred from institution {institution_id}.",
            details={"physician_id": physician_id, "institution_id": institution_id},
        )
    ]


def candidate_from_payload(payload: Mapping[str, Any]) -> Optional[Candidate]:
    """Build a Candidate from API-style fields; ``None`` when any field is malformed."""
    physician_id = str(payload.get("physician_id") or "").strip()
    institution_id = str(payload.get("institution_id") or "").strip()
    start = coerce_minutes(payload.get("start_time"))
    end = coerce_minutes(payload.get("end_time"))
    raw_date = payload.get("date")
    try:
        date_value = raw_date if isinstance(raw_date, datetime.date) else datetime.date.fromisoformat(str(raw_date))
    except ValueError:
        return None
    if not physician_id or not institution_id or start is None or end is None:
        return None
    return Candidate(
        physician_id=physician_id,
        institution_id=institution_id,
        date=date_value,
        start_time=start,
        end_time=end,
    )
