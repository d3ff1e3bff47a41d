"""Step-by-step builder for a single shift assignment.

The machine accepts the fields of a candidate in a fixed order::

    PHYSICIAN -> INSTITUTION -> DATE -> TIME -> GROUP -> CONFIRM

Each ``select_*`` call is valid only in its own step and advances by one.
``confirm`` runs the full validation against the live RuleSet; a clean run
hands the assignment to the sink and leaves the machine in the terminal
``NONE`` step. ``reset`` discards everything and starts over. Partial
rewinds are not supported, so a draft never holds an inconsistent mix of
old and new fields.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from staffing.errors import Outcome
from staffing.logger import logger
from staffing.rules import RuleSet, coerce_minutes, format_minutes
from staffing.validation import Candidate, Violation, preview, validate

UTC = datetime.timezone.utc


class DraftStep(Enum):
    PHYSICIAN = "physician"
    INSTITUTION = "institution"
    DATE = "date"
    TIME = "time"
    GROUP = "group"
    CONFIRM = "confirm"
    NONE = "none"


STEP_ORDER = [
    DraftStep.PHYSICIAN,
    DraftStep.INSTITUTION,
    DraftStep.DATE,
    DraftStep.TIME,
    DraftStep.GROUP,
    DraftStep.CONFIRM,
]


@dataclass
class Draft:
    step: DraftStep = DraftStep.PHYSICIAN
    physician_id: Optional[str] = None
    institution_id: Optional[str] = None
    date: Optional[datetime.date] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    group_tag: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return None not in (
            self.physician_id,
            self.institution_id,
            self.date,
            self.start_time,
            self.end_time,
            self.group_tag,
        )

    def to_candidate(self) -> Candidate:
        return Candidate(
            physician_id=self.physician_id,
            institution_id=self.institution_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "physician_id": self.physician_id,
            "institution_id": self.institution_id,
            "date": self.date.isoformat() if self.date else None,
            "start_time": format_minutes(self.start_time) if self.start_time is not None else None,
            "end_time": format_minutes(self.end_time) if self.end_time is not None else None,
            "group_tag": self.group_tag,
        }


@dataclass(frozen=True, slots=True)
class CommittedAssignment:
    physician_id: str
    institution_id: str
    date: datetime.date
    start_time: int
    end_time: int
    group_tag: str
    status: str = "Confirmed"
    created_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(UTC))
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "physician_id": self.physician_id,
            "institution_id": self.institution_id,
            "date": self.date.isoformat(),
            "start_time": format_minutes(self.start_time),
            "end_time": format_minutes(self.end_time),
            "group_tag": self.group_tag,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ConfirmResult:
    outcome: Outcome
    violations: List[Violation] = field(default_factory=list)
    assignment: Optional[CommittedAssignment] = None

    @property
    def committed(self) -> bool:
        return self.assignment is not None


AssignmentSink = Callable[[CommittedAssignment], Any]


def _parse_date(value: Any) -> Optional[datetime.date]:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _clean_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


class AssignmentDraftMachine:
    """Collects one assignment at a time against a live RuleSet."""

    def __init__(self, rule_set: RuleSet, *, sink: Optional[AssignmentSink] = None) -> None:
        self.rule_set = rule_set
        self.sink = sink
        self._draft = Draft()
        self.history: List[str] = []

    @property
    def draft(self) -> Draft:
        """A copy of the current draft; edits go through the step methods."""
        return replace(self._draft)

    @property
    def step(self) -> DraftStep:
        return self._draft.step

    @property
    def committed(self) -> bool:
        return self._draft.step is DraftStep.NONE

    def _require(self, step: DraftStep, action: str) -> Optional[Outcome]:
        if self._draft.step is step:
            return None
        logger.debug("Rejected %s while draft is at step %s", action, self._draft.step.value)
        return Outcome.invalid_step(
            f"{action} is only allowed at the {step.value} step (current step: {self._draft.step.value})."
        )

    def _advance(self, description: str) -> Outcome:
        index = STEP_ORDER.index(self._draft.step)
        self._draft.step = STEP_ORDER[index + 1]
        self.history.append(description)
        return Outcome.success()

    def preview(self) -> List[Violation]:
        return preview(self.rule_set, self._draft)

    # ------------------------------------------------------------------
    # Steps

    def select_physician(self, physician_id: Any) -> Outcome:
        rejected = self._require(DraftStep.PHYSICIAN, "Selecting a physician")
        if rejected:
            return rejected
        cleaned = _clean_id(physician_id)
        if cleaned is None:
            return Outcome.invalid_input("Physician id cannot be empty.")
        self._draft.physician_id = cleaned
        return self._advance(f"Selected physician {cleaned}")

    def select_institution(self, institution_id: Any) -> Outcome:
        # Restricted institutions are accepted here and reported by validation.
        rejected = self._require(DraftStep.INSTITUTION, "Selecting an institution")
        if rejected:
            return rejected
        cleaned = _clean_id(institution_id)
        if cleaned is None:
            return Outcome.invalid_input("Institution id cannot be empty.")
        self._draft.institution_id = cleaned
        return self._advance(f"Selected institution {cleaned}")

    def select_date(self, value: Any) -> Outcome:
        rejected = self._require(DraftStep.DATE, "Selecting a date")
        if rejected:
            return rejected
        parsed = _parse_date(value)
        if parsed is None:
            return Outcome.invalid_input("Date must be a calendar day (YYYY-MM-DD).")
        self._draft.date = parsed
        return self._advance(f"Selected date {parsed.isoformat()}")

    def select_time(self, start: Any, end: Any) -> Outcome:
        rejected = self._require(DraftStep.TIME, "Selecting a time block")
        if rejected:
            return rejected
        start_minutes = coerce_minutes(start)
        end_minutes = coerce_minutes(end)
        if start_minutes is None or end_minutes is None:
            return Outcome.invalid_input("Start and end must be HH:MM values.")
        if end_minutes <= start_minutes:
            return Outcome.invalid_input("End time must be after start time.")
        self._draft.start_time = start_minutes
        self._draft.end_time = end_minutes
        return self._advance(
            f"Selected time block {format_minutes(start_minutes)}-{format_minutes(end_minutes)}"
        )

    def select_group_tag(self, tag: Any) -> Outcome:
        rejected = self._require(DraftStep.GROUP, "Selecting a group tag")
        if rejected:
            return rejected
        if not isinstance(tag, str):
            return Outcome.invalid_input("Group tag must be text.")
        self._draft.group_tag = tag
        return self._advance(f"Selected group tag {tag!r}")

    def confirm(self) -> ConfirmResult:
        rejected = self._require(DraftStep.CONFIRM, "Confirming")
        if rejected:
            return ConfirmResult(outcome=rejected)
        if not self._draft.is_complete:
            # Unreachable through the step methods.
            return ConfirmResult(outcome=Outcome.invalid_step("Draft is missing required fields."))

        violations = validate(self.rule_set, self._draft.to_candidate())
        if violations:
            logger.info(
                "Draft for physician %s rejected: %s",
                self._draft.physician_id,
                ", ".join(violation.kind.value for violation in violations),
            )
            return ConfirmResult(outcome=Outcome.success(), violations=violations)

        assignment = CommittedAssignment(
            physician_id=self._draft.physician_id,
            institution_id=self._draft.institution_id,
            date=self._draft.date,
            start_time=self._draft.start_time,
            end_time=self._draft.end_time,
            group_tag=self._draft.group_tag,
        )
        self._draft = Draft(step=DraftStep.NONE)
        self.history.append("Confirmed assignment")
        logger.info(
            "Committed assignment: physician %s at %s on %s",
            assignment.physician_id,
            assignment.institution_id,
            assignment.date.isoformat(),
        )
        self._emit(assignment)
        return ConfirmResult(outcome=Outcome.success(), assignment=assignment)

    def reset(self) -> Outcome:
        """Discard the draft and return to the physician step, from any state."""
        self._draft = Draft()
        self.history.append("Draft reset")
        return Outcome.success()

    def _emit(self, assignment: CommittedAssignment) -> None:
        if self.sink is None:
            return
        try:
            self.sink(assignment)
        except Exception:  # noqa: BLE001
            # Persistence is the caller's concern; the commit stands.
            logger.exception("Assignment sink failed for physician %s", assignment.physician_id)
