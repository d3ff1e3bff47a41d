from __future__ import annotations

import copy
import datetime
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from staffing.errors import Outcome
from staffing.logger import logger


# Weekday indices follow the stored rule document: 0 = Sunday.
DAY_TOKENS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
MINUTES_PER_DAY = 24 * 60

DEFAULT_RULES: Dict[str, Any] = {
    "businessStart": "08:00",
    "businessEnd": "20:00",
    "businessDays": [1, 2, 3, 4, 5],
    "minShiftHours": 3,
    "maxShiftHours": 6,
    "minStaffPerGroup": 2,
    "restrictions": {},
    "institutionGroups": {},
}


def parse_time_label(value: Optional[str]) -> Optional[int]:
    """Parse ``HH:MM`` into minutes since midnight; ``None`` when malformed."""
    if value is None:
        return None
    label = value.strip()
    if not label or ":" not in label:
        return None
    hour_str, minute_str = label.split(":", 1)
    try:
        hours = int(hour_str)
        minutes = int(minute_str)
    except ValueError:
        return None
    if hours < 0 or minutes < 0 or minutes > 59:
        return None
    total_minutes = hours * 60 + minutes
    if total_minutes > MINUTES_PER_DAY:
        return None
    return total_minutes


def coerce_minutes(value: Any) -> Optional[int]:
    """Accept ``HH:MM`` labels, ``datetime.time`` or raw minute counts."""
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    if isinstance(value, int):
        return value if 0 <= value <= MINUTES_PER_DAY else None
    if isinstance(value, str):
        return parse_time_label(value)
    return None


def format_minutes(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def weekday_index(date_: datetime.date) -> int:
    return date_.isoweekday() % 7


def weekday_token(date_: datetime.date) -> str:
    return DAY_TOKENS[weekday_index(date_)]


def _as_hours(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(hours):
        return None
    return hours


@dataclass
class RuleSet:
    """The Golden Rules: when and where physicians may be scheduled.

    Times are minutes since midnight. ``restrictions`` maps a physician id to
    the institutions that physician is barred from; a key is present only while
    its set is non-empty. ``institution_groups`` maps a group name to its
    member institutions and may hold empty sets.
    """

    business_start: int = 8 * 60
    business_end: int = 20 * 60
    business_days: Set[int] = field(default_factory=lambda: {1, 2, 3, 4, 5})
    min_shift_hours: float = 3.0
    max_shift_hours: float = 6.0
    min_staff_per_group: int = 2
    restrictions: Dict[str, Set[str]] = field(default_factory=dict)
    institution_groups: Dict[str, Set[str]] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Bound editors

    def set_business_window(self, start: Any, end: Any) -> Outcome:
        start_minutes = coerce_minutes(start)
        end_minutes = coerce_minutes(end)
        if start_minutes is None or end_minutes is None:
            return Outcome.invalid_input("Business hours must be HH:MM values.")
        if start_minutes >= end_minutes:
            return Outcome.invalid_input("Business start must be before business end.")
        self.business_start = start_minutes
        self.business_end = end_minutes
        logger.info("Business window set to %s-%s", format_minutes(start_minutes), format_minutes(end_minutes))
        return Outcome.success()

    def set_business_days(self, days: Iterable[Any]) -> Outcome:
        try:
            normalized = set(days)
        except TypeError:
            return Outcome.invalid_input("Business days must be a collection of weekday indices.")
        if not normalized:
            return Outcome.invalid_input("At least one business day is required.")
        for day in normalized:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                return Outcome.invalid_input(f"Invalid weekday index: {day!r}.")
        self.business_days = normalized
        logger.info("Business days set to %s", ", ".join(DAY_TOKENS[d] for d in sorted(normalized)))
        return Outcome.success()

    def toggle_business_day(self, day: int) -> Outcome:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            return Outcome.invalid_input(f"Invalid weekday index: {day!r}.")
        if day in self.business_days:
            return self.set_business_days(self.business_days - {day})
        return self.set_business_days(self.business_days | {day})

    def set_duration_bounds(self, min_hours: Any, max_hours: Any) -> Outcome:
        low = _as_hours(min_hours)
        high = _as_hours(max_hours)
        if low is None or high is None:
            return Outcome.invalid_input("Shift duration bounds must be numbers.")
        if low <= 0 or high <= 0:
            return Outcome.invalid_input("Shift duration bounds must be positive.")
        if low > high:
            return Outcome.invalid_input("Minimum shift hours cannot exceed maximum shift hours.")
        self.min_shift_hours = low
        self.max_shift_hours = high
        logger.info("Shift duration bounds set to %sh-%sh", low, high)
        return Outcome.success()

    def set_min_staff_per_group(self, value: Any) -> Outcome:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return Outcome.invalid_input("Minimum staff per group must be a non-negative integer.")
        self.min_staff_per_group = value
        return Outcome.success()

    # ------------------------------------------------------------------
    # Views

    @property
    def business_window_label(self) -> str:
        return f"{format_minutes(self.business_start)}-{format_minutes(self.business_end)}"

    def summary(self) -> Dict[str, Any]:
        return {
            "business_hours": self.business_window_label,
            "business_days": [DAY_TOKENS[d] for d in sorted(self.business_days)],
            "groups": len(self.institution_groups),
            "active_restrictions": len(self.restrictions),
        }

    def copy(self) -> "RuleSet":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Persistence document

    def to_document(self) -> Dict[str, Any]:
        return {
            "businessStart": format_minutes(self.business_start),
            "businessEnd": format_minutes(self.business_end),
            "businessDays": sorted(self.business_days),
            "minShiftHours": self.min_shift_hours,
            "maxShiftHours": self.max_shift_hours,
            "minStaffPerGroup": self.min_staff_per_group,
            "restrictions": {
                physician_id: sorted(institutions)
                for physician_id, institutions in sorted(self.restrictions.items())
                if institutions
            },
            "institutionGroups": {
                name: sorted(members) for name, members in sorted(self.institution_groups.items())
            },
        }

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]) -> "RuleSet":
        """Build a RuleSet from a stored document, falling back to defaults per field."""
        rules = build_default_rules()
        if not isinstance(document, dict):
            if document is not None:
                logger.warning("Rule document is not an object; using defaults.")
            return rules

        start = document.get("businessStart", DEFAULT_RULES["businessStart"])
        end = document.get("businessEnd", DEFAULT_RULES["businessEnd"])
        if not rules.set_business_window(start, end).ok:
            logger.warning("Ignoring invalid business window %r-%r", start, end)

        days = document.get("businessDays", DEFAULT_RULES["businessDays"])
        if not isinstance(days, list) or not rules.set_business_days(days).ok:
            logger.warning("Ignoring invalid business days %r", days)

        min_hours = document.get("minShiftHours", DEFAULT_RULES["minShiftHours"])
        max_hours = document.get("maxShiftHours", DEFAULT_RULES["maxShiftHours"])
        if not rules.set_duration_bounds(min_hours, max_hours).ok:
            logger.warning("Ignoring invalid duration bounds %r-%r", min_hours, max_hours)

        min_staff = document.get("minStaffPerGroup", DEFAULT_RULES["minStaffPerGroup"])
        if not rules.set_min_staff_per_group(min_staff).ok:
            logger.warning("Ignoring invalid minStaffPerGroup %r", min_staff)

        rules.restrictions = {
            str(physician_id): members
            for physician_id, members in _id_sets(document.get("restrictions")).items()
            if members
        }
        rules.institution_groups = {
            name: members for name, members in _id_sets(document.get("institutionGroups")).items() if name.strip()
        }
        return rules


def _id_sets(payload: Any) -> Dict[str, Set[str]]:
    if not isinstance(payload, dict):
        return {}
    result: Dict[str, Set[str]] = {}
    for key, values in payload.items():
        if not isinstance(values, list):
            continue
        result[str(key)] = {str(value) for value in values if value not in (None, "")}
    return result


def build_default_rules() -> RuleSet:
    """Return a fresh RuleSet so callers can mutate it safely."""
    return RuleSet()
