from __future__ import annotations

from typing import Iterable, List, Set

from staffing.errors import Outcome
from staffing.logger import logger
from staffing.rules import RuleSet


class GroupRegistry:
    """Named sets of institutions stored in ``RuleSet.institution_groups``."""

    def __init__(self, rule_set: RuleSet) -> None:
        self.rule_set = rule_set

    @property
    def _groups(self):
        return self.rule_set.institution_groups

    def names(self) -> List[str]:
        return sorted(self._groups)

    def members(self, name: str) -> Set[str]:
        return set(self._groups.get(name, set()))

    def groups_for(self, institution_id: str) -> List[str]:
        return sorted(name for name, members in self._groups.items() if institution_id in members)

    def create(self, name: str) -> Outcome:
        if not isinstance(name, str) or not name.strip():
            return Outcome.invalid_input("Group name cannot be empty.")
        if name in self._groups:
            return Outcome.invalid_input(f"Group {name!r} already exists.")
        self._groups[name] = set()
        logger.info("Created institution group %r", name)
        return Outcome.success()

    def delete(self, name: str) -> Outcome:
        # Restrictions are stored per institution and outlive the group.
        if name not in self._groups:
            return Outcome.invalid_input(f"Unknown group {name!r}.")
        del self._groups[name]
        logger.info("Deleted institution group %r", name)
        return Outcome.success()

    def toggle_member(self, name: str, institution_id: str) -> Outcome:
        if name not in self._groups:
            return Outcome.invalid_input(f"Unknown group {name!r}.")
        if not institution_id:
            return Outcome.invalid_input("Institution id cannot be empty.")
        members = self._groups[name]
        if institution_id in members:
            members.discard(institution_id)
        else:
            members.add(institution_id)
        return Outcome.success()


class RestrictionRegistry:
    """Per-physician sets of barred institutions stored in ``RuleSet.restrictions``.

    The registry keeps the invariant that no physician maps to an empty set:
    the entry is created on first insert and removed when it empties.
    """

    def __init__(self, rule_set: RuleSet) -> None:
        self.rule_set = rule_set

    @property
    def _restrictions(self):
        return self.rule_set.restrictions

    def restricted_for(self, physician_id: str) -> Set[str]:
        return set(self._restrictions.get(physician_id, set()))

    def restricted_count(self, physician_id: str) -> int:
        return len(self._restrictions.get(physician_id, ()))

    def is_restricted(self, physician_id: str, institution_id: str) -> bool:
        return institution_id in self._restrictions.get(physician_id, ())

    def is_group_restricted(self, physician_id: str, group_name: str) -> bool:
        """True when every current member of the group is barred (vacuously for empty groups)."""
        members = self.rule_set.institution_groups.get(group_name, set())
        current = self._restrictions.get(physician_id, set())
        return all(institution_id in current for institution_id in members)

    def _store(self, physician_id: str, institutions: Set[str]) -> None:
        if institutions:
            self._restrictions[physician_id] = institutions
        else:
            self._restrictions.pop(physician_id, None)

    def toggle(self, physician_id: str, institution_id: str) -> Outcome:
        if not physician_id or not institution_id:
            return Outcome.invalid_input("Physician and institution ids are required.")
        current = self.restricted_for(physician_id)
        if institution_id in current:
            current.discard(institution_id)
        else:
            current.add(institution_id)
        self._store(physician_id, current)
        return Outcome.success()

    def toggle_group(self, physician_id: str, group_name: str) -> Outcome:
        if not physician_id:
            return Outcome.invalid_input("Physician id is required.")
        if group_name not in self.rule_set.institution_groups:
            return Outcome.invalid_input(f"Unknown group {group_name!r}.")
        members = self.rule_set.institution_groups[group_name]
        current = self.restricted_for(physician_id)
        if self.is_group_restricted(physician_id, group_name):
            current -= members
            logger.info("Unblocked group %r for physician %s", group_name, physician_id)
        else:
            current |= members
            logger.info("Blocked group %r for physician %s", group_name, physician_id)
        self._store(physician_id, current)
        return Outcome.success()

    def restrict_all(self, physician_id: str, all_institution_ids: Iterable[str]) -> Outcome:
        if not physician_id:
            return Outcome.invalid_input("Physician id is required.")
        self._store(physician_id, {inst for inst in all_institution_ids if inst})
        return Outcome.success()

    def clear_all(self, physician_id: str) -> Outcome:
        if not physician_id:
            return Outcome.invalid_input("Physician id is required.")
        self._store(physician_id, set())
        return Outcome.success()
