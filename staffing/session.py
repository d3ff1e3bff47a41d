from __future__ import annotations

import threading
from concurrent.futures import CancelledError, Future
from typing import Any, Dict, List, Optional

from staffing.advisory import AdvisoryBridge, NullAdvisory, rules_summary
from staffing.directory import Directory
from staffing.draft import AssignmentDraftMachine, AssignmentSink, ConfirmResult
from staffing.errors import Outcome
from staffing.logger import logger
from staffing.registry import GroupRegistry, RestrictionRegistry
from staffing.rules import RuleSet


class StaffingSession:
    """One user's working state: the live RuleSet and a single active draft.

    Rule edits apply to the in-memory RuleSet immediately; nothing is stored
    until ``apply`` is called with a store. Every accepted draft step is
    offered to the advisory bridge, whose replies land in ``conversation``
    whenever they arrive.
    """

    def __init__(
        self,
        rule_set: Optional[RuleSet] = None,
        *,
        directory: Optional[Directory] = None,
        advisory: Optional[AdvisoryBridge] = None,
        sink: Optional[AssignmentSink] = None,
    ) -> None:
        self.rule_set = rule_set if rule_set is not None else RuleSet()
        self.directory = directory
        self.advisory = advisory or NullAdvisory()
        self.sink = sink
        self.groups = GroupRegistry(self.rule_set)
        self.restrictions = RestrictionRegistry(self.rule_set)
        self.conversation: List[Dict[str, str]] = []
        self._pending: List[Future] = []
        # Advisory callbacks run on worker threads.
        self._lock = threading.Lock()
        self.machine = self._new_machine()

    def _new_machine(self) -> AssignmentDraftMachine:
        return AssignmentDraftMachine(self.rule_set, sink=self.sink)

    def replace_rules(self, rule_set: RuleSet) -> None:
        """Swap in a freshly loaded RuleSet and start a new draft against it."""
        self.rule_set = rule_set
        self.groups = GroupRegistry(rule_set)
        self.restrictions = RestrictionRegistry(rule_set)
        self.machine = self._new_machine()

    def new_draft(self) -> None:
        self.machine = self._new_machine()

    def apply(self, store, *, edited_by: str = "system"):
        """Persist the RuleSet wholesale through ``store.save``."""
        return store.save(self.rule_set, edited_by=edited_by)

    # ------------------------------------------------------------------
    # Draft steps

    def select_physician(self, physician_id: Any) -> Outcome:
        return self._step(self.machine.select_physician(physician_id))

    def select_institution(self, institution_id: Any) -> Outcome:
        return self._step(self.machine.select_institution(institution_id))

    def select_date(self, value: Any) -> Outcome:
        return self._step(self.machine.select_date(value))

    def select_time(self, start: Any, end: Any) -> Outcome:
        return self._step(self.machine.select_time(start, end))

    def select_group_tag(self, tag: Any) -> Outcome:
        return self._step(self.machine.select_group_tag(tag))

    def confirm(self) -> ConfirmResult:
        result = self.machine.confirm()
        if result.committed:
            self._narrate(self.machine.history[-1])
            self.machine = self._new_machine()
        elif result.violations:
            self._narrate("Confirmation rejected: " + "; ".join(v.message for v in result.violations))
        return result

    def reset(self) -> Outcome:
        return self._step(self.machine.reset())

    def _step(self, outcome: Outcome) -> Outcome:
        if outcome.ok:
            self._narrate(self.machine.history[-1])
        return outcome

    # ------------------------------------------------------------------
    # Advisory

    def _narrate(self, transition: str) -> None:
        with self._lock:
            self.conversation.append({"role": "user", "content": transition})
        try:
            future = self.advisory.narrate(rules_summary(self.rule_set, self.directory), transition)
        except Exception:  # noqa: BLE001
            logger.exception("Advisory request could not be started")
            return
        with self._lock:
            self._pending.append(future)
        future.add_done_callback(self._on_advice)

    def _on_advice(self, future: Future) -> None:
        with self._lock:
            if future in self._pending:
                self._pending.remove(future)
        try:
            text = future.result()
        except CancelledError:
            return
        except Exception as exc:  # noqa: BLE001
            logger.warning("Advisory narration failed: %s", exc)
            return
        if text:
            with self._lock:
                self.conversation.append({"role": "assistant", "content": text})

    def cancel_advice(self) -> None:
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.cancel()

    def close(self) -> None:
        self.cancel_advice()
        self.advisory.close()

    # ------------------------------------------------------------------
    # Views

    def messages(self) -> List[Dict[str, str]]:
        with self._lock:
            return list(self.conversation)

    def state(self) -> Dict[str, Any]:
        return {
            "draft": self.machine.draft.to_dict(),
            "preview": [violation.to_dict() for violation in self.machine.preview()],
            "history": list(self.machine.history),
        }
