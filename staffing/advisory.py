"""Optional narration of rules and draft transitions.

Advisory text is informational only. Acceptance of an assignment is decided
by ``staffing.validation.validate``; nothing returned here can change it.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Protocol

import requests

from staffing.config import ADVISORY_TIMEOUT, ADVISORY_URL
from staffing.directory import Directory
from staffing.logger import logger
from staffing.rules import DAY_TOKENS, RuleSet, format_minutes


class AdvisoryBridge(Protocol):
    def narrate(self, rules_summary: str, transition: str) -> "Future[str]": ...

    def close(self) -> None: ...


def restriction_lines(rule_set: RuleSet, directory: Optional[Directory] = None) -> List[str]:
    lines: List[str] = []
    for physician_id, institution_ids in sorted(rule_set.restrictions.items()):
        if directory is not None:
            physician = directory.get_physician(physician_id)
            if physician is None:
                continue
            label = physician.display_name
            names = []
            for institution_id in sorted(institution_ids):
                institution = directory.get_institution(institution_id)
                names.append(institution.name if institution else institution_id)
        else:
            label = f"Physician {physician_id}"
            names = sorted(institution_ids)
        lines.append(f"- {label} is barred from: [{', '.join(names)}]")
    return lines


def rules_summary(rule_set: RuleSet, directory: Optional[Directory] = None) -> str:
    """Short natural-language summary of the rules handed to the advisor."""
    days = ", ".join(DAY_TOKENS[day] for day in sorted(rule_set.business_days))
    restrictions = restriction_lines(rule_set, directory)
    parts = [
        f"Business hours: {days} between {format_minutes(rule_set.business_start)} "
        f"and {format_minutes(rule_set.business_end)}.",
        f"Shift length: minimum {rule_set.min_shift_hours:g}h, maximum {rule_set.max_shift_hours:g}h.",
        "Restrictions:",
        "\n".join(restrictions) if restrictions else "No active restrictions.",
    ]
    return "\n".join(parts)


class NullAdvisory:
    """Advisor used when no service is configured; always silent."""

    def narrate(self, rules_summary: str, transition: str) -> "Future[str]":
        future: "Future[str]" = Future()
        future.set_result("")
        return future

    def close(self) -> None:
        return None


class HttpAdvisory:
    """Posts the summary and transition to an HTTP endpoint on a worker thread.

    The endpoint receives ``{"system": <summary>, "message": <transition>}``
    and answers with ``{"text": <commentary>}``.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        http: Optional[Any] = None,
        max_workers: int = 1,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.http = http or requests
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="advisory")

    def narrate(self, rules_summary: str, transition: str) -> "Future[str]":
        payload = {"system": rules_summary, "message": transition}
        return self._executor.submit(self._post, payload)

    def _post(self, payload: Dict[str, str]) -> str:
        response = self.http.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        if isinstance(body, dict):
            return str(body.get("text") or "")
        return ""

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_advisory(url: Optional[str] = None, timeout: Optional[float] = None) -> AdvisoryBridge:
    """Return the configured advisor, or the null advisor when no URL is set."""
    target = ADVISORY_URL if url is None else url
    if not target:
        return NullAdvisory()
    logger.info("Advisory narration enabled at %s", target)
    return HttpAdvisory(target, timeout=ADVISORY_TIMEOUT if timeout is None else timeout)
