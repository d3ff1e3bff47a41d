from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Dict, List, Optional

from staffing.config import EXPORT_DIR
from staffing.database import list_assignments
from staffing.errors import RuleSetDocumentError
from staffing.rules import RuleSet


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def _target_dir(directory: Optional[Path]) -> Path:
    target = directory or EXPORT_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target


# ---------------------------------------------------------------------------
# Rules import/export


def export_rule_set(rule_set: RuleSet, directory: Optional[Path] = None) -> Path:
    payload = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "rules": rule_set.to_document(),
    }
    filename = _target_dir(directory) / f"golden_rules_{_timestamp()}.json"
    filename.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return filename


def import_rule_set(file_path: Path) -> RuleSet:
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RuleSetDocumentError(f"{file_path.name} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RuleSetDocumentError("Rules file must be a JSON object.")
    # Accept both the export envelope and a bare rule document.
    document = data.get("rules") if isinstance(data.get("rules"), dict) else data
    return RuleSet.from_document(document)


# ---------------------------------------------------------------------------
# Committed assignments


def export_assignments(session, directory: Optional[Path] = None, *, physician_id: Optional[str] = None) -> Path:
    payload: List[Dict] = [row.to_dict() for row in list_assignments(session, physician_id=physician_id)]
    filename = _target_dir(directory) / f"assignments_{_timestamp()}.json"
    filename.write_text(
        json.dumps(
            {
                "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "assignments": payload,
            },
            indent=2,
        ),
        encoding="utf-8",
    )
    return filename
