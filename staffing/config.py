from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("STAFFING_DATA_DIR") or PACKAGE_DIR / "data")
EXPORT_DIR = DATA_DIR / "exports"
LOG_PATH = DATA_DIR / "staffing.log"
LOG_LEVEL = os.environ.get("STAFFING_LOG_LEVEL", "INFO").strip().upper()

DIRECTORY_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'directory.db').as_posix()}"
STAFFING_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'staffing.db').as_posix()}"

# Name of the single rule document; saving replaces it wholesale.
ACTIVE_RULES_NAME = "Golden Rules"

ADVISORY_URL = os.environ.get("STAFFING_ADVISORY_URL", "").strip()


def _optional_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


ADVISORY_TIMEOUT = _optional_float(os.environ.get("STAFFING_ADVISORY_TIMEOUT"))
