from __future__ import annotations

import os
import tempfile

# Keep logs and default SQLite files out of the package tree during tests.
os.environ.setdefault("STAFFING_DATA_DIR", tempfile.mkdtemp(prefix="staffing-tests-"))
os.environ.pop("STAFFING_ADVISORY_URL", None)
