"""Test configuration."""

import os
import tempfile
from pathlib import Path

os.environ["PERF_AUDIT_ENVIRONMENT"] = "testing"

# Never let tests touch a working directory's real history database.
if not os.environ.get("PERF_AUDIT_DATABASE_URL"):
    test_root = Path(tempfile.gettempdir()) / "perf-audit-tests"
    os.environ["PERF_AUDIT_DATABASE_URL"] = f"sqlite+aiosqlite:///{(test_root / 'performance.db').as_posix()}"
