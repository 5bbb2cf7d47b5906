"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, keep the web layer on a fresh
in-memory repository per test and clear env toggles that would otherwise leak
between tests.
"""
import os
import sys
from pathlib import Path

import pytest

# The web app must never reach for a database during unit/API tests; DB
# integration tests build their own repo from DATABASE_URL.
os.environ.setdefault("COURSEWORK_REPO", "memory")
os.environ.pop("LECTERN_ENV", None)

REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_coursework_repo():
    """Give every test its own empty in-memory repository.

    The routers share one lazily-built repository; without a reset, courses and
    submissions created by one test leak into the next.
    """
    from backend.learning.repo_memory import InMemoryCourseworkRepo
    from backend.web import repo_wiring

    repo_wiring.set_repo(InMemoryCourseworkRepo())
    yield


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles so every test starts from the defaults."""
    for var in (
        "LECTERN_ENV",
        "GATEWAY_SHARED_SECRET",
        "PROGRESS_COUNT_UNGRADED_FILES",
        "CERTIFICATE_CODE_BYTES",
        "GRADING_MAX_FEEDBACK_CHARS",
        "SUBMISSION_FILE_URL_SCHEMES",
        "SUBMISSION_FILE_URL_MAX_LENGTH",
    ):
        monkeypatch.delenv(var, raising=False)
    yield
