"""
Shared repository wiring for the web routers.

Why:
    Learning, teaching and certificate routes must operate on the same
    repository instance. This module owns the lazily built instance and the
    service factories, and lets tests swap the repository via `set_repo`.

Behavior:
    - `COURSEWORK_REPO=memory` forces the in-memory repository.
    - Otherwise prefer the Postgres repository; fall back to in-memory with a
      warning when psycopg or a DSN is unavailable (dev only; the startup guard
      forbids this in production).
"""
from __future__ import annotations

import logging
import os

from backend.learning.certificates import CertificateIssuer
from backend.learning.config import load_coursework_config
from backend.learning.progress import ProgressTracker
from backend.learning.repo_memory import InMemoryCourseworkRepo
from backend.learning.usecases.assignments import ListStudentAssignmentsUseCase
from backend.learning.usecases.enrollment import EnrollmentService
from backend.learning.usecases.submissions import DeleteSubmissionUseCase, SubmitAssignmentUseCase
from backend.teaching.services.courses import CoursesService
from backend.teaching.services.grading import GradingService
from backend.web.config import is_prod_like


logger = logging.getLogger("lectern.web")

try:  # late import to avoid hard dependency during unit tests
    from backend.learning.repo_db import DBCourseworkRepo
except Exception as exc:  # pragma: no cover - import failures in dev/test envs
    DBCourseworkRepo = None  # type: ignore
    _DB_REPO_IMPORT_ERROR = exc
else:
    _DB_REPO_IMPORT_ERROR = None


def _build_default_repo():
    """Prefer the DB-backed repo; fall back to in-memory if unavailable."""
    if (os.getenv("COURSEWORK_REPO") or "").strip().lower() == "memory":
        return InMemoryCourseworkRepo()
    if DBCourseworkRepo is None:
        if _DB_REPO_IMPORT_ERROR:
            logger.warning("Coursework repo import failed: %s", _DB_REPO_IMPORT_ERROR)
        return InMemoryCourseworkRepo()
    try:
        return DBCourseworkRepo()
    except Exception as exc:  # pragma: no cover - exercised when DSN missing
        logger.warning("Coursework repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryCourseworkRepo()


_REPO = None


def get_repo():
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def set_repo(repo) -> None:
    """Allow tests to swap the coursework repository implementation."""
    global _REPO
    _REPO = repo


# --- Service factories -----------------------------------------------------------

def get_progress_tracker() -> ProgressTracker:
    repo = get_repo()
    config = load_coursework_config()
    return ProgressTracker(repo, CertificateIssuer(repo, config), config)


def get_certificate_issuer() -> CertificateIssuer:
    return CertificateIssuer(get_repo(), load_coursework_config())


def get_submit_use_case() -> SubmitAssignmentUseCase:
    return SubmitAssignmentUseCase(
        get_repo(),
        get_progress_tracker(),
        config=load_coursework_config(),
        allow_http_file_urls=not is_prod_like(),
    )


def get_delete_submission_use_case() -> DeleteSubmissionUseCase:
    return DeleteSubmissionUseCase(get_repo(), get_progress_tracker())


def get_grading_service() -> GradingService:
    return GradingService(get_repo(), get_progress_tracker(), load_coursework_config())


def get_courses_service() -> CoursesService:
    return CoursesService(get_repo(), get_certificate_issuer())


def get_enrollment_service() -> EnrollmentService:
    return EnrollmentService(get_repo(), get_progress_tracker())


def get_student_assignments_use_case() -> ListStudentAssignmentsUseCase:
    return ListStudentAssignmentsUseCase(get_repo())


__all__ = [
    "get_certificate_issuer",
    "get_courses_service",
    "get_delete_submission_use_case",
    "get_enrollment_service",
    "get_grading_service",
    "get_progress_tracker",
    "get_repo",
    "get_student_assignments_use_case",
    "get_submit_use_case",
    "set_repo",
]
