"""Grading workflow for instructors.

Intent:
    Attach a grade and feedback to a submission, finalize it and let progress
    tracking react. Re-grading overwrites the previous grade.

Permissions:
    Only the instructor of the submission's course or an admin.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math
from typing import Callable, List, Optional, Protocol, Sequence

from backend.learning.config import CourseworkConfig
from backend.learning.progress import ProgressTracker
from backend.teaching.services.courses import ensure_course_manager


logger = logging.getLogger(__name__)


class GradingRepoProtocol(Protocol):
    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def get_assignment(self, assignment_id: str) -> Optional[dict]:
        ...

    def get_submission(self, submission_id: str) -> Optional[dict]:
        ...

    def list_submissions_for_assignment(self, assignment_id: str) -> List[dict]:
        ...

    def set_grade(
        self,
        submission_id: str,
        *,
        grade: float,
        feedback: Optional[str],
        graded_by: str,
        graded_at: datetime,
    ) -> Optional[dict]:
        ...


def normalize_grade(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("invalid_grade")
    grade = float(value)
    if not math.isfinite(grade) or grade < 0 or grade > 100:
        raise ValueError("invalid_grade")
    return grade


def normalize_feedback(value: object, *, max_chars: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("invalid_feedback")
    trimmed = value.strip()
    if len(trimmed) > max_chars:
        raise ValueError("invalid_feedback")
    return trimmed or None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GradingService:
    repo: GradingRepoProtocol
    progress: ProgressTracker
    config: CourseworkConfig = field(default_factory=CourseworkConfig)
    clock: Callable[[], datetime] = _utcnow

    def grade(
        self,
        submission_id: str,
        *,
        actor_sub: str,
        actor_roles: Sequence[str],
        grade: object,
        feedback: object = None,
    ) -> dict:
        value = normalize_grade(grade)
        note = normalize_feedback(feedback, max_chars=self.config.max_feedback_chars)
        submission = self.repo.get_submission(submission_id)
        if submission is None:
            raise LookupError("submission_not_found")
        course = self.repo.get_course(submission["course_id"])
        if course is None:
            raise LookupError("submission_not_found")
        ensure_course_manager(course, actor_sub, actor_roles)

        updated = self.repo.set_grade(
            submission_id,
            grade=value,
            feedback=note,
            graded_by=actor_sub,
            graded_at=self.clock(),
        )
        if updated is None:
            raise LookupError("submission_not_found")
        logger.info(
            "submission graded id=%s regrade=%s",
            submission_id[:8],
            submission.get("graded_by") is not None,
        )
        self.progress.recompute_if_enrolled(updated["student_id"], updated["course_id"])
        return updated

    def list_submissions(self, assignment_id: str, *, actor_sub: str, actor_roles: Sequence[str]) -> dict:
        assignment = self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise LookupError("assignment_not_found")
        course = self.repo.get_course(assignment["course_id"])
        if course is None:
            raise LookupError("assignment_not_found")
        ensure_course_manager(course, actor_sub, actor_roles)
        submissions = self.repo.list_submissions_for_assignment(assignment_id)
        return {
            "assignment": assignment,
            "submissions": submissions,
            "submission_count": len(submissions),
            "graded_count": sum(1 for s in submissions if s.get("status") == "graded"),
        }


__all__ = ["GradingRepoProtocol", "GradingService", "normalize_feedback", "normalize_grade"]
