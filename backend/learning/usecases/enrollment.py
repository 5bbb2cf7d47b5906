"""Enrollment use cases: enroll, unenroll, lecture completion and progress reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable, List, Optional, Protocol, Tuple

from backend.identity_access.domain import is_admin
from backend.learning.progress import ProgressSnapshot, ProgressTracker


logger = logging.getLogger(__name__)


class EnrollmentRepoProtocol(Protocol):
    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def create_enrollment_if_absent(self, student_id: str, course_id: str, *, now: datetime | None = None) -> Tuple[dict, bool]:
        ...

    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def delete_enrollment(self, student_id: str, course_id: str) -> bool:
        ...

    def get_certificate(self, student_id: str, course_id: str) -> Optional[dict]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EnrollmentService:
    repo: EnrollmentRepoProtocol
    progress: ProgressTracker
    clock: Callable[[], datetime] = _utcnow

    def enroll(self, student_id: str, course_id: str) -> Tuple[dict, bool]:
        """Enroll a student; returns (enrollment, created).

        Only published courses accept new enrollments. Enrolling twice returns
        the existing enrollment unchanged.
        """
        course = self.repo.get_course(course_id)
        if course is None:
            raise LookupError("course_not_found")
        existing = self.repo.get_enrollment(student_id, course_id)
        if existing is not None:
            return existing, False
        if course.get("status") != "published":
            raise PermissionError("course_not_published")
        enrollment, created = self.repo.create_enrollment_if_absent(student_id, course_id, now=self.clock())
        if created:
            logger.info("enrolled student=%s course=%s", student_id[:8], course_id[:8])
        return enrollment, created

    def unenroll(self, course_id: str, student_id: str, *, actor_sub: str, actor_roles: List[str]) -> None:
        """Remove an enrollment and its progress.

        Permissions:
            The student themself or an admin.
        """
        if actor_sub != student_id and not is_admin(actor_roles):
            raise PermissionError("forbidden")
        if not self.repo.delete_enrollment(student_id, course_id):
            raise LookupError("enrollment_not_found")
        logger.info("unenrolled student=%s course=%s", student_id[:8], course_id[:8])

    def mark_lecture_complete(self, student_id: str, course_id: str, lecture_id: str) -> ProgressSnapshot:
        return self.progress.mark_lecture_complete(student_id, course_id, lecture_id)

    def get_progress(self, student_id: str, course_id: str) -> dict:
        enrollment = self.repo.get_enrollment(student_id, course_id)
        if enrollment is None:
            raise LookupError("enrollment_not_found")
        out = dict(enrollment)
        out["certificate"] = self.repo.get_certificate(student_id, course_id)
        return out


__all__ = ["EnrollmentRepoProtocol", "EnrollmentService"]
