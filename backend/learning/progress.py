"""
Course progress tracking and completion.

Intent:
    Derive an enrollment's progress from stored inputs (completed lectures,
    submissions) and trigger certificate issuance when the course is done.

Behavior:
    - Lecture gate: every current lecture completed (vacuous without lectures).
    - Assignment gate: every assignment has a satisfying submission: graded,
      or a pending file submission when the policy counts ungraded files
      (vacuous without assignments).
    - progress is the lecture share (or the assignment share when the course
      has no lectures), rounded half up and capped at 99 until both gates
      hold. 99 therefore also means "lectures done, assignments pending".
    - A course with neither lectures nor assignments stays at 0.
    - Completed enrollments stay at 100.
    - `recompute` is idempotent and safe to call from any event; concurrent
      calls for one enrollment are serialized by the repo lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Callable, ContextManager, List, Optional, Protocol

from backend.learning.certificates import CertificateIssuer
from backend.learning.config import CourseworkConfig
from backend.learning.quiz_grader import round_half_up_percent


logger = logging.getLogger(__name__)

PENDING_ASSIGNMENTS_PROGRESS = 99


class LockedEnrollmentProtocol(Protocol):
    enrollment: dict

    def update_progress(self, *, progress: int, enrollment_status: str, now: datetime | None = None) -> Optional[dict]:
        ...


class ProgressRepoProtocol(Protocol):
    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def lock_enrollment(self, student_id: str, course_id: str) -> ContextManager[Optional[LockedEnrollmentProtocol]]:
        ...

    def get_lecture(self, lecture_id: str) -> Optional[dict]:
        ...

    def list_lectures(self, course_id: str) -> List[dict]:
        ...

    def list_assignments(self, course_id: str) -> List[dict]:
        ...

    def list_submissions_for_student_course(self, student_id: str, course_id: str) -> List[dict]:
        ...

    def add_completed_lecture(self, student_id: str, course_id: str, lecture_id: str, *, now: datetime | None = None) -> bool:
        ...


@dataclass(frozen=True)
class ProgressSnapshot:
    student_id: str
    course_id: str
    progress: int
    enrollment_status: str
    completed_lecture_ids: List[str]
    lectures_complete: bool
    assignments_complete: bool
    certificate: Optional[dict] = None


def compute_progress(
    *,
    total_lectures: int,
    completed_lectures: int,
    total_assignments: int,
    satisfied_assignments: int,
) -> int:
    """Pure progress formula shared by the tracker and the backfill tool."""
    if total_lectures <= 0 and total_assignments <= 0:
        return 0
    lectures_complete = completed_lectures >= total_lectures
    assignments_complete = satisfied_assignments >= total_assignments
    if lectures_complete and assignments_complete:
        return 100
    if total_lectures > 0:
        share = round_half_up_percent(completed_lectures, total_lectures)
    else:
        share = round_half_up_percent(satisfied_assignments, total_assignments)
    return min(share, PENDING_ASSIGNMENTS_PROGRESS)


def submission_satisfies(submission: dict, *, count_ungraded_files: bool) -> bool:
    if submission.get("status") == "graded":
        return True
    return bool(count_ungraded_files and submission.get("kind") == "file")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProgressTracker:
    repo: ProgressRepoProtocol
    issuer: CertificateIssuer
    config: CourseworkConfig = field(default_factory=CourseworkConfig)
    clock: Callable[[], datetime] = _utcnow

    def recompute(self, student_id: str, course_id: str) -> ProgressSnapshot:
        """Recompute and store progress for one enrollment.

        Reads and the write happen under the repo's enrollment lock so a
        recompute that read older inputs cannot overwrite a newer result. The
        certificate is issued after the lock is released, once the progress
        write is visible.
        """
        with self.repo.lock_enrollment(student_id, course_id) as locked:
            if locked is None:
                raise LookupError("enrollment_not_found")
            enrollment = locked.enrollment

            lecture_ids = {lec["id"] for lec in self.repo.list_lectures(course_id)}
            completed = sorted(set(enrollment.get("completed_lecture_ids") or []) & lecture_ids)
            assignment_ids = {a["id"] for a in self.repo.list_assignments(course_id)}
            satisfied = {
                s["assignment_id"]
                for s in self.repo.list_submissions_for_student_course(student_id, course_id)
                if s["assignment_id"] in assignment_ids
                and submission_satisfies(s, count_ungraded_files=self.config.count_ungraded_file_submissions)
            }

            progress = compute_progress(
                total_lectures=len(lecture_ids),
                completed_lectures=len(completed),
                total_assignments=len(assignment_ids),
                satisfied_assignments=len(satisfied),
            )
            if enrollment.get("enrollment_status") == "completed":
                progress = 100
            status = "completed" if progress == 100 else "ongoing"

            if progress != enrollment.get("progress") or status != enrollment.get("enrollment_status"):
                locked.update_progress(progress=progress, enrollment_status=status, now=self.clock())
                logger.info(
                    "progress updated student=%s course=%s %s -> %s",
                    student_id[:8],
                    course_id[:8],
                    enrollment.get("progress"),
                    progress,
                )

        certificate = self.issuer.issue_if_eligible(student_id, course_id) if progress == 100 else None
        return ProgressSnapshot(
            student_id=student_id,
            course_id=course_id,
            progress=progress,
            enrollment_status=status,
            completed_lecture_ids=completed,
            lectures_complete=len(completed) >= len(lecture_ids),
            assignments_complete=len(satisfied) >= len(assignment_ids),
            certificate=certificate,
        )

    def recompute_if_enrolled(self, student_id: str, course_id: str) -> Optional[ProgressSnapshot]:
        """Recompute when the enrollment still exists (it may have been removed)."""
        if self.repo.get_enrollment(student_id, course_id) is None:
            return None
        return self.recompute(student_id, course_id)

    def mark_lecture_complete(self, student_id: str, course_id: str, lecture_id: str) -> ProgressSnapshot:
        lecture = self.repo.get_lecture(lecture_id)
        if lecture is None or lecture.get("course_id") != course_id:
            raise LookupError("lecture_not_found")
        if self.repo.get_enrollment(student_id, course_id) is None:
            raise LookupError("enrollment_not_found")
        self.repo.add_completed_lecture(student_id, course_id, lecture_id, now=self.clock())
        return self.recompute(student_id, course_id)


__all__ = [
    "PENDING_ASSIGNMENTS_PROGRESS",
    "ProgressRepoProtocol",
    "ProgressSnapshot",
    "ProgressTracker",
    "compute_progress",
    "submission_satisfies",
]
