"""Course registry service layer (Clean Architecture boundary).

Why:
    Encapsulates the instructor-owned aggregate (course → lectures,
    assignments) so that web adapters remain framework-free and validation of
    answer keys, due dates and lecture ordering can be unit-tested without
    FastAPI.

Permissions:
    Every mutation requires the course's instructor or an admin. Violations
    raise `PermissionError("forbidden")`; unknown ids raise `LookupError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse

from backend.identity_access.domain import is_admin
from backend.learning.certificates import CertificateIssuer


logger = logging.getLogger(__name__)


class CoursesRepoProtocol(Protocol):
    def create_course(self, *, title: str, instructor_id: str, status: str = "draft", now: datetime | None = None) -> dict:
        ...

    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        ...

    def update_course(self, course_id: str, **fields: Any) -> Optional[dict]:
        ...

    def delete_course(self, course_id: str) -> bool:
        ...

    def list_enrollments(self, *, course_id: str | None = None) -> List[dict]:
        ...

    def create_lecture(self, course_id: str, *, title: str, video_url: str | None, order: int | None = None, now: datetime | None = None) -> dict:
        ...

    def get_lecture(self, lecture_id: str) -> Optional[dict]:
        ...

    def list_lectures(self, course_id: str) -> List[dict]:
        ...

    def update_lecture(self, lecture_id: str, **fields: Any) -> Optional[dict]:
        ...

    def delete_lecture(self, lecture_id: str) -> bool:
        ...

    def create_assignment(
        self,
        course_id: str,
        *,
        title: str,
        description: str | None,
        kind: str,
        due_date: datetime,
        questions: List[dict],
        now: datetime | None = None,
    ) -> dict:
        ...

    def get_assignment(self, assignment_id: str) -> Optional[dict]:
        ...

    def list_assignments(self, course_id: str) -> List[dict]:
        ...

    def update_assignment(self, assignment_id: str, **fields: Any) -> Optional[dict]:
        ...

    def delete_assignment(self, assignment_id: str) -> bool:
        ...

    def count_submissions_by_assignment(self, course_id: str) -> Dict[str, Tuple[int, int]]:
        ...


_UNSET = object()

COURSE_STATUSES = ("draft", "published", "archived")
COMPLETION_STATUSES = ("ongoing", "completed")
ASSIGNMENT_TYPES = ("file", "quiz")
MAX_QUESTIONS = 200
MAX_OPTIONS = 20


def ensure_course_manager(course: Mapping[str, Any], actor_sub: str, actor_roles: Sequence[str]) -> None:
    """Raise PermissionError unless the actor instructs the course or is an admin."""
    if is_admin(actor_roles):
        return
    if "instructor" in actor_roles and course.get("instructor_id") == actor_sub:
        return
    raise PermissionError("forbidden")


def _normalize_text(value: object, code: str, *, min_len: int = 1, max_len: int = 200) -> str:
    if not isinstance(value, str):
        raise ValueError(code)
    trimmed = value.strip()
    if len(trimmed) < min_len or len(trimmed) > max_len:
        raise ValueError(code)
    return trimmed


def _normalize_optional_text(value: object, code: str, *, max_len: int = 5000) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or len(value) > max_len:
        raise ValueError(code)
    trimmed = value.strip()
    return trimmed or None


def _normalize_choice(value: object, choices: Sequence[str], code: str) -> str:
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValueError(code)
    return value.strip().lower()


def _normalize_video_url(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("invalid_video_url")
    url = value.strip()
    if not url:
        return None
    parsed = urlparse(url)
    if len(url) > 2048 or parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("invalid_video_url")
    return url


def _normalize_order(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError("invalid_order")
    return value


def _parse_due_date(value: object) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("invalid_due_date") from exc
    else:
        raise ValueError("invalid_due_date")
    if parsed.tzinfo is None:
        raise ValueError("invalid_due_date")
    return parsed.astimezone(timezone.utc)


def _normalize_question(value: object) -> dict:
    if not isinstance(value, Mapping):
        raise ValueError("invalid_questions")
    text = value.get("question_text")
    if not isinstance(text, str) or not text.strip() or len(text) > 1000:
        raise ValueError("invalid_questions")
    options = value.get("options")
    if isinstance(options, (str, bytes)) or not isinstance(options, Sequence):
        raise ValueError("invalid_questions")
    if len(options) < 2 or len(options) > MAX_OPTIONS:
        raise ValueError("invalid_questions")
    cleaned: List[str] = []
    for option in options:
        if not isinstance(option, str) or not option.strip():
            raise ValueError("invalid_questions")
        cleaned.append(option.strip())
    correct = value.get("correct_option_index")
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(cleaned):
        raise ValueError("invalid_questions")
    return {"question_text": text.strip(), "options": cleaned, "correct_option_index": correct}


def normalize_questions(value: object, kind: str) -> List[dict]:
    """Validate an answer key for `kind`; file assignments carry no questions."""
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError("invalid_questions")
    if kind == "file":
        if len(value) > 0:
            raise ValueError("questions_not_allowed")
        return []
    if len(value) > MAX_QUESTIONS:
        raise ValueError("invalid_questions")
    return [_normalize_question(q) for q in value]


@dataclass
class CoursesService:
    """Use cases for the course registry (framework-independent)."""

    repo: CoursesRepoProtocol
    issuer: Optional[CertificateIssuer] = None

    # --- courses -------------------------------------------------------------

    def _owned_course(self, course_id: str, actor_sub: str, actor_roles: Sequence[str]) -> dict:
        course = self.repo.get_course(course_id)
        if course is None:
            raise LookupError("course_not_found")
        ensure_course_manager(course, actor_sub, actor_roles)
        return course

    def create_course(self, instructor_id: str, *, title: object, status: object = "draft") -> dict:
        return self.repo.create_course(
            title=_normalize_text(title, "invalid_title"),
            instructor_id=instructor_id,
            status=_normalize_choice(status, COURSE_STATUSES, "invalid_status"),
        )

    def list_courses(self, instructor_id: str) -> List[dict]:
        return self.repo.list_courses_for_instructor(instructor_id)

    def get_course(self, course_id: str, actor_sub: str, actor_roles: Sequence[str]) -> dict:
        return self._owned_course(course_id, actor_sub, actor_roles)

    def update_course(
        self,
        course_id: str,
        actor_sub: str,
        actor_roles: Sequence[str],
        *,
        title: object = _UNSET,
        status: object = _UNSET,
        completion_status: object = _UNSET,
    ) -> dict:
        """Partially update a course.

        Marking a course `completed` issues certificates to every enrollment
        already at 100% that does not hold one yet.
        """
        before = self._owned_course(course_id, actor_sub, actor_roles)
        changes: Dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = _normalize_text(title, "invalid_title")
        if status is not _UNSET:
            changes["status"] = _normalize_choice(status, COURSE_STATUSES, "invalid_status")
        if completion_status is not _UNSET:
            changes["completion_status"] = _normalize_choice(
                completion_status, COMPLETION_STATUSES, "invalid_completion_status"
            )
        result = self.repo.update_course(course_id, **changes)
        if result is None:
            raise LookupError("course_not_found")
        if changes.get("completion_status") == "completed" and before.get("completion_status") != "completed":
            self._issue_for_finished_enrollments(course_id)
        return result

    def _issue_for_finished_enrollments(self, course_id: str) -> None:
        if self.issuer is None:
            return
        issued = 0
        for enrollment in self.repo.list_enrollments(course_id=course_id):
            if enrollment.get("progress") != 100:
                continue
            had_certificate = self.issuer.get_for(enrollment["student_id"], course_id) is not None
            if self.issuer.issue_if_eligible(enrollment["student_id"], course_id) is not None and not had_certificate:
                issued += 1
        logger.info("course marked completed id=%s certificates issued=%s", course_id[:8], issued)

    def delete_course(self, course_id: str, actor_sub: str, actor_roles: Sequence[str]) -> None:
        self._owned_course(course_id, actor_sub, actor_roles)
        if not self.repo.delete_course(course_id):
            raise LookupError("course_not_found")
        logger.info("course deleted id=%s", course_id[:8])

    # --- lectures ------------------------------------------------------------

    def add_lecture(
        self,
        course_id: str,
        actor_sub: str,
        actor_roles: Sequence[str],
        *,
        title: object,
        video_url: object = None,
        order: object = None,
    ) -> dict:
        self._owned_course(course_id, actor_sub, actor_roles)
        return self.repo.create_lecture(
            course_id,
            title=_normalize_text(title, "invalid_title"),
            video_url=_normalize_video_url(video_url),
            order=None if order is None else _normalize_order(order),
        )

    def list_lectures(self, course_id: str, actor_sub: str, actor_roles: Sequence[str]) -> List[dict]:
        self._owned_course(course_id, actor_sub, actor_roles)
        return self.repo.list_lectures(course_id)

    def _owned_lecture(self, lecture_id: str, actor_sub: str, actor_roles: Sequence[str]) -> dict:
        lecture = self.repo.get_lecture(lecture_id)
        if lecture is None:
            raise LookupError("lecture_not_found")
        self._owned_course(lecture["course_id"], actor_sub, actor_roles)
        return lecture

    def update_lecture(
        self,
        lecture_id: str,
        actor_sub: str,
        actor_roles: Sequence[str],
        *,
        title: object = _UNSET,
        video_url: object = _UNSET,
        order: object = _UNSET,
    ) -> dict:
        self._owned_lecture(lecture_id, actor_sub, actor_roles)
        changes: Dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = _normalize_text(title, "invalid_title")
        if video_url is not _UNSET:
            changes["video_url"] = _normalize_video_url(video_url)
        if order is not _UNSET:
            changes["order"] = _normalize_order(order)
        result = self.repo.update_lecture(lecture_id, **changes)
        if result is None:
            raise LookupError("lecture_not_found")
        return result

    def delete_lecture(self, lecture_id: str, actor_sub: str, actor_roles: Sequence[str]) -> None:
        self._owned_lecture(lecture_id, actor_sub, actor_roles)
        if not self.repo.delete_lecture(lecture_id):
            raise LookupError("lecture_not_found")

    # --- assignments ---------------------------------------------------------

    def create_assignment(
        self,
        course_id: str,
        actor_sub: str,
        actor_roles: Sequence[str],
        *,
        title: object,
        type: object,
        due_date: object,
        description: object = None,
        questions: object = None,
    ) -> dict:
        self._owned_course(course_id, actor_sub, actor_roles)
        kind = _normalize_choice(type, ASSIGNMENT_TYPES, "invalid_type")
        key = normalize_questions(questions, kind)
        if kind == "quiz" and not key:
            logger.warning("quiz created without questions course=%s", course_id[:8])
        return self.repo.create_assignment(
            course_id,
            title=_normalize_text(title, "invalid_title", min_len=3),
            description=_normalize_optional_text(description, "invalid_description"),
            kind=kind,
            due_date=_parse_due_date(due_date),
            questions=key,
        )

    def _owned_assignment(self, assignment_id: str, actor_sub: str, actor_roles: Sequence[str]) -> dict:
        assignment = self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise LookupError("assignment_not_found")
        self._owned_course(assignment["course_id"], actor_sub, actor_roles)
        return assignment

    def list_assignments(self, course_id: str, actor_sub: str, actor_roles: Sequence[str]) -> List[dict]:
        """Instructor view: answer keys included, with submission counts."""
        self._owned_course(course_id, actor_sub, actor_roles)
        counts = self.repo.count_submissions_by_assignment(course_id)
        items: List[dict] = []
        for assignment in self.repo.list_assignments(course_id):
            total, graded = counts.get(assignment["id"], (0, 0))
            items.append({**assignment, "submission_count": total, "graded_count": graded})
        return items

    def update_assignment(
        self,
        assignment_id: str,
        actor_sub: str,
        actor_roles: Sequence[str],
        *,
        title: object = _UNSET,
        description: object = _UNSET,
        due_date: object = _UNSET,
        questions: object = _UNSET,
    ) -> dict:
        """Update an assignment; its type is fixed at creation.

        Editing the answer key does not rescore existing submissions.
        """
        assignment = self._owned_assignment(assignment_id, actor_sub, actor_roles)
        changes: Dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = _normalize_text(title, "invalid_title", min_len=3)
        if description is not _UNSET:
            changes["description"] = _normalize_optional_text(description, "invalid_description")
        if due_date is not _UNSET:
            changes["due_date"] = _parse_due_date(due_date)
        if questions is not _UNSET:
            changes["questions"] = normalize_questions(questions, assignment["type"])
        result = self.repo.update_assignment(assignment_id, **changes)
        if result is None:
            raise LookupError("assignment_not_found")
        return result

    def delete_assignment(self, assignment_id: str, actor_sub: str, actor_roles: Sequence[str]) -> None:
        self._owned_assignment(assignment_id, actor_sub, actor_roles)
        if not self.repo.delete_assignment(assignment_id):
            raise LookupError("assignment_not_found")
        logger.info("assignment deleted id=%s", assignment_id[:8])


__all__ = [
    "ASSIGNMENT_TYPES",
    "COURSE_STATUSES",
    "CoursesRepoProtocol",
    "CoursesService",
    "ensure_course_manager",
    "normalize_questions",
]
