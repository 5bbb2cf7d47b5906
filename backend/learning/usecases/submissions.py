from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Callable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from backend.identity_access.domain import is_admin
from backend.learning.config import CourseworkConfig
from backend.learning.progress import ProgressTracker
from backend.learning.quiz_grader import grade_quiz
from backend.storage.file_refs import validate_file_url


logger = logging.getLogger(__name__)

MAX_QUIZ_ANSWERS = 500


class SubmissionsRepoProtocol(Protocol):
    def get_assignment(self, assignment_id: str) -> Optional[dict]:
        ...

    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def upsert_submission(self, **fields: Any) -> Tuple[dict, bool]:
        ...

    def get_submission(self, submission_id: str) -> Optional[dict]:
        ...

    def delete_submission(self, submission_id: str) -> bool:
        ...


# --- Payload variants ------------------------------------------------------------

@dataclass(frozen=True)
class QuizAnswer:
    question_index: int
    selected_option_index: int


@dataclass(frozen=True)
class FileSubmissionPayload:
    file_url: str


@dataclass(frozen=True)
class QuizSubmissionPayload:
    answers: Tuple[QuizAnswer, ...]

    def as_records(self) -> List[dict]:
        return [
            {"question_index": a.question_index, "selected_option_index": a.selected_option_index}
            for a in self.answers
        ]


SubmissionPayload = Union[FileSubmissionPayload, QuizSubmissionPayload]

_FILE_KEYS = {"file_url"}
_QUIZ_KEYS = {"answers"}


def _strict_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("invalid_answers")
    return value


def _parse_answers(value: object) -> Tuple[QuizAnswer, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError("invalid_answers")
    if len(value) > MAX_QUIZ_ANSWERS:
        raise ValueError("invalid_answers")
    parsed: List[QuizAnswer] = []
    for item in value:
        if not isinstance(item, Mapping):
            raise ValueError("invalid_answers")
        parsed.append(
            QuizAnswer(
                question_index=_strict_int(item.get("question_index")),
                selected_option_index=_strict_int(item.get("selected_option_index")),
            )
        )
    return tuple(parsed)


def parse_submission_payload(kind: str, raw: Mapping[str, Any], *, allow_http: bool = True) -> SubmissionPayload:
    """Build the payload variant for an assignment of type `kind`.

    The variant is chosen by the assignment type alone; fields of the other
    variant are rejected as `payload_type_mismatch`.
    """
    if not isinstance(raw, Mapping):
        raise ValueError("invalid_payload")
    keys = {k for k, v in raw.items() if v is not None}
    if kind == "file":
        if keys & _QUIZ_KEYS:
            raise ValueError("payload_type_mismatch")
        return FileSubmissionPayload(file_url=validate_file_url(raw.get("file_url"), allow_http=allow_http))
    if kind == "quiz":
        if keys & _FILE_KEYS:
            raise ValueError("payload_type_mismatch")
        if "answers" not in keys:
            raise ValueError("invalid_answers")
        return QuizSubmissionPayload(answers=_parse_answers(raw.get("answers")))
    raise ValueError("invalid_assignment_type")


# --- Submit ----------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_late(submission: Mapping[str, Any], due_date: Optional[datetime]) -> bool:
    """Lateness of the current content against the due date.

    `updated_at` moves only on submit and resubmit; grading leaves it alone.
    """
    stamp = submission.get("updated_at") or submission.get("submitted_at")
    if not isinstance(due_date, datetime) or not isinstance(stamp, datetime):
        return False
    return stamp > due_date


@dataclass
class SubmitAssignmentInput:
    assignment_id: str
    student_sub: str
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class SubmissionResult:
    submission: dict
    created: bool
    is_late: bool
    due_date: Optional[datetime]


class SubmitAssignmentUseCase:
    def __init__(
        self,
        repo: SubmissionsRepoProtocol,
        progress: ProgressTracker,
        *,
        config: CourseworkConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
        allow_http_file_urls: bool = True,
    ) -> None:
        self._repo = repo
        self._progress = progress
        self._config = config or CourseworkConfig()
        self._clock = clock
        self._allow_http = allow_http_file_urls

    def execute(self, req: SubmitAssignmentInput) -> SubmissionResult:
        """Create or replace the caller's single submission for an assignment.

        Behavior:
            - 404 semantics (`LookupError`) when the assignment is unknown.
            - `PermissionError("not_enrolled")` unless the student is enrolled
              in the owning course.
            - Payload validated against the assignment type before any write.
            - Quiz answers are scored synchronously and stored together with
              the score (status graded). File submissions start pending.
            - Resubmission keeps `submitted_at`, bumps `updated_at` and resets
              any previous grade.
            - Due dates never block; lateness is reported.

        Permissions:
            Caller must be an enrolled student.
        """
        assignment = self._repo.get_assignment(req.assignment_id)
        if assignment is None:
            raise LookupError("assignment_not_found")
        course_id = assignment["course_id"]
        if self._repo.get_enrollment(req.student_sub, course_id) is None:
            raise PermissionError("not_enrolled")

        payload = parse_submission_payload(assignment["type"], req.payload, allow_http=self._allow_http)
        now = self._clock()
        if isinstance(payload, QuizSubmissionPayload):
            answers = payload.as_records()
            score = grade_quiz(assignment.get("questions") or [], answers)
            record, created = self._repo.upsert_submission(
                assignment_id=assignment["id"],
                student_id=req.student_sub,
                course_id=course_id,
                kind="quiz",
                status="graded",
                answers=answers,
                score=score.score_percent,
                correct_count=score.correct_count,
                total_count=score.total_count,
                grade=float(score.score_percent),
                now=now,
            )
        else:
            record, created = self._repo.upsert_submission(
                assignment_id=assignment["id"],
                student_id=req.student_sub,
                course_id=course_id,
                kind="file",
                status="pending",
                file_url=payload.file_url,
                now=now,
            )

        logger.info(
            "submission %s kind=%s assignment=%s",
            "created" if created else "replaced",
            record["kind"],
            assignment["id"][:8],
        )
        # File submissions only move progress when ungraded files count.
        if record["kind"] == "quiz" or self._config.count_ungraded_file_submissions:
            self._progress.recompute(req.student_sub, course_id)
        due_date = assignment.get("due_date")
        return SubmissionResult(
            submission=record,
            created=created,
            is_late=is_late(record, due_date),
            due_date=due_date,
        )


# --- Delete ----------------------------------------------------------------------

@dataclass
class DeleteSubmissionInput:
    submission_id: str
    actor_sub: str
    actor_roles: List[str] = field(default_factory=list)


class DeleteSubmissionUseCase:
    def __init__(self, repo: SubmissionsRepoProtocol, progress: ProgressTracker) -> None:
        self._repo = repo
        self._progress = progress

    def execute(self, req: DeleteSubmissionInput) -> None:
        """Hard-delete a submission.

        Permissions:
            Admins and the owning course's instructor may delete any
            submission; the submitting student only while it is pending.
        """
        record = self._repo.get_submission(req.submission_id)
        if record is None:
            raise LookupError("submission_not_found")
        if not self._may_delete(record, req):
            raise PermissionError("forbidden")
        if not self._repo.delete_submission(req.submission_id):
            raise LookupError("submission_not_found")
        logger.info("submission deleted id=%s", req.submission_id[:8])
        self._progress.recompute_if_enrolled(record["student_id"], record["course_id"])

    def _may_delete(self, record: dict, req: DeleteSubmissionInput) -> bool:
        if is_admin(req.actor_roles):
            return True
        if "instructor" in req.actor_roles:
            course = self._repo.get_course(record["course_id"])
            if course is not None and course.get("instructor_id") == req.actor_sub:
                return True
        return record["student_id"] == req.actor_sub and record["status"] == "pending"


__all__ = [
    "DeleteSubmissionInput",
    "DeleteSubmissionUseCase",
    "FileSubmissionPayload",
    "QuizAnswer",
    "QuizSubmissionPayload",
    "SubmissionResult",
    "SubmitAssignmentInput",
    "SubmitAssignmentUseCase",
    "is_late",
    "parse_submission_payload",
]
