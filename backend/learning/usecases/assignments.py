from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import math
from typing import Callable, List, Optional, Protocol

from backend.learning.quiz_grader import review_answers
from backend.learning.usecases.submissions import is_late


class StudentAssignmentsRepoProtocol(Protocol):
    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def list_assignments(self, course_id: str) -> List[dict]:
        ...

    def get_submission_for(self, assignment_id: str, student_id: str) -> Optional[dict]:
        ...


def redact_questions(questions: List[dict]) -> List[dict]:
    return [
        {"question_text": q.get("question_text"), "options": list(q.get("options") or [])}
        for q in questions
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ListStudentAssignmentsInput:
    course_id: str
    student_sub: str


class ListStudentAssignmentsUseCase:
    def __init__(self, repo: StudentAssignmentsRepoProtocol, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._repo = repo
        self._clock = clock

    def execute(self, req: ListStudentAssignmentsInput) -> List[dict]:
        """List a course's assignments as the enrolled student sees them.

        Behavior:
            - Answer keys are removed unless the student's submission is graded;
              graded quiz submissions carry a per-question `review`.
            - `is_overdue` is true only for unsubmitted work past its due date.
            - `days_remaining` counts whole days up to the due date (never < 0).

        Permissions:
            Caller must be enrolled in the course (`PermissionError` otherwise).
        """
        if self._repo.get_enrollment(req.student_sub, req.course_id) is None:
            raise PermissionError("not_enrolled")
        now = self._clock()
        items: List[dict] = []
        for assignment in self._repo.list_assignments(req.course_id):
            submission = self._repo.get_submission_for(assignment["id"], req.student_sub)
            finalized = submission is not None and submission.get("status") == "graded"
            due: datetime = assignment["due_date"]
            seconds_left = (due - now).total_seconds()
            view = {
                "id": assignment["id"],
                "course_id": assignment["course_id"],
                "title": assignment["title"],
                "description": assignment.get("description"),
                "type": assignment["type"],
                "due_date": due,
                "questions": list(assignment.get("questions") or [])
                if finalized
                else redact_questions(assignment.get("questions") or []),
                "submission": submission,
                "is_submitted": submission is not None,
                "is_late": bool(submission) and is_late(submission, due),
                "is_overdue": submission is None and seconds_left < 0,
                "days_remaining": max(0, math.ceil(seconds_left / 86400)),
            }
            if finalized and assignment["type"] == "quiz":
                view["review"] = review_answers(assignment.get("questions") or [], submission.get("answers"))
            items.append(view)
        return items


__all__ = ["ListStudentAssignmentsInput", "ListStudentAssignmentsUseCase", "redact_questions"]
