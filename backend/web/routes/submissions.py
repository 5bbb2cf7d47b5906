"""
Submission lifecycle API: submit, grade, delete.

Contract:
    - POST /api/assignments/{assignment_id}/submit  (student)
    - PUT /api/submissions/{submission_id}/grade    (course instructor or admin)
    - DELETE /api/submissions/{submission_id}       (instructor/admin, or own pending)

All responses are private (`Cache-Control: private, no-store`).
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.learning.usecases.submissions import DeleteSubmissionInput, SubmitAssignmentInput
from backend.web import repo_wiring
from backend.web.routes.security import (
    current_roles,
    current_sub,
    error_from_exception,
    invalid_id,
    is_uuid_like,
    json_private,
    no_content,
    require_roles,
)


submissions_router = APIRouter(tags=["Submissions"])
logger = logging.getLogger("lectern.web.submissions")


class SubmitBody(BaseModel):
    """Either `file_url` (file assignments) or `answers` (quiz assignments)."""

    model_config = ConfigDict(extra="forbid")

    file_url: Optional[str] = Field(default=None, max_length=4096)
    answers: Optional[List[Any]] = None


class GradeBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    grade: Any = Field(..., description="Number in [0, 100]")
    feedback: Optional[str] = None

    @field_validator("feedback")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


def _serialize_submission_result(result) -> dict:
    return {**result.submission, "is_late": result.is_late, "due_date": result.due_date}


@submissions_router.post("/api/assignments/{assignment_id}/submit")
async def submit_assignment(request: Request, assignment_id: str, payload: SubmitBody):
    """Create or replace the caller's submission for an assignment.

    Behavior:
        - 200 with the stored submission (`is_late`, `due_date` included);
          first submit and resubmit share the same shape
        - 400 when the payload does not match the assignment type or is malformed
        - 403 when the caller is not enrolled in the course
        - 404 when the assignment does not exist

    Permissions:
        Caller must have role `student` and be enrolled.
    """
    user, error = require_roles(request, "student")
    if error:
        return error
    if not is_uuid_like(assignment_id):
        return invalid_id("assignment_id")
    use_case = repo_wiring.get_submit_use_case()
    try:
        result = use_case.execute(
            SubmitAssignmentInput(
                assignment_id=assignment_id,
                student_sub=current_sub(user),
                payload=payload.model_dump(exclude_none=True),
            )
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(_serialize_submission_result(result), status_code=200)


@submissions_router.put("/api/submissions/{submission_id}/grade")
async def grade_submission(request: Request, submission_id: str, payload: GradeBody):
    """Attach a grade and feedback; re-grading overwrites.

    Behavior:
        - 200 with the graded submission
        - 400 on grade outside [0, 100] or oversized feedback
        - 403 when the caller does not teach the course
        - 404 when the submission does not exist

    Permissions:
        Caller must be the course's `instructor` or an `admin`.
    """
    user, error = require_roles(request, "instructor", "admin")
    if error:
        return error
    if not is_uuid_like(submission_id):
        return invalid_id("submission_id")
    service = repo_wiring.get_grading_service()
    try:
        record = service.grade(
            submission_id,
            actor_sub=current_sub(user),
            actor_roles=current_roles(user),
            grade=payload.grade,
            feedback=payload.feedback,
        )
    except PermissionError as exc:
        logger.warning("grade denied actor=%s submission=%s", current_sub(user)[:8], submission_id[:8])
        return error_from_exception(exc)
    except (ValueError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(record, status_code=200)


@submissions_router.delete("/api/submissions/{submission_id}")
async def delete_submission(request: Request, submission_id: str):
    """Hard-delete a submission (204).

    Permissions:
        Course instructor or admin for any submission; the submitting student
        only while it is still pending.
    """
    user, error = require_roles(request)
    if error:
        return error
    if not is_uuid_like(submission_id):
        return invalid_id("submission_id")
    use_case = repo_wiring.get_delete_submission_use_case()
    try:
        use_case.execute(
            DeleteSubmissionInput(
                submission_id=submission_id,
                actor_sub=current_sub(user),
                actor_roles=current_roles(user),
            )
        )
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return no_content()


__all__ = ["submissions_router"]
