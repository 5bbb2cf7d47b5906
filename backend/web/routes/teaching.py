"""
Teaching API routes: course registry (courses, lectures, assignments) and the
instructor's submission overview.

Permissions:
    Caller must have role `instructor` (owner of the course) or `admin`.
    Responses are private (`Cache-Control: private, no-store`).
"""
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

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


teaching_router = APIRouter(tags=["Teaching"])

_MANAGERS = ("instructor", "admin")


# --- Request models ----------------------------------------------------------------

class CourseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    status: str = Field(default="draft")


class CourseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    status: Optional[str] = None
    completion_status: Optional[str] = None


class LectureCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    video_url: Optional[str] = None
    order: Optional[int] = None

    @field_validator("video_url")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class LectureUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    video_url: Optional[str] = None
    order: Optional[int] = None


class AssignmentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    type: str
    due_date: str = Field(..., description="ISO 8601 timestamp with timezone")
    description: Optional[str] = None
    questions: Optional[List[Any]] = None


class AssignmentUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    due_date: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[Any]] = None


def _changes(payload: BaseModel) -> dict:
    """Only the fields the client actually sent (PATCH semantics)."""
    return {name: getattr(payload, name) for name in payload.model_fields_set}


# --- Courses -----------------------------------------------------------------------

@teaching_router.get("/api/teaching/courses")
async def list_courses(request: Request):
    """List courses owned by the calling instructor."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    return json_private(repo_wiring.get_courses_service().list_courses(current_sub(user)))


@teaching_router.post("/api/teaching/courses")
async def create_course(request: Request, payload: CourseCreate):
    """Create a course (201). The owner is the authenticated subject."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    try:
        course = repo_wiring.get_courses_service().create_course(
            current_sub(user), title=payload.title, status=payload.status
        )
    except ValueError as exc:
        return error_from_exception(exc)
    return json_private(course, status_code=201)


@teaching_router.get("/api/teaching/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        course = repo_wiring.get_courses_service().get_course(course_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(course)


@teaching_router.patch("/api/teaching/courses/{course_id}")
async def update_course(request: Request, course_id: str, payload: CourseUpdate):
    """Update title, publication status or completion status.

    Setting `completion_status` to `completed` issues certificates to enrollments
    already at 100%.
    """
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        course = repo_wiring.get_courses_service().update_course(
            course_id, current_sub(user), current_roles(user), **_changes(payload)
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(course)


@teaching_router.delete("/api/teaching/courses/{course_id}")
async def delete_course(request: Request, course_id: str):
    """Delete a course with its lectures, assignments, enrollments and submissions (204).

    Issued certificates are kept.
    """
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        repo_wiring.get_courses_service().delete_course(course_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return no_content()


# --- Lectures ----------------------------------------------------------------------

@teaching_router.get("/api/teaching/courses/{course_id}/lectures")
async def list_lectures(request: Request, course_id: str):
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        items = repo_wiring.get_courses_service().list_lectures(course_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(items)


@teaching_router.post("/api/teaching/courses/{course_id}/lectures")
async def create_lecture(request: Request, course_id: str, payload: LectureCreate):
    """Add a lecture (201). `order` defaults to the next free position.

    Behavior:
        - 400 `duplicate_lecture_order` when the position is already taken
    """
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        lecture = repo_wiring.get_courses_service().add_lecture(
            course_id,
            current_sub(user),
            current_roles(user),
            title=payload.title,
            video_url=payload.video_url,
            order=payload.order,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(lecture, status_code=201)


@teaching_router.patch("/api/teaching/lectures/{lecture_id}")
async def update_lecture(request: Request, lecture_id: str, payload: LectureUpdate):
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(lecture_id):
        return invalid_id("lecture_id")
    try:
        lecture = repo_wiring.get_courses_service().update_lecture(
            lecture_id, current_sub(user), current_roles(user), **_changes(payload)
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(lecture)


@teaching_router.delete("/api/teaching/lectures/{lecture_id}")
async def delete_lecture(request: Request, lecture_id: str):
    """Delete a lecture; it disappears from every student's completed set (204)."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(lecture_id):
        return invalid_id("lecture_id")
    try:
        repo_wiring.get_courses_service().delete_lecture(lecture_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return no_content()


# --- Assignments -------------------------------------------------------------------

@teaching_router.get("/api/teaching/courses/{course_id}/assignments")
async def list_assignments(request: Request, course_id: str):
    """Instructor view of assignments, answer keys and submission counts included."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        items = repo_wiring.get_courses_service().list_assignments(course_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(items)


@teaching_router.post("/api/teaching/courses/{course_id}/assignments")
async def create_assignment(request: Request, course_id: str, payload: AssignmentCreate):
    """Create a file or quiz assignment (201).

    Behavior:
        - 400 on invalid type, due date without timezone, or malformed questions
          (each needs text, >= 2 options and an in-range correct_option_index)
    """
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        assignment = repo_wiring.get_courses_service().create_assignment(
            course_id,
            current_sub(user),
            current_roles(user),
            title=payload.title,
            type=payload.type,
            due_date=payload.due_date,
            description=payload.description,
            questions=payload.questions,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(assignment, status_code=201)


@teaching_router.patch("/api/teaching/assignments/{assignment_id}")
async def update_assignment(request: Request, assignment_id: str, payload: AssignmentUpdate):
    """Update an assignment; the type is fixed and stored scores are not recomputed."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(assignment_id):
        return invalid_id("assignment_id")
    try:
        assignment = repo_wiring.get_courses_service().update_assignment(
            assignment_id, current_sub(user), current_roles(user), **_changes(payload)
        )
    except (ValueError, PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(assignment)


@teaching_router.delete("/api/teaching/assignments/{assignment_id}")
async def delete_assignment(request: Request, assignment_id: str):
    """Delete an assignment and its submissions (204)."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(assignment_id):
        return invalid_id("assignment_id")
    try:
        repo_wiring.get_courses_service().delete_assignment(assignment_id, current_sub(user), current_roles(user))
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return no_content()


@teaching_router.get("/api/teaching/assignments/{assignment_id}/submissions")
async def list_submissions(request: Request, assignment_id: str):
    """All submissions for an assignment with submission/graded counts."""
    user, error = require_roles(request, *_MANAGERS)
    if error:
        return error
    if not is_uuid_like(assignment_id):
        return invalid_id("assignment_id")
    try:
        overview = repo_wiring.get_grading_service().list_submissions(
            assignment_id, actor_sub=current_sub(user), actor_roles=current_roles(user)
        )
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(overview)


__all__ = ["teaching_router"]
