"""
Learning API routes: enrollment, lecture completion, progress and the
student's view of assignments.

Permissions:
    Student endpoints require role `student`; unenroll also accepts `admin`.
    Responses are private (`Cache-Control: private, no-store`).
"""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.learning.usecases.assignments import ListStudentAssignmentsInput
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


learning_router = APIRouter(tags=["Learning"])


def _serialize_snapshot(snapshot) -> dict:
    return {
        "course_id": snapshot.course_id,
        "progress": snapshot.progress,
        "enrollment_status": snapshot.enrollment_status,
        "completed_lecture_ids": snapshot.completed_lecture_ids,
        "lectures_complete": snapshot.lectures_complete,
        "assignments_complete": snapshot.assignments_complete,
        "certificate": snapshot.certificate,
    }


@learning_router.post("/api/learning/courses/{course_id}/enroll")
async def enroll(request: Request, course_id: str):
    """Enroll the caller in a published course.

    Behavior:
        - 201 with the enrollment when created, 200 when already enrolled
        - 403 when the course is not published
        - 404 when the course does not exist
    """
    user, error = require_roles(request, "student")
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        enrollment, created = repo_wiring.get_enrollment_service().enroll(current_sub(user), course_id)
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return json_private(enrollment, status_code=201 if created else 200)


@learning_router.delete("/api/learning/courses/{course_id}/enrollments/{student_id}")
async def unenroll(request: Request, course_id: str, student_id: str):
    """Remove an enrollment together with its progress (204)."""
    user, error = require_roles(request, "student", "admin")
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        repo_wiring.get_enrollment_service().unenroll(
            course_id, student_id, actor_sub=current_sub(user), actor_roles=current_roles(user)
        )
    except (PermissionError, LookupError) as exc:
        return error_from_exception(exc)
    return no_content()


@learning_router.post("/api/learning/courses/{course_id}/lectures/{lecture_id}/complete")
async def complete_lecture(request: Request, course_id: str, lecture_id: str):
    """Mark a lecture as completed (idempotent) and return the recomputed progress."""
    user, error = require_roles(request, "student")
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    if not is_uuid_like(lecture_id):
        return invalid_id("lecture_id")
    try:
        snapshot = repo_wiring.get_enrollment_service().mark_lecture_complete(current_sub(user), course_id, lecture_id)
    except LookupError as exc:
        return error_from_exception(exc)
    return json_private(_serialize_snapshot(snapshot))


@learning_router.get("/api/learning/courses/{course_id}/progress")
async def get_progress(request: Request, course_id: str):
    user, error = require_roles(request, "student")
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        progress = repo_wiring.get_enrollment_service().get_progress(current_sub(user), course_id)
    except LookupError as exc:
        return error_from_exception(exc)
    return json_private(progress)


@learning_router.get("/api/learning/courses/{course_id}/assignments")
async def list_assignments(request: Request, course_id: str):
    """List assignments for the enrolled caller; answer keys stay hidden until graded."""
    user, error = require_roles(request, "student")
    if error:
        return error
    if not is_uuid_like(course_id):
        return invalid_id("course_id")
    try:
        items = repo_wiring.get_student_assignments_use_case().execute(
            ListStudentAssignmentsInput(course_id=course_id, student_sub=current_sub(user))
        )
    except PermissionError as exc:
        return error_from_exception(exc)
    return json_private(items)


__all__ = ["learning_router"]
