"""
Certificate verification API.

`GET /api/certificates/{code}` is public: anyone holding a verification code
(e.g. an employer) can confirm who completed which course and when. Only the
certificate fields are disclosed.
"""
from __future__ import annotations

from fastapi import APIRouter

from backend.web import repo_wiring
from backend.web.routes.security import error_from_exception, json_private


certificates_router = APIRouter(tags=["Certificates"])

_MAX_CODE_LENGTH = 128


@certificates_router.get("/api/certificates/{code}")
async def verify_certificate(code: str):
    if not code or len(code) > _MAX_CODE_LENGTH:
        return error_from_exception(LookupError("certificate_not_found"))
    try:
        cert = repo_wiring.get_certificate_issuer().verify(code)
    except LookupError as exc:
        return error_from_exception(exc)
    return json_private(
        {
            "verification_code": cert["verification_code"],
            "student_id": cert["student_id"],
            "course_id": cert["course_id"],
            "course_title": cert["course_title"],
            "issued_at": cert["issued_at"],
        }
    )


__all__ = ["certificates_router"]
