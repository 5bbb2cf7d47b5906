"""
Shared web security helpers (FastAPI-agnostic utilities for routes).

Contains the caller/role checks, private (no-store) JSON responses and the
mapping from domain exceptions to HTTP errors used by every router. Keeping a
single implementation avoids security drift between adapters.
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response


_PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}


def json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers."""
    return JSONResponse(jsonable_encoder(payload), status_code=status_code, headers=dict(_PRIVATE_HEADERS))


def private_error(error: str, *, status_code: int, detail: str | None = None) -> JSONResponse:
    body: dict[str, str] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(body, status_code=status_code, headers=dict(_PRIVATE_HEADERS))


def no_content() -> Response:
    return Response(status_code=204, headers=dict(_PRIVATE_HEADERS))


def error_from_exception(exc: Exception) -> JSONResponse:
    """Map domain exceptions to the error contract.

    ValueError → 400, PermissionError → 403, LookupError → 404. The exception
    message carries the machine-readable detail code.
    """
    detail = str(exc) or None
    if isinstance(exc, PermissionError):
        return private_error("forbidden", status_code=403, detail=detail)
    if isinstance(exc, LookupError):
        return private_error("not_found", status_code=404, detail=detail)
    if isinstance(exc, ValueError):
        return private_error("bad_request", status_code=400, detail=detail)
    raise exc


def current_user(request: Request) -> dict | None:
    return getattr(request.state, "user", None)


def current_sub(user: dict | None) -> str:
    if not user:
        return ""
    sub = user.get("sub")
    return str(sub) if sub else ""


def current_roles(user: dict | None) -> list[str]:
    if not user:
        return []
    roles = user.get("roles") or []
    return list(roles) if isinstance(roles, list) else []


def role_in(user: dict | None, *roles: str) -> bool:
    return any(role in current_roles(user) for role in roles)


def require_roles(request: Request, *roles: str):
    """Return (user, error_response) ensuring the caller holds one of `roles`."""
    user = current_user(request)
    if not user:
        return None, private_error("unauthenticated", status_code=401)
    if roles and not role_in(user, *roles):
        return None, private_error("forbidden", status_code=403)
    return user, None


def is_uuid_like(value: str) -> bool:
    """Best-effort UUID format check without coercing FastAPI to return 422."""
    try:
        UUID(str(value))
    except (ValueError, TypeError):
        return False
    return True


def invalid_id(name: str) -> JSONResponse:
    return private_error("bad_request", status_code=400, detail=f"invalid_{name}")


__all__ = [
    "current_roles",
    "current_sub",
    "current_user",
    "error_from_exception",
    "invalid_id",
    "is_uuid_like",
    "json_private",
    "no_content",
    "private_error",
    "require_roles",
    "role_in",
]
