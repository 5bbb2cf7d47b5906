"""
Lectern web application: coursework API behind an authenticating gateway.

Identity:
    The gateway authenticates callers and forwards `X-User-Sub` and
    `X-User-Roles`. When `GATEWAY_SHARED_SECRET` is configured the gateway must
    also send it as `X-Gateway-Secret`; otherwise the identity headers are
    ignored. `/api/*` requests without identity receive 401.
"""
from __future__ import annotations

import logging
import os
import secrets

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.identity_access.domain import parse_roles


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via LECTERN_ENABLE_DOTENV (default true outside pytest).
    """
    import sys

    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LECTERN_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv

if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
from backend.web import config as _cfg

_cfg.ensure_secure_config_on_startup()

from backend.web.routes.certificates import certificates_router
from backend.web.routes.learning import learning_router
from backend.web.routes.operations import operations_router
from backend.web.routes.submissions import submissions_router
from backend.web.routes.teaching import teaching_router


logger = logging.getLogger("lectern.identity_access")
error_logger = logging.getLogger("lectern.web")

app = FastAPI(title="Lectern", description="Course assignments, grading, progress and certificates", version="0.1.0")


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    error_logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "internal_error"}, status_code=500, headers={"Cache-Control": "private, no-store"})

_ROLE_PRIORITY = ("admin", "instructor", "student")


def _primary_role(roles: list[str]) -> str:
    for role in _ROLE_PRIORITY:
        if role in roles:
            return role
    return ""


def _is_public_path(path: str) -> bool:
    return path.startswith("/api/certificates/") or path in ("/health", "/docs", "/openapi.json")


def _gateway_trusted(request: Request) -> bool:
    expected = (os.getenv("GATEWAY_SHARED_SECRET") or "").strip()
    if not expected:
        return True
    presented = request.headers.get("x-gateway-secret") or ""
    return secrets.compare_digest(presented.encode(), expected.encode())


def _identity_from_headers(request: Request) -> dict | None:
    if not _gateway_trusted(request):
        logger.warning("Identity headers rejected: gateway secret mismatch")
        return None
    sub = (request.headers.get("x-user-sub") or "").strip()
    if not sub or len(sub) > 255:
        return None
    roles = parse_roles(request.headers.get("x-user-roles"))
    return {"sub": sub, "role": _primary_role(roles), "roles": roles}


@app.middleware("http")
async def gateway_identity(request: Request, call_next):
    path = request.url.path
    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = _identity_from_headers(request)
    if request.state.user is None and not _is_public_path(path) and path.startswith("/api/"):
        headers = {"Cache-Control": "private, no-store"}
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


app.include_router(operations_router)
app.include_router(certificates_router)
app.include_router(submissions_router)
app.include_router(learning_router)
app.include_router(teaching_router)
