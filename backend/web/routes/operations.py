"""Operations endpoints (liveness for load balancers and operators)."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from backend.web import repo_wiring

operations_router = APIRouter(tags=["Operations"])


def _private_response(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


@operations_router.get("/health")
async def health():
    """Report liveness and which repository backend serves requests."""
    repo = repo_wiring.get_repo()
    return _private_response({"status": "ok", "repo": type(repo).__name__}, status_code=200)


__all__ = ["operations_router"]
