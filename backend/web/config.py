"""
Configuration and startup security checks for Lectern.

Why: Grades and certificates are records students rely on; we must prevent
accidental insecure deployments. This module provides a single guard that
enforces minimal production safety constraints without burdening local
development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def is_prod_like() -> bool:
    return _is_prod_like(os.getenv("LECTERN_ENV", "dev"))


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - The in-memory repository must not serve production traffic.
    - A database DSN must be configured and must not disable TLS.
    - Identity headers are only trusted with a gateway shared secret.
    - Submission file URLs must not allow plain http.
    - Coursework config values must parse.
    """

    env = os.getenv("LECTERN_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Repository backend
    backend = (os.getenv("COURSEWORK_REPO") or "db").strip().lower()
    if backend != "db":
        raise SystemExit(
            "Refusing to start: COURSEWORK_REPO must be 'db' in production (in-memory state is lost on restart)."
        )

    # 2) Postgres DSN present and TLS not explicitly disabled
    dsn = (os.getenv("COURSEWORK_DATABASE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not dsn:
        raise SystemExit("Refusing to start: COURSEWORK_DATABASE_URL or DATABASE_URL must be set in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: database DSN contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 3) Gateway shared secret protects the forwarded identity headers
    secret = (os.getenv("GATEWAY_SHARED_SECRET") or "").strip()
    if len(secret) < 16 or secret.upper().startswith("CHANGE_ME"):
        raise SystemExit(
            "Refusing to start: GATEWAY_SHARED_SECRET must be set (>= 16 chars, no placeholder) in production."
        )

    # 4) File URLs must use https in production
    schemes = [s.strip().lower() for s in (os.getenv("SUBMISSION_FILE_URL_SCHEMES") or "").split(",") if s.strip()]
    if "http" in schemes:
        raise SystemExit("Refusing to start: SUBMISSION_FILE_URL_SCHEMES must not include http in production.")

    # 5) Coursework config must be valid before serving traffic
    from backend.learning.config import load_coursework_config

    try:
        load_coursework_config()
    except ValueError as exc:
        raise SystemExit(f"Refusing to start: invalid coursework configuration: {exc}")


__all__ = ["ensure_secure_config_on_startup", "is_prod_like"]
