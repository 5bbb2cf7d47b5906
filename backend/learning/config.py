"""
Coursework configuration parsing and validation.

Intent:
    Provide a single place to read environment variables that control the
    progress policy, certificate code entropy and grading limits.

Why:
    Centralising configuration reduces drift across services and makes
    validation and defaults explicit. Tests can exercise config behaviour
    without booting the web app.
"""
from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class CourseworkConfig:
    count_ungraded_file_submissions: bool = False
    certificate_code_bytes: int = 18
    max_feedback_chars: int = 5000


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")


def _int_env(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < lo or value > hi:
        raise ValueError(f"{name} out of range ({lo}..{hi}), got: {value}")
    return value


def load_coursework_config() -> CourseworkConfig:
    """
    Parse and validate coursework configuration from environment variables.

    Behavior:
        - `PROGRESS_COUNT_UNGRADED_FILES`: whether a pending file submission
          satisfies its assignment for progress (default: false).
        - `CERTIFICATE_CODE_BYTES`: random bytes behind a verification code
          (16..64, default 18 → 24 URL-safe characters).
        - `GRADING_MAX_FEEDBACK_CHARS`: feedback length limit (1..20000,
          default 5000).
    """
    return CourseworkConfig(
        count_ungraded_file_submissions=_bool_env("PROGRESS_COUNT_UNGRADED_FILES", False),
        certificate_code_bytes=_int_env("CERTIFICATE_CODE_BYTES", 18, lo=16, hi=64),
        max_feedback_chars=_int_env("GRADING_MAX_FEEDBACK_CHARS", 5000, lo=1, hi=20000),
    )


__all__ = ["CourseworkConfig", "load_coursework_config"]
