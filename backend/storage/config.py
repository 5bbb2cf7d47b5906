"""
Centralized configuration for references to uploaded submission files.

Intent:
    File bytes live in an external upload service; submissions only carry an
    opaque URL. This module is the single source of truth for which URL
    shapes are acceptable, with environment overrides.

Behavior:
    - SUBMISSION_FILE_URL_SCHEMES: comma separated allow-list (default
      "https,http"). Unknown/empty values fall back to the default.
    - SUBMISSION_FILE_URL_MAX_LENGTH: maximum URL length (default and clamp
      2048).

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


FILE_URL_SCHEMES_DEFAULT = ("https", "http")
FILE_URL_MAX_LENGTH_DEFAULT = 2048


def get_allowed_file_url_schemes() -> tuple[str, ...]:
    """Return the configured allow-list of URL schemes for file submissions."""
    raw = (os.getenv("SUBMISSION_FILE_URL_SCHEMES") or "").strip()
    if not raw:
        return FILE_URL_SCHEMES_DEFAULT
    schemes: list[str] = []
    for part in raw.split(","):
        scheme = part.strip().lower()
        if scheme and scheme.isalpha() and scheme not in schemes:
            schemes.append(scheme)
    return tuple(schemes) or FILE_URL_SCHEMES_DEFAULT


# --- Size limits --------------------------------------------------------------

def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_file_url_max_length() -> int:
    """Maximum accepted length of a submission file URL (default/clamped 2048)."""
    return _parse_int_env(
        "SUBMISSION_FILE_URL_MAX_LENGTH",
        FILE_URL_MAX_LENGTH_DEFAULT,
        contract_max=FILE_URL_MAX_LENGTH_DEFAULT,
    )


__all__ = [
    "FILE_URL_SCHEMES_DEFAULT",
    "FILE_URL_MAX_LENGTH_DEFAULT",
    "get_allowed_file_url_schemes",
    "get_file_url_max_length",
]
