"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between the gateway middleware,
  the web layer and the services that authorize actors.
- Identity itself is established upstream; this module only interprets the
  forwarded subject and roles.
"""

from __future__ import annotations

from typing import Iterable

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "instructor", "admin"})


def parse_roles(raw: str | None) -> list[str]:
    """Parse a comma separated role header into known roles (order kept, deduped)."""
    if not raw:
        return []
    roles: list[str] = []
    for part in raw.split(","):
        role = part.strip().lower()
        if role in ALLOWED_ROLES and role not in roles:
            roles.append(role)
    return roles


def is_admin(roles: Iterable[str] | None) -> bool:
    return bool(roles) and "admin" in roles  # type: ignore[operator]


__all__ = ["ALLOWED_ROLES", "parse_roles", "is_admin"]
