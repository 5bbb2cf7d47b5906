"""
Validation of file references attached to submissions.

The upload service owns the bytes; a submission stores only the URL it
returned. We check shape here (scheme allow-list, host present, bounded
length, no whitespace) and never dereference the URL.
"""

from __future__ import annotations

from urllib.parse import urlparse

from backend.storage.config import get_allowed_file_url_schemes, get_file_url_max_length


def validate_file_url(value: object, *, allow_http: bool = True) -> str:
    """Return the trimmed URL or raise ValueError("invalid_file_url").

    `allow_http=False` removes plain http from the allow-list (prod guard).
    """
    if not isinstance(value, str):
        raise ValueError("invalid_file_url")
    url = value.strip()
    if not url or len(url) > get_file_url_max_length():
        raise ValueError("invalid_file_url")
    if any(ch.isspace() for ch in url):
        raise ValueError("invalid_file_url")
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise ValueError("invalid_file_url") from exc
    schemes = set(get_allowed_file_url_schemes())
    if not allow_http:
        schemes.discard("http")
    if (parsed.scheme or "").lower() not in schemes:
        raise ValueError("invalid_file_url")
    if not parsed.netloc or not parsed.hostname:
        raise ValueError("invalid_file_url")
    return url


__all__ = ["validate_file_url"]
