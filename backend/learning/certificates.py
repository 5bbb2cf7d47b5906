"""
Certificate issuance and verification.

Intent:
    Issue exactly one certificate per (student, course) once the enrollment
    reaches 100% progress, and let anyone verify a certificate by its code.

Behavior:
    - `issue_if_eligible` returns None (no error) when progress < 100.
    - Issuance is an atomic insert-if-absent at the storage layer; concurrent
      callers all receive the same certificate.
    - Verification codes are opaque, URL-safe and unique
      (`secrets.token_urlsafe`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import secrets
from typing import Callable, Optional, Protocol, Tuple

from backend.learning.config import CourseworkConfig


logger = logging.getLogger(__name__)


class CertificatesRepoProtocol(Protocol):
    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def get_certificate(self, student_id: str, course_id: str) -> Optional[dict]:
        ...

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        ...

    def insert_certificate_if_absent(
        self,
        *,
        student_id: str,
        course_id: str,
        course_title: str,
        verification_code: str,
        issued_at: datetime,
    ) -> Tuple[dict, bool]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_verification_code(nbytes: int = 18) -> str:
    return secrets.token_urlsafe(nbytes)


def _short(value: str) -> str:
    return value[:8]


@dataclass
class CertificateIssuer:
    repo: CertificatesRepoProtocol
    config: CourseworkConfig = field(default_factory=CourseworkConfig)
    clock: Callable[[], datetime] = _utcnow

    def issue_if_eligible(self, student_id: str, course_id: str) -> Optional[dict]:
        enrollment = self.repo.get_enrollment(student_id, course_id)
        if enrollment is None or int(enrollment.get("progress") or 0) != 100:
            return None
        existing = self.repo.get_certificate(student_id, course_id)
        if existing is not None:
            return existing
        course = self.repo.get_course(course_id) or {}
        cert, created = self.repo.insert_certificate_if_absent(
            student_id=student_id,
            course_id=course_id,
            course_title=str(course.get("title") or ""),
            verification_code=generate_verification_code(self.config.certificate_code_bytes),
            issued_at=self.clock(),
        )
        if created:
            logger.info("certificate issued student=%s course=%s", _short(student_id), _short(course_id))
        return cert

    def verify(self, code: str) -> dict:
        """Public lookup by verification code; LookupError when unknown."""
        if not isinstance(code, str) or not code.strip():
            raise LookupError("certificate_not_found")
        cert = self.repo.get_certificate_by_code(code.strip())
        if cert is None:
            raise LookupError("certificate_not_found")
        return cert

    def get_for(self, student_id: str, course_id: str) -> Optional[dict]:
        return self.repo.get_certificate(student_id, course_id)


__all__ = ["CertificateIssuer", "CertificatesRepoProtocol", "generate_verification_code"]
