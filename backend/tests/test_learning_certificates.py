"""
Certificate issuance and public verification.

Focus: eligibility gate, exactly-once issuance under concurrent triggers,
verification by code and survival of certificates across course deletion.
"""

from __future__ import annotations

import threading

import pytest

from backend.learning.certificates import CertificateIssuer, generate_verification_code
from backend.learning.config import CourseworkConfig
from utils.coursework import INSTRUCTOR, build_services, enroll, seed_course


STUDENT = "stud-dddd-0004"


def _finish(svc, course):
    for lecture in course.lectures:
        svc.enrollment.mark_lecture_complete(STUDENT, course.id, lecture["id"])


def test_no_certificate_below_100():
    svc = build_services()
    course = seed_course(svc, lectures=2)
    enroll(svc, STUDENT, course)
    svc.enrollment.mark_lecture_complete(STUDENT, course.id, course.lectures[0]["id"])

    assert svc.issuer.issue_if_eligible(STUDENT, course.id) is None
    assert svc.issuer.issue_if_eligible("stud-unknown", course.id) is None
    assert svc.repo.certificates == {}


def test_issue_if_eligible_returns_the_existing_certificate():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    _finish(svc, course)

    first = svc.issuer.issue_if_eligible(STUDENT, course.id)
    second = svc.issuer.issue_if_eligible(STUDENT, course.id)

    assert first == second
    assert len(svc.repo.certificates) == 1


def test_concurrent_issuance_yields_a_single_certificate():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    svc.repo.add_completed_lecture(STUDENT, course.id, course.lectures[0]["id"])
    svc.repo.update_progress(STUDENT, course.id, progress=100, enrollment_status="completed")

    # each thread gets its own issuer so no state is shared above the repo
    issuers = [CertificateIssuer(svc.repo) for _ in range(16)]
    barrier = threading.Barrier(len(issuers))
    results = []
    lock = threading.Lock()

    def worker(issuer):
        barrier.wait()
        cert = issuer.issue_if_eligible(STUDENT, course.id)
        with lock:
            results.append(cert)

    threads = [threading.Thread(target=worker, args=(i,)) for i in issuers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(svc.repo.certificates) == 1
    codes = {cert["verification_code"] for cert in results}
    assert len(codes) == 1
    assert len(results) == 16


def test_verify_by_code():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    _finish(svc, course)
    cert = svc.repo.get_certificate(STUDENT, course.id)

    found = svc.issuer.verify(cert["verification_code"])

    assert found["student_id"] == STUDENT
    assert found["course_id"] == course.id
    assert found["course_title"] == "Intro to Testing"


@pytest.mark.parametrize("code", ["", "   ", "does-not-exist"])
def test_verify_unknown_code_is_not_found(code):
    svc = build_services()
    with pytest.raises(LookupError) as exc:
        svc.issuer.verify(code)
    assert str(exc.value) == "certificate_not_found"


def test_certificate_survives_course_deletion():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    _finish(svc, course)
    cert = svc.repo.get_certificate(STUDENT, course.id)

    svc.courses.delete_course(course.id, INSTRUCTOR, ["instructor"])

    assert svc.repo.get_course(course.id) is None
    assert svc.issuer.verify(cert["verification_code"])["course_title"] == "Intro to Testing"


def test_verification_codes_are_url_safe_and_sized_by_config():
    code = generate_verification_code(18)
    assert len(code) == 24
    assert all(ch.isalnum() or ch in "-_" for ch in code)

    svc = build_services(config=CourseworkConfig(certificate_code_bytes=32))
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    _finish(svc, course)
    assert len(svc.repo.get_certificate(STUDENT, course.id)["verification_code"]) == 43


def test_codes_are_unique_across_students():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    codes = set()
    for n in range(20):
        student = f"stud-{n:04d}"
        svc.enrollment.enroll(student, course.id)
        svc.enrollment.mark_lecture_complete(student, course.id, course.lectures[0]["id"])
        codes.add(svc.repo.get_certificate(student, course.id)["verification_code"])
    assert len(codes) == 20
