"""
In-memory repository: storage-level guarantees the services rely on.

Focus: one submission per (assignment, student) under concurrent upserts,
cascades on delete and returned records never aliasing stored state.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from backend.learning.repo_memory import InMemoryCourseworkRepo


T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def _course_with_assignment(repo: InMemoryCourseworkRepo):
    course = repo.create_course(title="C", instructor_id="inst", status="published")
    assignment = repo.create_assignment(
        course["id"], title="A1", description=None, kind="file", due_date=T0 + timedelta(days=1), questions=[]
    )
    return course, assignment


def test_concurrent_upserts_leave_one_row():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)

    def submit(i: int):
        return repo.upsert_submission(
            assignment_id=assignment["id"],
            student_id="stud-1",
            course_id=course["id"],
            kind="file",
            status="pending",
            file_url=f"https://files.example.org/{i}.pdf",
            now=T0 + timedelta(seconds=i),
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(submit, range(32)))

    assert sum(1 for _, created in results if created) == 1
    assert len({rec["id"] for rec, _ in results}) == 1
    assert len(repo.list_submissions_for_assignment(assignment["id"])) == 1


def test_upsert_preserves_submitted_at_and_clears_grade():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)
    first, _ = repo.upsert_submission(
        assignment_id=assignment["id"], student_id="s", course_id=course["id"], kind="file",
        status="pending", file_url="https://x.example.org/1", now=T0,
    )
    repo.set_grade(first["id"], grade=90.0, feedback="fine", graded_by="inst", graded_at=T0 + timedelta(hours=1))

    again, created = repo.upsert_submission(
        assignment_id=assignment["id"], student_id="s", course_id=course["id"], kind="file",
        status="pending", file_url="https://x.example.org/2", now=T0 + timedelta(hours=2),
    )

    assert created is False
    assert again["submitted_at"] == T0
    assert again["updated_at"] == T0 + timedelta(hours=2)
    assert (again["grade"], again["feedback"], again["graded_by"], again["graded_at"]) == (None, None, None, None)


def test_returned_records_are_copies():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)
    assignment["title"] = "mutated"
    assert repo.get_assignment(assignment["id"])["title"] == "A1"

    enrollment, _ = repo.create_enrollment_if_absent("s", course["id"], now=T0)
    enrollment["completed_lecture_ids"].append("x")
    assert repo.get_enrollment("s", course["id"])["completed_lecture_ids"] == []


def test_enrollment_is_unique_per_student_and_course():
    repo = InMemoryCourseworkRepo()
    course, _ = _course_with_assignment(repo)
    _, created = repo.create_enrollment_if_absent("s", course["id"], now=T0)
    again, created_again = repo.create_enrollment_if_absent("s", course["id"], now=T0 + timedelta(days=1))
    assert created is True and created_again is False
    assert again["enrolled_at"] == T0
    with pytest.raises(LookupError):
        repo.create_enrollment_if_absent("s", "missing-course")


def test_completed_at_is_set_once():
    repo = InMemoryCourseworkRepo()
    course, _ = _course_with_assignment(repo)
    repo.create_enrollment_if_absent("s", course["id"], now=T0)

    repo.update_progress("s", course["id"], progress=100, enrollment_status="completed", now=T0 + timedelta(days=1))
    repo.update_progress("s", course["id"], progress=100, enrollment_status="completed", now=T0 + timedelta(days=2))

    assert repo.get_enrollment("s", course["id"])["completed_at"] == T0 + timedelta(days=1)


def test_completed_enrollment_is_not_rolled_back():
    repo = InMemoryCourseworkRepo()
    course, _ = _course_with_assignment(repo)
    repo.create_enrollment_if_absent("s", course["id"], now=T0)
    repo.update_progress("s", course["id"], progress=100, enrollment_status="completed", now=T0)

    after = repo.update_progress("s", course["id"], progress=50, enrollment_status="ongoing", now=T0 + timedelta(days=1))

    assert (after["progress"], after["enrollment_status"]) == (100, "completed")
    assert after["completed_at"] == T0


def test_lock_enrollment_yields_none_for_unknown_enrollment():
    repo = InMemoryCourseworkRepo()
    with repo.lock_enrollment("s", "missing-course") as locked:
        assert locked is None


def test_set_grade_keeps_content_timestamp():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)
    record, _ = repo.upsert_submission(
        assignment_id=assignment["id"], student_id="s", course_id=course["id"], kind="file",
        status="pending", file_url="https://x.example.org/1", now=T0,
    )

    graded = repo.set_grade(record["id"], grade=70.0, feedback=None, graded_by="inst", graded_at=T0 + timedelta(days=3))

    assert graded["updated_at"] == T0
    assert graded["graded_at"] == T0 + timedelta(days=3)


def test_delete_course_cascades_and_keeps_certificates():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)
    lecture = repo.create_lecture(course["id"], title="L1", video_url=None)
    repo.create_enrollment_if_absent("s", course["id"])
    repo.add_completed_lecture("s", course["id"], lecture["id"])
    sub, _ = repo.upsert_submission(
        assignment_id=assignment["id"], student_id="s", course_id=course["id"], kind="file",
        status="pending", file_url="https://x.example.org/1",
    )
    cert, _ = repo.insert_certificate_if_absent(
        student_id="s", course_id=course["id"], course_title="C", verification_code="code-1", issued_at=T0
    )

    assert repo.delete_course(course["id"]) is True

    assert repo.get_lecture(lecture["id"]) is None
    assert repo.get_assignment(assignment["id"]) is None
    assert repo.get_submission(sub["id"]) is None
    assert repo.get_enrollment("s", course["id"]) is None
    assert repo.get_certificate_by_code("code-1") == cert
    assert repo.delete_course(course["id"]) is False


def test_delete_lecture_removes_it_from_completed_sets():
    repo = InMemoryCourseworkRepo()
    course, _ = _course_with_assignment(repo)
    l1 = repo.create_lecture(course["id"], title="L1", video_url=None)
    l2 = repo.create_lecture(course["id"], title="L2", video_url=None)
    repo.create_enrollment_if_absent("s", course["id"])
    assert repo.add_completed_lecture("s", course["id"], l1["id"]) is True
    assert repo.add_completed_lecture("s", course["id"], l1["id"]) is False
    repo.add_completed_lecture("s", course["id"], l2["id"])

    repo.delete_lecture(l1["id"])

    assert repo.get_enrollment("s", course["id"])["completed_lecture_ids"] == [l2["id"]]
    assert repo.get_course(course["id"])["lecture_count"] == 1


def test_lecture_order_is_unique_per_course():
    repo = InMemoryCourseworkRepo()
    course, _ = _course_with_assignment(repo)
    other, _ = _course_with_assignment(repo)
    repo.create_lecture(course["id"], title="L1", video_url=None, order=1)
    repo.create_lecture(other["id"], title="L1", video_url=None, order=1)
    with pytest.raises(ValueError):
        repo.create_lecture(course["id"], title="Dup", video_url=None, order=1)
    assert [lec["order"] for lec in repo.list_lectures(course["id"])] == [1]


def test_certificate_insert_if_absent_and_code_uniqueness():
    repo = InMemoryCourseworkRepo()
    first, created = repo.insert_certificate_if_absent(
        student_id="s", course_id="c", course_title="C", verification_code="abc", issued_at=T0
    )
    second, created_again = repo.insert_certificate_if_absent(
        student_id="s", course_id="c", course_title="C", verification_code="zzz", issued_at=T0
    )
    assert created is True and created_again is False
    assert second["verification_code"] == "abc"
    with pytest.raises(ValueError):
        repo.insert_certificate_if_absent(
            student_id="s2", course_id="c", course_title="C", verification_code="abc", issued_at=T0
        )


def test_count_submissions_by_assignment():
    repo = InMemoryCourseworkRepo()
    course, assignment = _course_with_assignment(repo)
    for student in ("a", "b", "c"):
        repo.upsert_submission(
            assignment_id=assignment["id"], student_id=student, course_id=course["id"], kind="file",
            status="pending", file_url="https://x.example.org/f",
        )
    sub = repo.get_submission_for(assignment["id"], "a")
    repo.set_grade(sub["id"], grade=50.0, feedback=None, graded_by="inst", graded_at=T0)

    assert repo.count_submissions_by_assignment(course["id"]) == {assignment["id"]: (3, 1)}
