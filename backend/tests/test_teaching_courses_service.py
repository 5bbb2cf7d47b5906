"""
CoursesService unit tests.

Focus: ownership checks, validation of titles, due dates and answer keys,
lecture ordering and cascades on deletion.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.learning.usecases.submissions import SubmitAssignmentInput
from backend.teaching.services.courses import ensure_course_manager, normalize_questions
from utils.coursework import INSTRUCTOR, QUIZ_KEY, build_services, enroll, seed_course


ROLES = ["instructor"]
DUE = "2026-04-01T12:00:00Z"


def test_create_course_defaults_to_draft_and_trims_title():
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="  Algebra I  ")

    assert course["title"] == "Algebra I"
    assert course["status"] == "draft"
    assert course["completion_status"] == "ongoing"
    assert course["instructor_id"] == INSTRUCTOR
    assert course["lecture_count"] == 0


@pytest.mark.parametrize("title", ["", "   ", None, 5, "x" * 201])
def test_create_course_rejects_invalid_title(title):
    svc = build_services()
    with pytest.raises(ValueError):
        svc.courses.create_course(INSTRUCTOR, title=title)


def test_list_courses_is_scoped_to_instructor():
    svc = build_services()
    svc.courses.create_course(INSTRUCTOR, title="Mine")
    svc.courses.create_course("inst-other", title="Theirs")

    titles = [c["title"] for c in svc.courses.list_courses(INSTRUCTOR)]

    assert titles == ["Mine"]


def test_ensure_course_manager():
    course = {"instructor_id": INSTRUCTOR}
    ensure_course_manager(course, INSTRUCTOR, ["instructor"])
    ensure_course_manager(course, "someone", ["admin"])
    with pytest.raises(PermissionError):
        ensure_course_manager(course, "inst-other", ["instructor"])
    with pytest.raises(PermissionError):
        ensure_course_manager(course, INSTRUCTOR, ["student"])


def test_update_course_changes_only_given_fields():
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Draft title")

    updated = svc.courses.update_course(course["id"], INSTRUCTOR, ROLES, status="published")

    assert updated["status"] == "published"
    assert updated["title"] == "Draft title"
    with pytest.raises(ValueError):
        svc.courses.update_course(course["id"], INSTRUCTOR, ROLES, status="gone")
    with pytest.raises(PermissionError):
        svc.courses.update_course(course["id"], "inst-other", ROLES, title="Hijack")
    with pytest.raises(LookupError):
        svc.courses.update_course("missing", INSTRUCTOR, ROLES, title="x")


def test_lectures_get_sequential_order_and_reject_duplicates():
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Ordered")

    first = svc.courses.add_lecture(course["id"], INSTRUCTOR, ROLES, title="One")
    second = svc.courses.add_lecture(course["id"], INSTRUCTOR, ROLES, title="Two", video_url="https://v.example.org/2")

    assert (first["order"], second["order"]) == (1, 2)
    assert second["video_url"] == "https://v.example.org/2"
    with pytest.raises(ValueError) as exc:
        svc.courses.add_lecture(course["id"], INSTRUCTOR, ROLES, title="Clash", order=2)
    assert str(exc.value) == "duplicate_lecture_order"
    with pytest.raises(ValueError) as exc:
        svc.courses.update_lecture(first["id"], INSTRUCTOR, ROLES, order=2)
    assert str(exc.value) == "duplicate_lecture_order"
    assert svc.repo.get_course(course["id"])["lecture_count"] == 2


@pytest.mark.parametrize("url", ["ftp://v.example.org/1", "not a url", 12])
def test_lecture_video_url_is_validated(url):
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Videos")
    with pytest.raises(ValueError):
        svc.courses.add_lecture(course["id"], INSTRUCTOR, ROLES, title="L", video_url=url)


def test_create_quiz_assignment_normalizes_due_date_to_utc():
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Quizzes")

    quiz = svc.courses.create_assignment(
        course["id"], INSTRUCTOR, ROLES, title="Week 1", type="quiz", due_date="2026-04-01T14:00:00+02:00", questions=QUIZ_KEY
    )

    assert quiz["type"] == "quiz"
    assert quiz["due_date"] == datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
    assert [q["correct_option_index"] for q in quiz["questions"]] == [1, 0, 2]


@pytest.mark.parametrize("due", ["2026-04-01T12:00:00", "tomorrow", None, 17])
def test_due_date_requires_timezone_aware_timestamp(due):
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Dates")
    with pytest.raises(ValueError) as exc:
        svc.courses.create_assignment(course["id"], INSTRUCTOR, ROLES, title="Essay", type="file", due_date=due)
    assert str(exc.value) == "invalid_due_date"


def test_assignment_title_needs_three_characters():
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Titles")
    with pytest.raises(ValueError):
        svc.courses.create_assignment(course["id"], INSTRUCTOR, ROLES, title="ab", type="file", due_date=DUE)


@pytest.mark.parametrize(
    "questions",
    [
        [{"question_text": "q", "options": ["a"], "correct_option_index": 0}],
        [{"question_text": "q", "options": ["a", "b"], "correct_option_index": 2}],
        [{"question_text": "q", "options": ["a", "b"], "correct_option_index": -1}],
        [{"question_text": "q", "options": ["a", "b"], "correct_option_index": True}],
        [{"question_text": "", "options": ["a", "b"], "correct_option_index": 0}],
        [{"question_text": "q", "options": "ab", "correct_option_index": 0}],
        ["not a question"],
        "nope",
    ],
)
def test_invalid_answer_keys_are_rejected(questions):
    with pytest.raises(ValueError) as exc:
        normalize_questions(questions, "quiz")
    assert str(exc.value) == "invalid_questions"


def test_file_assignment_must_not_carry_questions():
    with pytest.raises(ValueError) as exc:
        normalize_questions(QUIZ_KEY, "file")
    assert str(exc.value) == "questions_not_allowed"
    assert normalize_questions([], "file") == []
    assert normalize_questions(None, "file") == []


def test_quiz_without_questions_is_allowed_with_warning(caplog):
    caplog.set_level("WARNING")
    svc = build_services()
    course = svc.courses.create_course(INSTRUCTOR, title="Empty quiz")

    quiz = svc.courses.create_assignment(course["id"], INSTRUCTOR, ROLES, title="Blank", type="quiz", due_date=DUE)

    assert quiz["questions"] == []
    assert any("without questions" in rec.getMessage() for rec in caplog.records)


def test_update_assignment_keeps_type_and_validates_key_against_it():
    svc = build_services()
    course = seed_course(svc, assignments=["file"])
    assignment = course.assignments[0]
    new_due = datetime.now(timezone.utc) + timedelta(days=3)

    updated = svc.courses.update_assignment(assignment["id"], INSTRUCTOR, ROLES, title="Renamed", due_date=new_due)

    assert updated["title"] == "Renamed"
    assert updated["type"] == "file"
    assert updated["due_date"] == new_due
    with pytest.raises(ValueError):
        svc.courses.update_assignment(assignment["id"], INSTRUCTOR, ROLES, questions=QUIZ_KEY)


def test_list_assignments_includes_submission_counts():
    svc = build_services()
    course = seed_course(svc, assignments=["quiz", "file"])
    enroll(svc, "stud-1", course)
    svc.submit.execute(
        SubmitAssignmentInput(assignment_id=course.assignments[0]["id"], student_sub="stud-1", payload={"answers": []})
    )

    items = {a["id"]: a for a in svc.courses.list_assignments(course.id, INSTRUCTOR, ROLES)}

    quiz = items[course.assignments[0]["id"]]
    essay = items[course.assignments[1]["id"]]
    assert (quiz["submission_count"], quiz["graded_count"]) == (1, 1)
    assert (essay["submission_count"], essay["graded_count"]) == (0, 0)
    assert quiz["questions"] == QUIZ_KEY


def test_delete_assignment_removes_its_submissions():
    svc = build_services()
    course = seed_course(svc, assignments=["quiz"])
    enroll(svc, "stud-1", course)
    sub = svc.submit.execute(
        SubmitAssignmentInput(assignment_id=course.assignments[0]["id"], student_sub="stud-1", payload={"answers": []})
    ).submission

    svc.courses.delete_assignment(course.assignments[0]["id"], INSTRUCTOR, ROLES)

    assert svc.repo.get_submission(sub["id"]) is None
    with pytest.raises(LookupError):
        svc.courses.delete_assignment(course.assignments[0]["id"], INSTRUCTOR, ROLES)


def test_delete_course_cascades_but_only_for_owner():
    svc = build_services()
    course = seed_course(svc, lectures=2, assignments=["file"])
    enroll(svc, "stud-1", course)

    with pytest.raises(PermissionError):
        svc.courses.delete_course(course.id, "inst-other", ROLES)

    svc.courses.delete_course(course.id, INSTRUCTOR, ROLES)

    assert svc.repo.get_course(course.id) is None
    assert svc.repo.list_lectures(course.id) == []
    assert svc.repo.list_assignments(course.id) == []
    assert svc.repo.get_enrollment("stud-1", course.id) is None


def test_marking_course_completed_issues_missing_certificates():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, "stud-done", course)
    enroll(svc, "stud-midway", course)
    svc.repo.update_progress("stud-done", course.id, progress=100, enrollment_status="completed")

    svc.courses.update_course(
        course.id, INSTRUCTOR, ROLES, title="Intro to Testing II", completion_status="completed"
    )

    cert = svc.repo.get_certificate("stud-done", course.id)
    assert cert["course_title"] == "Intro to Testing II"
    assert svc.repo.get_certificate("stud-midway", course.id) is None

    svc.courses.update_course(course.id, INSTRUCTOR, ROLES, completion_status="completed")
    assert svc.repo.get_certificate("stud-done", course.id)["verification_code"] == cert["verification_code"]
