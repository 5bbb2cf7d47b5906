"""
Progress tracking: lecture and assignment gates, the 99 cap and completion.

Focus: `compute_progress` as a pure formula and `ProgressTracker` wired to the
in-memory repo, including certificate issuance at 100%.
"""

from __future__ import annotations

import threading

import pytest

from backend.learning.config import CourseworkConfig
from backend.learning.progress import PENDING_ASSIGNMENTS_PROGRESS, compute_progress, submission_satisfies
from backend.learning.repo_memory import InMemoryCourseworkRepo
from backend.learning.usecases.submissions import SubmitAssignmentInput
from utils.coursework import INSTRUCTOR, build_services, enroll, seed_course


STUDENT = "stud-cccc-0003"


def _complete(svc, course, index):
    return svc.enrollment.mark_lecture_complete(STUDENT, course.id, course.lectures[index]["id"])


def _submit(svc, assignment, **payload):
    return svc.submit.execute(
        SubmitAssignmentInput(assignment_id=assignment["id"], student_sub=STUDENT, payload=payload)
    ).submission


@pytest.mark.parametrize(
    "lectures,done,assignments,satisfied,expected",
    [
        (0, 0, 0, 0, 0),
        (2, 0, 0, 0, 0),
        (2, 1, 0, 0, 50),
        (2, 2, 0, 0, 100),
        (3, 1, 0, 0, 33),
        (3, 2, 0, 0, 67),
        (2, 2, 1, 0, 99),
        (200, 199, 0, 0, 99),
        (0, 0, 2, 1, 50),
        (0, 0, 2, 2, 100),
        (1, 0, 1, 1, 0),
    ],
)
def test_compute_progress_formula(lectures, done, assignments, satisfied, expected):
    assert (
        compute_progress(
            total_lectures=lectures,
            completed_lectures=done,
            total_assignments=assignments,
            satisfied_assignments=satisfied,
        )
        == expected
    )


def test_progress_reaches_100_only_when_both_gates_hold():
    for total in range(1, 40):
        for done in range(total):
            assert compute_progress(
                total_lectures=total, completed_lectures=done, total_assignments=0, satisfied_assignments=0
            ) <= PENDING_ASSIGNMENTS_PROGRESS


def test_submission_satisfies_policy():
    graded = {"kind": "file", "status": "graded"}
    pending_file = {"kind": "file", "status": "pending"}
    assert submission_satisfies(graded, count_ungraded_files=False)
    assert not submission_satisfies(pending_file, count_ungraded_files=False)
    assert submission_satisfies(pending_file, count_ungraded_files=True)


def test_two_lectures_reach_50_then_100_with_certificate():
    svc = build_services()
    course = seed_course(svc, lectures=2)
    enroll(svc, STUDENT, course)

    half = _complete(svc, course, 0)
    assert half.progress == 50
    assert half.enrollment_status == "ongoing"
    assert half.certificate is None

    done = _complete(svc, course, 1)
    assert done.progress == 100
    assert done.enrollment_status == "completed"
    assert done.certificate is not None
    assert done.certificate["course_title"] == "Intro to Testing"

    enrollment = svc.repo.get_enrollment(STUDENT, course.id)
    assert enrollment["progress"] == 100
    assert enrollment["completed_at"] is not None


def test_completing_same_lecture_twice_is_idempotent():
    svc = build_services()
    course = seed_course(svc, lectures=3)
    enroll(svc, STUDENT, course)

    first = _complete(svc, course, 0)
    second = _complete(svc, course, 0)

    assert first.progress == second.progress == 33
    assert svc.repo.get_enrollment(STUDENT, course.id)["completed_lecture_ids"] == [course.lectures[0]["id"]]


def test_recompute_is_idempotent():
    svc = build_services()
    course = seed_course(svc, lectures=2)
    enroll(svc, STUDENT, course)
    _complete(svc, course, 0)

    before = svc.repo.get_enrollment(STUDENT, course.id)
    snapshot = svc.tracker.recompute(STUDENT, course.id)
    after = svc.repo.get_enrollment(STUDENT, course.id)

    assert snapshot.progress == 50
    assert before == after


def test_lectures_done_with_missing_assignment_caps_at_99():
    svc = build_services()
    course = seed_course(svc, lectures=1, assignments=["quiz"])
    enroll(svc, STUDENT, course)

    snapshot = _complete(svc, course, 0)

    assert snapshot.progress == PENDING_ASSIGNMENTS_PROGRESS
    assert snapshot.lectures_complete is True
    assert snapshot.assignments_complete is False
    assert svc.repo.get_certificate(STUDENT, course.id) is None

    _submit(svc, course.assignments[0], answers=[])
    enrollment = svc.repo.get_enrollment(STUDENT, course.id)
    assert enrollment["progress"] == 100
    assert svc.repo.get_certificate(STUDENT, course.id) is not None


def test_pending_file_submission_does_not_count_by_default():
    svc = build_services()
    course = seed_course(svc, lectures=1, assignments=["file"])
    enroll(svc, STUDENT, course)
    _complete(svc, course, 0)

    sub = _submit(svc, course.assignments[0], file_url="https://files.example.org/a.pdf")
    assert svc.repo.get_enrollment(STUDENT, course.id)["progress"] == 99

    svc.grading.grade(sub["id"], actor_sub=INSTRUCTOR, actor_roles=["instructor"], grade=10)
    assert svc.repo.get_enrollment(STUDENT, course.id)["progress"] == 100


def test_pending_file_submission_counts_when_configured():
    svc = build_services(config=CourseworkConfig(count_ungraded_file_submissions=True))
    course = seed_course(svc, lectures=1, assignments=["file"])
    enroll(svc, STUDENT, course)
    _complete(svc, course, 0)

    _submit(svc, course.assignments[0], file_url="https://files.example.org/a.pdf")

    assert svc.repo.get_enrollment(STUDENT, course.id)["progress"] == 100
    assert svc.repo.get_certificate(STUDENT, course.id) is not None


def test_empty_course_stays_at_zero():
    svc = build_services()
    course = seed_course(svc)
    enroll(svc, STUDENT, course)

    snapshot = svc.tracker.recompute(STUDENT, course.id)

    assert snapshot.progress == 0
    assert snapshot.enrollment_status == "ongoing"
    assert svc.repo.get_certificate(STUDENT, course.id) is None


def test_course_without_lectures_uses_assignment_share():
    svc = build_services()
    course = seed_course(svc, assignments=["quiz", "quiz"])
    enroll(svc, STUDENT, course)

    _submit(svc, course.assignments[0], answers=[])
    assert svc.repo.get_enrollment(STUDENT, course.id)["progress"] == 50

    _submit(svc, course.assignments[1], answers=[])
    assert svc.repo.get_enrollment(STUDENT, course.id)["progress"] == 100


def test_completion_is_sticky_when_lectures_are_added_later():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)
    cert = _complete(svc, course, 0).certificate

    svc.courses.add_lecture(course.id, INSTRUCTOR, ["instructor"], title="Bonus lecture")
    snapshot = svc.tracker.recompute(STUDENT, course.id)

    assert snapshot.progress == 100
    assert snapshot.enrollment_status == "completed"
    assert snapshot.certificate["verification_code"] == cert["verification_code"]


def test_deleted_lecture_is_dropped_from_progress():
    svc = build_services()
    course = seed_course(svc, lectures=3)
    enroll(svc, STUDENT, course)
    _complete(svc, course, 0)
    _complete(svc, course, 1)

    svc.courses.delete_lecture(course.lectures[0]["id"], INSTRUCTOR, ["instructor"])
    snapshot = svc.tracker.recompute(STUDENT, course.id)

    assert snapshot.completed_lecture_ids == [course.lectures[1]["id"]]
    assert snapshot.progress == 50


def test_lecture_of_another_course_is_rejected():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    other = seed_course(svc, lectures=1)
    enroll(svc, STUDENT, course)

    with pytest.raises(LookupError) as exc:
        svc.enrollment.mark_lecture_complete(STUDENT, course.id, other.lectures[0]["id"])
    assert str(exc.value) == "lecture_not_found"


def test_marking_lecture_without_enrollment_is_not_found():
    svc = build_services()
    course = seed_course(svc, lectures=1)

    with pytest.raises(LookupError) as exc:
        _complete(svc, course, 0)
    assert str(exc.value) == "enrollment_not_found"


def test_recompute_if_enrolled_ignores_missing_enrollment():
    svc = build_services()
    course = seed_course(svc, lectures=1)
    assert svc.tracker.recompute_if_enrolled(STUDENT, course.id) is None
    with pytest.raises(LookupError):
        svc.tracker.recompute(STUDENT, course.id)


class _PausingRepo(InMemoryCourseworkRepo):
    """Blocks `list_lectures` in the thread named `slow-recompute` until released."""

    def __init__(self) -> None:
        super().__init__()
        self.reached = threading.Event()
        self.release = threading.Event()

    def list_lectures(self, course_id):
        lectures = super().list_lectures(course_id)
        if threading.current_thread().name == "slow-recompute":
            self.reached.set()
            self.release.wait(timeout=5)
        return lectures


def test_stale_recompute_cannot_overwrite_completion():
    repo = _PausingRepo()
    svc = build_services(repo)
    course = seed_course(svc, lectures=2)
    enroll(svc, STUDENT, course)
    _complete(svc, course, 0)

    slow = threading.Thread(target=svc.tracker.recompute, args=(STUDENT, course.id), name="slow-recompute")
    slow.start()
    assert repo.reached.wait(timeout=5)

    finished = threading.Event()

    def complete_last_lecture():
        _complete(svc, course, 1)
        finished.set()

    fast = threading.Thread(target=complete_last_lecture)
    fast.start()
    # The second recompute waits until the first releases the enrollment.
    assert not finished.wait(timeout=0.2)
    repo.release.set()
    slow.join(timeout=5)
    fast.join(timeout=5)

    assert finished.is_set()
    enrollment = repo.get_enrollment(STUDENT, course.id)
    assert enrollment["progress"] == 100
    assert enrollment["enrollment_status"] == "completed"
    assert repo.get_certificate(STUDENT, course.id) is not None
