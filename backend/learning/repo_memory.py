"""
In-memory coursework repository (development and tests).

Why:
    Lets the API and services run without Postgres. The storage-level
    guarantees the services rely on are emulated under a single process lock:
    - one submission per (assignment_id, student_id), upserted in place;
    - one certificate per (student_id, course_id), insert-if-absent;
    - one enrollment per (student_id, course_id);
    - lecture order unique per course;
    - cascades on course/assignment/lecture deletion;
    - progress recompute serialized per enrollment (`lock_enrollment`).

Records are returned as deep copies so callers never alias stored state.
"""

from __future__ import annotations

from contextlib import contextmanager
import copy
from datetime import datetime, timezone
import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple
import uuid


_UNSET = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class _LockedEnrollment:
    def __init__(self, repo: "InMemoryCourseworkRepo", student_id: str, course_id: str, enrollment: dict) -> None:
        self._repo = repo
        self._student_id = student_id
        self._course_id = course_id
        self.enrollment = enrollment

    def update_progress(self, *, progress: int, enrollment_status: str, now: datetime | None = None) -> Optional[dict]:
        return self._repo.update_progress(
            self._student_id, self._course_id, progress=progress, enrollment_status=enrollment_status, now=now
        )


class InMemoryCourseworkRepo:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.courses: Dict[str, dict] = {}
        self.lectures: Dict[str, dict] = {}
        self.assignments: Dict[str, dict] = {}
        # (student_id, course_id) -> enrollment
        self.enrollments: Dict[Tuple[str, str], dict] = {}
        self.submissions: Dict[str, dict] = {}
        # (assignment_id, student_id) -> submission_id
        self._submission_keys: Dict[Tuple[str, str], str] = {}
        self.certificates: Dict[Tuple[str, str], dict] = {}

    # --- Courses -----------------------------------------------------------------

    def create_course(self, *, title: str, instructor_id: str, status: str = "draft", now: datetime | None = None) -> dict:
        ts = now or _now()
        course = {
            "id": _new_id(),
            "title": title,
            "instructor_id": instructor_id,
            "status": status,
            "completion_status": "ongoing",
            "created_at": ts,
            "updated_at": ts,
        }
        with self._lock:
            self.courses[course["id"]] = course
            return self._course_view(course)

    def _course_view(self, course: dict) -> dict:
        out = copy.deepcopy(course)
        out["lecture_count"] = sum(1 for lec in self.lectures.values() if lec["course_id"] == course["id"])
        return out

    def get_course(self, course_id: str) -> Optional[dict]:
        with self._lock:
            course = self.courses.get(course_id)
            return self._course_view(course) if course else None

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        with self._lock:
            items = [c for c in self.courses.values() if c["instructor_id"] == instructor_id]
            items.sort(key=lambda c: c["created_at"])
            return [self._course_view(c) for c in items]

    def list_courses(self) -> List[dict]:
        with self._lock:
            return [self._course_view(c) for c in sorted(self.courses.values(), key=lambda c: c["created_at"])]

    def update_course(
        self,
        course_id: str,
        *,
        title=_UNSET,
        status=_UNSET,
        completion_status=_UNSET,
        now: datetime | None = None,
    ) -> Optional[dict]:
        with self._lock:
            course = self.courses.get(course_id)
            if course is None:
                return None
            if title is not _UNSET:
                course["title"] = title
            if status is not _UNSET:
                course["status"] = status
            if completion_status is not _UNSET:
                course["completion_status"] = completion_status
            course["updated_at"] = now or _now()
            return self._course_view(course)

    def delete_course(self, course_id: str) -> bool:
        with self._lock:
            if self.courses.pop(course_id, None) is None:
                return False
            for lec_id in [k for k, v in self.lectures.items() if v["course_id"] == course_id]:
                del self.lectures[lec_id]
            for asg_id in [k for k, v in self.assignments.items() if v["course_id"] == course_id]:
                self._drop_assignment(asg_id)
            for key in [k for k in self.enrollments if k[1] == course_id]:
                del self.enrollments[key]
            # certificates keep their course_title snapshot
            return True

    # --- Lectures ----------------------------------------------------------------

    def _order_taken(self, course_id: str, order: int, *, exclude: str | None = None) -> bool:
        return any(
            lec["course_id"] == course_id and lec["order"] == order and lec["id"] != exclude
            for lec in self.lectures.values()
        )

    def create_lecture(
        self,
        course_id: str,
        *,
        title: str,
        video_url: str | None,
        order: int | None = None,
        now: datetime | None = None,
    ) -> dict:
        with self._lock:
            if course_id not in self.courses:
                raise LookupError("course_not_found")
            if order is None:
                taken = [lec["order"] for lec in self.lectures.values() if lec["course_id"] == course_id]
                order = (max(taken) if taken else 0) + 1
            elif self._order_taken(course_id, order):
                raise ValueError("duplicate_lecture_order")
            lecture = {
                "id": _new_id(),
                "course_id": course_id,
                "title": title,
                "video_url": video_url,
                "order": order,
                "created_at": now or _now(),
            }
            self.lectures[lecture["id"]] = lecture
            return copy.deepcopy(lecture)

    def get_lecture(self, lecture_id: str) -> Optional[dict]:
        with self._lock:
            lecture = self.lectures.get(lecture_id)
            return copy.deepcopy(lecture) if lecture else None

    def list_lectures(self, course_id: str) -> List[dict]:
        with self._lock:
            items = [lec for lec in self.lectures.values() if lec["course_id"] == course_id]
            items.sort(key=lambda lec: lec["order"])
            return copy.deepcopy(items)

    def update_lecture(self, lecture_id: str, *, title=_UNSET, video_url=_UNSET, order=_UNSET) -> Optional[dict]:
        with self._lock:
            lecture = self.lectures.get(lecture_id)
            if lecture is None:
                return None
            if order is not _UNSET and self._order_taken(lecture["course_id"], order, exclude=lecture_id):
                raise ValueError("duplicate_lecture_order")
            if title is not _UNSET:
                lecture["title"] = title
            if video_url is not _UNSET:
                lecture["video_url"] = video_url
            if order is not _UNSET:
                lecture["order"] = order
            return copy.deepcopy(lecture)

    def delete_lecture(self, lecture_id: str) -> bool:
        with self._lock:
            lecture = self.lectures.pop(lecture_id, None)
            if lecture is None:
                return False
            for (_, course_id), enrollment in self.enrollments.items():
                if course_id == lecture["course_id"]:
                    enrollment["completed_lecture_ids"].discard(lecture_id)
            return True

    # --- Assignments -------------------------------------------------------------

    def create_assignment(
        self,
        course_id: str,
        *,
        title: str,
        description: str | None,
        kind: str,
        due_date: datetime,
        questions: List[dict],
        now: datetime | None = None,
    ) -> dict:
        ts = now or _now()
        with self._lock:
            if course_id not in self.courses:
                raise LookupError("course_not_found")
            assignment = {
                "id": _new_id(),
                "course_id": course_id,
                "title": title,
                "description": description,
                "type": kind,
                "due_date": due_date,
                "questions": copy.deepcopy(questions),
                "created_at": ts,
                "updated_at": ts,
            }
            self.assignments[assignment["id"]] = assignment
            return copy.deepcopy(assignment)

    def get_assignment(self, assignment_id: str) -> Optional[dict]:
        with self._lock:
            assignment = self.assignments.get(assignment_id)
            return copy.deepcopy(assignment) if assignment else None

    def list_assignments(self, course_id: str) -> List[dict]:
        with self._lock:
            items = [a for a in self.assignments.values() if a["course_id"] == course_id]
            items.sort(key=lambda a: (a["due_date"], a["created_at"]))
            return copy.deepcopy(items)

    def update_assignment(
        self,
        assignment_id: str,
        *,
        title=_UNSET,
        description=_UNSET,
        due_date=_UNSET,
        questions=_UNSET,
        now: datetime | None = None,
    ) -> Optional[dict]:
        with self._lock:
            assignment = self.assignments.get(assignment_id)
            if assignment is None:
                return None
            if title is not _UNSET:
                assignment["title"] = title
            if description is not _UNSET:
                assignment["description"] = description
            if due_date is not _UNSET:
                assignment["due_date"] = due_date
            if questions is not _UNSET:
                assignment["questions"] = copy.deepcopy(questions)
            assignment["updated_at"] = now or _now()
            return copy.deepcopy(assignment)

    def _drop_assignment(self, assignment_id: str) -> None:
        self.assignments.pop(assignment_id, None)
        for key, sub_id in list(self._submission_keys.items()):
            if key[0] == assignment_id:
                del self._submission_keys[key]
                self.submissions.pop(sub_id, None)

    def delete_assignment(self, assignment_id: str) -> bool:
        with self._lock:
            if assignment_id not in self.assignments:
                return False
            self._drop_assignment(assignment_id)
            return True

    # --- Enrollments -------------------------------------------------------------

    def _enrollment_view(self, enrollment: dict) -> dict:
        out = copy.deepcopy(enrollment)
        out["completed_lecture_ids"] = sorted(enrollment["completed_lecture_ids"])
        return out

    def create_enrollment_if_absent(self, student_id: str, course_id: str, *, now: datetime | None = None) -> Tuple[dict, bool]:
        with self._lock:
            key = (student_id, course_id)
            existing = self.enrollments.get(key)
            if existing is not None:
                return self._enrollment_view(existing), False
            if course_id not in self.courses:
                raise LookupError("course_not_found")
            enrollment = {
                "student_id": student_id,
                "course_id": course_id,
                "completed_lecture_ids": set(),
                "progress": 0,
                "enrollment_status": "ongoing",
                "enrolled_at": now or _now(),
                "completed_at": None,
            }
            self.enrollments[key] = enrollment
            return self._enrollment_view(enrollment), True

    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        with self._lock:
            enrollment = self.enrollments.get((student_id, course_id))
            return self._enrollment_view(enrollment) if enrollment else None

    def list_enrollments(self, *, course_id: str | None = None) -> List[dict]:
        with self._lock:
            items = [e for e in self.enrollments.values() if course_id is None or e["course_id"] == course_id]
            items.sort(key=lambda e: e["enrolled_at"])
            return [self._enrollment_view(e) for e in items]

    def delete_enrollment(self, student_id: str, course_id: str) -> bool:
        with self._lock:
            return self.enrollments.pop((student_id, course_id), None) is not None

    def add_completed_lecture(self, student_id: str, course_id: str, lecture_id: str, *, now: datetime | None = None) -> bool:
        with self._lock:
            enrollment = self.enrollments.get((student_id, course_id))
            if enrollment is None:
                raise LookupError("enrollment_not_found")
            if lecture_id in enrollment["completed_lecture_ids"]:
                return False
            enrollment["completed_lecture_ids"].add(lecture_id)
            return True

    def update_progress(
        self,
        student_id: str,
        course_id: str,
        *,
        progress: int,
        enrollment_status: str,
        now: datetime | None = None,
    ) -> Optional[dict]:
        with self._lock:
            enrollment = self.enrollments.get((student_id, course_id))
            if enrollment is None:
                return None
            # A completed enrollment keeps its progress and status.
            if enrollment["enrollment_status"] != "completed":
                enrollment["progress"] = progress
                enrollment["enrollment_status"] = enrollment_status
            if enrollment_status == "completed" and enrollment["completed_at"] is None:
                enrollment["completed_at"] = now or _now()
            return self._enrollment_view(enrollment)

    @contextmanager
    def lock_enrollment(self, student_id: str, course_id: str) -> Iterator[Optional["_LockedEnrollment"]]:
        """Hold the repo lock while a caller reads and rewrites one enrollment's progress."""
        with self._lock:
            enrollment = self.enrollments.get((student_id, course_id))
            if enrollment is None:
                yield None
                return
            yield _LockedEnrollment(self, student_id, course_id, self._enrollment_view(enrollment))

    # --- Submissions -------------------------------------------------------------

    def upsert_submission(
        self,
        *,
        assignment_id: str,
        student_id: str,
        course_id: str,
        kind: str,
        status: str,
        file_url: str | None = None,
        answers: List[dict] | None = None,
        score: int | None = None,
        correct_count: int | None = None,
        total_count: int | None = None,
        grade: float | None = None,
        now: datetime | None = None,
    ) -> Tuple[dict, bool]:
        ts = now or _now()
        payload = {
            "kind": kind,
            "status": status,
            "file_url": file_url,
            "answers": copy.deepcopy(answers),
            "score": score,
            "correct_count": correct_count,
            "total_count": total_count,
            "grade": grade,
            "feedback": None,
            "graded_by": None,
            "graded_at": ts if status == "graded" else None,
            "updated_at": ts,
        }
        with self._lock:
            key = (assignment_id, student_id)
            sub_id = self._submission_keys.get(key)
            if sub_id is not None:
                record = self.submissions[sub_id]
                record.update(payload)
                return copy.deepcopy(record), False
            record = {
                "id": _new_id(),
                "assignment_id": assignment_id,
                "student_id": student_id,
                "course_id": course_id,
                "submitted_at": ts,
                **payload,
            }
            self.submissions[record["id"]] = record
            self._submission_keys[key] = record["id"]
            return copy.deepcopy(record), True

    def get_submission(self, submission_id: str) -> Optional[dict]:
        with self._lock:
            record = self.submissions.get(submission_id)
            return copy.deepcopy(record) if record else None

    def get_submission_for(self, assignment_id: str, student_id: str) -> Optional[dict]:
        with self._lock:
            sub_id = self._submission_keys.get((assignment_id, student_id))
            return copy.deepcopy(self.submissions[sub_id]) if sub_id else None

    def list_submissions_for_assignment(self, assignment_id: str) -> List[dict]:
        with self._lock:
            items = [s for s in self.submissions.values() if s["assignment_id"] == assignment_id]
            items.sort(key=lambda s: s["submitted_at"])
            return copy.deepcopy(items)

    def list_submissions_for_student_course(self, student_id: str, course_id: str) -> List[dict]:
        with self._lock:
            items = [
                s for s in self.submissions.values() if s["student_id"] == student_id and s["course_id"] == course_id
            ]
            return copy.deepcopy(items)

    def count_submissions_by_assignment(self, course_id: str) -> Dict[str, Tuple[int, int]]:
        """Return {assignment_id: (submission_count, graded_count)} for a course."""
        counts: Dict[str, Tuple[int, int]] = {}
        with self._lock:
            for s in self.submissions.values():
                if s["course_id"] != course_id:
                    continue
                total, graded = counts.get(s["assignment_id"], (0, 0))
                counts[s["assignment_id"]] = (total + 1, graded + (1 if s["status"] == "graded" else 0))
        return counts

    def set_grade(
        self,
        submission_id: str,
        *,
        grade: float,
        feedback: str | None,
        graded_by: str,
        graded_at: datetime,
    ) -> Optional[dict]:
        with self._lock:
            record = self.submissions.get(submission_id)
            if record is None:
                return None
            record.update(
                {
                    "status": "graded",
                    "grade": grade,
                    "feedback": feedback,
                    "graded_by": graded_by,
                    "graded_at": graded_at,
                }
            )
            return copy.deepcopy(record)

    def delete_submission(self, submission_id: str) -> bool:
        with self._lock:
            record = self.submissions.pop(submission_id, None)
            if record is None:
                return False
            self._submission_keys.pop((record["assignment_id"], record["student_id"]), None)
            return True

    # --- Certificates ------------------------------------------------------------

    def get_certificate(self, student_id: str, course_id: str) -> Optional[dict]:
        with self._lock:
            cert = self.certificates.get((student_id, course_id))
            return copy.deepcopy(cert) if cert else None

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        with self._lock:
            for cert in self.certificates.values():
                if cert["verification_code"] == code:
                    return copy.deepcopy(cert)
            return None

    def insert_certificate_if_absent(
        self,
        *,
        student_id: str,
        course_id: str,
        course_title: str,
        verification_code: str,
        issued_at: datetime,
    ) -> Tuple[dict, bool]:
        with self._lock:
            existing = self.certificates.get((student_id, course_id))
            if existing is not None:
                return copy.deepcopy(existing), False
            if any(c["verification_code"] == verification_code for c in self.certificates.values()):
                raise ValueError("duplicate_verification_code")
            cert = {
                "id": _new_id(),
                "student_id": student_id,
                "course_id": course_id,
                "course_title": course_title,
                "verification_code": verification_code,
                "issued_at": issued_at,
            }
            self.certificates[(student_id, course_id)] = cert
            return copy.deepcopy(cert), True


__all__ = ["InMemoryCourseworkRepo"]
