"""Postgres-backed repository for courses, enrollments, submissions and certificates.

Schema: `migrations/0001_coursework_core.sql`. The uniqueness guarantees the
services depend on are enforced here with single statements:
- submissions: `insert … on conflict (assignment_id, student_id) do update`
- certificates: `insert … on conflict (student_id, course_id) do nothing`
  followed by a re-read for the race loser
- enrollments/lecture completions: `on conflict do nothing`

Progress recompute reads and writes under `select … for update` on the
enrollment row (`lock_enrollment`), so a stale recompute cannot overwrite a
newer one.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID

try:  # pragma: no cover -- optional dependency in some environments
    import psycopg
    from psycopg import errors as pg_errors
    from psycopg import sql
    from psycopg.types.json import Json

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    pg_errors = None  # type: ignore
    sql = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False


logger = logging.getLogger(__name__)


def _dsn() -> str:
    """Resolve the Postgres DSN.

    Order of precedence (first non-empty wins):
      1) COURSEWORK_DATABASE_URL (context-specific override)
      2) DATABASE_URL (app-wide default)
    """
    for candidate in (os.getenv("COURSEWORK_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if candidate and candidate.strip():
            return candidate.strip()
    raise RuntimeError("Database DSN unavailable for coursework repo")


def _uuid_or_none(value: str) -> Optional[str]:
    try:
        return str(UUID(str(value)))
    except (ValueError, TypeError):
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _float_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value) if isinstance(value, (Decimal, int, float)) else None


# --- Row mapping -----------------------------------------------------------------

_COURSE_COLUMNS = """
    c.id::text, c.title, c.instructor_id, c.status, c.completion_status,
    c.created_at, c.updated_at,
    (select count(*) from public.lectures l where l.course_id = c.id)
"""


def _row_to_course(row: Sequence[Any]) -> dict:
    return {
        "id": row[0],
        "title": row[1],
        "instructor_id": row[2],
        "status": row[3],
        "completion_status": row[4],
        "created_at": row[5],
        "updated_at": row[6],
        "lecture_count": int(row[7] or 0),
    }


_LECTURE_COLUMNS = "id::text, course_id::text, title, video_url, position, created_at"


def _row_to_lecture(row: Sequence[Any]) -> dict:
    return {
        "id": row[0],
        "course_id": row[1],
        "title": row[2],
        "video_url": row[3],
        "order": int(row[4]),
        "created_at": row[5],
    }


_ASSIGNMENT_COLUMNS = "id::text, course_id::text, title, description, kind, due_at, questions, created_at, updated_at"


def _row_to_assignment(row: Sequence[Any]) -> dict:
    return {
        "id": row[0],
        "course_id": row[1],
        "title": row[2],
        "description": row[3],
        "type": row[4],
        "due_date": row[5],
        "questions": list(row[6] or []),
        "created_at": row[7],
        "updated_at": row[8],
    }


_ENROLLMENT_COLUMNS = """
    e.student_id, e.course_id::text, e.progress, e.enrollment_status, e.enrolled_at, e.completed_at,
    coalesce(
      (select array_agg(lc.lecture_id::text order by lc.lecture_id)
         from public.lecture_completions lc
        where lc.student_id = e.student_id and lc.course_id = e.course_id),
      '{}'::text[]
    )
"""


def _row_to_enrollment(row: Sequence[Any]) -> dict:
    return {
        "student_id": row[0],
        "course_id": row[1],
        "progress": int(row[2]),
        "enrollment_status": row[3],
        "enrolled_at": row[4],
        "completed_at": row[5],
        "completed_lecture_ids": list(row[6] or []),
    }


_SUBMISSION_COLUMNS = """
    id::text, assignment_id::text, student_id, course_id::text, kind, status,
    file_url, answers, score, correct_count, total_count, grade, feedback,
    graded_by, graded_at, submitted_at, updated_at
"""


def _row_to_submission(row: Sequence[Any]) -> dict:
    return {
        "id": row[0],
        "assignment_id": row[1],
        "student_id": row[2],
        "course_id": row[3],
        "kind": row[4],
        "status": row[5],
        "file_url": row[6],
        "answers": list(row[7]) if row[7] is not None else None,
        "score": row[8],
        "correct_count": row[9],
        "total_count": row[10],
        "grade": _float_or_none(row[11]),
        "feedback": row[12],
        "graded_by": row[13],
        "graded_at": row[14],
        "submitted_at": row[15],
        "updated_at": row[16],
    }


_CERTIFICATE_COLUMNS = "id::text, student_id, course_id::text, course_title, verification_code, issued_at"


def _row_to_certificate(row: Sequence[Any]) -> dict:
    return {
        "id": row[0],
        "student_id": row[1],
        "course_id": row[2],
        "course_title": row[3],
        "verification_code": row[4],
        "issued_at": row[5],
    }


_COURSE_UPDATABLE = {"title": "title", "status": "status", "completion_status": "completion_status"}
_LECTURE_UPDATABLE = {"title": "title", "video_url": "video_url", "order": "position"}
_ASSIGNMENT_UPDATABLE = {"title": "title", "description": "description", "due_date": "due_at", "questions": "questions"}


class _LockedEnrollment:
    """Enrollment row held under `select … for update` on an open cursor."""

    def __init__(self, repo: "DBCourseworkRepo", cur, student_id: str, cid: str, enrollment: dict) -> None:
        self._repo = repo
        self._cur = cur
        self._student_id = student_id
        self._cid = cid
        self.enrollment = enrollment

    def update_progress(self, *, progress: int, enrollment_status: str, now: datetime | None = None) -> Optional[dict]:
        return self._repo._write_progress(
            self._cur, self._student_id, self._cid, progress=progress, enrollment_status=enrollment_status, now=now
        )


class DBCourseworkRepo:
    """Persistence adapter used by the coursework services."""

    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBCourseworkRepo")
        self._dsn = dsn or _dsn()

    def _connect(self):
        return psycopg.connect(self._dsn)

    def _set_clause(self, mapping: Dict[str, str], fields: Dict[str, Any]):
        parts = []
        params: List[Any] = []
        for key, value in fields.items():
            column = mapping.get(key)
            if column is None:
                raise ValueError(f"unknown field: {key}")
            parts.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(Json(value) if key == "questions" else value)
        return parts, params

    # --- Courses -----------------------------------------------------------------

    def create_course(self, *, title: str, instructor_id: str, status: str = "draft", now: datetime | None = None) -> dict:
        ts = now or _utcnow()
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.courses (title, instructor_id, status, created_at, updated_at)
                    values (%s, %s, %s, %s, %s)
                    returning id::text
                    """,
                    (title, instructor_id, status, ts, ts),
                )
                course_id = cur.fetchone()[0]
                cur.execute(f"select {_COURSE_COLUMNS} from public.courses c where c.id = %s", (course_id,))
                return _row_to_course(cur.fetchone())

    def get_course(self, course_id: str) -> Optional[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_COURSE_COLUMNS} from public.courses c where c.id = %s", (cid,))
                row = cur.fetchone()
        return _row_to_course(row) if row else None

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_COURSE_COLUMNS} from public.courses c where c.instructor_id = %s order by c.created_at, c.id",
                    (instructor_id,),
                )
                rows = cur.fetchall()
        return [_row_to_course(r) for r in rows]

    def list_courses(self) -> List[dict]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_COURSE_COLUMNS} from public.courses c order by c.created_at, c.id")
                rows = cur.fetchall()
        return [_row_to_course(r) for r in rows]

    def update_course(self, course_id: str, *, now: datetime | None = None, **fields: Any) -> Optional[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return None
        parts, params = self._set_clause(_COURSE_UPDATABLE, fields)
        parts.append(sql.SQL("updated_at = %s"))
        params.append(now or _utcnow())
        query = sql.SQL("update public.courses set {} where id = %s").format(sql.SQL(", ").join(parts))
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (*params, cid))
                if cur.rowcount == 0:
                    return None
                cur.execute(f"select {_COURSE_COLUMNS} from public.courses c where c.id = %s", (cid,))
                return _row_to_course(cur.fetchone())

    def delete_course(self, course_id: str) -> bool:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.courses where id = %s", (cid,))
                return cur.rowcount > 0

    # --- Lectures ----------------------------------------------------------------

    def create_lecture(
        self,
        course_id: str,
        *,
        title: str,
        video_url: str | None,
        order: int | None = None,
        now: datetime | None = None,
    ) -> dict:
        cid = _uuid_or_none(course_id)
        if cid is None:
            raise LookupError("course_not_found")
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.lectures (course_id, title, video_url, position, created_at)
                        values (
                          %s, %s, %s,
                          coalesce(%s::int, (select coalesce(max(position), 0) + 1 from public.lectures where course_id = %s)),
                          %s
                        )
                        returning {_LECTURE_COLUMNS}
                        """,
                        (cid, title, video_url, order, cid, now or _utcnow()),
                    )
                    return _row_to_lecture(cur.fetchone())
        except pg_errors.UniqueViolation as exc:
            raise ValueError("duplicate_lecture_order") from exc
        except pg_errors.ForeignKeyViolation as exc:
            raise LookupError("course_not_found") from exc

    def get_lecture(self, lecture_id: str) -> Optional[dict]:
        lid = _uuid_or_none(lecture_id)
        if lid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_LECTURE_COLUMNS} from public.lectures where id = %s", (lid,))
                row = cur.fetchone()
        return _row_to_lecture(row) if row else None

    def list_lectures(self, course_id: str) -> List[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_LECTURE_COLUMNS} from public.lectures where course_id = %s order by position",
                    (cid,),
                )
                rows = cur.fetchall()
        return [_row_to_lecture(r) for r in rows]

    def update_lecture(self, lecture_id: str, **fields: Any) -> Optional[dict]:
        lid = _uuid_or_none(lecture_id)
        if lid is None:
            return None
        if not fields:
            return self.get_lecture(lid)
        parts, params = self._set_clause(_LECTURE_UPDATABLE, fields)
        query = sql.SQL("update public.lectures set {} where id = %s returning " + _LECTURE_COLUMNS).format(
            sql.SQL(", ").join(parts)
        )
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, (*params, lid))
                    row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            raise ValueError("duplicate_lecture_order") from exc
        return _row_to_lecture(row) if row else None

    def delete_lecture(self, lecture_id: str) -> bool:
        lid = _uuid_or_none(lecture_id)
        if lid is None:
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                # lecture_completions cascade via foreign key
                cur.execute("delete from public.lectures where id = %s", (lid,))
                return cur.rowcount > 0

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
        cid = _uuid_or_none(course_id)
        if cid is None:
            raise LookupError("course_not_found")
        ts = now or _utcnow()
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.assignments
                          (course_id, title, description, kind, due_at, questions, created_at, updated_at)
                        values (%s, %s, %s, %s, %s, %s, %s, %s)
                        returning {_ASSIGNMENT_COLUMNS}
                        """,
                        (cid, title, description, kind, due_date, Json(questions), ts, ts),
                    )
                    return _row_to_assignment(cur.fetchone())
        except pg_errors.ForeignKeyViolation as exc:
            raise LookupError("course_not_found") from exc

    def get_assignment(self, assignment_id: str) -> Optional[dict]:
        aid = _uuid_or_none(assignment_id)
        if aid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_ASSIGNMENT_COLUMNS} from public.assignments where id = %s", (aid,))
                row = cur.fetchone()
        return _row_to_assignment(row) if row else None

    def list_assignments(self, course_id: str) -> List[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_ASSIGNMENT_COLUMNS} from public.assignments where course_id = %s order by due_at, created_at",
                    (cid,),
                )
                rows = cur.fetchall()
        return [_row_to_assignment(r) for r in rows]

    def update_assignment(self, assignment_id: str, *, now: datetime | None = None, **fields: Any) -> Optional[dict]:
        aid = _uuid_or_none(assignment_id)
        if aid is None:
            return None
        parts, params = self._set_clause(_ASSIGNMENT_UPDATABLE, fields)
        parts.append(sql.SQL("updated_at = %s"))
        params.append(now or _utcnow())
        query = sql.SQL("update public.assignments set {} where id = %s returning " + _ASSIGNMENT_COLUMNS).format(
            sql.SQL(", ").join(parts)
        )
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (*params, aid))
                row = cur.fetchone()
        return _row_to_assignment(row) if row else None

    def delete_assignment(self, assignment_id: str) -> bool:
        aid = _uuid_or_none(assignment_id)
        if aid is None:
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.assignments where id = %s", (aid,))
                return cur.rowcount > 0

    # --- Enrollments -------------------------------------------------------------

    def _fetch_enrollment(self, cur, student_id: str, cid: str) -> Optional[dict]:
        cur.execute(
            f"select {_ENROLLMENT_COLUMNS} from public.enrollments e where e.student_id = %s and e.course_id = %s",
            (student_id, cid),
        )
        row = cur.fetchone()
        return _row_to_enrollment(row) if row else None

    def create_enrollment_if_absent(self, student_id: str, course_id: str, *, now: datetime | None = None) -> Tuple[dict, bool]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            raise LookupError("course_not_found")
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.enrollments (student_id, course_id, enrolled_at)
                        values (%s, %s, %s)
                        on conflict (student_id, course_id) do nothing
                        """,
                        (student_id, cid, now or _utcnow()),
                    )
                    created = cur.rowcount > 0
                    return self._fetch_enrollment(cur, student_id, cid), created  # type: ignore[return-value]
        except pg_errors.ForeignKeyViolation as exc:
            raise LookupError("course_not_found") from exc

    def get_enrollment(self, student_id: str, course_id: str) -> Optional[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                return self._fetch_enrollment(cur, student_id, cid)

    def list_enrollments(self, *, course_id: str | None = None) -> List[dict]:
        query = f"select {_ENROLLMENT_COLUMNS} from public.enrollments e"
        params: Tuple[Any, ...] = ()
        if course_id is not None:
            cid = _uuid_or_none(course_id)
            if cid is None:
                return []
            query += " where e.course_id = %s"
            params = (cid,)
        query += " order by e.enrolled_at, e.student_id"
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def delete_enrollment(self, student_id: str, course_id: str) -> bool:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "delete from public.enrollments where student_id = %s and course_id = %s",
                    (student_id, cid),
                )
                return cur.rowcount > 0

    def add_completed_lecture(self, student_id: str, course_id: str, lecture_id: str, *, now: datetime | None = None) -> bool:
        cid = _uuid_or_none(course_id)
        lid = _uuid_or_none(lecture_id)
        if cid is None or lid is None:
            raise LookupError("lecture_not_found")
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.lecture_completions (student_id, course_id, lecture_id, completed_at)
                        values (%s, %s, %s, %s)
                        on conflict (student_id, lecture_id) do nothing
                        """,
                        (student_id, cid, lid, now or _utcnow()),
                    )
                    return cur.rowcount > 0
        except pg_errors.ForeignKeyViolation as exc:
            raise LookupError("enrollment_not_found") from exc

    def _write_progress(self, cur, student_id: str, cid: str, *, progress: int, enrollment_status: str, now: datetime | None) -> Optional[dict]:
        # A completed enrollment keeps its progress and status.
        cur.execute(
            """
            update public.enrollments
               set progress = case when enrollment_status = 'completed' then progress else %s end,
                   enrollment_status = case when enrollment_status = 'completed' then enrollment_status else %s end,
                   completed_at = case when %s::text = 'completed' then coalesce(completed_at, %s) else completed_at end
             where student_id = %s and course_id = %s
            """,
            (progress, enrollment_status, enrollment_status, now or _utcnow(), student_id, cid),
        )
        if cur.rowcount == 0:
            return None
        return self._fetch_enrollment(cur, student_id, cid)

    def update_progress(
        self,
        student_id: str,
        course_id: str,
        *,
        progress: int,
        enrollment_status: str,
        now: datetime | None = None,
    ) -> Optional[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                return self._write_progress(
                    cur, student_id, cid, progress=progress, enrollment_status=enrollment_status, now=now
                )

    @contextmanager
    def lock_enrollment(self, student_id: str, course_id: str) -> Iterator[Optional["_LockedEnrollment"]]:
        """Hold a row lock on one enrollment for a read-then-write progress update.

        The enrollment is re-read after the lock is granted so it reflects
        every commit that preceded it. Writes go through the yielded handle and
        commit when the block exits; an exception rolls them back.
        """
        cid = _uuid_or_none(course_id)
        if cid is None:
            yield None
            return
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select 1 from public.enrollments where student_id = %s and course_id = %s for update",
                    (student_id, cid),
                )
                if cur.fetchone() is None:
                    yield None
                    return
                enrollment = self._fetch_enrollment(cur, student_id, cid)
                yield _LockedEnrollment(self, cur, student_id, cid, enrollment)  # type: ignore[arg-type]

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
        """Insert or replace the single submission for (assignment, student).

        `submitted_at` is written on insert only; a replace resets grading.
        `xmax = 0` distinguishes a fresh insert from the conflict update.
        """
        ts = now or _utcnow()
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.submissions (
                      assignment_id, student_id, course_id, kind, status, file_url, answers,
                      score, correct_count, total_count, grade, feedback, graded_by, graded_at,
                      submitted_at, updated_at
                    )
                    values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, null, null, %s, %s, %s)
                    on conflict (assignment_id, student_id) do update set
                      kind = excluded.kind,
                      status = excluded.status,
                      file_url = excluded.file_url,
                      answers = excluded.answers,
                      score = excluded.score,
                      correct_count = excluded.correct_count,
                      total_count = excluded.total_count,
                      grade = excluded.grade,
                      feedback = null,
                      graded_by = null,
                      graded_at = excluded.graded_at,
                      updated_at = excluded.updated_at
                    returning {_SUBMISSION_COLUMNS}, (xmax = 0)
                    """,
                    (
                        assignment_id,
                        student_id,
                        course_id,
                        kind,
                        status,
                        file_url,
                        Json(answers) if answers is not None else None,
                        score,
                        correct_count,
                        total_count,
                        grade,
                        ts if status == "graded" else None,
                        ts,
                        ts,
                    ),
                )
                row = cur.fetchone()
        return _row_to_submission(row[:-1]), bool(row[-1])

    def get_submission(self, submission_id: str) -> Optional[dict]:
        sid = _uuid_or_none(submission_id)
        if sid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_SUBMISSION_COLUMNS} from public.submissions where id = %s", (sid,))
                row = cur.fetchone()
        return _row_to_submission(row) if row else None

    def get_submission_for(self, assignment_id: str, student_id: str) -> Optional[dict]:
        aid = _uuid_or_none(assignment_id)
        if aid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_SUBMISSION_COLUMNS} from public.submissions where assignment_id = %s and student_id = %s",
                    (aid, student_id),
                )
                row = cur.fetchone()
        return _row_to_submission(row) if row else None

    def list_submissions_for_assignment(self, assignment_id: str) -> List[dict]:
        aid = _uuid_or_none(assignment_id)
        if aid is None:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_SUBMISSION_COLUMNS} from public.submissions where assignment_id = %s order by submitted_at, id",
                    (aid,),
                )
                rows = cur.fetchall()
        return [_row_to_submission(r) for r in rows]

    def list_submissions_for_student_course(self, student_id: str, course_id: str) -> List[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_SUBMISSION_COLUMNS} from public.submissions where student_id = %s and course_id = %s",
                    (student_id, cid),
                )
                rows = cur.fetchall()
        return [_row_to_submission(r) for r in rows]

    def count_submissions_by_assignment(self, course_id: str) -> Dict[str, Tuple[int, int]]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return {}
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select assignment_id::text, count(*), count(*) filter (where status = 'graded')
                      from public.submissions
                     where course_id = %s
                     group by assignment_id
                    """,
                    (cid,),
                )
                rows = cur.fetchall()
        return {r[0]: (int(r[1]), int(r[2])) for r in rows}

    def set_grade(
        self,
        submission_id: str,
        *,
        grade: float,
        feedback: str | None,
        graded_by: str,
        graded_at: datetime,
    ) -> Optional[dict]:
        sid = _uuid_or_none(submission_id)
        if sid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.submissions
                       set status = 'graded', grade = %s, feedback = %s, graded_by = %s,
                           graded_at = %s
                     where id = %s
                    returning {_SUBMISSION_COLUMNS}
                    """,
                    (grade, feedback, graded_by, graded_at, sid),
                )
                row = cur.fetchone()
        return _row_to_submission(row) if row else None

    def delete_submission(self, submission_id: str) -> bool:
        sid = _uuid_or_none(submission_id)
        if sid is None:
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.submissions where id = %s", (sid,))
                return cur.rowcount > 0

    # --- Certificates ------------------------------------------------------------

    def get_certificate(self, student_id: str, course_id: str) -> Optional[dict]:
        cid = _uuid_or_none(course_id)
        if cid is None:
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_CERTIFICATE_COLUMNS} from public.certificates where student_id = %s and course_id = %s",
                    (student_id, cid),
                )
                row = cur.fetchone()
        return _row_to_certificate(row) if row else None

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_CERTIFICATE_COLUMNS} from public.certificates where verification_code = %s",
                    (code,),
                )
                row = cur.fetchone()
        return _row_to_certificate(row) if row else None

    def insert_certificate_if_absent(
        self,
        *,
        student_id: str,
        course_id: str,
        course_title: str,
        verification_code: str,
        issued_at: datetime,
    ) -> Tuple[dict, bool]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.certificates (student_id, course_id, course_title, verification_code, issued_at)
                    values (%s, %s, %s, %s, %s)
                    on conflict (student_id, course_id) do nothing
                    returning {_CERTIFICATE_COLUMNS}
                    """,
                    (student_id, course_id, course_title, verification_code, issued_at),
                )
                row = cur.fetchone()
                if row is not None:
                    return _row_to_certificate(row), True
                cur.execute(
                    f"select {_CERTIFICATE_COLUMNS} from public.certificates where student_id = %s and course_id = %s",
                    (student_id, course_id),
                )
                existing = cur.fetchone()
        logger.debug("certificate already present student=%s course=%s", student_id[:8], course_id[:8])
        if existing is None:  # pragma: no cover - row vanished between statements
            raise LookupError("certificate_not_found")
        return _row_to_certificate(existing), False


__all__ = ["DBCourseworkRepo", "HAVE_PSYCOPG"]
