"""Enrollment registry plus the course, tutor and student records it references.

Read helpers come in two flavours: ``fetch_*`` take an open connection so the
allocator, ledger and graduation modules can use them inside their own
transaction, and the public ``get_*`` / ``list_*`` functions open one.
"""
import json
import sqlite3
from datetime import datetime
from typing import Optional

import structlog

from school_portal.db import get_connection, transaction
from school_portal.errors import NotFound, PreconditionFailed, ValidationError
from school_portal.models import (
    ASSIGNED, ASSIGNMENT_STATUSES, CANCELLED, ROSTER_ACTIVE, ROSTER_CERTIFIED,
    Course, Enrollment, Exam, RosterEntry, Settlement, Student, Tutor,
)

log = structlog.get_logger(__name__)


def exams_from_json(raw: Optional[str]) -> list[Exam]:
    return [Exam(name=e.get("name", ""), score=e.get("score") or "") for e in json.loads(raw or "[]")]


def exams_to_json(exams: list[Exam]) -> str:
    return json.dumps([{"name": e.name, "score": e.score} for e in exams])


def _student_from_row(row: sqlite3.Row) -> Student:
    return Student(
        id=row["id"],
        name=row["name"],
        course_id=row["course_id"],
        admission_number=row["admission_number"] or "",
        course_fee=row["course_fee"],
        upfront_fee=row["upfront_fee"] or 0.0,
        phone=row["phone"] or "",
        email=row["email"] or "",
        exams=exams_from_json(row["exams"]),
        is_alumni=bool(row["is_alumni"]),
    )


def _enrollment_from_row(row: sqlite3.Row) -> Enrollment:
    return Enrollment(
        course_id=row["course_id"],
        student_id=row["student_id"],
        assignment_status=row["assignment_status"],
        tutor_id=row["tutor_id"],
        admin_notes=row["admin_notes"],
        updated_at=row["updated_at"],
    )


def settlement_from_row(row: sqlite3.Row) -> Settlement:
    return Settlement(
        student_id=row["student_id"],
        course_id=row["course_id"],
        tutor_id=row["tutor_id"],
        status=row["status"],
        amount=row["amount"],
        phone=row["phone"] or "",
        transaction_id=row["transaction_id"] or "",
        time_of_payment=row["time_of_payment"],
    )


# --- courses -----------------------------------------------------------------

def create_course(db_path: str, course_id: str, name: str, fee: Optional[float] = None) -> Course:
    with transaction(db_path) as conn:
        conn.execute(
            "INSERT INTO courses (id, name, fee) VALUES (?, ?, ?)",
            (course_id, name, fee),
        )
    return Course(id=course_id, name=name, fee=fee)


def list_courses(db_path: str) -> list[Course]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM courses ORDER BY name").fetchall()
    conn.close()
    return [Course(id=r["id"], name=r["name"], fee=r["fee"]) for r in rows]


# --- students ----------------------------------------------------------------

def fetch_student(conn: sqlite3.Connection, student_id: str) -> Student:
    row = conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
    if row is None:
        raise NotFound(f"student {student_id} not found", {"student_id": student_id})
    return _student_from_row(row)


def get_student(db_path: str, student_id: str) -> Student:
    conn = get_connection(db_path)
    try:
        return fetch_student(conn, student_id)
    finally:
        conn.close()


def write_student(conn: sqlite3.Connection, student: Student) -> None:
    conn.execute(
        """UPDATE students SET name = ?, course_id = ?, admission_number = ?, course_fee = ?,
        upfront_fee = ?, phone = ?, email = ?, exams = ?, is_alumni = ? WHERE id = ?""",
        (
            student.name, student.course_id, student.admission_number, student.course_fee,
            student.upfront_fee, student.phone, student.email, exams_to_json(student.exams),
            int(student.is_alumni), student.id,
        ),
    )


def list_students(db_path: str) -> list[Student]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM students ORDER BY name").fetchall()
    conn.close()
    return [_student_from_row(r) for r in rows]


def admit_student(
    db_path: str,
    student_id: str,
    name: str,
    course_id: str,
    admission_number: str = "",
    course_fee: Optional[float] = None,
    upfront_fee: float = 0.0,
    phone: str = "",
    email: str = "",
) -> Student:
    """Create the student record and its PENDING enrollment in the course."""
    with transaction(db_path) as conn:
        course = conn.execute("SELECT * FROM courses WHERE id = ?", (course_id,)).fetchone()
        if course is None:
            raise NotFound(f"course {course_id} not found", {"course_id": course_id})
        if course_fee is None:
            course_fee = course["fee"]
        conn.execute(
            """INSERT INTO students (id, name, course_id, admission_number, course_fee, upfront_fee, phone, email)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (student_id, name, course_id, admission_number, course_fee, upfront_fee, phone, email),
        )
        _insert_enrollment(conn, course_id, student_id)
    log.info("student_admitted", student_id=student_id, course_id=course_id)
    return Student(
        id=student_id, name=name, course_id=course_id, admission_number=admission_number,
        course_fee=course_fee, upfront_fee=upfront_fee, phone=phone, email=email,
    )


# --- tutors ------------------------------------------------------------------

def create_tutor(db_path: str, tutor_id: str, name: str, phone: str = "") -> Tutor:
    with transaction(db_path) as conn:
        conn.execute("INSERT INTO tutors (id, name, phone) VALUES (?, ?, ?)", (tutor_id, name, phone))
    return Tutor(id=tutor_id, name=name, phone=phone)


def _roster(conn: sqlite3.Connection, tutor_id: str, roster: str) -> list[RosterEntry]:
    rows = conn.execute(
        """SELECT ts.*, s.name, s.course_fee,
        st.tutor_id AS st_tutor_id, st.status, st.amount, st.phone, st.transaction_id, st.time_of_payment
        FROM tutor_students ts
        JOIN students s ON s.id = ts.student_id
        LEFT JOIN settlements st
            ON st.student_id = ts.student_id AND st.course_id = ts.course_id AND st.tutor_id = ts.tutor_id
        WHERE ts.tutor_id = ? AND ts.roster = ?
        ORDER BY ts.assigned_at, ts.student_id""",
        (tutor_id, roster),
    ).fetchall()
    entries = []
    for r in rows:
        settlement = None
        if r["status"] is not None:
            settlement = Settlement(
                student_id=r["student_id"], course_id=r["course_id"], tutor_id=r["st_tutor_id"],
                status=r["status"], amount=r["amount"], phone=r["phone"] or "",
                transaction_id=r["transaction_id"] or "", time_of_payment=r["time_of_payment"],
            )
        entries.append(RosterEntry(
            student_id=r["student_id"],
            course_id=r["course_id"],
            name=r["name"],
            course_fee=r["course_fee"],
            settlement=settlement,
            assigned_at=r["assigned_at"],
            certified_at=r["certified_at"],
        ))
    return entries


def fetch_tutor(conn: sqlite3.Connection, tutor_id: str) -> Tutor:
    row = conn.execute("SELECT * FROM tutors WHERE id = ?", (tutor_id,)).fetchone()
    if row is None:
        raise NotFound(f"tutor {tutor_id} not found", {"tutor_id": tutor_id})
    return Tutor(
        id=row["id"],
        name=row["name"],
        phone=row["phone"] or "",
        my_students=_roster(conn, tutor_id, ROSTER_ACTIVE),
        certified_students=_roster(conn, tutor_id, ROSTER_CERTIFIED),
    )


def get_tutor(db_path: str, tutor_id: str) -> Tutor:
    conn = get_connection(db_path)
    try:
        return fetch_tutor(conn, tutor_id)
    finally:
        conn.close()


def list_tutors(db_path: str) -> list[Tutor]:
    conn = get_connection(db_path)
    ids = [r["id"] for r in conn.execute("SELECT id FROM tutors ORDER BY name").fetchall()]
    tutors = [fetch_tutor(conn, tutor_id) for tutor_id in ids]
    conn.close()
    return tutors


# --- enrollments -------------------------------------------------------------

def _insert_enrollment(conn: sqlite3.Connection, course_id: str, student_id: str) -> Enrollment:
    existing = conn.execute(
        "SELECT 1 FROM enrollments WHERE course_id = ? AND student_id = ?", (course_id, student_id)
    ).fetchone()
    if existing:
        raise PreconditionFailed(
            f"student {student_id} is already enrolled in course {course_id}",
            {"course_id": course_id, "student_id": student_id},
        )
    enrollment = Enrollment(course_id=course_id, student_id=student_id, updated_at=datetime.now().isoformat())
    write_enrollment(conn, enrollment)
    return enrollment


def enroll(db_path: str, course_id: str, student_id: str) -> Enrollment:
    with transaction(db_path) as conn:
        fetch_student(conn, student_id)
        if conn.execute("SELECT 1 FROM courses WHERE id = ?", (course_id,)).fetchone() is None:
            raise NotFound(f"course {course_id} not found", {"course_id": course_id})
        enrollment = _insert_enrollment(conn, course_id, student_id)
    log.info("student_enrolled", student_id=student_id, course_id=course_id)
    return enrollment


def fetch_enrollment(conn: sqlite3.Connection, course_id: str, student_id: str) -> Enrollment:
    row = conn.execute(
        "SELECT * FROM enrollments WHERE course_id = ? AND student_id = ?",
        (course_id, student_id),
    ).fetchone()
    if row is None:
        raise NotFound(
            f"enrollment of student {student_id} in course {course_id} not found",
            {"course_id": course_id, "student_id": student_id},
        )
    return _enrollment_from_row(row)


def get(db_path: str, course_id: str, student_id: str) -> Enrollment:
    """Return the enrollment for a (course, student) pair or raise NotFound."""
    conn = get_connection(db_path)
    try:
        return fetch_enrollment(conn, course_id, student_id)
    finally:
        conn.close()


def write_enrollment(conn: sqlite3.Connection, enrollment: Enrollment) -> None:
    """Insert or replace an enrollment; every status change goes through here."""
    if enrollment.assignment_status not in ASSIGNMENT_STATUSES:
        raise ValidationError(
            f"unknown assignment status {enrollment.assignment_status!r}",
            {"assignment_status": enrollment.assignment_status},
        )
    context = {"course_id": enrollment.course_id, "student_id": enrollment.student_id}
    if enrollment.assignment_status == ASSIGNED and not enrollment.tutor_id:
        raise ValidationError("an assigned enrollment needs a tutor", {**context, "field": "tutor_id"})
    if enrollment.assignment_status == CANCELLED and not (enrollment.admin_notes or "").strip():
        raise ValidationError("a cancelled enrollment needs a reason", {**context, "field": "admin_notes"})
    conn.execute(
        """INSERT INTO enrollments (course_id, student_id, assignment_status, tutor_id, admin_notes, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(course_id, student_id) DO UPDATE SET
            assignment_status = excluded.assignment_status,
            tutor_id = excluded.tutor_id,
            admin_notes = excluded.admin_notes,
            updated_at = excluded.updated_at""",
        (
            enrollment.course_id, enrollment.student_id, enrollment.assignment_status,
            enrollment.tutor_id, enrollment.admin_notes, enrollment.updated_at,
        ),
    )


def upsert(db_path: str, enrollment: Enrollment) -> Enrollment:
    with transaction(db_path) as conn:
        write_enrollment(conn, enrollment)
    return enrollment


def list_by_status(db_path: str, course_id: str, status: str) -> list[Enrollment]:
    if status not in ASSIGNMENT_STATUSES:
        raise ValidationError(f"unknown assignment status {status!r}", {"status": status})
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM enrollments WHERE course_id = ? AND assignment_status = ? ORDER BY student_id",
        (course_id, status),
    ).fetchall()
    conn.close()
    return [_enrollment_from_row(r) for r in rows]


def list_assignments(db_path: str, course_id: Optional[str] = None) -> dict:
    """Partition a course's roster into pending/assigned/cancelled buckets.

    Without a course id, returns those buckets for every course, keyed by course id.
    """
    if course_id is None:
        return {course.id: list_assignments(db_path, course.id) for course in list_courses(db_path)}
    conn = get_connection(db_path)
    exists = conn.execute("SELECT 1 FROM courses WHERE id = ?", (course_id,)).fetchone()
    conn.close()
    if exists is None:
        raise NotFound(f"course {course_id} not found", {"course_id": course_id})
    return {
        status.lower(): list_by_status(db_path, course_id, status)
        for status in ASSIGNMENT_STATUSES
    }
