"""Graduation checklist, exam grading and promotion to alumnus."""
import sqlite3
from datetime import date
from typing import Optional

import structlog

from school_portal.db import get_connection, transaction
from school_portal.errors import NotFound, PreconditionFailed, ValidationError
from school_portal.ledger import fee_balance
from school_portal.models import (
    GRADE_POINTS, GRADES, ROSTER_ACTIVE, ROSTER_CERTIFIED,
    Alumnus, CpdRecord, Exam, ExamGrade, Student,
)
from school_portal.registry import exams_from_json, exams_to_json, fetch_student, write_student

log = structlog.get_logger(__name__)


def checklist(student: Student) -> dict:
    """Fee and grade completeness; a student is eligible only when both hold."""
    fee_complete = (student.upfront_fee or 0) >= (student.course_fee or 0)
    grades_complete = len(student.exams) > 0 and all(e.is_graded for e in student.exams)
    return {
        "feeComplete": fee_complete,
        "gradesComplete": grades_complete,
        "eligible": fee_complete and grades_complete,
    }


def compute_gpa(exams: list[Exam]) -> float:
    if not exams:
        return 0.0
    return round(sum(GRADE_POINTS.get(e.score, 0.0) for e in exams) / len(exams), 2)


def _require_student(conn: sqlite3.Connection, student_id: str) -> Student:
    student = fetch_student(conn, student_id)
    if student.is_alumni:
        raise PreconditionFailed(
            f"student {student_id} has already graduated", {"student_id": student_id}
        )
    return student


def _apply_grades(student: Student, exam_grades: list[ExamGrade]) -> None:
    for grade in exam_grades:
        index = grade.exam_index
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(student.exams):
            raise ValidationError(
                f"exam index {index!r} out of range for student {student.id} "
                f"({len(student.exams)} exams)",
                {"student_id": student.id, "exam_index": index},
            )
        if grade.score not in GRADE_POINTS:
            raise ValidationError(
                f"grade {grade.score!r} is not one of {', '.join(GRADES)}",
                {"student_id": student.id, "exam_index": index, "score": grade.score},
            )
        student.exams[index].score = grade.score


def add_exam(db_path: str, student_id: str, name: str, score: str = "") -> Student:
    name = (name or "").strip()
    if not name:
        raise ValidationError("exam name required", {"student_id": student_id, "field": "name"})
    if score and score not in GRADE_POINTS:
        raise ValidationError(
            f"grade {score!r} is not one of {', '.join(GRADES)}",
            {"student_id": student_id, "score": score},
        )
    with transaction(db_path) as conn:
        student = _require_student(conn, student_id)
        student.exams.append(Exam(name=name, score=score))
        write_student(conn, student)
    log.info("exam_added", student_id=student_id, exam=name)
    return student


def remove_exam(db_path: str, student_id: str, exam_index: int) -> Student:
    with transaction(db_path) as conn:
        student = _require_student(conn, student_id)
        if not 0 <= exam_index < len(student.exams):
            raise ValidationError(
                f"exam index {exam_index} out of range for student {student_id}",
                {"student_id": student_id, "exam_index": exam_index},
            )
        removed = student.exams.pop(exam_index)
        write_student(conn, student)
    log.info("exam_removed", student_id=student_id, exam=removed.name)
    return student


def update_grades(db_path: str, student_id: str, exam_grades: list[ExamGrade]) -> Student:
    """Set grades by exam position. Re-applying the same grades changes nothing."""
    with transaction(db_path) as conn:
        student = _require_student(conn, student_id)
        _apply_grades(student, exam_grades)
        write_student(conn, student)
    log.info("grades_updated", student_id=student_id, count=len(exam_grades))
    return student


def _ineligibility(student: Student, result: dict) -> list[str]:
    reasons = []
    if not result["feeComplete"]:
        reasons.append(f"fee incomplete (balance {fee_balance(student):,.0f})")
    if not student.exams:
        reasons.append("no exams recorded")
    elif not result["gradesComplete"]:
        ungraded = [e.name for e in student.exams if not e.is_graded]
        reasons.append(f"ungraded exams: {', '.join(ungraded)}")
    return reasons


def graduate(
    db_path: str,
    student_id: str,
    exam_grades: Optional[list[ExamGrade]] = None,
    today: Optional[date] = None,
) -> Alumnus:
    """Promote an eligible student to alumnus in one transaction.

    Grades passed here are applied first and are rolled back together with
    everything else when the checklist is not satisfied.
    """
    today = today or date.today()
    with transaction(db_path) as conn:
        student = _require_student(conn, student_id)
        if exam_grades:
            _apply_grades(student, exam_grades)
        result = checklist(student)
        if not result["eligible"]:
            reasons = _ineligibility(student, result)
            raise PreconditionFailed(
                f"student {student_id} cannot graduate: {'; '.join(reasons)}",
                {"student_id": student_id, **result, "reasons": reasons},
            )

        student.is_alumni = True
        write_student(conn, student)
        alumnus = Alumnus(
            id=student.id,
            student_id=student.id,
            name=student.name,
            course_id=student.course_id,
            exams=student.exams,
            gpa=compute_gpa(student.exams),
            graduation_date=today.isoformat(),
        )
        conn.execute(
            "INSERT INTO alumni (id, student_id, course_id, exams, gpa, graduation_date) VALUES (?, ?, ?, ?, ?, ?)",
            (alumnus.id, alumnus.student_id, alumnus.course_id, exams_to_json(alumnus.exams),
             alumnus.gpa, alumnus.graduation_date),
        )
        # settlements live in their own table and are untouched by the move
        moved = conn.execute(
            """UPDATE tutor_students SET roster = ?, certified_at = ?
            WHERE student_id = ? AND course_id = ? AND roster = ?""",
            (ROSTER_CERTIFIED, today.isoformat(), student.id, student.course_id, ROSTER_ACTIVE),
        ).rowcount
    log.info("student_graduated", student_id=student_id, gpa=alumnus.gpa, tutors_updated=moved)
    return alumnus


def _alumnus_from_row(conn: sqlite3.Connection, row: sqlite3.Row) -> Alumnus:
    cpd_rows = conn.execute(
        "SELECT * FROM cpd_records WHERE alumnus_id = ? ORDER BY year", (row["id"],)
    ).fetchall()
    return Alumnus(
        id=row["id"],
        student_id=row["student_id"],
        name=row["name"],
        course_id=row["course_id"],
        exams=exams_from_json(row["exams"]),
        gpa=row["gpa"] or 0.0,
        graduation_date=row["graduation_date"],
        cpd_records=[
            CpdRecord(
                alumnus_id=c["alumnus_id"], year=c["year"], date_taken=c["date_taken"],
                result=c["result"], score=c["score"], remarks=c["remarks"] or "",
            )
            for c in cpd_rows
        ],
    )


def fetch_alumnus(conn: sqlite3.Connection, alumnus_id: str) -> Alumnus:
    row = conn.execute(
        "SELECT a.*, s.name FROM alumni a JOIN students s ON s.id = a.student_id WHERE a.id = ?",
        (alumnus_id,),
    ).fetchone()
    if row is None:
        raise NotFound(f"alumnus {alumnus_id} not found", {"alumnus_id": alumnus_id})
    return _alumnus_from_row(conn, row)


def get_alumnus(db_path: str, alumnus_id: str) -> Alumnus:
    conn = get_connection(db_path)
    try:
        return fetch_alumnus(conn, alumnus_id)
    finally:
        conn.close()


def list_alumni(db_path: str) -> list[Alumnus]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT a.*, s.name FROM alumni a JOIN students s ON s.id = a.student_id "
        "ORDER BY a.graduation_date DESC, s.name"
    ).fetchall()
    alumni = [_alumnus_from_row(conn, r) for r in rows]
    conn.close()
    return alumni
