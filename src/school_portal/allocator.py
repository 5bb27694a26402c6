"""Tutor assignment: PENDING -> ASSIGNED / CANCELLED transitions."""
from datetime import datetime

import structlog

from school_portal.db import transaction
from school_portal.errors import PreconditionFailed, ValidationError
from school_portal.models import (
    ASSIGNED, CANCELLED, PENDING, ROSTER_ACTIVE, ROSTER_RELEASED, Enrollment,
)
from school_portal.registry import fetch_enrollment, fetch_tutor, write_enrollment

log = structlog.get_logger(__name__)


def assign(db_path: str, course_id: str, student_id: str, tutor_id: str) -> Enrollment:
    """Bind a pending enrollment to a tutor and add the student to their roster.

    Assigning to the tutor already holding the enrollment is a no-op. Moving an
    ASSIGNED enrollment to a different tutor requires ``release`` first, and a
    CANCELLED enrollment cannot be assigned.
    """
    tutor_id = (tutor_id or "").strip()
    if not tutor_id:
        raise ValidationError(
            "tutor is required to assign a student",
            {"course_id": course_id, "student_id": student_id, "field": "tutor_id"},
        )
    with transaction(db_path) as conn:
        enrollment = fetch_enrollment(conn, course_id, student_id)
        fetch_tutor(conn, tutor_id)
        if enrollment.assignment_status == CANCELLED:
            raise PreconditionFailed(
                f"enrollment of student {student_id} in course {course_id} is cancelled",
                {"course_id": course_id, "student_id": student_id, "status": CANCELLED},
            )
        if enrollment.assignment_status == ASSIGNED:
            if enrollment.tutor_id == tutor_id:
                return enrollment
            raise PreconditionFailed(
                f"student {student_id} is already assigned to tutor {enrollment.tutor_id}; release it first",
                {"course_id": course_id, "student_id": student_id, "tutor_id": enrollment.tutor_id},
            )

        now = datetime.now().isoformat()
        enrollment.assignment_status = ASSIGNED
        enrollment.tutor_id = tutor_id
        enrollment.updated_at = now
        write_enrollment(conn, enrollment)
        conn.execute(
            """INSERT INTO tutor_students (tutor_id, student_id, course_id, roster, assigned_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(tutor_id, student_id, course_id) DO UPDATE SET
                roster = excluded.roster, assigned_at = excluded.assigned_at""",
            (tutor_id, student_id, course_id, ROSTER_ACTIVE, now),
        )
    log.info("student_assigned", course_id=course_id, student_id=student_id, tutor_id=tutor_id)
    return enrollment


def cancel(db_path: str, course_id: str, student_id: str, reason: str) -> Enrollment:
    """Cancel an enrollment.

    The tutor binding stays on the enrollment for audit, but the student leaves
    the tutor's active roster so no share is owed for them.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError(
            "cancel reason required",
            {"course_id": course_id, "student_id": student_id, "field": "reason"},
        )
    with transaction(db_path) as conn:
        enrollment = fetch_enrollment(conn, course_id, student_id)
        if enrollment.assignment_status == ASSIGNED:
            conn.execute(
                """UPDATE tutor_students SET roster = ?
                WHERE tutor_id = ? AND student_id = ? AND course_id = ? AND roster = ?""",
                (ROSTER_RELEASED, enrollment.tutor_id, student_id, course_id, ROSTER_ACTIVE),
            )
        enrollment.assignment_status = CANCELLED
        enrollment.admin_notes = reason
        enrollment.updated_at = datetime.now().isoformat()
        write_enrollment(conn, enrollment)
    log.info("enrollment_cancelled", course_id=course_id, student_id=student_id, reason=reason)
    return enrollment


def release(db_path: str, course_id: str, student_id: str) -> Enrollment:
    """Return an ASSIGNED enrollment to PENDING so it can be re-assigned."""
    with transaction(db_path) as conn:
        enrollment = fetch_enrollment(conn, course_id, student_id)
        if enrollment.assignment_status != ASSIGNED:
            raise PreconditionFailed(
                f"only assigned enrollments can be released; student {student_id} is "
                f"{enrollment.assignment_status}",
                {"course_id": course_id, "student_id": student_id, "status": enrollment.assignment_status},
            )
        previous_tutor = enrollment.tutor_id
        conn.execute(
            """UPDATE tutor_students SET roster = ?
            WHERE tutor_id = ? AND student_id = ? AND course_id = ? AND roster = ?""",
            (ROSTER_RELEASED, previous_tutor, student_id, course_id, ROSTER_ACTIVE),
        )
        enrollment.assignment_status = PENDING
        enrollment.tutor_id = None
        enrollment.updated_at = datetime.now().isoformat()
        write_enrollment(conn, enrollment)
    log.info("assignment_released", course_id=course_id, student_id=student_id, tutor_id=previous_tutor)
    return enrollment
