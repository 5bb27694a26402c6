"""Tutor revenue-share settlements and the student fee ledger."""
from datetime import datetime
from numbers import Real
from typing import Optional

import structlog

from school_portal.db import transaction
from school_portal.errors import NotFound, ValidationError
from school_portal.models import (
    DEFAULT_COURSE_FEE, FAILED, PAID, ROSTER_ACTIVE, ROSTER_CERTIFIED, TUTOR_SHARE_RATE,
    Settlement, Student, Tutor,
)
from school_portal.registry import (
    fetch_student, fetch_tutor, get_tutor, list_students, list_tutors, settlement_from_row,
    write_student,
)

log = structlog.get_logger(__name__)


def compute_share(course_fee: float) -> float:
    """Nominal amount owed to the tutor for one student's course fee."""
    return round(course_fee * TUTOR_SHARE_RATE, 2)


def effective_course_fee(course_fee: Optional[float], student_id: Optional[str] = None) -> float:
    """Course fee used for revenue figures, with the flat fallback for missing data."""
    if course_fee:
        return course_fee
    log.warning("course_fee_missing", student_id=student_id, fallback=DEFAULT_COURSE_FEE)
    return DEFAULT_COURSE_FEE


def require_amount(value, field: str, context: dict) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{field} must be a number", {**context, "field": field})
    return float(value)


def _roster_row(conn, tutor_id: str, student_id: str):
    row = conn.execute(
        """SELECT * FROM tutor_students
        WHERE tutor_id = ? AND student_id = ? AND roster IN (?, ?)
        ORDER BY assigned_at DESC LIMIT 1""",
        (tutor_id, student_id, ROSTER_ACTIVE, ROSTER_CERTIFIED),
    ).fetchone()
    if row is None:
        raise NotFound(
            f"student {student_id} not found in tutor {tutor_id} records",
            {"tutor_id": tutor_id, "student_id": student_id},
        )
    return row


def _write_settlement(conn, settlement: Settlement) -> None:
    conn.execute(
        """INSERT INTO settlements
        (student_id, course_id, tutor_id, status, amount, phone, transaction_id, time_of_payment)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(student_id, course_id) DO UPDATE SET
            tutor_id = excluded.tutor_id,
            status = excluded.status,
            amount = excluded.amount,
            phone = excluded.phone,
            transaction_id = excluded.transaction_id,
            time_of_payment = excluded.time_of_payment""",
        (
            settlement.student_id, settlement.course_id, settlement.tutor_id, settlement.status,
            settlement.amount, settlement.phone, settlement.transaction_id, settlement.time_of_payment,
        ),
    )


def record_payment(
    db_path: str,
    tutor_id: str,
    student_id: str,
    amount: float,
    phone: str,
    transaction_id: str,
    now: Optional[datetime] = None,
) -> Settlement:
    """Mark the tutor's share for a student as PAID.

    The amount is whatever the admin actually paid; it is not checked against
    the nominal share. Calling again overwrites the previous settlement.
    """
    context = {"tutor_id": tutor_id, "student_id": student_id}
    amount = require_amount(amount, "amount", context)
    if amount <= 0:
        raise ValidationError("payment amount must be positive", {**context, "field": "amount"})
    phone = (phone or "").strip()
    if not phone:
        raise ValidationError("payment phone number required", {**context, "field": "phone"})
    transaction_id = (transaction_id or "").strip()
    if not transaction_id:
        raise ValidationError("payment transaction id required", {**context, "field": "transaction_id"})

    with transaction(db_path) as conn:
        fetch_tutor(conn, tutor_id)
        row = _roster_row(conn, tutor_id, student_id)
        settlement = Settlement(
            student_id=student_id,
            course_id=row["course_id"],
            tutor_id=tutor_id,
            status=PAID,
            amount=amount,
            phone=phone,
            transaction_id=transaction_id,
            time_of_payment=(now or datetime.now()).isoformat(),
        )
        _write_settlement(conn, settlement)
    log.info("settlement_recorded", amount=amount, transaction_id=transaction_id, **context)
    return settlement


def mark_payment_failed(
    db_path: str, tutor_id: str, student_id: str, transaction_id: str = "",
) -> Settlement:
    """Record that a payout attempt to the tutor did not go through."""
    with transaction(db_path) as conn:
        fetch_tutor(conn, tutor_id)
        row = _roster_row(conn, tutor_id, student_id)
        existing = conn.execute(
            "SELECT * FROM settlements WHERE student_id = ? AND course_id = ? AND tutor_id = ?",
            (student_id, row["course_id"], tutor_id),
        ).fetchone()
        if existing is not None:
            settlement = settlement_from_row(existing)
        else:
            settlement = Settlement(student_id=student_id, course_id=row["course_id"], tutor_id=tutor_id)
        settlement.status = FAILED
        settlement.amount = None
        if transaction_id:
            settlement.transaction_id = transaction_id
        _write_settlement(conn, settlement)
    log.info("settlement_failed", tutor_id=tutor_id, student_id=student_id, transaction_id=transaction_id)
    return settlement


def aggregate(tutors: list[Tutor]) -> dict:
    """Roll every (tutor, student) pair into revenue figures.

    Settled pairs count the amount actually paid; unsettled pairs count the
    nominal share, so adminRevenue mixes actual and nominal deductions.
    """
    total_revenue = 0.0
    paid_to_tutors = 0.0
    pending_to_tutors = 0.0
    admin_revenue = 0.0
    for tutor in tutors:
        for entry in tutor.my_students + tutor.certified_students:
            course_fee = effective_course_fee(entry.course_fee, entry.student_id)
            total_revenue += course_fee
            settlement = entry.settlement
            if settlement is not None and settlement.status == PAID and settlement.amount:
                paid_to_tutors += settlement.amount
                admin_revenue += course_fee - settlement.amount
            else:
                share = compute_share(course_fee)
                pending_to_tutors += share
                admin_revenue += course_fee - share
    return {
        "totalRevenue": total_revenue,
        "totalPaidToTutors": paid_to_tutors,
        "totalPendingToTutors": pending_to_tutors,
        "adminRevenue": admin_revenue,
    }


def finance_overview(db_path: str) -> dict:
    tutors = list_tutors(db_path)
    overview = aggregate(tutors)
    overview["totalStudents"] = sum(len(t.my_students) + len(t.certified_students) for t in tutors)
    overview["totalTutors"] = len(tutors)
    return overview


def summarize_tutor(tutor: Tutor) -> dict:
    earned = 0.0
    pending = 0.0
    paid_students = 0
    pending_students = 0
    entries = tutor.my_students + tutor.certified_students
    for entry in entries:
        settlement = entry.settlement
        if settlement is not None and settlement.status == PAID and settlement.amount:
            earned += settlement.amount
            paid_students += 1
        else:
            pending += compute_share(effective_course_fee(entry.course_fee, entry.student_id))
            pending_students += 1
    return {
        "totalEarned": earned,
        "pendingAmount": pending,
        "totalStudents": len(entries),
        "paidStudents": paid_students,
        "pendingStudents": pending_students,
    }


def tutor_settlement_summary(db_path: str, tutor_id: str) -> dict:
    return summarize_tutor(get_tutor(db_path, tutor_id))


# --- student fee ledger ------------------------------------------------------

def fee_balance(student: Student) -> float:
    return max(0.0, (student.course_fee or 0) - (student.upfront_fee or 0))


def set_upfront_fee(db_path: str, student_id: str, upfront_fee: float) -> Student:
    """Overwrite the amount paid so far (admin adjustment)."""
    upfront_fee = require_amount(upfront_fee, "upfront_fee", {"student_id": student_id})
    if upfront_fee < 0:
        raise ValidationError(
            "upfront fee cannot be negative", {"student_id": student_id, "field": "upfront_fee"}
        )
    with transaction(db_path) as conn:
        student = fetch_student(conn, student_id)
        previous = student.upfront_fee
        student.upfront_fee = upfront_fee
        write_student(conn, student)
    log.info("upfront_fee_updated", student_id=student_id, previous=previous, upfront_fee=upfront_fee)
    return student


def record_fee_payment(db_path: str, student_id: str, amount: float) -> Student:
    """Add a fee installment to the amount the student has paid."""
    amount = require_amount(amount, "amount", {"student_id": student_id})
    if amount <= 0:
        raise ValidationError("fee payment must be positive", {"student_id": student_id, "field": "amount"})
    with transaction(db_path) as conn:
        student = fetch_student(conn, student_id)
        student.upfront_fee = (student.upfront_fee or 0) + amount
        write_student(conn, student)
    log.info("fee_payment_recorded", student_id=student_id, amount=amount, upfront_fee=student.upfront_fee)
    return student


def fee_collection_summary(db_path: str) -> dict:
    students = list_students(db_path)
    return {
        "totalStudents": len(students),
        "expectedFee": sum(s.course_fee or 0 for s in students),
        "collectedFee": sum(s.upfront_fee or 0 for s in students),
        "outstandingBalance": sum(fee_balance(s) for s in students),
    }
