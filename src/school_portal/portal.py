"""Operations exposed to the admin client and the public verification view.

Every call takes an explicit AuthContext; mutations need the admin role.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

import structlog

from school_portal import allocator, graduation, ledger, registry, subscriptions
from school_portal.errors import Forbidden, ValidationError
from school_portal.log import acting_as
from school_portal.models import Alumnus, CpdRecord, Enrollment, ExamGrade, Settlement, Student
from school_portal.requests import (
    AssignRequest, CancelRequest, CpdRequest, ExamRequest, FeePaymentRequest, FeeUpdateRequest,
    GradeUpdateRequest, GraduateRequest, PaymentRequest, ReleaseRequest, SubscriptionPaymentRequest,
    parse_request,
)

log = structlog.get_logger(__name__)

ADMIN = "admin"
PUBLIC = "public"


@dataclass(frozen=True)
class AuthContext:
    actor: str
    role: str = ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def _require_admin(ctx: AuthContext, operation: str) -> None:
    if ctx is None or not ctx.is_admin:
        actor = ctx.actor if ctx else None
        log.warning("access_denied", operation=operation, actor=actor)
        raise Forbidden(f"{operation} requires an admin session", {"operation": operation, "actor": actor})


@contextmanager
def _admin_session(ctx: AuthContext, operation: str):
    _require_admin(ctx, operation)
    with acting_as(ctx.actor):
        yield


def _grades(items) -> list[ExamGrade]:
    return [ExamGrade(exam_index=i.exam_index, score=i.score) for i in items]


def list_assignments(ctx: AuthContext, db_path: str, course_id: Optional[str] = None) -> dict:
    with _admin_session(ctx, "listAssignments"):
        return registry.list_assignments(db_path, course_id)


def assign(ctx: AuthContext, db_path: str, course_id: str, student_id: str, tutor_id: str) -> Enrollment:
    with _admin_session(ctx, "assign"):
        return allocator.assign(db_path, course_id, student_id, tutor_id)


def cancel(ctx: AuthContext, db_path: str, course_id: str, student_id: str, reason: str) -> Enrollment:
    with _admin_session(ctx, "cancel"):
        return allocator.cancel(db_path, course_id, student_id, reason)


def release(ctx: AuthContext, db_path: str, course_id: str, student_id: str) -> Enrollment:
    with _admin_session(ctx, "release"):
        return allocator.release(db_path, course_id, student_id)


def process_payment(
    ctx: AuthContext, db_path: str, tutor_id: str, student_id: str,
    amount: float, phone: str, transaction_id: str,
) -> Settlement:
    with _admin_session(ctx, "processPayment"):
        return ledger.record_payment(db_path, tutor_id, student_id, amount, phone, transaction_id)


def finance_overview(ctx: AuthContext, db_path: str) -> dict:
    with _admin_session(ctx, "financeOverview"):
        return ledger.finance_overview(db_path)


def update_upfront_fee(ctx: AuthContext, db_path: str, student_id: str, upfront_fee: float) -> Student:
    with _admin_session(ctx, "updateUpfrontFee"):
        return ledger.set_upfront_fee(db_path, student_id, upfront_fee)


def record_fee_payment(ctx: AuthContext, db_path: str, student_id: str, amount: float) -> Student:
    with _admin_session(ctx, "recordFeePayment"):
        return ledger.record_fee_payment(db_path, student_id, amount)


def add_exam(ctx: AuthContext, db_path: str, student_id: str, name: str, score: str = "") -> Student:
    with _admin_session(ctx, "addExam"):
        return graduation.add_exam(db_path, student_id, name, score)


def update_exam_grades(ctx: AuthContext, db_path: str, student_id: str, exam_grades: list[ExamGrade]) -> Student:
    with _admin_session(ctx, "updateExamGrades"):
        return graduation.update_grades(db_path, student_id, exam_grades)


def graduate(
    ctx: AuthContext, db_path: str, student_id: str, exam_grades: Optional[list[ExamGrade]] = None,
) -> Alumnus:
    with _admin_session(ctx, "graduate"):
        return graduation.graduate(db_path, student_id, exam_grades)


def record_cpd(ctx: AuthContext, db_path: str, alumnus_id: str, **record) -> CpdRecord:
    with _admin_session(ctx, "recordCpd"):
        return subscriptions.record_cpd(db_path, alumnus_id, **record)


def subscription_stats(ctx: AuthContext, db_path: str, year: int) -> dict:
    with _admin_session(ctx, "subscriptionStats"):
        return subscriptions.stats_for_year(db_path, year)


def record_subscription_payment(
    ctx: AuthContext, db_path: str, alumnus_id: str, year: int, amount: float,
    payment_method: str, transaction_id: str = "",
) -> None:
    with _admin_session(ctx, "recordSubscriptionPayment"):
        subscriptions.record_subscription_payment(db_path, alumnus_id, year, amount, payment_method, transaction_id)


def practicing_history(ctx: AuthContext, db_path: str, alumnus_id: str) -> list[dict]:
    """Public: no admin role needed."""
    return subscriptions.practicing_history(db_path, alumnus_id)


def handle(ctx: AuthContext, db_path: str, payload: dict):
    """Validate a raw admin payload and run the operation its ``kind`` names.

    Every request kind is an admin mutation, so the role is checked before the
    payload is parsed.
    """
    kind = payload.get("kind") if isinstance(payload, dict) else None
    _require_admin(ctx, kind or "request")
    if not isinstance(payload, dict):
        raise ValidationError("request payload must be an object", {"payload": type(payload).__name__})
    request = parse_request(payload)
    match request:
        case AssignRequest():
            return assign(ctx, db_path, request.course_id, request.student_id, request.tutor_id)
        case CancelRequest():
            return cancel(ctx, db_path, request.course_id, request.student_id, request.reason)
        case ReleaseRequest():
            return release(ctx, db_path, request.course_id, request.student_id)
        case PaymentRequest():
            return process_payment(
                ctx, db_path, request.tutor_id, request.student_id,
                request.amount, request.phone, request.transaction_id,
            )
        case GradeUpdateRequest():
            return update_exam_grades(ctx, db_path, request.student_id, _grades(request.exam_grades))
        case GraduateRequest():
            return graduate(ctx, db_path, request.student_id, _grades(request.exam_grades))
        case FeeUpdateRequest():
            return update_upfront_fee(ctx, db_path, request.student_id, request.upfront_fee)
        case FeePaymentRequest():
            return record_fee_payment(ctx, db_path, request.student_id, request.amount)
        case ExamRequest():
            return add_exam(ctx, db_path, request.student_id, request.name, request.score)
        case CpdRequest():
            return record_cpd(
                ctx, db_path, request.alumnus_id, year=request.year, date_taken=request.date_taken,
                result=request.result, score=request.score, remarks=request.remarks,
            )
        case SubscriptionPaymentRequest():
            return record_subscription_payment(
                ctx, db_path, request.alumnus_id, request.year, request.amount,
                request.payment_method, request.transaction_id,
            )
