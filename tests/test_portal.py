from unittest.mock import patch

import pytest
from structlog.contextvars import get_contextvars

from school_portal import portal
from school_portal.errors import Forbidden, NotFound, ValidationError
from school_portal.graduation import add_exam
from school_portal.models import ASSIGNED, PAID, Alumnus, Enrollment, ExamGrade, Settlement
from school_portal.portal import ADMIN, PUBLIC, AuthContext, handle
from school_portal.registry import get, get_student

admin = AuthContext(actor="registrar", role=ADMIN)
visitor = AuthContext(actor="anonymous", role=PUBLIC)


def test_default_role_is_admin():
    assert AuthContext(actor="registrar").is_admin


@pytest.mark.parametrize("call", [
    lambda db: portal.list_assignments(visitor, db, "C1"),
    lambda db: portal.assign(visitor, db, "C1", "S1", "T1"),
    lambda db: portal.cancel(visitor, db, "C1", "S1", "duplicate"),
    lambda db: portal.process_payment(visitor, db, "T1", "S1", 7500, "0712345678", "TX1"),
    lambda db: portal.finance_overview(visitor, db),
    lambda db: portal.update_upfront_fee(visitor, db, "S1", 50000),
    lambda db: portal.graduate(visitor, db, "S1"),
    lambda db: portal.subscription_stats(visitor, db, 2024),
    lambda db: portal.assign(None, db, "C1", "S1", "T1"),
])
def test_mutations_and_admin_views_need_admin(school, call):
    with pytest.raises(Forbidden, match="requires an admin session"):
        call(school)
    assert get(school, "C1", "S1").assignment_status == "PENDING"


def test_admin_can_assign(school):
    enrollment = portal.assign(admin, school, "C1", "S1", "T1")
    assert enrollment.assignment_status == ASSIGNED


def test_practicing_history_is_public(school):
    with pytest.raises(NotFound):
        portal.practicing_history(visitor, school, "S1")


def test_handle_assign(school):
    result = handle(admin, school, {"kind": "assign", "course_id": "C1", "student_id": "S1", "tutor_id": "T1"})
    assert isinstance(result, Enrollment)
    assert result.tutor_id == "T1"


def test_handle_payment(school):
    handle(admin, school, {"kind": "assign", "course_id": "C1", "student_id": "S1", "tutor_id": "T1"})
    result = handle(admin, school, {
        "kind": "payment", "tutor_id": "T1", "student_id": "S1",
        "amount": 7500, "phone": "0712345678", "transaction_id": "TX1",
    })
    assert isinstance(result, Settlement)
    assert result.status == PAID


def test_handle_fee_and_graduate(school):
    add_exam(school, "S1", "Anatomy")
    handle(admin, school, {"kind": "fee", "student_id": "S1", "upfront_fee": 50000})
    result = handle(admin, school, {
        "kind": "graduate", "student_id": "S1", "exam_grades": [{"exam_index": 0, "score": "Credit"}],
    })
    assert isinstance(result, Alumnus)
    assert result.gpa == 3.0
    assert get_student(school, "S1").is_alumni


def test_handle_rejects_invalid_payload_before_touching_data(school):
    with pytest.raises(ValidationError):
        handle(admin, school, {"kind": "assign", "course_id": "C1", "student_id": "S1", "tutor_id": ""})
    assert get(school, "C1", "S1").assignment_status == "PENDING"


def test_handle_rejects_non_dict(school):
    with pytest.raises(ValidationError, match="must be an object"):
        handle(admin, school, ["assign"])


def test_handle_checks_role(school):
    with pytest.raises(Forbidden):
        handle(visitor, school, {"kind": "release", "course_id": "C1", "student_id": "S1"})


def test_update_exam_grades_through_portal(school):
    add_exam(school, "S1", "Anatomy")
    student = portal.update_exam_grades(admin, school, "S1", [ExamGrade(0, "Distinction")])
    assert student.exams[0].score == "Distinction"
    with pytest.raises(Forbidden):
        portal.update_exam_grades(visitor, school, "S1", [ExamGrade(0, "Fail")])


def test_actor_bound_only_while_operation_runs(school):
    seen = {}

    def fake_assign(*args):
        seen.update(get_contextvars())

    with patch("school_portal.portal.allocator.assign", side_effect=fake_assign):
        portal.assign(admin, school, "C1", "S1", "T1")
    assert seen["actor"] == "registrar"
    assert "actor" not in get_contextvars()


def test_actor_unbound_after_failed_operation(school):
    with pytest.raises(NotFound):
        portal.assign(admin, school, "C1", "S9", "T1")
    assert "actor" not in get_contextvars()


def test_handle_checks_role_before_parsing(school):
    with pytest.raises(Forbidden):
        handle(visitor, school, {"kind": "assign", "course_id": "C1"})
    with pytest.raises(Forbidden):
        handle(visitor, school, ["not", "a", "payload"])


def test_handle_add_exam_and_fee_payment(school):
    student = handle(admin, school, {"kind": "exam", "student_id": "S1", "name": "Anatomy"})
    assert [(e.name, e.score) for e in student.exams] == [("Anatomy", "")]
    handle(admin, school, {"kind": "fee_payment", "student_id": "S1", "amount": 20000})
    student = handle(admin, school, {"kind": "fee_payment", "student_id": "S1", "amount": 30000})
    assert student.upfront_fee == 50000
