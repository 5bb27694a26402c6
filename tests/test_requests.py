import pytest

from school_portal.errors import ValidationError
from school_portal.requests import (
    AssignRequest, CpdRequest, ExamRequest, FeePaymentRequest, GradeUpdateRequest, GraduateRequest, PaymentRequest,
    SubscriptionPaymentRequest, parse_request,
)


def test_parse_assign():
    request = parse_request({"kind": "assign", "course_id": "C1", "student_id": " S1 ", "tutor_id": "T1"})
    assert isinstance(request, AssignRequest)
    assert request.student_id == "S1"


def test_parse_payment_coerces_numeric_string():
    request = parse_request({
        "kind": "payment", "tutor_id": "T1", "student_id": "S1",
        "amount": "7500", "phone": "0712345678", "transaction_id": "TX1",
    })
    assert isinstance(request, PaymentRequest)
    assert request.amount == 7500.0


def test_parse_grades():
    request = parse_request({
        "kind": "grades", "student_id": "S1",
        "exam_grades": [{"exam_index": 0, "score": "Merit"}, {"exam_index": 1, "score": "Pass"}],
    })
    assert isinstance(request, GradeUpdateRequest)
    assert [g.score for g in request.exam_grades] == ["Merit", "Pass"]


def test_graduate_grades_are_optional():
    request = parse_request({"kind": "graduate", "student_id": "S1"})
    assert isinstance(request, GraduateRequest)
    assert request.exam_grades == []


def test_parse_cpd_and_subscription():
    cpd = parse_request({"kind": "cpd", "alumnus_id": "S1", "year": 2024, "result": "pass", "score": 12})
    assert isinstance(cpd, CpdRequest)
    sub = parse_request({
        "kind": "subscription", "alumnus_id": "S1", "year": 2024, "amount": 1000, "payment_method": "bank",
    })
    assert isinstance(sub, SubscriptionPaymentRequest)
    assert sub.transaction_id == ""


@pytest.mark.parametrize("payload", [
    {"kind": "assign", "course_id": "C1", "student_id": "S1", "tutor_id": "  "},
    {"kind": "assign", "course_id": "C1", "student_id": "S1"},
    {"kind": "cancel", "course_id": "C1", "student_id": "S1", "reason": ""},
    {"kind": "payment", "tutor_id": "T1", "student_id": "S1", "amount": 0, "phone": "07", "transaction_id": "X"},
    {"kind": "payment", "tutor_id": "T1", "student_id": "S1", "amount": "lots", "phone": "07", "transaction_id": "X"},
    {"kind": "grades", "student_id": "S1", "exam_grades": []},
    {"kind": "grades", "student_id": "S1", "exam_grades": [{"exam_index": 0, "score": "A"}]},
    {"kind": "grades", "student_id": "S1", "exam_grades": [{"exam_index": -1, "score": "Pass"}]},
    {"kind": "fee", "student_id": "S1", "upfront_fee": -1},
    {"kind": "cpd", "alumnus_id": "S1", "year": 2024, "result": "maybe"},
    {"kind": "subscription", "alumnus_id": "S1", "year": 2024, "amount": 1000, "payment_method": "cheque"},
    {"kind": "teleport", "student_id": "S1"},
    {"course_id": "C1"},
])
def test_invalid_payloads(payload):
    with pytest.raises(ValidationError, match="invalid request"):
        parse_request(payload)


def test_unknown_fields_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_request({"kind": "release", "course_id": "C1", "student_id": "S1", "tutor_id": "T1"})
    assert exc.value.details["kind"] == "release"
    assert exc.value.details["errors"][0]["loc"][-1] == "tutor_id"


def test_parse_exam_and_fee_payment():
    exam = parse_request({"kind": "exam", "student_id": "S1", "name": "Anatomy"})
    assert isinstance(exam, ExamRequest)
    assert exam.score == ""
    with pytest.raises(ValidationError):
        parse_request({"kind": "exam", "student_id": "S1", "name": "Anatomy", "score": "A+"})
    payment = parse_request({"kind": "fee_payment", "student_id": "S1", "amount": 2500})
    assert isinstance(payment, FeePaymentRequest)
    with pytest.raises(ValidationError):
        parse_request({"kind": "fee_payment", "student_id": "S1", "amount": 0})
