"""Tests for data model classes."""
from school_portal.models import (
    PENDING, Alumnus, Enrollment, Exam, RosterEntry, Settlement, Student, Tutor,
)


def test_enrollment_defaults():
    e = Enrollment(course_id="C1", student_id="S1")
    assert e.assignment_status == PENDING
    assert e.tutor_id is None
    assert e.admin_notes is None


def test_student_defaults():
    s = Student(id="S1", name="Amina")
    assert s.upfront_fee == 0.0
    assert s.course_fee is None
    assert s.exams == []
    assert s.is_alumni is False


def test_exam_is_graded():
    assert Exam(name="Anatomy", score="Merit").is_graded
    assert Exam(name="Anatomy", score="Fail").is_graded
    assert not Exam(name="Anatomy").is_graded
    assert not Exam(name="Anatomy", score="A+").is_graded


def test_settlement_defaults():
    st = Settlement(student_id="S1", course_id="C1", tutor_id="T1")
    assert st.status == PENDING
    assert st.amount is None
    assert st.time_of_payment is None


def test_tutor_assigned_count_follows_active_roster():
    t = Tutor(
        id="T1", name="Grace",
        my_students=[RosterEntry(student_id="S1", course_id="C1"), RosterEntry(student_id="S2", course_id="C1")],
        certified_students=[RosterEntry(student_id="S3", course_id="C1")],
    )
    assert t.assigned_count == 2


def test_alumnus_defaults():
    a = Alumnus(id="S1", student_id="S1")
    assert a.gpa == 0.0
    assert a.cpd_records == []
