from school_portal.db import init_db, get_connection
from school_portal.models import ASSIGNED, PENDING
from school_portal.registry import get, get_student, get_tutor, list_courses
from school_portal.seed import is_seeded, load_demo_data, seed_all, seed_demo_school


def test_demo_data_references_are_consistent():
    data = load_demo_data()
    course_ids = {c["id"] for c in data["courses"]}
    tutor_ids = {t["id"] for t in data["tutors"]}
    student_ids = {s["id"] for s in data["students"]}
    assert all(s["course_id"] in course_ids for s in data["students"])
    for a in data["assignments"]:
        assert a["tutor_id"] in tutor_ids
        assert a["student_id"] in student_ids


def test_is_seeded(tmp_db):
    init_db(tmp_db)
    assert not is_seeded(tmp_db)
    seed_demo_school(tmp_db)
    assert is_seeded(tmp_db)


def test_seed_demo_school(tmp_db):
    init_db(tmp_db)
    seed_demo_school(tmp_db)
    assert len(list_courses(tmp_db)) == 3
    assert get(tmp_db, "C-PT", "S-001").assignment_status == ASSIGNED
    assert get(tmp_db, "C-PT", "S-002").assignment_status == PENDING
    assert [e.student_id for e in get_tutor(tmp_db, "T-001").my_students] == ["S-001"]
    student = get_student(tmp_db, "S-001")
    assert student.course_fee == 50000
    assert [e.score for e in student.exams] == ["Merit", ""]


def test_seed_all_idempotent(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    seed_all(tmp_db)  # second call should be no-op
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM students").fetchone()[0] == 4
    assert conn.execute("SELECT COUNT(*) FROM tutor_students").fetchone()[0] == 2
    conn.close()
