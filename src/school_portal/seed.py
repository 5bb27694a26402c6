"""Seed the database with a small demo school for the admin console."""
import json
from pathlib import Path

from school_portal.allocator import assign
from school_portal.db import get_connection, transaction
from school_portal.models import Exam
from school_portal.registry import admit_student, create_course, create_tutor, exams_to_json

CONTENT_DIR = Path(__file__).parent / "content"


def is_seeded(db_path: str) -> bool:
    """Check whether the database already holds any courses."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM courses").fetchone()[0]
    conn.close()
    return count > 0


def load_demo_data() -> dict:
    return json.loads((CONTENT_DIR / "demo_school.json").read_text())


def seed_demo_school(db_path: str) -> None:
    """Insert the demo courses, tutors, students and initial assignments."""
    data = load_demo_data()
    for course in data["courses"]:
        create_course(db_path, course["id"], course["name"], course["fee"])
    for tutor in data["tutors"]:
        create_tutor(db_path, tutor["id"], tutor["name"], tutor["phone"])
    for student in data["students"]:
        admit_student(
            db_path, student["id"], student["name"], student["course_id"],
            admission_number=student["admission_number"], upfront_fee=student["upfront_fee"],
        )
        if student["exams"]:
            exams = [Exam(name=e["name"], score=e["score"]) for e in student["exams"]]
            with transaction(db_path) as conn:
                conn.execute("UPDATE students SET exams = ? WHERE id = ?", (exams_to_json(exams), student["id"]))
    for a in data["assignments"]:
        assign(db_path, a["course_id"], a["student_id"], a["tutor_id"])


def seed_all(db_path: str) -> None:
    """Seed the demo school unless the database already has data."""
    if is_seeded(db_path):
        return
    seed_demo_school(db_path)
