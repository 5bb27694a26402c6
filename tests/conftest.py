import pytest

from school_portal.db import init_db
from school_portal.registry import admit_student, create_course, create_tutor


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_portal.db")
    return db_path


@pytest.fixture
def school(tmp_db):
    """One course (fee 50,000), one tutor and one admitted, pending student."""
    init_db(tmp_db)
    create_course(tmp_db, "C1", "Personal Training Certificate", 50000)
    create_tutor(tmp_db, "T1", "Grace Wanjiru", "0712345678")
    admit_student(tmp_db, "S1", "Amina Njeri", "C1", admission_number="ADM/2024/001")
    return tmp_db
