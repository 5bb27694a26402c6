"""Database initialization and connection management."""
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from school_portal.config import get_settings

DEFAULT_DB_PATH = get_settings().db_path

SCHEMA = """
CREATE TABLE IF NOT EXISTS courses (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    fee REAL
);

CREATE TABLE IF NOT EXISTS students (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    course_id TEXT REFERENCES courses(id),
    admission_number TEXT,
    course_fee REAL,
    upfront_fee REAL DEFAULT 0,
    phone TEXT,
    email TEXT,
    exams TEXT DEFAULT '[]',  -- JSON
    is_alumni INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS tutors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    phone TEXT
);

CREATE TABLE IF NOT EXISTS enrollments (
    course_id TEXT NOT NULL REFERENCES courses(id),
    student_id TEXT NOT NULL REFERENCES students(id),
    assignment_status TEXT NOT NULL DEFAULT 'PENDING',
    tutor_id TEXT REFERENCES tutors(id),
    admin_notes TEXT,
    updated_at TEXT,
    PRIMARY KEY (course_id, student_id)
);

CREATE TABLE IF NOT EXISTS tutor_students (
    tutor_id TEXT NOT NULL REFERENCES tutors(id),
    student_id TEXT NOT NULL REFERENCES students(id),
    course_id TEXT NOT NULL REFERENCES courses(id),
    roster TEXT NOT NULL DEFAULT 'active',
    assigned_at TEXT,
    certified_at TEXT,
    PRIMARY KEY (tutor_id, student_id, course_id)
);

CREATE TABLE IF NOT EXISTS settlements (
    student_id TEXT NOT NULL REFERENCES students(id),
    course_id TEXT NOT NULL REFERENCES courses(id),
    tutor_id TEXT NOT NULL REFERENCES tutors(id),
    status TEXT NOT NULL DEFAULT 'PENDING',
    amount REAL,
    phone TEXT,
    transaction_id TEXT,
    time_of_payment TEXT,
    PRIMARY KEY (student_id, course_id)
);

CREATE TABLE IF NOT EXISTS alumni (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL UNIQUE REFERENCES students(id),
    course_id TEXT REFERENCES courses(id),
    exams TEXT DEFAULT '[]',  -- JSON
    gpa REAL,
    graduation_date TEXT
);

CREATE TABLE IF NOT EXISTS cpd_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    alumnus_id TEXT NOT NULL REFERENCES alumni(id),
    year INTEGER NOT NULL,
    date_taken TEXT,
    result TEXT,
    score REAL,
    remarks TEXT,
    UNIQUE(alumnus_id, year)
);

CREATE TABLE IF NOT EXISTS subscription_payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    alumnus_id TEXT NOT NULL REFERENCES alumni(id),
    year INTEGER NOT NULL,
    amount REAL NOT NULL,
    payment_method TEXT NOT NULL,
    transaction_id TEXT,
    payment_date TEXT,
    UNIQUE(alumnus_id, year)
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 5.0) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled.

    ``timeout`` is how long to wait for another writer's lock before failing.
    """
    conn = sqlite3.connect(db_path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


@contextmanager
def transaction(db_path: str = DEFAULT_DB_PATH, timeout: float = 5.0):
    """Yield a connection holding the database write lock for one unit of work.

    BEGIN IMMEDIATE takes the write lock before the first read, so the
    read-validate-write sequence of a mutation never interleaves with
    another writer. Any exception rolls the whole unit back.
    """
    conn = get_connection(db_path, timeout)
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()
