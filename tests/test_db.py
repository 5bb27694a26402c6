"""Tests for database initialization and connection management."""
import sqlite3

import pytest

from school_portal.db import init_db, get_connection, transaction


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    tables = {row[0] for row in cursor.fetchall()}
    expected = {
        "courses", "students", "tutors", "enrollments", "tutor_students",
        "settlements", "alumni", "cpd_records", "subscription_payments",
    }
    assert expected.issubset(tables)
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)  # should not raise
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    assert len(cursor.fetchall()) > 0
    conn.close()


def test_get_connection_returns_row_factory(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO tutors (id, name, phone) VALUES ('T9', 'Test', '07')")
    row = conn.execute("SELECT id, name FROM tutors WHERE id='T9'").fetchone()
    assert row["name"] == "Test"
    conn.close()


def test_transaction_commits(tmp_db):
    init_db(tmp_db)
    with transaction(tmp_db) as conn:
        conn.execute("INSERT INTO tutors (id, name) VALUES ('T1', 'Grace')")
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM tutors").fetchone()[0] == 1
    conn.close()


def test_transaction_rolls_back_on_error(tmp_db):
    init_db(tmp_db)
    with pytest.raises(RuntimeError):
        with transaction(tmp_db) as conn:
            conn.execute("INSERT INTO tutors (id, name) VALUES ('T1', 'Grace')")
            raise RuntimeError("boom")
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM tutors").fetchone()[0] == 0
    conn.close()


def test_second_writer_is_refused_while_transaction_open(tmp_db):
    init_db(tmp_db)
    with transaction(tmp_db) as conn:
        conn.execute("INSERT INTO tutors (id, name) VALUES ('T1', 'Grace')")
        with pytest.raises(sqlite3.OperationalError, match="locked"):
            with transaction(tmp_db, timeout=0.1) as other:
                other.execute("INSERT INTO tutors (id, name) VALUES ('T2', 'Brian')")
    conn = get_connection(tmp_db)
    assert [r["id"] for r in conn.execute("SELECT id FROM tutors")] == ["T1"]
    conn.close()


def test_writer_proceeds_once_lock_released(tmp_db):
    init_db(tmp_db)
    with transaction(tmp_db) as conn:
        conn.execute("INSERT INTO tutors (id, name) VALUES ('T1', 'Grace')")
    with transaction(tmp_db, timeout=0.1) as conn:
        conn.execute("INSERT INTO tutors (id, name) VALUES ('T2', 'Brian')")
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM tutors").fetchone()[0] == 2
    conn.close()
