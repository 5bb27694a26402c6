"""Yearly CPD records, subscription payments and practicing status for alumni."""
from datetime import date, datetime
from typing import Optional

import structlog

from school_portal.db import get_connection, transaction
from school_portal.errors import ValidationError
from school_portal.graduation import fetch_alumnus, get_alumnus
from school_portal.ledger import require_amount
from school_portal.models import ACTIVE, CPD_RESULTS, INACTIVE, PAYMENT_METHODS, Alumnus, CpdRecord

log = structlog.get_logger(__name__)

EARLIEST_YEAR = 1900


def _check_year(year, alumnus_id: str) -> int:
    if isinstance(year, bool) or not isinstance(year, int) or year < EARLIEST_YEAR:
        raise ValidationError(f"invalid year {year!r}", {"alumnus_id": alumnus_id, "field": "year"})
    return year


def record_cpd(
    db_path: str,
    alumnus_id: str,
    year: int,
    date_taken: Optional[str] = None,
    result: Optional[str] = None,
    score: Optional[float] = None,
    remarks: str = "",
) -> CpdRecord:
    """Create or overwrite the alumnus's CPD record for a year."""
    year = _check_year(year, alumnus_id)
    if result is not None and result not in CPD_RESULTS:
        raise ValidationError(
            f"CPD result must be one of {', '.join(CPD_RESULTS)}",
            {"alumnus_id": alumnus_id, "year": year, "field": "result"},
        )
    if score is not None:
        score = require_amount(score, "score", {"alumnus_id": alumnus_id, "year": year})
        if score < 0:
            raise ValidationError(
                "CPD points cannot be negative", {"alumnus_id": alumnus_id, "year": year, "field": "score"}
            )
    record = CpdRecord(
        alumnus_id=alumnus_id, year=year, date_taken=date_taken,
        result=result, score=score, remarks=remarks or "",
    )
    with transaction(db_path) as conn:
        fetch_alumnus(conn, alumnus_id)
        conn.execute(
            """INSERT INTO cpd_records (alumnus_id, year, date_taken, result, score, remarks)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(alumnus_id, year) DO UPDATE SET
                date_taken = excluded.date_taken, result = excluded.result,
                score = excluded.score, remarks = excluded.remarks""",
            (alumnus_id, year, date_taken, result, score, record.remarks),
        )
    log.info("cpd_recorded", alumnus_id=alumnus_id, year=year, result=result)
    return record


def record_subscription_payment(
    db_path: str,
    alumnus_id: str,
    year: int,
    amount: float,
    payment_method: str,
    transaction_id: str = "",
    payment_date: Optional[datetime] = None,
) -> None:
    """Record the yearly subscription fee; a second payment for a year replaces the first."""
    year = _check_year(year, alumnus_id)
    context = {"alumnus_id": alumnus_id, "year": year}
    amount = require_amount(amount, "amount", context)
    if amount <= 0:
        raise ValidationError("subscription amount must be positive", {**context, "field": "amount"})
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment method must be one of {', '.join(PAYMENT_METHODS)}",
            {**context, "field": "payment_method"},
        )
    with transaction(db_path) as conn:
        fetch_alumnus(conn, alumnus_id)
        conn.execute(
            """INSERT INTO subscription_payments
            (alumnus_id, year, amount, payment_method, transaction_id, payment_date)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(alumnus_id, year) DO UPDATE SET
                amount = excluded.amount, payment_method = excluded.payment_method,
                transaction_id = excluded.transaction_id, payment_date = excluded.payment_date""",
            (alumnus_id, year, amount, payment_method, transaction_id or "",
             (payment_date or datetime.now()).isoformat()),
        )
    log.info("subscription_payment_recorded", amount=amount, payment_method=payment_method, **context)


def years_covered(alumnus: Alumnus, current_year: Optional[int] = None) -> list[int]:
    """Every year from the earliest CPD record up to now, newest first."""
    if not alumnus.cpd_records:
        return []
    current_year = current_year or date.today().year
    oldest = min(r.year for r in alumnus.cpd_records)
    return list(range(current_year, oldest - 1, -1))


def practicing_status(alumnus: Alumnus, year: int) -> str:
    # TODO: switch to subscription payments once the owners decide which stream is authoritative
    return ACTIVE if any(r.year == year for r in alumnus.cpd_records) else INACTIVE


def current_practice_status(alumnus: Alumnus, current_year: Optional[int] = None) -> str:
    return practicing_status(alumnus, current_year or date.today().year)


def history_for(alumnus: Alumnus, current_year: Optional[int] = None) -> list[dict]:
    by_year = {r.year: r for r in alumnus.cpd_records}
    return [
        {
            "year": year,
            "status": practicing_status(alumnus, year),
            "cpdPoints": by_year[year].score if year in by_year else None,
        }
        for year in years_covered(alumnus, current_year)
    ]


def practicing_history(db_path: str, alumnus_id: str, current_year: Optional[int] = None) -> list[dict]:
    return history_for(get_alumnus(db_path, alumnus_id), current_year)


def stats_for_year(db_path: str, year: int, current_year: Optional[int] = None) -> dict:
    """Subscription counts and revenue for one year.

    Alumni who graduated after ``year`` are not counted. Unpaid alumni are
    pending while the year is still open and expired once it has passed.
    """
    current_year = current_year or date.today().year
    conn = get_connection(db_path)
    alumni = conn.execute(
        """SELECT a.id, s.name FROM alumni a JOIN students s ON s.id = a.student_id
        WHERE a.graduation_date IS NULL OR CAST(substr(a.graduation_date, 1, 4) AS INTEGER) <= ?
        ORDER BY s.name""",
        (year,),
    ).fetchall()
    payments = conn.execute(
        """SELECT p.*, s.name FROM subscription_payments p
        JOIN alumni a ON a.id = p.alumnus_id
        JOIN students s ON s.id = a.student_id
        WHERE p.year = ? ORDER BY p.payment_date""",
        (year,),
    ).fetchall()
    conn.close()

    paid_ids = {p["alumnus_id"] for p in payments}
    unpaid = sum(1 for a in alumni if a["id"] not in paid_ids)
    revenue_by_method: dict[str, float] = {}
    for p in payments:
        revenue_by_method[p["payment_method"]] = revenue_by_method.get(p["payment_method"], 0.0) + p["amount"]
    return {
        "year": year,
        "paid": len(paid_ids),
        "pending": unpaid if year >= current_year else 0,
        "expired": unpaid if year < current_year else 0,
        "totalRevenue": sum(p["amount"] for p in payments),
        "revenueByMethod": revenue_by_method,
        "paidAlumni": [
            {
                "alumnusId": p["alumnus_id"],
                "name": p["name"],
                "amount": p["amount"],
                "paymentMethod": p["payment_method"],
                "transactionId": p["transaction_id"],
                "paymentDate": p["payment_date"],
            }
            for p in payments
        ],
    }
