"""Data classes and fixed business constants for the portal domain."""
from dataclasses import dataclass, field
from typing import Optional

# Enrollment assignment states
PENDING = "PENDING"
ASSIGNED = "ASSIGNED"
CANCELLED = "CANCELLED"
ASSIGNMENT_STATUSES = (PENDING, ASSIGNED, CANCELLED)

# Settlement states (PENDING shared with assignment)
PAID = "PAID"
FAILED = "FAILED"
SETTLEMENT_STATUSES = (PENDING, PAID, FAILED)

# Tutor roster membership
ROSTER_ACTIVE = "active"
ROSTER_CERTIFIED = "certified"
ROSTER_RELEASED = "released"

TUTOR_SHARE_RATE = 0.15
DEFAULT_COURSE_FEE = 10000

GRADE_POINTS = {
    "Distinction": 4.0,
    "Merit": 3.5,
    "Credit": 3.0,
    "Pass": 2.0,
    "Fail": 0.0,
}
GRADES = tuple(GRADE_POINTS)

CPD_RESULTS = ("pass", "fail")
PAYMENT_METHODS = ("mpesa", "bank", "cash", "card")
DEFAULT_SUBSCRIPTION_FEE = 1000

ACTIVE = "active"
INACTIVE = "inactive"


@dataclass
class Course:
    id: str
    name: str
    fee: Optional[float] = None


@dataclass
class Exam:
    name: str
    score: str = ""

    @property
    def is_graded(self) -> bool:
        return self.score in GRADE_POINTS


@dataclass
class ExamGrade:
    exam_index: int
    score: str


@dataclass
class Student:
    id: str
    name: str
    course_id: Optional[str] = None
    admission_number: str = ""
    course_fee: Optional[float] = None
    upfront_fee: float = 0.0
    phone: str = ""
    email: str = ""
    exams: list[Exam] = field(default_factory=list)
    is_alumni: bool = False


@dataclass
class Enrollment:
    course_id: str
    student_id: str
    assignment_status: str = PENDING
    tutor_id: Optional[str] = None
    admin_notes: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Settlement:
    student_id: str
    course_id: str
    tutor_id: str
    status: str = PENDING
    amount: Optional[float] = None
    phone: str = ""
    transaction_id: str = ""
    time_of_payment: Optional[str] = None


@dataclass
class RosterEntry:
    """One student as seen from a tutor's myStudents/certifiedStudents list."""
    student_id: str
    course_id: str
    name: str = ""
    course_fee: Optional[float] = None
    settlement: Optional[Settlement] = None
    assigned_at: Optional[str] = None
    certified_at: Optional[str] = None


@dataclass
class Tutor:
    id: str
    name: str
    phone: str = ""
    my_students: list[RosterEntry] = field(default_factory=list)
    certified_students: list[RosterEntry] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return len(self.my_students)


@dataclass
class CpdRecord:
    alumnus_id: str
    year: int
    date_taken: Optional[str] = None
    result: Optional[str] = None
    score: Optional[float] = None
    remarks: str = ""


@dataclass
class SubscriptionPayment:
    alumnus_id: str
    year: int
    amount: float
    payment_method: str
    transaction_id: str = ""
    payment_date: Optional[str] = None


@dataclass
class Alumnus:
    id: str
    student_id: str
    name: str = ""
    course_id: Optional[str] = None
    exams: list[Exam] = field(default_factory=list)
    gpa: float = 0.0
    graduation_date: Optional[str] = None
    cpd_records: list[CpdRecord] = field(default_factory=list)
