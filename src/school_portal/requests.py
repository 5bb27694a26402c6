"""Admin request payloads, validated before they reach the domain layer.

Each variant carries a ``kind`` tag; ``parse_request`` picks the variant from
the tag and converts pydantic's errors into the portal's ValidationError.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from school_portal.errors import ValidationError
from school_portal.models import CPD_RESULTS, GRADES, PAYMENT_METHODS

Grade = Literal[GRADES]
PaymentMethod = Literal[PAYMENT_METHODS]
CpdResult = Literal[CPD_RESULTS]
RequiredStr = Annotated[str, Field(min_length=1)]


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", frozen=True)


class AssignRequest(_Request):
    kind: Literal["assign"] = "assign"
    course_id: RequiredStr
    student_id: RequiredStr
    tutor_id: RequiredStr


class CancelRequest(_Request):
    kind: Literal["cancel"] = "cancel"
    course_id: RequiredStr
    student_id: RequiredStr
    reason: RequiredStr


class ReleaseRequest(_Request):
    kind: Literal["release"] = "release"
    course_id: RequiredStr
    student_id: RequiredStr


class PaymentRequest(_Request):
    kind: Literal["payment"] = "payment"
    tutor_id: RequiredStr
    student_id: RequiredStr
    amount: float = Field(gt=0)
    phone: RequiredStr
    transaction_id: RequiredStr


class ExamGradeItem(_Request):
    exam_index: int = Field(ge=0)
    score: Grade


class GradeUpdateRequest(_Request):
    kind: Literal["grades"] = "grades"
    student_id: RequiredStr
    exam_grades: list[ExamGradeItem] = Field(min_length=1)


class GraduateRequest(_Request):
    kind: Literal["graduate"] = "graduate"
    student_id: RequiredStr
    exam_grades: list[ExamGradeItem] = Field(default_factory=list)


class FeeUpdateRequest(_Request):
    kind: Literal["fee"] = "fee"
    student_id: RequiredStr
    upfront_fee: float = Field(ge=0)


class ExamRequest(_Request):
    kind: Literal["exam"] = "exam"
    student_id: RequiredStr
    name: RequiredStr
    score: Union[Grade, Literal[""]] = ""


class FeePaymentRequest(_Request):
    kind: Literal["fee_payment"] = "fee_payment"
    student_id: RequiredStr
    amount: float = Field(gt=0)


class CpdRequest(_Request):
    kind: Literal["cpd"] = "cpd"
    alumnus_id: RequiredStr
    year: int = Field(ge=1900)
    date_taken: Optional[str] = None
    result: Optional[CpdResult] = None
    score: Optional[float] = Field(default=None, ge=0)
    remarks: str = ""


class SubscriptionPaymentRequest(_Request):
    kind: Literal["subscription"] = "subscription"
    alumnus_id: RequiredStr
    year: int = Field(ge=1900)
    amount: float = Field(gt=0)
    payment_method: PaymentMethod
    transaction_id: str = ""


PortalRequest = Annotated[
    Union[
        AssignRequest, CancelRequest, ReleaseRequest, PaymentRequest, GradeUpdateRequest,
        GraduateRequest, FeeUpdateRequest, ExamRequest, FeePaymentRequest, CpdRequest,
        SubscriptionPaymentRequest,
    ],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(PortalRequest)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "request"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def parse_request(payload: dict) -> PortalRequest:
    try:
        return _adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid request: {_describe(exc)}",
            {"kind": payload.get("kind") if isinstance(payload, dict) else None,
             "errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        ) from exc
