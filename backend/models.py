from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, ValidationError
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, List, Dict, Any, Literal, Type, TypeVar
from datetime import datetime
import logging

from core.invariants import is_positive_int
from errors import InternalServerError

logger = logging.getLogger(__name__)


# ============================================
# NORMALIZED RESPONSES
# ============================================
# Strict projections of stored documents. A document with a missing or
# mistyped required field does not normalize (None), which the API surfaces
# as a 500 instead of returning a partial object.

class ResponseModel(BaseModel):
    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


def _positive_int_or_none(value):
    return value if is_positive_int(value) else None


def _datetime_or_none(value):
    return value if isinstance(value, datetime) else None


def _str_or_none(value):
    return value if isinstance(value, str) else None


# Optional fields: malformed stored values read as null
LenientId = Annotated[Optional[int], BeforeValidator(_positive_int_or_none)]
LenientDatetime = Annotated[Optional[datetime], BeforeValidator(_datetime_or_none)]
LenientStr = Annotated[Optional[str], BeforeValidator(_str_or_none)]


class UserResponse(ResponseModel):
    id: int = Field(gt=0)
    email: str
    name: str
    role: Literal["STUDENT", "STAFF", "ADMIN"]
    wallet_balance: int = Field(ge=0)
    avatar_url: LenientStr = None
    phone: LenientStr = None
    bio: LenientStr = None
    created_at: datetime
    updated_at: datetime


class WalletResponse(ResponseModel):
    wallet_balance: int = Field(ge=0)


class CourseResponse(ResponseModel):
    id: int = Field(gt=0)
    code: str
    name: str


class TeacherResponse(ResponseModel):
    id: int = Field(gt=0)
    name: str


class StudySheetResponse(ResponseModel):
    id: int = Field(gt=0)
    title: str
    description: LenientStr = None
    file_url: str
    price_cents: int = Field(ge=0)
    status: Literal["PENDING", "APPROVED", "REJECTED"]
    created_at: datetime
    updated_at: datetime
    owner_id: int = Field(gt=0)
    course_id: int = Field(gt=0)
    course_code: str


class PurchaseResult(ResponseModel):
    # Shape returned by the purchase endpoint
    model_config = ConfigDict(alias_generator=None)

    id: int = Field(gt=0)
    reference_code: str
    amount: int = Field(ge=0)


class PaymentResponse(ResponseModel):
    id: int = Field(gt=0)
    purchase_id: int = Field(gt=0)
    reference_code: str
    amount: int = Field(ge=0)
    status: Literal["PENDING", "APPROVED", "RELEASED"]
    approved_at: LenientDatetime = None
    released_at: LenientDatetime = None
    approved_by_id: LenientId = None
    released_by_id: LenientId = None
    buyer_id: int = Field(gt=0)
    seller_id: int = Field(gt=0)
    study_sheet_id: int = Field(gt=0)
    created_at: datetime


class LeaseListingResponse(ResponseModel):
    id: int = Field(gt=0)
    title: str
    description: LenientStr = None
    line_id: LenientStr = None
    location: str
    rent_cents: int = Field(ge=0)
    deposit_cents: int = Field(ge=0)
    start_date: str
    end_date: str
    status: Literal["PENDING", "APPROVED", "REJECTED", "TRANSFERRED"]
    created_at: datetime
    updated_at: datetime
    owner_id: int = Field(gt=0)


class InterestRequestResponse(ResponseModel):
    id: int = Field(gt=0)
    lease_listing_id: int = Field(gt=0)
    student_id: int = Field(gt=0)
    created_at: datetime


class ReviewResponse(ResponseModel):
    id: int = Field(gt=0)
    rating: int = Field(ge=1, le=5)
    text: str
    status: Literal["VISIBLE", "UNDER_REVIEW", "REMOVED"]
    student_id: int = Field(gt=0)
    course_id: int = Field(gt=0)
    created_at: datetime
    updated_at: datetime


class TeacherReviewResponse(ResponseModel):
    id: int = Field(gt=0)
    student_id: int = Field(gt=0)
    course_id: int = Field(gt=0)
    teacher_id: LenientId = None
    teacher_name: str
    normalized_name: str
    rating: int = Field(ge=1, le=5)
    text: str
    status: Literal["VISIBLE", "UNDER_REVIEW", "REMOVED"]
    reviewed_by_id: LenientId = None
    reviewed_at: LenientDatetime = None
    decision_reason: LenientStr = None
    created_at: datetime
    updated_at: datetime


class ReviewVoteResponse(ResponseModel):
    id: int = Field(gt=0)
    review_id: int = Field(gt=0)
    voter_id: int = Field(gt=0)
    created_at: datetime


class TeacherReviewVoteResponse(ResponseModel):
    id: int = Field(gt=0)
    teacher_review_id: int = Field(gt=0)
    voter_id: int = Field(gt=0)
    created_at: datetime


class ReportResponse(ResponseModel):
    id: int = Field(gt=0)
    reporter_id: int = Field(gt=0)
    target_type: Literal["REVIEW", "TEACHER_REVIEW"]
    target_id: int = Field(gt=0)
    reason: str
    status: Literal["PENDING", "RESOLVED", "REJECTED"]
    created_at: datetime
    updated_at: datetime


class WithdrawalResponse(ResponseModel):
    id: int = Field(gt=0)
    seller_id: int = Field(gt=0)
    amount: int = Field(ge=0)
    status: Literal["PENDING", "APPROVED", "REJECTED"]
    reviewed_by_id: LenientId = None
    reviewed_at: LenientDatetime = None
    created_at: datetime
    updated_at: datetime


class AuditLogResponse(ResponseModel):
    id: int = Field(gt=0)
    actor_id: int = Field(gt=0)
    action: str
    entity_type: str
    entity_id: int = Field(gt=0)
    amount: Optional[int] = None
    created_at: datetime


M = TypeVar("M", bound=BaseModel)


def normalize(model_cls: Type[M], doc: Optional[Dict[str, Any]]) -> Optional[M]:
    """Strictly project a stored document, or None if it is malformed."""
    if not isinstance(doc, dict):
        return None
    try:
        return model_cls.model_validate(doc)
    except ValidationError as e:
        logger.error(
            f"Malformed {model_cls.__name__} document id={doc.get('id')!r}: "
            f"{e.error_count()} error(s)"
        )
        return None


def to_response(model_cls: Type[M], doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    normalized = normalize(model_cls, doc)
    if normalized is None:
        raise InternalServerError("Internal Server Error")
    return normalized.model_dump(mode="json", by_alias=True)


def to_response_list(model_cls: Type[M], docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_response(model_cls, doc) for doc in docs]


# ============================================
# REQUEST BODIES
# ============================================

class RequestModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class RegisterRequest(RequestModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)


class PasswordChangeRequest(RequestModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class CourseCreate(RequestModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)


class CourseTeacherCreate(RequestModel):
    teacher_name: str = Field(min_length=1)


class StudySheetCreate(RequestModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    file_url: str = Field(min_length=1)
    price_cents: int = Field(ge=0, strict=True)
    course_code: str = Field(min_length=1)


class StudySheetUpdate(RequestModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    file_url: Optional[str] = Field(default=None, min_length=1)
    price_cents: Optional[int] = Field(default=None, ge=0, strict=True)


class LeaseListingCreate(RequestModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    line_id: Optional[str] = None
    location: str = Field(min_length=1)
    rent_cents: int = Field(ge=0, strict=True)
    deposit_cents: int = Field(ge=0, strict=True)
    start_date: str = Field(min_length=1)
    end_date: str = Field(min_length=1)


class LeaseListingUpdate(RequestModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    line_id: Optional[str] = None
    location: Optional[str] = Field(default=None, min_length=1)
    rent_cents: Optional[int] = Field(default=None, ge=0, strict=True)
    deposit_cents: Optional[int] = Field(default=None, ge=0, strict=True)
    start_date: Optional[str] = Field(default=None, min_length=1)
    end_date: Optional[str] = Field(default=None, min_length=1)


class ReviewCreate(RequestModel):
    course_id: int = Field(gt=0, strict=True)
    rating: int = Field(ge=1, le=5, strict=True)
    text: str = Field(min_length=1)


class TeacherReviewCreate(ReviewCreate):
    teacher_name: str = Field(min_length=1)


class ReviewUpdate(RequestModel):
    rating: int = Field(ge=1, le=5, strict=True)
    text: str = Field(min_length=1)


class ReportCreate(RequestModel):
    reason: str = Field(min_length=1)


class RejectRequest(RequestModel):
    reason: str = Field(min_length=1)


class RemoveRequest(RequestModel):
    reason: Optional[str] = Field(default=None, min_length=1)


class ReportStatusUpdate(RequestModel):
    status: Literal["RESOLVED", "REJECTED"]


class WithdrawalCreate(RequestModel):
    amount_cents: int = Field(gt=0, strict=True)


class MeUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1)
    avatar_url: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=1)
    bio: Optional[str] = Field(default=None, min_length=1)
