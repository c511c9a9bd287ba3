from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from timed_quiz.models.enums import EnrollmentStatus

AvailabilityReason = Literal[
    "not_published", "cancelled", "superseded", "already_attempted", "not_yet_open", "expired"
]


class EnrollStudentsRequest(BaseModel):
    """학생 배정 요청 스키마"""
    student_ids: list[str] = Field(..., min_length=1, description="배정할 학생 ID 목록")


class ReassignRequest(BaseModel):
    """재배정 요청 스키마"""
    student_ids: list[str] = Field(..., min_length=1, description="재배정할 학생 ID 목록")
    reason: str = Field("Missed original attempt", max_length=500, description="재배정 사유")
    reassigned_by: str | None = Field(None, description="재배정한 출제자 ID")


class EnrollmentResponse(BaseModel):
    """배정 응답 스키마"""
    id: str
    quiz_id: str
    student_id: str
    enrolled_at: datetime
    status: EnrollmentStatus
    is_reassignment: bool
    parent_enrollment_id: str | None
    reassignment_reason: str | None
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class SkippedStudent(BaseModel):
    student_id: str
    reason: str


class EnrollStudentsResponse(BaseModel):
    enrolled: list[EnrollmentResponse]
    skipped: list[SkippedStudent]


class ReassignResponse(BaseModel):
    reassigned: list[EnrollmentResponse]
    skipped: list[SkippedStudent]


class AvailabilityResponse(BaseModel):
    """"퀴즈 X를 학생 Y가 지금 응시할 수 있는가" 조회 결과"""
    quiz_id: str
    student_id: str
    enrollment_id: str
    is_available: bool
    reason: AvailabilityReason | None = Field(None, description="응시 불가 사유 코드")
    has_attempt: bool
    is_expired: bool
    is_reassignment: bool
    opens_at: datetime | None = None
    expires_at: datetime | None = Field(None, description="배정 노출 만료 시각 (재배정은 없음)")


class EnrollmentHistoryItem(EnrollmentResponse):
    """배정 이력 항목 (표시용 라벨 포함)"""
    label: str = Field(..., description="'Original' 또는 'Reassignment #N'")
    has_attempt: bool
    is_available: bool
    reason: AvailabilityReason | None = None


class EnrollmentHistoryResponse(BaseModel):
    items: list[EnrollmentHistoryItem]
    total: int
