from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from timed_quiz.models.enums import QuizStatus, SchedulingStatus

WindowStatus = Literal["not_scheduled", "upcoming", "active", "ended"]


class QuestionCreateRequest(BaseModel):
    """문항 생성 요청 스키마"""
    question_text: str = Field(..., min_length=1, description="문항 본문")
    options: list[str] = Field(..., min_length=2, description="선택지 목록")
    correct_answer: str = Field(..., description="정답 선택지 텍스트")
    explanation: str | None = Field(None, description="해설")

    @model_validator(mode="after")
    def validate_correct_answer(self) -> "QuestionCreateRequest":
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer는 options 중 하나여야 합니다")
        return self


class QuizCreateRequest(BaseModel):
    """퀴즈 생성 요청 스키마

    legacy: start_time/timezone 필수 (학습자 로컬 벽시계 시각, 예: '2025-09-03T08:46')
    deferred: start_time 없이 생성, 공개 전에 /schedule 호출 필요
    """
    educator_id: str = Field(..., min_length=1, description="출제자 ID")
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    scheduling_mode: Literal["legacy", "deferred"] = Field("legacy", description="스케줄링 방식")
    start_time: str | None = Field(None, description="로컬 벽시계 시작 시각 (시간대 정보 없음)")
    timezone: str | None = Field(None, description="IANA 시간대 (예: Asia/Kolkata)")
    duration: int = Field(..., ge=1, le=1440, description="응시 시간 (분)")
    questions: list[QuestionCreateRequest] = Field(default_factory=list)
    publish: bool = Field(False, description="생성 직후 공개 여부 (legacy 전용)")


class QuizScheduleRequest(BaseModel):
    """deferred 퀴즈 시각 확정 요청 스키마"""
    start_time: str = Field(..., description="로컬 벽시계 시작 시각")
    timezone: str = Field(..., description="IANA 시간대")
    duration: int | None = Field(None, ge=1, le=1440, description="응시 시간 변경 (선택)")
    scheduled_by: str | None = Field(None, description="스케줄링한 출제자 ID")


class EffectiveWindowResponse(BaseModel):
    """유효 응시 구간 [opens_at, closes_at)"""
    opens_at: datetime
    closes_at: datetime


class SchedulingSummary(BaseModel):
    """퀴즈 스케줄링 요약"""
    mode: SchedulingStatus
    start_time: datetime | None
    local_start_time: str | None = Field(None, description="퀴즈 시간대 기준 벽시계 시각")
    timezone: str
    duration: int
    is_scheduled: bool
    can_publish: bool
    can_publish_reason: str | None = None
    can_reschedule: bool
    can_reschedule_reason: str | None = None
    window_status: WindowStatus
    window_message: str
    effective_window: EffectiveWindowResponse | None = None
    scheduled_at: datetime | None = None
    scheduled_by: str | None = None


class QuizResponse(BaseModel):
    """퀴즈 응답 스키마"""
    id: str
    educator_id: str
    title: str
    description: str | None
    status: QuizStatus
    scheduling_status: SchedulingStatus
    start_time: datetime | None
    timezone: str
    duration: int
    question_count: int
    published_at: datetime | None = None
    created_at: datetime
    scheduling: SchedulingSummary
