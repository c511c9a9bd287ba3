from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from timed_quiz.models.enums import AttemptStatus

TransitionOutcome = Literal["completed", "abandoned", "saved", "already_finalized"]
Disclosure = Literal["in_progress", "too_early", "available"]


class AttemptStartRequest(BaseModel):
    """응시 시작 요청 스키마"""
    student_id: str = Field(..., min_length=1)
    timezone: str | None = Field(None, description="학습자 시간대 (기록용)")


class AnswerItem(BaseModel):
    """문항별 답안"""
    question_id: str
    answer: str | None = None
    marked_for_review: bool = False
    time_spent: int = Field(0, ge=0, description="문항 체류 시간 (초)")


class AutosaveRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    answers: list[AnswerItem] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    answers: list[AnswerItem] = Field(default_factory=list)


class AbandonRequest(BaseModel):
    student_id: str = Field(..., min_length=1)


class PresentedQuestion(BaseModel):
    """학습자에게 제시되는 문항 (정답 제외, 셔플된 선택지)"""
    question_id: str
    question_text: str
    options: list[str]


class AttemptStartResponse(BaseModel):
    """응시 시작/재개 응답 스키마"""
    attempt_id: str
    enrollment_id: str | None
    status: AttemptStatus
    resumed: bool
    start_time: datetime
    ends_at: datetime
    remaining_seconds: int
    questions: list[PresentedQuestion]
    answers: list[AnswerItem] = Field(default_factory=list, description="재개 시 자동 저장된 답안")


class AttemptTransitionResponse(BaseModel):
    """제출/자동 저장/포기 결과

    outcome이 already_finalized이면 다른 요청(또는 정리 작업)이 먼저 종료시킨 것이며,
    status는 현재 종료 상태를 나타낸다.
    """
    attempt_id: str
    status: AttemptStatus
    outcome: TransitionOutcome
    end_time: datetime | None = None
    results_available_at: datetime | None = None


class AttemptStatusResponse(BaseModel):
    attempt_id: str
    quiz_id: str
    student_id: str
    enrollment_id: str | None
    status: AttemptStatus
    is_terminal: bool
    start_time: datetime | None
    end_time: datetime | None
    results_available_at: datetime


class QuestionResult(BaseModel):
    question_id: str
    question_text: str
    options: list[str]
    correct_answer: str
    selected_answer: str | None
    is_correct: bool
    explanation: str | None
    marked_for_review: bool = False
    time_spent: int = 0


class AttemptResult(BaseModel):
    """채점 결과"""
    score: int
    grade: str
    grade_points: float
    grade_description: str
    total_correct: int
    total_questions: int
    wrong_answers: int
    time_spent: int | None
    questions: list[QuestionResult]


class AttemptResultResponse(BaseModel):
    """결과 조회 응답

    disclosure:
        in_progress - 아직 응시 중
        too_early   - 종료되었으나 공개 시각(available_at) 이전
        available   - 결과 공개
    """
    attempt_id: str
    quiz_id: str
    status: AttemptStatus
    disclosure: Disclosure
    available_at: datetime
    result: AttemptResult | None = None
