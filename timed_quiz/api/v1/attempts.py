from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.api.deps import get_now
from timed_quiz.models.base import get_db
from timed_quiz.schemas import attempt as attempt_schema
from timed_quiz.services import attempt_service

router = APIRouter(tags=["attempts"])


@router.post(
    "/quizzes/{quiz_id}/attempts/start",
    response_model=attempt_schema.AttemptStartResponse,
)
async def start_attempt(
    quiz_id: str,
    request: attempt_schema.AttemptStartRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """응시 시작 API (진행 중인 응시가 있으면 재개)"""
    return await attempt_service.start_attempt(db, quiz_id, request, now)


@router.put("/attempts/{attempt_id}/answers", response_model=attempt_schema.AttemptTransitionResponse)
async def autosave_answers(
    attempt_id: str,
    request: attempt_schema.AutosaveRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """답안 자동 저장 API"""
    return await attempt_service.autosave_attempt(db, attempt_id, request, now)


@router.post("/attempts/{attempt_id}/submit", response_model=attempt_schema.AttemptTransitionResponse)
async def submit_attempt(
    attempt_id: str,
    request: attempt_schema.SubmitRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """답안 제출 API

    이미 종료된 응시는 outcome=already_finalized로 200 응답한다.
    """
    return await attempt_service.submit_attempt(db, attempt_id, request, now)


@router.post("/attempts/{attempt_id}/abandon", response_model=attempt_schema.AttemptTransitionResponse)
async def abandon_attempt(
    attempt_id: str,
    request: attempt_schema.AbandonRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return await attempt_service.abandon_attempt(db, attempt_id, request, now)


@router.get("/attempts/{attempt_id}", response_model=attempt_schema.AttemptStatusResponse)
async def get_attempt_status(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await attempt_service.get_attempt_status(db, attempt_id)


@router.get("/attempts/{attempt_id}/result", response_model=attempt_schema.AttemptResultResponse)
async def get_attempt_result(
    attempt_id: str,
    student_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """결과 조회 API (공개 시각 전에는 425)"""
    result = await attempt_service.get_attempt_result(db, attempt_id, student_id, now)
    if result.disclosure == "too_early":
        return JSONResponse(status_code=status.HTTP_425_TOO_EARLY, content=result.model_dump(mode="json"))
    return result
