from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.api.deps import get_now
from timed_quiz.models.base import get_db
from timed_quiz.schemas import enrollment as enrollment_schema, quiz as quiz_schema
from timed_quiz.services import enrollment_service, scheduling_service

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


@router.post("", response_model=quiz_schema.QuizResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    request: quiz_schema.QuizCreateRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """퀴즈 생성 API (legacy / deferred)"""
    return await scheduling_service.create_quiz(db, request, now)


@router.get("/{quiz_id}", response_model=quiz_schema.QuizResponse)
async def get_quiz(
    quiz_id: str,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """퀴즈 조회 API (스케줄링 요약 포함)"""
    return await scheduling_service.get_quiz(db, quiz_id, now)


@router.post("/{quiz_id}/schedule", response_model=quiz_schema.QuizResponse)
async def schedule_quiz(
    quiz_id: str,
    request: quiz_schema.QuizScheduleRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """시작 시각 확정 API"""
    return await scheduling_service.schedule_quiz(db, quiz_id, request, now)


@router.post("/{quiz_id}/publish", response_model=quiz_schema.QuizResponse)
async def publish_quiz(
    quiz_id: str,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return await scheduling_service.publish_quiz(db, quiz_id, now)


@router.post("/{quiz_id}/archive", response_model=quiz_schema.QuizResponse)
async def archive_quiz(
    quiz_id: str,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return await scheduling_service.archive_quiz(db, quiz_id, now)


@router.post(
    "/{quiz_id}/enrollments",
    response_model=enrollment_schema.EnrollStudentsResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_students(
    quiz_id: str,
    request: enrollment_schema.EnrollStudentsRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """학생 배정 API"""
    return await enrollment_service.enroll_students(db, quiz_id, request.student_ids, now)


@router.post("/{quiz_id}/reassign", response_model=enrollment_schema.ReassignResponse)
async def reassign_students(
    quiz_id: str,
    request: enrollment_schema.ReassignRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """재배정 API"""
    return await enrollment_service.reassign_students(db, quiz_id, request, now)


@router.get(
    "/{quiz_id}/students/{student_id}/enrollments",
    response_model=enrollment_schema.EnrollmentHistoryResponse,
)
async def get_enrollment_history(
    quiz_id: str,
    student_id: str,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """학생 배정 이력 API (Original / Reassignment #N)"""
    return await enrollment_service.list_enrollment_history(db, quiz_id, student_id, now)


@router.get("/{quiz_id}/availability", response_model=enrollment_schema.AvailabilityResponse)
async def get_availability(
    quiz_id: str,
    student_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """응시 가능 여부 조회 API"""
    return await enrollment_service.check_availability(db, quiz_id, student_id, now)
