from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.models.enums import TERMINAL_ATTEMPT_STATUSES, AttemptStatus
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt


async def get_attempt_by_id(session: AsyncSession, attempt_id: str) -> QuizAttempt | None:
    """ID로 응시 기록 조회

    조건부 UPDATE는 세션 객체를 동기화하지 않으므로 항상 DB 값으로 덮어쓴다.
    """
    stmt = select(QuizAttempt).where(QuizAttempt.id == attempt_id).execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_attempts_for_student(
    session: AsyncSession,
    quiz_id: str,
    student_id: str,
) -> Sequence[QuizAttempt]:
    """학생의 특정 퀴즈 응시 기록 전체 (최신순)"""
    stmt = (
        select(QuizAttempt)
        .where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.student_id == student_id)
        .order_by(QuizAttempt.created_at.desc())
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_in_progress_attempt(session: AsyncSession, enrollment_id: str) -> QuizAttempt | None:
    """배정의 진행 중인 응시 (부분 유니크 인덱스로 최대 1건)"""
    stmt = (
        select(QuizAttempt)
        .where(
            QuizAttempt.enrollment_id == enrollment_id,
            QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_attempt(session: AsyncSession, attempt: QuizAttempt) -> QuizAttempt:
    """응시 기록 생성"""
    session.add(attempt)
    await session.commit()
    await session.refresh(attempt)
    return attempt


async def transition_attempt(
    session: AsyncSession,
    attempt_id: str,
    target_status: AttemptStatus,
    values: dict[str, Any] | None = None,
    commit: bool = True,
) -> bool:
    """in_progress 상태일 때만 상태를 전이하는 조건부 쓰기

    Returns:
        True면 전이 성공, False면 이미 다른 요청/정리 작업이 종료 상태로 바꾼 경우
    """
    stmt = (
        update(QuizAttempt)
        .where(
            QuizAttempt.id == attempt_id,
            QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        )
        .values(status=target_status, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if commit:
        await session.commit()
    return result.rowcount == 1


async def update_in_progress_answers(
    session: AsyncSession,
    attempt_id: str,
    answers: list[dict],
    now: datetime,
) -> bool:
    """진행 중인 응시의 답안만 갱신 (자동 저장)"""
    stmt = (
        update(QuizAttempt)
        .where(
            QuizAttempt.id == attempt_id,
            QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        )
        .values(answers=answers, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount == 1


async def get_in_progress_attempts_with_quiz(
    session: AsyncSession,
) -> list[tuple[QuizAttempt, Quiz | None]]:
    """정리 대상 후보: 진행 중인 응시와 해당 퀴즈"""
    stmt = (
        select(QuizAttempt, Quiz)
        .outerjoin(Quiz, QuizAttempt.quiz_id == Quiz.id)
        .where(QuizAttempt.status == AttemptStatus.IN_PROGRESS)
        .order_by(QuizAttempt.created_at)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return [(attempt, quiz) for attempt, quiz in result.all()]


async def get_retention_candidates(
    session: AsyncSession,
    cutoff: datetime,
    statuses: frozenset[AttemptStatus] = TERMINAL_ATTEMPT_STATUSES,
) -> list[tuple[str, list[dict]]]:
    """보존 기간이 지난 종료 응시 (id, answers)"""
    stmt = select(QuizAttempt.id, QuizAttempt.answers).where(
        QuizAttempt.status.in_(list(statuses)),
        QuizAttempt.updated_at < cutoff,
    )
    result = await session.execute(stmt)
    return [(row.id, row.answers) for row in result.all()]


async def clear_answers(session: AsyncSession, attempt_ids: list[str]) -> int:
    """답안 원문만 비움 (응시 기록과 updated_at은 유지)"""
    if not attempt_ids:
        return 0
    stmt = (
        update(QuizAttempt)
        .where(
            QuizAttempt.id.in_(attempt_ids),
            QuizAttempt.status.in_(list(TERMINAL_ATTEMPT_STATUSES)),
        )
        .values(answers=[], updated_at=QuizAttempt.updated_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount


async def count_attempts_by_status(session: AsyncSession) -> dict[str, int]:
    """상태별 응시 수"""
    stmt = select(QuizAttempt.status, func.count(QuizAttempt.id)).group_by(QuizAttempt.status)
    result = await session.execute(stmt)
    return {
        (status.value if isinstance(status, AttemptStatus) else str(status)): count
        for status, count in result.all()
    }


async def count_in_progress_older_than(session: AsyncSession, cutoff: datetime) -> int:
    stmt = select(func.count(QuizAttempt.id)).where(
        QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        QuizAttempt.created_at < cutoff,
    )
    return (await session.scalar(stmt)) or 0
