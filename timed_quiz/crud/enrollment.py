from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from timed_quiz.models.enrollment import Enrollment
from timed_quiz.models.enums import EnrollmentStatus


async def get_enrollment_by_id(session: AsyncSession, enrollment_id: str) -> Enrollment | None:
    """ID로 배정 조회"""
    result = await session.execute(select(Enrollment).where(Enrollment.id == enrollment_id))
    return result.scalar_one_or_none()


async def get_enrollments_for_student(
    session: AsyncSession,
    quiz_id: str,
    student_id: str,
    newest_first: bool = True,
) -> Sequence[Enrollment]:
    """학생의 특정 퀴즈 배정 전체 (원본 + 재배정)"""
    order = Enrollment.enrolled_at.desc() if newest_first else Enrollment.enrolled_at.asc()
    stmt = (
        select(Enrollment)
        .where(Enrollment.quiz_id == quiz_id, Enrollment.student_id == student_id)
        .order_by(order, Enrollment.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_enrollments_by_quiz(
    session: AsyncSession,
    quiz_id: str,
    student_ids: list[str] | None = None,
) -> Sequence[Enrollment]:
    """퀴즈의 배정 목록 (학생 필터 선택)"""
    stmt = select(Enrollment).where(Enrollment.quiz_id == quiz_id)
    if student_ids:
        stmt = stmt.where(Enrollment.student_id.in_(student_ids))
    stmt = stmt.order_by(Enrollment.enrolled_at.asc(), Enrollment.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_enrollment(
    session: AsyncSession,
    enrollment: Enrollment,
    commit: bool = True,
) -> Enrollment:
    """배정 생성"""
    session.add(enrollment)
    if commit:
        await session.commit()
        await session.refresh(enrollment)
    return enrollment


def mark_enrollment_started(enrollment: Enrollment, now: datetime) -> None:
    """최초 시작 시각만 기록"""
    if enrollment.started_at is None:
        enrollment.started_at = now


def mark_enrollment_completed(enrollment: Enrollment, now: datetime) -> None:
    """취소된 배정은 완료 처리하지 않음"""
    if enrollment.status == EnrollmentStatus.ENROLLED:
        enrollment.status = EnrollmentStatus.COMPLETED
        enrollment.completed_at = now


async def get_dangling_parent_enrollments(session: AsyncSession) -> Sequence[Enrollment]:
    """parent_enrollment_id가 존재하지 않는 배정을 가리키는 재배정 목록"""
    parent = aliased(Enrollment)
    stmt = (
        select(Enrollment)
        .outerjoin(parent, Enrollment.parent_enrollment_id == parent.id)
        .where(Enrollment.parent_enrollment_id.is_not(None), parent.id.is_(None))
        .order_by(Enrollment.enrolled_at)
    )
    result = await session.execute(stmt)
    return result.scalars().all()
