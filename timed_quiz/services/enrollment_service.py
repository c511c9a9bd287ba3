"""배정 노출/만료 상태와 재배정 관리

- 원본 배정은 퀴즈 시작 후 고정 24시간(퀴즈 duration과 무관)이 지나면 만료된다.
- 재배정은 만료되지 않는다.
- 재배정의 parent_enrollment_id는 반드시 존재하는 배정을 가리켜야 한다.
- 재배정이 생기면 parent 배정은 대체되어 더 이상 응시할 수 없다.
"""
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.core.config import settings
from timed_quiz.crud import enrollment as enrollment_crud, quiz as quiz_crud, quiz_attempt as attempt_crud
from timed_quiz.exceptions import (
    BaseAppError,
    DanglingParentEnrollmentError,
    EnrollmentNotFoundError,
    InvalidRequestError,
    QuizNotFoundError,
    QuizStateConflictError,
)
from timed_quiz.models.enrollment import Enrollment
from timed_quiz.models.enums import EnrollmentStatus, QuizStatus
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt
from timed_quiz.schemas import enrollment as enrollment_schema
from timed_quiz.services import scheduling_service
from timed_quiz.utils.timezone import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_REASSIGNMENT_REASON = "Missed original attempt"
ORIGINAL_LABEL = "Original"


@dataclass(frozen=True)
class EnrollmentState:
    has_attempt: bool
    is_expired: bool
    is_available: bool
    reason: str | None = None


def compute_enrollment_state(
    enrollment: Enrollment,
    quiz: Quiz,
    has_attempt: bool,
    now: datetime,
    visibility_hours: int | None = None,
    superseded: bool = False,
) -> EnrollmentState:
    """배정의 현재 응시 가능 상태 계산 (DB 접근 없음)

    사유 코드는 처음 실패한 조건 하나만 보고한다:
    not_published -> cancelled -> already_attempted -> superseded -> not_yet_open -> expired

    superseded: 이 배정을 parent로 하는 재배정이 이미 있는 경우
    """
    hours = settings.enrollment_visibility_hours if visibility_hours is None else visibility_hours
    start_time = ensure_utc(quiz.start_time) if quiz.start_time is not None else None

    is_expired = False
    if not enrollment.is_reassignment and start_time is not None:
        is_expired = now > start_time + timedelta(hours=hours)

    if quiz.status != QuizStatus.PUBLISHED:
        reason = "not_published"
    elif enrollment.status == EnrollmentStatus.CANCELLED:
        reason = "cancelled"
    elif has_attempt or enrollment.status == EnrollmentStatus.COMPLETED:
        reason = "already_attempted"
    elif superseded:
        reason = "superseded"
    elif start_time is None or now < start_time:
        reason = "not_yet_open"
    elif is_expired:
        reason = "expired"
    else:
        reason = None

    return EnrollmentState(
        has_attempt=has_attempt,
        is_expired=is_expired,
        is_available=reason is None,
        reason=reason,
    )


def attempt_belongs_to(enrollment: Enrollment, attempt: QuizAttempt) -> bool:
    """원본 배정은 enrollment_id 없이 기록된 과거 응시도 자기 것으로 본다"""
    if attempt.enrollment_id == enrollment.id:
        return True
    return attempt.enrollment_id is None and not enrollment.is_reassignment


def enrollment_has_attempt(enrollment: Enrollment, attempts: Iterable[QuizAttempt]) -> bool:
    return any(attempt_belongs_to(enrollment, attempt) for attempt in attempts)


def build_enrollment_index(enrollments: Iterable[Enrollment]) -> dict[str, Enrollment]:
    return {enrollment.id: enrollment for enrollment in enrollments}


def superseded_ids(enrollments: Iterable[Enrollment]) -> set[str]:
    """다른 배정의 parent가 된(재배정으로 대체된) 배정 id"""
    return {e.parent_enrollment_id for e in enrollments if e.parent_enrollment_id is not None}


def resolve_parent(enrollment: Enrollment, index: dict[str, Enrollment]) -> Enrollment | None:
    """직전 배정 조회

    Raises:
        DanglingParentEnrollmentError: parent_enrollment_id가 index에 없는 경우
    """
    if enrollment.parent_enrollment_id is None:
        return None
    parent = index.get(enrollment.parent_enrollment_id)
    if parent is None:
        raise DanglingParentEnrollmentError(enrollment.id, enrollment.parent_enrollment_id)
    return parent


def resolve_chain(enrollment: Enrollment, index: dict[str, Enrollment]) -> list[Enrollment]:
    """원본부터 해당 배정까지의 재배정 체인 (원본이 첫 번째)"""
    chain = [enrollment]
    seen = {enrollment.id}
    current = enrollment
    while True:
        parent = resolve_parent(current, index)
        if parent is None:
            break
        if parent.id in seen:
            logger.warning(f"재배정 체인에 순환이 있습니다: enrollment_id={enrollment.id}, parent_id={parent.id}")
            break
        seen.add(parent.id)
        chain.append(parent)
        current = parent
    chain.reverse()
    return chain


def _sort_key(enrollment: Enrollment):
    return ensure_utc(enrollment.enrolled_at), enrollment.id


def label_enrollments(enrollments: Sequence[Enrollment]) -> dict[str, str]:
    """표시용 라벨 (id -> 'Original' | 'Reassignment #N')

    N은 체인에서 원본으로부터 몇 번째 재배정인지를 나타낸다.
    """
    index = build_enrollment_index(enrollments)
    labels: dict[str, str] = {}
    for enrollment in enrollments:
        depth = len(resolve_chain(enrollment, index)) - 1
        labels[enrollment.id] = f"Reassignment #{depth}" if depth else ORIGINAL_LABEL
    return labels


def resolve_current_enrollment(enrollments: Sequence[Enrollment]) -> Enrollment | None:
    """학생의 현재 배정 = 재배정 체인의 끝 (다른 배정으로 대체되지 않은 가장 최근 배정)

    대체된 배정은 상태가 enrolled로 남아 있어도 현재 배정이 될 수 없다.

    Raises:
        DanglingParentEnrollmentError: 현재 배정의 체인에 존재하지 않는 parent가 있는 경우
    """
    if not enrollments:
        return None
    replaced = superseded_ids(enrollments)
    heads = [e for e in enrollments if e.id not in replaced] or list(enrollments)
    current = max(heads, key=_sort_key)
    resolve_chain(current, build_enrollment_index(enrollments))
    return current


async def _get_quiz_or_raise(session: AsyncSession, quiz_id: str) -> Quiz:
    quiz = await quiz_crud.get_quiz_by_id(session, quiz_id)
    if not quiz:
        raise QuizNotFoundError(quiz_id)
    return quiz


async def resolve_student_enrollment(
    session: AsyncSession,
    quiz: Quiz,
    student_id: str,
    now: datetime,
) -> tuple[Enrollment, list[QuizAttempt], EnrollmentState]:
    """학생의 현재 배정, 그 배정에 속한 응시 목록, 응시 가능 상태

    응시 가능 여부 조회와 응시 시작이 같은 판단을 내리도록 둘 다 이 함수를 거친다.

    Raises:
        EnrollmentNotFoundError: 배정 기록이 없는 경우
        DanglingParentEnrollmentError: 재배정 체인이 끊어진 경우
    """
    enrollments = await enrollment_crud.get_enrollments_for_student(session, quiz.id, student_id)
    enrollment = resolve_current_enrollment(enrollments)
    if enrollment is None:
        raise EnrollmentNotFoundError(quiz.id, student_id)

    attempts = await attempt_crud.get_attempts_for_student(session, quiz.id, student_id)
    owned = [a for a in attempts if attempt_belongs_to(enrollment, a)]
    state = compute_enrollment_state(enrollment, quiz, bool(owned), now)
    return enrollment, owned, state


async def check_availability(
    session: AsyncSession,
    quiz_id: str,
    student_id: str,
    now: datetime,
) -> enrollment_schema.AvailabilityResponse:
    """퀴즈 X를 학생 Y가 지금 응시할 수 있는지 조회"""
    quiz = await _get_quiz_or_raise(session, quiz_id)
    enrollment, _, state = await resolve_student_enrollment(session, quiz, student_id, now)

    expires_at = None
    if not enrollment.is_reassignment and quiz.start_time is not None:
        expires_at = ensure_utc(quiz.start_time) + timedelta(hours=settings.enrollment_visibility_hours)

    logger.debug(
        f"응시 가능 여부 조회: quiz_id={quiz_id}, student_id={student_id}, "
        f"enrollment_id={enrollment.id}, available={state.is_available}, reason={state.reason}"
    )
    return enrollment_schema.AvailabilityResponse(
        quiz_id=quiz_id,
        student_id=student_id,
        enrollment_id=enrollment.id,
        is_available=state.is_available,
        reason=state.reason,
        has_attempt=state.has_attempt,
        is_expired=state.is_expired,
        is_reassignment=enrollment.is_reassignment,
        opens_at=quiz.start_time,
        expires_at=expires_at,
    )


async def create_enrollment(
    session: AsyncSession,
    quiz_id: str,
    student_id: str,
    now: datetime,
    parent_enrollment_id: str | None = None,
    reason: str | None = None,
    reassigned_by: str | None = None,
    commit: bool = True,
) -> Enrollment:
    """배정 생성 (parent_enrollment_id가 있으면 재배정)

    Raises:
        DanglingParentEnrollmentError: parent 배정이 존재하지 않는 경우
        InvalidRequestError: parent 배정이 다른 퀴즈/학생의 것인 경우
    """
    is_reassignment = parent_enrollment_id is not None
    if is_reassignment:
        parent = await enrollment_crud.get_enrollment_by_id(session, parent_enrollment_id)
        if parent is None:
            raise DanglingParentEnrollmentError(None, parent_enrollment_id)
        if parent.quiz_id != quiz_id or parent.student_id != student_id:
            raise InvalidRequestError(
                f"원본 배정의 퀴즈/학생이 일치하지 않습니다: parent_enrollment_id={parent_enrollment_id}"
            )

    enrollment = Enrollment(
        quiz_id=quiz_id,
        student_id=student_id,
        enrolled_at=now,
        status=EnrollmentStatus.ENROLLED,
        is_reassignment=is_reassignment,
        parent_enrollment_id=parent_enrollment_id,
        reassignment_reason=(reason or DEFAULT_REASSIGNMENT_REASON) if is_reassignment else None,
        reassigned_by=reassigned_by if is_reassignment else None,
        reassigned_at=now if is_reassignment else None,
    )
    return await enrollment_crud.create_enrollment(session, enrollment, commit=commit)


def _dedupe(student_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(s.strip() for s in student_ids if s and s.strip()))


async def enroll_students(
    session: AsyncSession,
    quiz_id: str,
    student_ids: list[str],
    now: datetime,
) -> enrollment_schema.EnrollStudentsResponse:
    """학생 배정 (이미 배정된 학생은 건너뜀)"""
    quiz = await _get_quiz_or_raise(session, quiz_id)

    allowed, reason = scheduling_service.can_enroll(quiz, now)
    if not allowed:
        raise QuizStateConflictError(reason)

    targets = _dedupe(student_ids)
    existing = await enrollment_crud.get_enrollments_by_quiz(session, quiz_id, targets)
    already_enrolled = {e.student_id for e in existing}

    created: list[Enrollment] = []
    skipped: list[enrollment_schema.SkippedStudent] = []
    try:
        for student_id in targets:
            if student_id in already_enrolled:
                skipped.append(enrollment_schema.SkippedStudent(student_id=student_id, reason="already_enrolled"))
                continue
            created.append(await create_enrollment(session, quiz_id, student_id, now, commit=False))
        await session.commit()
    except BaseAppError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"학생 배정 실패: quiz_id={quiz_id}, error={e}", exc_info=True)
        await session.rollback()
        raise

    logger.info(f"학생 배정 완료: quiz_id={quiz_id}, enrolled={len(created)}, skipped={len(skipped)}")
    return enrollment_schema.EnrollStudentsResponse(
        enrolled=[enrollment_schema.EnrollmentResponse.model_validate(e) for e in created],
        skipped=skipped,
    )


async def reassign_students(
    session: AsyncSession,
    quiz_id: str,
    request: enrollment_schema.ReassignRequest,
    now: datetime,
) -> enrollment_schema.ReassignResponse:
    """재배정 (응시를 놓친 학생에게 만료 없는 새 배정 부여)

    학생별 조건:
    - 기존 배정이 있어야 함
    - 현재 배정(재배정 체인의 끝)이 완료(제출) 상태가 아니어야 함
    - 현재 배정이 아직 응시하지 않은 재배정이 아니어야 함
    """
    quiz = await _get_quiz_or_raise(session, quiz_id)
    if quiz.status != QuizStatus.PUBLISHED:
        raise QuizStateConflictError("공개된 퀴즈만 재배정할 수 있습니다")

    created: list[Enrollment] = []
    skipped: list[enrollment_schema.SkippedStudent] = []

    try:
        for student_id in _dedupe(request.student_ids):
            enrollments = await enrollment_crud.get_enrollments_for_student(session, quiz_id, student_id)
            if not enrollments:
                skipped.append(enrollment_schema.SkippedStudent(student_id=student_id, reason="not_enrolled"))
                continue

            latest = resolve_current_enrollment(enrollments)
            if latest.status == EnrollmentStatus.COMPLETED:
                skipped.append(enrollment_schema.SkippedStudent(student_id=student_id, reason="already_completed"))
                continue

            attempts = await attempt_crud.get_attempts_for_student(session, quiz_id, student_id)
            if (
                latest.is_reassignment
                and latest.status == EnrollmentStatus.ENROLLED
                and not enrollment_has_attempt(latest, attempts)
            ):
                skipped.append(
                    enrollment_schema.SkippedStudent(student_id=student_id, reason="pending_reassignment")
                )
                continue

            created.append(
                await create_enrollment(
                    session,
                    quiz_id,
                    student_id,
                    now,
                    parent_enrollment_id=latest.id,
                    reason=request.reason,
                    reassigned_by=request.reassigned_by,
                    commit=False,
                )
            )
        await session.commit()
    except BaseAppError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"재배정 실패: quiz_id={quiz_id}, error={e}", exc_info=True)
        await session.rollback()
        raise

    logger.info(f"재배정 완료: quiz_id={quiz_id}, reassigned={len(created)}, skipped={len(skipped)}")
    return enrollment_schema.ReassignResponse(
        reassigned=[enrollment_schema.EnrollmentResponse.model_validate(e) for e in created],
        skipped=skipped,
    )


async def list_enrollment_history(
    session: AsyncSession,
    quiz_id: str,
    student_id: str,
    now: datetime,
) -> enrollment_schema.EnrollmentHistoryResponse:
    """학생의 배정 이력 (최신순, 라벨 포함)"""
    quiz = await _get_quiz_or_raise(session, quiz_id)

    enrollments = await enrollment_crud.get_enrollments_for_student(session, quiz_id, student_id)
    if not enrollments:
        raise EnrollmentNotFoundError(quiz_id, student_id)

    labels = label_enrollments(enrollments)
    replaced = superseded_ids(enrollments)
    attempts = await attempt_crud.get_attempts_for_student(session, quiz_id, student_id)

    items = []
    for enrollment in sorted(enrollments, key=_sort_key, reverse=True):
        state = compute_enrollment_state(
            enrollment,
            quiz,
            enrollment_has_attempt(enrollment, attempts),
            now,
            superseded=enrollment.id in replaced,
        )
        base = enrollment_schema.EnrollmentResponse.model_validate(enrollment)
        items.append(
            enrollment_schema.EnrollmentHistoryItem(
                **base.model_dump(),
                label=labels[enrollment.id],
                has_attempt=state.has_attempt,
                is_available=state.is_available,
                reason=state.reason,
            )
        )
    return enrollment_schema.EnrollmentHistoryResponse(items=items, total=len(items))


async def find_dangling_parents(session: AsyncSession) -> list[Enrollment]:
    """존재하지 않는 배정을 parent로 가리키는 재배정 목록"""
    dangling = list(await enrollment_crud.get_dangling_parent_enrollments(session))
    if dangling:
        logger.warning(f"parent가 없는 재배정 발견: count={len(dangling)}, ids={[e.id for e in dangling]}")
    return dangling
