"""퀴즈 응시 구간 결정

두 가지 스케줄링 방식을 지원한다.
- legacy: 생성 시 start_time 확정
- deferred: 생성 시 start_time 없음, 공개 전에 schedule_quiz로 확정 (확정 후 scheduled)

유효 응시 구간은 [start_time, start_time + duration) 이며 start_time이 없으면 구간도 없다.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.core.config import settings
from timed_quiz.crud import quiz as quiz_crud
from timed_quiz.exceptions import (
    BaseAppError,
    QuizNotFoundError,
    QuizStateConflictError,
    SchedulingValidationError,
)
from timed_quiz.models.enums import QuizStatus, SchedulingStatus, can_transition_quiz
from timed_quiz.models.question import Question
from timed_quiz.models.quiz import Quiz
from timed_quiz.schemas import quiz as quiz_schema
from timed_quiz.utils import timezone as tz_utils

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectiveWindow:
    opens_at: datetime
    closes_at: datetime

    def contains(self, instant: datetime) -> bool:
        return self.opens_at <= instant < self.closes_at


@dataclass(frozen=True)
class WindowDescription:
    status: str
    message: str
    window: EffectiveWindow | None = None


def get_effective_window(quiz: Quiz) -> EffectiveWindow | None:
    """유효 응시 구간 (시작 시각 미정이면 None)"""
    if quiz.start_time is None:
        return None
    opens_at = tz_utils.ensure_utc(quiz.start_time)
    return EffectiveWindow(opens_at=opens_at, closes_at=opens_at + timedelta(minutes=quiz.duration))


def assert_scheduling_invariant(quiz: Quiz) -> None:
    """deferred 상태와 start_time 유무가 일치하는지 확인

    Raises:
        QuizStateConflictError: deferred인데 start_time이 있거나, 그 외 상태인데 start_time이 없는 경우
    """
    is_deferred = quiz.scheduling_status == SchedulingStatus.DEFERRED
    if is_deferred and quiz.start_time is not None:
        raise QuizStateConflictError(f"deferred 퀴즈에 시작 시각이 설정되어 있습니다: {quiz.id}")
    if not is_deferred and quiz.start_time is None:
        raise QuizStateConflictError(
            f"{quiz.scheduling_status.value} 퀴즈에 시작 시각이 없습니다: {quiz.id}"
        )


def validate_start_time(
    start_time: datetime,
    now: datetime,
    min_lead_minutes: int | None = None,
    max_horizon_days: int | None = None,
) -> None:
    """시작 시각은 now + 최소 리드 타임 이후, 최대 범위 이내여야 한다

    Raises:
        SchedulingValidationError: 범위를 벗어난 경우
    """
    lead = settings.min_schedule_lead_minutes if min_lead_minutes is None else min_lead_minutes
    horizon = settings.max_schedule_horizon_days if max_horizon_days is None else max_horizon_days

    earliest = now + timedelta(minutes=lead)
    if start_time < earliest:
        raise SchedulingValidationError(
            f"시작 시각은 현재로부터 최소 {lead}분 이후여야 합니다 "
            f"(요청: {start_time.isoformat()}, 최소: {earliest.isoformat()})"
        )
    if start_time > now + timedelta(days=horizon):
        raise SchedulingValidationError(f"시작 시각은 {horizon}일 이내여야 합니다")


def _resolve_zone_id(zone_id: str | None) -> str:
    """저장할 시간대 식별자 (알 수 없는 값은 기본 시간대로 대체)"""
    if tz_utils.is_valid_timezone(zone_id):
        return zone_id
    logger.warning(f"알 수 없는 시간대, 기본값으로 저장: zone_id={zone_id}, fallback={settings.default_timezone}")
    return settings.default_timezone


def _parse_requested_start(start_time: str, zone_id: str) -> datetime:
    try:
        return tz_utils.to_canonical_instant(start_time, zone_id)
    except ValueError as e:
        raise SchedulingValidationError(str(e)) from e


def can_publish(quiz: Quiz, now: datetime) -> tuple[bool, str | None]:
    """공개 가능 여부와 불가 사유"""
    if quiz.status != QuizStatus.DRAFT:
        return False, f"draft 상태에서만 공개할 수 있습니다 (현재: {quiz.status.value})"
    if quiz.scheduling_status == SchedulingStatus.DEFERRED or quiz.start_time is None:
        return False, "시작 시각을 먼저 확정해야 합니다"

    earliest = now + timedelta(minutes=settings.min_schedule_lead_minutes)
    if tz_utils.ensure_utc(quiz.start_time) < earliest:
        return False, f"시작 시각이 현재로부터 {settings.min_schedule_lead_minutes}분 이내이거나 이미 지났습니다"
    return True, None


def can_reschedule(quiz: Quiz, now: datetime) -> tuple[bool, str | None]:
    """시작 시각 (재)확정 가능 여부와 불가 사유"""
    if quiz.scheduling_status == SchedulingStatus.LEGACY:
        return False, "legacy 퀴즈는 시작 시각을 변경할 수 없습니다"
    if quiz.status == QuizStatus.ARCHIVED:
        return False, "보관된 퀴즈는 스케줄링할 수 없습니다"
    if quiz.start_time is not None and tz_utils.ensure_utc(quiz.start_time) <= now:
        return False, "이미 시작된 퀴즈는 다시 스케줄링할 수 없습니다"
    return True, None


def can_enroll(quiz: Quiz, now: datetime) -> tuple[bool, str | None]:
    """학생 배정 가능 여부"""
    if quiz.status != QuizStatus.PUBLISHED:
        return False, "공개된 퀴즈에만 배정할 수 있습니다"
    if quiz.scheduling_status == SchedulingStatus.LEGACY:
        window = get_effective_window(quiz)
        if window is not None and now >= window.closes_at:
            return False, "응시 구간이 종료된 퀴즈입니다"
    return True, None


def describe_window(quiz: Quiz, now: datetime) -> WindowDescription:
    """응시 구간 상태 요약 (not_scheduled | upcoming | active | ended)"""
    window = get_effective_window(quiz)
    if window is None:
        return WindowDescription(status="not_scheduled", message="Quiz start time has not been scheduled yet")

    if now < window.opens_at:
        return WindowDescription(
            status="upcoming",
            message=f"Quiz starts {tz_utils.describe_relative_time(window.opens_at, now)} "
                    f"({tz_utils.format_in_timezone(window.opens_at, quiz.timezone)})",
            window=window,
        )
    if now < window.closes_at:
        return WindowDescription(
            status="active",
            message=f"Quiz is open, closes {tz_utils.describe_relative_time(window.closes_at, now)}",
            window=window,
        )
    return WindowDescription(
        status="ended",
        message=f"Quiz window ended {tz_utils.describe_relative_time(window.closes_at, now)}",
        window=window,
    )


def build_quiz_response(quiz: Quiz, now: datetime, question_count: int) -> quiz_schema.QuizResponse:
    """Quiz 모델을 스케줄링 요약이 포함된 응답으로 변환"""
    publishable, publish_reason = can_publish(quiz, now)
    reschedulable, reschedule_reason = can_reschedule(quiz, now)
    description = describe_window(quiz, now)

    local_start = None
    if quiz.start_time is not None:
        local_start = tz_utils.format_wall_clock(tz_utils.to_local_wall_clock(quiz.start_time, quiz.timezone))

    effective_window = None
    if description.window is not None:
        effective_window = quiz_schema.EffectiveWindowResponse(
            opens_at=description.window.opens_at,
            closes_at=description.window.closes_at,
        )

    scheduling = quiz_schema.SchedulingSummary(
        mode=quiz.scheduling_status,
        start_time=quiz.start_time,
        local_start_time=local_start,
        timezone=quiz.timezone,
        duration=quiz.duration,
        is_scheduled=quiz.start_time is not None,
        can_publish=publishable,
        can_publish_reason=publish_reason,
        can_reschedule=reschedulable,
        can_reschedule_reason=reschedule_reason,
        window_status=description.status,
        window_message=description.message,
        effective_window=effective_window,
        scheduled_at=quiz.scheduled_at,
        scheduled_by=quiz.scheduled_by,
    )

    return quiz_schema.QuizResponse(
        id=quiz.id,
        educator_id=quiz.educator_id,
        title=quiz.title,
        description=quiz.description,
        status=quiz.status,
        scheduling_status=quiz.scheduling_status,
        start_time=quiz.start_time,
        timezone=quiz.timezone,
        duration=quiz.duration,
        question_count=question_count,
        published_at=quiz.published_at,
        created_at=quiz.created_at,
        scheduling=scheduling,
    )


async def _get_quiz_or_raise(session: AsyncSession, quiz_id: str) -> Quiz:
    quiz = await quiz_crud.get_quiz_by_id(session, quiz_id)
    if not quiz:
        raise QuizNotFoundError(quiz_id)
    return quiz


async def create_quiz(
    session: AsyncSession,
    request: quiz_schema.QuizCreateRequest,
    now: datetime,
) -> quiz_schema.QuizResponse:
    """퀴즈 생성 (legacy: 시각 확정, deferred: 시각 미정)"""
    if request.scheduling_mode == "legacy":
        if not request.start_time or not request.timezone:
            raise SchedulingValidationError("legacy 퀴즈는 start_time과 timezone이 필수입니다")
        zone_id = _resolve_zone_id(request.timezone)
        start_time = _parse_requested_start(request.start_time, zone_id)
        validate_start_time(start_time, now)
        scheduling_status = SchedulingStatus.LEGACY
    else:
        if request.start_time:
            raise SchedulingValidationError("deferred 퀴즈는 생성 시 start_time을 지정할 수 없습니다")
        if request.publish:
            raise SchedulingValidationError("deferred 퀴즈는 시작 시각 확정 전에 공개할 수 없습니다")
        zone_id = _resolve_zone_id(request.timezone) if request.timezone else settings.default_timezone
        start_time = None
        scheduling_status = SchedulingStatus.DEFERRED

    quiz = Quiz(
        educator_id=request.educator_id,
        title=request.title,
        description=request.description,
        scheduling_status=scheduling_status,
        start_time=start_time,
        timezone=zone_id,
        duration=request.duration,
        status=QuizStatus.PUBLISHED if request.publish else QuizStatus.DRAFT,
        published_at=now if request.publish else None,
    )
    questions = [
        Question(
            question_text=q.question_text,
            options=list(q.options),
            correct_answer=q.correct_answer,
            explanation=q.explanation,
            order_index=index,
        )
        for index, q in enumerate(request.questions)
    ]

    try:
        quiz = await quiz_crud.create_quiz(session, quiz, questions)
    except BaseAppError:
        raise
    except Exception as e:
        logger.error(f"퀴즈 생성 실패: {e}", exc_info=True)
        await session.rollback()
        raise

    logger.info(
        f"퀴즈 생성 완료: quiz_id={quiz.id}, mode={scheduling_status.value}, "
        f"start_time={start_time.isoformat() if start_time else None}, timezone={zone_id}"
    )
    return build_quiz_response(quiz, now, len(questions))


async def get_quiz(session: AsyncSession, quiz_id: str, now: datetime) -> quiz_schema.QuizResponse:
    quiz = await _get_quiz_or_raise(session, quiz_id)
    question_count = await quiz_crud.count_questions(session, quiz_id)
    return build_quiz_response(quiz, now, question_count)


async def schedule_quiz(
    session: AsyncSession,
    quiz_id: str,
    request: quiz_schema.QuizScheduleRequest,
    now: datetime,
) -> quiz_schema.QuizResponse:
    """deferred 퀴즈의 시작 시각 확정 (시작 전이라면 재스케줄링 허용)"""
    quiz = await _get_quiz_or_raise(session, quiz_id)

    allowed, reason = can_reschedule(quiz, now)
    if not allowed:
        raise QuizStateConflictError(reason)

    zone_id = _resolve_zone_id(request.timezone)
    start_time = _parse_requested_start(request.start_time, zone_id)
    validate_start_time(start_time, now)

    time_configuration = {
        "configured_at": now.isoformat(),
        "configured_by": request.scheduled_by,
        "start_time": start_time.isoformat(),
        "timezone": zone_id,
    }
    if quiz.start_time is not None:
        time_configuration["previous_start_time"] = tz_utils.ensure_utc(quiz.start_time).isoformat()
        time_configuration["previous_timezone"] = quiz.timezone

    quiz.start_time = start_time
    quiz.timezone = zone_id
    if request.duration is not None:
        quiz.duration = request.duration
    quiz.scheduling_status = SchedulingStatus.SCHEDULED
    quiz.scheduled_at = now
    quiz.scheduled_by = request.scheduled_by
    quiz.time_configuration = time_configuration

    try:
        assert_scheduling_invariant(quiz)
        quiz = await quiz_crud.save_quiz(session, quiz)
    except BaseAppError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"퀴즈 스케줄링 실패: quiz_id={quiz_id}, error={e}", exc_info=True)
        await session.rollback()
        raise

    logger.info(
        f"퀴즈 스케줄링 완료: quiz_id={quiz_id}, start_time={start_time.isoformat()}, "
        f"timezone={zone_id}, rescheduled={'previous_start_time' in time_configuration}"
    )
    question_count = await quiz_crud.count_questions(session, quiz_id)
    return build_quiz_response(quiz, now, question_count)


async def publish_quiz(session: AsyncSession, quiz_id: str, now: datetime) -> quiz_schema.QuizResponse:
    """퀴즈 공개

    Raises:
        QuizStateConflictError: 공개할 수 없는 상태이거나 스케줄링 상태와 start_time이 어긋난 경우
        SchedulingValidationError: 시작 시각이 확정되지 않았거나 너무 가까운 경우
    """
    quiz = await _get_quiz_or_raise(session, quiz_id)
    assert_scheduling_invariant(quiz)

    allowed, reason = can_publish(quiz, now)
    if not allowed:
        if quiz.status != QuizStatus.DRAFT:
            raise QuizStateConflictError(reason)
        raise SchedulingValidationError(reason)

    quiz.status = QuizStatus.PUBLISHED
    quiz.published_at = now
    quiz = await quiz_crud.save_quiz(session, quiz)

    logger.info(f"퀴즈 공개: quiz_id={quiz_id}")
    question_count = await quiz_crud.count_questions(session, quiz_id)
    return build_quiz_response(quiz, now, question_count)


async def archive_quiz(session: AsyncSession, quiz_id: str, now: datetime) -> quiz_schema.QuizResponse:
    """퀴즈 보관 (보관 후에는 배정/응시 불가)"""
    quiz = await _get_quiz_or_raise(session, quiz_id)

    if not can_transition_quiz(quiz.status, QuizStatus.ARCHIVED):
        raise QuizStateConflictError(f"이미 보관된 퀴즈입니다: {quiz_id}")

    quiz.status = QuizStatus.ARCHIVED
    quiz = await quiz_crud.save_quiz(session, quiz)

    logger.info(f"퀴즈 보관: quiz_id={quiz_id}")
    question_count = await quiz_crud.count_questions(session, quiz_id)
    return build_quiz_response(quiz, now, question_count)
