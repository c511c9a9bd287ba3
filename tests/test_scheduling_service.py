"""Scheduling Service 테스트"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.crud import quiz as quiz_crud
from timed_quiz.exceptions import QuizNotFoundError, QuizStateConflictError, SchedulingValidationError
from timed_quiz.models.enums import QuizStatus, SchedulingStatus
from timed_quiz.models.quiz import Quiz
from timed_quiz.schemas import quiz as quiz_schema
from timed_quiz.services import scheduling_service


def _questions():
    return [
        quiz_schema.QuestionCreateRequest(
            question_text="2 + 2 = ?",
            options=["3", "4", "5"],
            correct_answer="4",
        )
    ]


def _quiz(**overrides) -> Quiz:
    values = dict(
        id="quiz-1",
        educator_id="educator-1",
        title="Quiz",
        scheduling_status=SchedulingStatus.LEGACY,
        start_time=datetime(2025, 9, 3, 1, 0, tzinfo=timezone.utc),
        timezone="Asia/Kolkata",
        duration=30,
        status=QuizStatus.PUBLISHED,
    )
    values.update(overrides)
    return Quiz(**values)


@pytest.mark.asyncio
async def test_create_deferred_quiz_has_no_start_time(test_db_session, now):
    """deferred 퀴즈는 스케줄링 전까지 start_time이 없음"""
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Deferred",
        scheduling_mode="deferred",
        duration=30,
        questions=_questions(),
    )

    response = await scheduling_service.create_quiz(test_db_session, request, now)

    assert response.scheduling_status == SchedulingStatus.DEFERRED
    assert response.start_time is None
    assert response.question_count == 1
    assert response.scheduling.is_scheduled is False
    assert response.scheduling.can_publish is False
    assert response.scheduling.window_status == "not_scheduled"
    assert response.scheduling.effective_window is None


@pytest.mark.asyncio
async def test_create_legacy_quiz_converts_local_time(test_db_session, now):
    """legacy 퀴즈는 로컬 벽시계 시각을 UTC로 저장"""
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Legacy",
        scheduling_mode="legacy",
        start_time="2025-09-03T08:46",
        timezone="Asia/Kolkata",
        duration=30,
        questions=_questions(),
    )

    response = await scheduling_service.create_quiz(test_db_session, request, now)

    assert response.start_time == datetime(2025, 9, 3, 3, 16, tzinfo=timezone.utc)
    assert response.scheduling.local_start_time == "2025-09-03T08:46"
    assert response.scheduling.effective_window.closes_at == datetime(2025, 9, 3, 3, 46, tzinfo=timezone.utc)
    assert response.status == QuizStatus.DRAFT


@pytest.mark.asyncio
async def test_create_legacy_quiz_three_minutes_ahead_rejected(test_db_session, now):
    """시작 시각이 현재 + 3분이면 거부 (최소 5분)"""
    # now = 05:30 IST
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Too soon",
        scheduling_mode="legacy",
        start_time="2025-09-03T05:33",
        timezone="Asia/Kolkata",
        duration=30,
    )

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.create_quiz(test_db_session, request, now)


@pytest.mark.asyncio
async def test_create_legacy_quiz_exactly_five_minutes_ahead_allowed(test_db_session, now):
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Just in time",
        scheduling_mode="legacy",
        start_time="2025-09-03T05:35",
        timezone="Asia/Kolkata",
        duration=30,
        publish=True,
    )

    response = await scheduling_service.create_quiz(test_db_session, request, now)

    assert response.start_time == now + timedelta(minutes=5)
    assert response.status == QuizStatus.PUBLISHED
    assert response.published_at == now


@pytest.mark.asyncio
async def test_create_legacy_quiz_requires_start_time(mock_db_session, now):
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Missing",
        scheduling_mode="legacy",
        timezone="Asia/Kolkata",
        duration=30,
    )

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.create_quiz(mock_db_session, request, now)


@pytest.mark.asyncio
async def test_create_deferred_quiz_rejects_start_time(mock_db_session, now):
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Deferred",
        scheduling_mode="deferred",
        start_time="2025-09-04T10:00",
        timezone="Asia/Kolkata",
        duration=30,
    )

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.create_quiz(mock_db_session, request, now)


@pytest.mark.asyncio
async def test_create_quiz_malformed_start_time(mock_db_session, now):
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Malformed",
        scheduling_mode="legacy",
        start_time="tomorrow morning",
        timezone="Asia/Kolkata",
        duration=30,
    )

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.create_quiz(mock_db_session, request, now)


@pytest.mark.asyncio
async def test_create_quiz_unknown_timezone_stores_default(test_db_session, now):
    """알 수 없는 시간대는 기본 시간대로 저장"""
    request = quiz_schema.QuizCreateRequest(
        educator_id="educator-1",
        title="Unknown zone",
        scheduling_mode="legacy",
        start_time="2025-09-04T10:00",
        timezone="Nowhere/Special",
        duration=30,
    )

    response = await scheduling_service.create_quiz(test_db_session, request, now)

    assert response.timezone == "Asia/Kolkata"
    assert response.start_time == datetime(2025, 9, 4, 4, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_schedule_deferred_quiz(test_db_session, quiz_factory, now):
    """deferred 퀴즈 시각 확정 -> scheduled"""
    quiz = await quiz_factory(start_time=None, status=QuizStatus.DRAFT)
    request = quiz_schema.QuizScheduleRequest(
        start_time="2025-09-04T10:00",
        timezone="Asia/Kolkata",
        duration=45,
        scheduled_by="educator-1",
    )

    response = await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)

    assert response.scheduling_status == SchedulingStatus.SCHEDULED
    assert response.start_time == datetime(2025, 9, 4, 4, 30, tzinfo=timezone.utc)
    assert response.duration == 45
    assert response.scheduling.scheduled_by == "educator-1"
    assert response.scheduling.can_publish is True

    await test_db_session.refresh(quiz)
    assert quiz.time_configuration["configured_by"] == "educator-1"
    assert "previous_start_time" not in quiz.time_configuration


@pytest.mark.asyncio
async def test_reschedule_records_previous_values(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(
        start_time=now + timedelta(days=2),
        scheduling_status=SchedulingStatus.SCHEDULED,
        status=QuizStatus.PUBLISHED,
    )
    request = quiz_schema.QuizScheduleRequest(start_time="2025-09-10T09:00", timezone="UTC")

    response = await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)

    assert response.start_time == datetime(2025, 9, 10, 9, 0, tzinfo=timezone.utc)
    await test_db_session.refresh(quiz)
    assert quiz.time_configuration["previous_start_time"] == (now + timedelta(days=2)).isoformat()
    assert quiz.time_configuration["previous_timezone"] == "Asia/Kolkata"


@pytest.mark.asyncio
async def test_schedule_legacy_quiz_rejected(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(start_time=now + timedelta(days=1))
    request = quiz_schema.QuizScheduleRequest(start_time="2025-09-10T09:00", timezone="UTC")

    with pytest.raises(QuizStateConflictError):
        await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)


@pytest.mark.asyncio
async def test_schedule_started_quiz_rejected(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(start_time=now - timedelta(minutes=1), scheduling_status=SchedulingStatus.SCHEDULED)
    request = quiz_schema.QuizScheduleRequest(start_time="2025-09-10T09:00", timezone="UTC")

    with pytest.raises(QuizStateConflictError):
        await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)


@pytest.mark.asyncio
async def test_schedule_too_soon_rejected(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(start_time=None, status=QuizStatus.DRAFT)
    request = quiz_schema.QuizScheduleRequest(start_time="2025-09-03T00:04", timezone="UTC")

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)


@pytest.mark.asyncio
async def test_schedule_quiz_not_found(mock_db_session, now):
    """퀴즈를 찾을 수 없을 때 예외 발생"""
    with patch.object(quiz_crud, "get_quiz_by_id", new=AsyncMock(return_value=None)):
        request = quiz_schema.QuizScheduleRequest(start_time="2025-09-10T09:00", timezone="UTC")
        with pytest.raises(QuizNotFoundError):
            await scheduling_service.schedule_quiz(mock_db_session, "missing", request, now)


@pytest.mark.asyncio
async def test_publish_unscheduled_deferred_quiz_rejected(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(start_time=None, status=QuizStatus.DRAFT)

    with pytest.raises(SchedulingValidationError):
        await scheduling_service.publish_quiz(test_db_session, quiz.id, now)


@pytest.mark.asyncio
async def test_publish_legacy_quiz_without_start_time_is_conflict(mock_db_session, now):
    """시작 시각이 빠진 legacy 행은 입력 오류가 아니라 상태 충돌(409)"""
    quiz = _quiz(start_time=None, status=QuizStatus.DRAFT)
    save_quiz = AsyncMock()

    with patch.object(quiz_crud, "get_quiz_by_id", new=AsyncMock(return_value=quiz)), \
            patch.object(quiz_crud, "save_quiz", new=save_quiz):
        with pytest.raises(QuizStateConflictError) as exc_info:
            await scheduling_service.publish_quiz(mock_db_session, quiz.id, now)

    assert exc_info.value.status_code == 409
    save_quiz.assert_not_awaited()
    assert quiz.status == QuizStatus.DRAFT


@pytest.mark.asyncio
async def test_schedule_checks_invariant_before_saving(test_db_session, quiz_factory, now):
    """불변식 검사에 실패하면 변경 사항을 저장하지 않고 롤백"""
    quiz = await quiz_factory(start_time=None, status=QuizStatus.DRAFT)
    request = quiz_schema.QuizScheduleRequest(start_time="2025-09-04T10:00", timezone="Asia/Kolkata")

    with patch.object(
        scheduling_service,
        "assert_scheduling_invariant",
        side_effect=QuizStateConflictError("scheduled 퀴즈에 시작 시각이 없습니다"),
    ) as invariant, patch.object(quiz_crud, "save_quiz", new_callable=AsyncMock) as save_quiz:
        with pytest.raises(QuizStateConflictError):
            await scheduling_service.schedule_quiz(test_db_session, quiz.id, request, now)

    invariant.assert_called_once()
    save_quiz.assert_not_awaited()
    await test_db_session.refresh(quiz)
    assert quiz.scheduling_status == SchedulingStatus.DEFERRED
    assert quiz.start_time is None


@pytest.mark.asyncio
async def test_publish_and_archive(test_db_session, quiz_factory, now):
    quiz = await quiz_factory(start_time=now + timedelta(hours=1), status=QuizStatus.DRAFT)

    published = await scheduling_service.publish_quiz(test_db_session, quiz.id, now)
    assert published.status == QuizStatus.PUBLISHED

    with pytest.raises(QuizStateConflictError):
        await scheduling_service.publish_quiz(test_db_session, quiz.id, now)

    archived = await scheduling_service.archive_quiz(test_db_session, quiz.id, now)
    assert archived.status == QuizStatus.ARCHIVED

    with pytest.raises(QuizStateConflictError):
        await scheduling_service.archive_quiz(test_db_session, quiz.id, now)


def test_validate_start_time_horizon(now):
    with pytest.raises(SchedulingValidationError):
        scheduling_service.validate_start_time(now + timedelta(days=366), now)
    scheduling_service.validate_start_time(now + timedelta(days=365), now)


def test_effective_window():
    quiz = _quiz()
    window = scheduling_service.get_effective_window(quiz)
    assert window.opens_at == datetime(2025, 9, 3, 1, 0, tzinfo=timezone.utc)
    assert window.closes_at == datetime(2025, 9, 3, 1, 30, tzinfo=timezone.utc)
    assert window.contains(window.opens_at)
    assert not window.contains(window.closes_at)

    deferred = _quiz(scheduling_status=SchedulingStatus.DEFERRED, start_time=None)
    assert scheduling_service.get_effective_window(deferred) is None


@pytest.mark.parametrize(
    "offset_minutes,expected",
    [(-10, "upcoming"), (0, "active"), (29, "active"), (30, "ended")],
)
def test_describe_window(offset_minutes, expected):
    quiz = _quiz()
    now = quiz.start_time + timedelta(minutes=offset_minutes)
    assert scheduling_service.describe_window(quiz, now).status == expected


def test_assert_scheduling_invariant():
    scheduling_service.assert_scheduling_invariant(_quiz())
    scheduling_service.assert_scheduling_invariant(_quiz(scheduling_status=SchedulingStatus.DEFERRED, start_time=None))

    with pytest.raises(QuizStateConflictError):
        scheduling_service.assert_scheduling_invariant(_quiz(scheduling_status=SchedulingStatus.DEFERRED))
    with pytest.raises(QuizStateConflictError):
        scheduling_service.assert_scheduling_invariant(_quiz(start_time=None))


def test_can_enroll():
    quiz = _quiz()
    assert scheduling_service.can_enroll(quiz, quiz.start_time)[0] is True
    # legacy 퀴즈는 구간 종료 후 배정 불가
    assert scheduling_service.can_enroll(quiz, quiz.start_time + timedelta(minutes=30))[0] is False
    # scheduled 퀴즈는 재배정 대상이 있으므로 구간 종료 후에도 허용
    scheduled = _quiz(scheduling_status=SchedulingStatus.SCHEDULED)
    assert scheduling_service.can_enroll(scheduled, scheduled.start_time + timedelta(hours=2))[0] is True
    assert scheduling_service.can_enroll(_quiz(status=QuizStatus.DRAFT), quiz.start_time)[0] is False


@pytest.fixture
def mock_db_session():
    """모킹된 DB 세션"""
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    return session
