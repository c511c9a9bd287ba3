"""공용 테스트 픽스처

- 테스트마다 tmp_path 아래 SQLite 파일 DB 생성 (aiosqlite)
- API 테스트는 httpx.AsyncClient + ASGITransport 사용
- 기준 시각은 clock 픽스처로 고정하고 get_now 의존성을 교체
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from timed_quiz.api.deps import get_now
from timed_quiz.main import app
from timed_quiz.models import Base, get_db
from timed_quiz.models.enrollment import Enrollment
from timed_quiz.models.enums import AttemptStatus, EnrollmentStatus, QuizStatus, SchedulingStatus
from timed_quiz.models.question import Question
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt

# 2025-09-03 05:30 IST
FIXED_NOW = datetime(2025, 9, 3, 0, 0, tzinfo=timezone.utc)


class Clock:
    """테스트용 조정 가능한 시계"""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return Clock(FIXED_NOW)


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db_session(test_session_maker):
    """테스트 데이터 준비/검증용 세션"""
    async with test_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(test_session_maker, clock):
    """API 테스트 클라이언트 (요청마다 새 세션)"""

    async def override_get_db():
        async with test_session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def quiz_factory(test_db_session):
    """문항이 포함된 퀴즈 생성"""

    async def factory(
        start_time: datetime | None = FIXED_NOW,
        duration: int = 30,
        status: QuizStatus = QuizStatus.PUBLISHED,
        scheduling_status: SchedulingStatus | None = None,
        question_count: int = 2,
        timezone_id: str = "Asia/Kolkata",
    ) -> Quiz:
        if scheduling_status is None:
            scheduling_status = SchedulingStatus.DEFERRED if start_time is None else SchedulingStatus.LEGACY
        quiz = Quiz(
            educator_id="educator-1",
            title="Timed Quiz",
            scheduling_status=scheduling_status,
            start_time=start_time,
            timezone=timezone_id,
            duration=duration,
            status=status,
        )
        quiz.questions = [
            Question(
                question_text=f"Question {i + 1}",
                options=[f"Q{i + 1}-A", f"Q{i + 1}-B", f"Q{i + 1}-C", f"Q{i + 1}-D"],
                correct_answer=f"Q{i + 1}-A",
                explanation=f"Q{i + 1}-A is correct",
                order_index=i,
            )
            for i in range(question_count)
        ]
        test_db_session.add(quiz)
        await test_db_session.commit()
        return quiz

    return factory


@pytest.fixture
def enrollment_factory(test_db_session):
    async def factory(
        quiz: Quiz,
        student_id: str = "student-1",
        enrolled_at: datetime = FIXED_NOW - timedelta(days=1),
        status: EnrollmentStatus = EnrollmentStatus.ENROLLED,
        parent: Enrollment | None = None,
        parent_enrollment_id: str | None = None,
    ) -> Enrollment:
        parent_id = parent.id if parent is not None else parent_enrollment_id
        enrollment = Enrollment(
            quiz_id=quiz.id,
            student_id=student_id,
            enrolled_at=enrolled_at,
            status=status,
            is_reassignment=parent_id is not None,
            parent_enrollment_id=parent_id,
            reassignment_reason="Missed original attempt" if parent_id else None,
        )
        test_db_session.add(enrollment)
        await test_db_session.commit()
        return enrollment

    return factory


@pytest.fixture
def attempt_factory(test_db_session):
    async def factory(
        quiz: Quiz,
        student_id: str = "student-1",
        enrollment: Enrollment | None = None,
        status: AttemptStatus = AttemptStatus.IN_PROGRESS,
        start_time: datetime | None = None,
        created_at: datetime = FIXED_NOW,
        updated_at: datetime | None = None,
        answers: list[dict] | None = None,
    ) -> QuizAttempt:
        attempt = QuizAttempt(
            quiz_id=quiz.id,
            student_id=student_id,
            enrollment_id=enrollment.id if enrollment else None,
            status=status,
            start_time=start_time,
            answers=answers or [],
            created_at=created_at,
            updated_at=updated_at or created_at,
        )
        test_db_session.add(attempt)
        await test_db_session.commit()
        return attempt

    return factory
