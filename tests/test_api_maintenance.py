"""Maintenance / 공용 API 통합 테스트"""
from datetime import timedelta

import pytest

from timed_quiz.models.enums import AttemptStatus


@pytest.mark.asyncio
async def test_root_and_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == "Timed Quiz Backend API"

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_get_timezones(client):
    response = await client.get("/api/v1/timezones")

    assert response.status_code == 200
    data = response.json()
    assert data["default"] == "Asia/Kolkata"
    assert data["timezones"][0]["value"] == "Asia/Kolkata"
    assert any(zone["value"] == "America/New_York" for zone in data["timezones"])


@pytest.mark.asyncio
async def test_reconcile_dry_run_then_apply(client, quiz_factory, attempt_factory, now):
    quiz = await quiz_factory(start_time=now - timedelta(hours=2), duration=30)
    stuck = await attempt_factory(
        quiz, start_time=now - timedelta(minutes=90), created_at=now - timedelta(minutes=90)
    )
    await attempt_factory(
        quiz, student_id="student-2", start_time=now - timedelta(minutes=10), created_at=now - timedelta(minutes=10)
    )

    response = await client.post("/api/v1/maintenance/reconcile", params={"dry_run": "true"})
    assert response.status_code == 200
    dry = response.json()
    assert dry["dry_run"] is True
    assert dry["timed_out"] == 1
    assert dry["still_valid"] == 1
    assert dry["decisions"][0]["attempt_id"] == stuck.id

    status_body = (await client.get(f"/api/v1/attempts/{stuck.id}")).json()
    assert status_body["status"] == AttemptStatus.IN_PROGRESS.value

    applied = (await client.post("/api/v1/maintenance/reconcile")).json()
    assert applied["dry_run"] is False
    assert applied["timed_out"] == 1
    assert applied["decisions"] == []

    status_body = (await client.get(f"/api/v1/attempts/{stuck.id}")).json()
    assert status_body["status"] == AttemptStatus.TIMEOUT.value
    assert status_body["is_terminal"] is True


@pytest.mark.asyncio
async def test_reconcile_stats(client, quiz_factory, attempt_factory, now):
    quiz = await quiz_factory(start_time=now - timedelta(days=2))
    await attempt_factory(quiz, created_at=now - timedelta(days=2))

    response = await client.get("/api/v1/maintenance/reconcile/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["by_status"] == {"in_progress": 1}
    assert data["in_progress_over_day"] == 1
    assert data["dangling_parent_enrollments"] == []
    assert data["recommendation"] == "Run cleanup to process stuck attempts"


@pytest.mark.asyncio
async def test_validation_error_is_serializable(client):
    """model_validator에서 발생한 ValueError도 JSON으로 응답"""
    response = await client.post(
        "/api/v1/quizzes",
        json={
            "educator_id": "educator-1",
            "title": "Broken",
            "start_time": "2025-09-03T08:46",
            "timezone": "Asia/Kolkata",
            "duration": 30,
            "questions": [{"question_text": "Q", "options": ["A", "B"], "correct_answer": "C"}],
        },
    )

    assert response.status_code == 422
    assert isinstance(response.json()["detail"], list)
