"""Quiz API 통합 테스트"""
from datetime import datetime, timezone

import pytest

# FIXED_NOW(05:30 IST) 기준 3시간 16분 뒤
LOCAL_START = "2025-09-03T08:46"
START_UTC = datetime(2025, 9, 3, 3, 16, tzinfo=timezone.utc)


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _quiz_payload(**overrides) -> dict:
    payload = {
        "educator_id": "educator-1",
        "title": "Weekly Geography",
        "scheduling_mode": "legacy",
        "start_time": LOCAL_START,
        "timezone": "Asia/Kolkata",
        "duration": 30,
        "publish": True,
        "questions": [
            {"question_text": "Capital of France?", "options": ["Paris", "London", "Berlin", "Rome"],
             "correct_answer": "Paris"},
            {"question_text": "2 + 2?", "options": ["2", "3", "4", "5"], "correct_answer": "4"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_legacy_quiz(client):
    """로컬 벽시계 시각을 UTC로 변환해 저장"""
    response = await client.post("/api/v1/quizzes", json=_quiz_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "published"
    assert data["scheduling_status"] == "legacy"
    assert _parse(data["start_time"]) == START_UTC
    assert data["timezone"] == "Asia/Kolkata"
    assert data["question_count"] == 2
    assert data["scheduling"]["local_start_time"] == LOCAL_START
    assert data["scheduling"]["window_status"] == "upcoming"
    assert data["scheduling"]["can_reschedule"] is False


@pytest.mark.asyncio
async def test_create_quiz_in_past_rejected(client):
    response = await client.post("/api/v1/quizzes", json=_quiz_payload(start_time="2025-09-03T05:00"))

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_schedule"


@pytest.mark.asyncio
async def test_create_legacy_quiz_requires_timezone(client):
    response = await client.post("/api/v1/quizzes", json=_quiz_payload(timezone=None))

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_schedule"


@pytest.mark.asyncio
async def test_create_quiz_with_unknown_timezone_uses_default(client):
    response = await client.post("/api/v1/quizzes", json=_quiz_payload(timezone="Mars/Olympus_Mons"))

    assert response.status_code == 201
    data = response.json()
    assert data["timezone"] == "Asia/Kolkata"
    assert _parse(data["start_time"]) == START_UTC


@pytest.mark.asyncio
async def test_create_quiz_invalid_correct_answer(client):
    payload = _quiz_payload(
        questions=[{"question_text": "Q", "options": ["A", "B"], "correct_answer": "C"}]
    )

    response = await client.post("/api/v1/quizzes", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_deferred_quiz_lifecycle(client):
    """deferred 생성 -> 공개 거부 -> 스케줄링 -> 공개"""
    response = await client.post(
        "/api/v1/quizzes",
        json=_quiz_payload(scheduling_mode="deferred", start_time=None, publish=False),
    )
    assert response.status_code == 201
    quiz = response.json()
    assert quiz["status"] == "draft"
    assert quiz["start_time"] is None
    assert quiz["scheduling"]["is_scheduled"] is False
    assert quiz["scheduling"]["window_status"] == "not_scheduled"
    assert quiz["scheduling"]["can_publish"] is False

    response = await client.post(f"/api/v1/quizzes/{quiz['id']}/publish")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_schedule"

    response = await client.post(
        f"/api/v1/quizzes/{quiz['id']}/schedule",
        json={"start_time": LOCAL_START, "timezone": "Asia/Kolkata", "duration": 45, "scheduled_by": "educator-1"},
    )
    assert response.status_code == 200
    scheduled = response.json()
    assert scheduled["scheduling_status"] == "scheduled"
    assert _parse(scheduled["start_time"]) == START_UTC
    assert scheduled["duration"] == 45
    assert scheduled["scheduling"]["scheduled_by"] == "educator-1"
    assert scheduled["scheduling"]["can_publish"] is True

    response = await client.post(f"/api/v1/quizzes/{quiz['id']}/publish")
    assert response.status_code == 200
    assert response.json()["status"] == "published"

    response = await client.post(f"/api/v1/quizzes/{quiz['id']}/publish")
    assert response.status_code == 409
    assert response.json()["code"] == "quiz_state_conflict"


@pytest.mark.asyncio
async def test_reschedule_after_start_rejected(client, clock):
    response = await client.post(
        "/api/v1/quizzes",
        json=_quiz_payload(scheduling_mode="deferred", start_time=None, publish=False),
    )
    quiz_id = response.json()["id"]
    await client.post(
        f"/api/v1/quizzes/{quiz_id}/schedule",
        json={"start_time": LOCAL_START, "timezone": "Asia/Kolkata"},
    )

    clock.advance(hours=4)
    response = await client.post(
        f"/api/v1/quizzes/{quiz_id}/schedule",
        json={"start_time": "2025-09-04T08:46", "timezone": "Asia/Kolkata"},
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_get_quiz_not_found(client):
    response = await client.get("/api/v1/quizzes/missing-quiz")

    assert response.status_code == 404
    assert response.json()["code"] == "quiz_not_found"


@pytest.mark.asyncio
async def test_enroll_and_check_availability(client, clock):
    quiz_id = (await client.post("/api/v1/quizzes", json=_quiz_payload())).json()["id"]

    response = await client.post(
        f"/api/v1/quizzes/{quiz_id}/enrollments", json={"student_ids": ["student-1", "student-2"]}
    )
    assert response.status_code == 201
    assert len(response.json()["enrolled"]) == 2

    response = await client.get(f"/api/v1/quizzes/{quiz_id}/availability", params={"student_id": "student-1"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_available"] is False
    assert data["reason"] == "not_yet_open"
    assert _parse(data["opens_at"]) == START_UTC

    clock.advance(hours=3, minutes=20)
    data = (await client.get(f"/api/v1/quizzes/{quiz_id}/availability", params={"student_id": "student-1"})).json()
    assert data["is_available"] is True
    assert data["reason"] is None

    response = await client.get(f"/api/v1/quizzes/{quiz_id}/availability", params={"student_id": "stranger"})
    assert response.status_code == 404
    assert response.json()["code"] == "enrollment_not_found"


@pytest.mark.asyncio
async def test_reassign_after_expiry(client, clock):
    """24시간 만료 후 재배정하면 다시 응시 가능"""
    quiz_id = (await client.post("/api/v1/quizzes", json=_quiz_payload())).json()["id"]
    await client.post(f"/api/v1/quizzes/{quiz_id}/enrollments", json={"student_ids": ["student-1"]})

    clock.advance(days=2)
    data = (await client.get(f"/api/v1/quizzes/{quiz_id}/availability", params={"student_id": "student-1"})).json()
    assert data["reason"] == "expired"

    response = await client.post(
        f"/api/v1/quizzes/{quiz_id}/reassign",
        json={"student_ids": ["student-1", "student-9"], "reassigned_by": "educator-1"},
    )
    assert response.status_code == 200
    body = response.json()
    assert len(body["reassigned"]) == 1
    assert body["skipped"] == [{"student_id": "student-9", "reason": "not_enrolled"}]

    data = (await client.get(f"/api/v1/quizzes/{quiz_id}/availability", params={"student_id": "student-1"})).json()
    assert data["is_available"] is True
    assert data["is_reassignment"] is True

    history = (await client.get(f"/api/v1/quizzes/{quiz_id}/students/student-1/enrollments")).json()
    assert history["total"] == 2
    assert [item["label"] for item in history["items"]] == ["Reassignment #1", "Original"]


@pytest.mark.asyncio
async def test_archived_quiz_rejects_enrollment(client):
    quiz_id = (await client.post("/api/v1/quizzes", json=_quiz_payload())).json()["id"]

    response = await client.post(f"/api/v1/quizzes/{quiz_id}/archive")
    assert response.status_code == 200
    assert response.json()["status"] == "archived"

    response = await client.post(f"/api/v1/quizzes/{quiz_id}/enrollments", json={"student_ids": ["student-1"]})
    assert response.status_code == 409
