"""응시 생명주기 관리

상태: (행 없음) -> in_progress -> completed | abandoned | timeout
in_progress를 벗어나는 모든 전이는 crud.quiz_attempt.transition_attempt의 조건부 쓰기로만 일어나며,
경쟁에서 진 요청은 오류가 아니라 already_finalized 결과를 받는다.
"""
import logging
import random
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.crud import enrollment as enrollment_crud, quiz as quiz_crud, quiz_attempt as attempt_crud
from timed_quiz.exceptions import (
    AttemptNotFoundError,
    BaseAppError,
    QuizNotAvailableError,
    QuizNotFoundError,
)
from timed_quiz.models.base import generate_id
from timed_quiz.models.enums import AttemptStatus, EnrollmentStatus, SchedulingStatus, can_transition_attempt
from timed_quiz.models.question import Question
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt
from timed_quiz.schemas import attempt as attempt_schema
from timed_quiz.services import enrollment_service, scheduling_service
from timed_quiz.utils.timezone import ensure_utc

logger = logging.getLogger(__name__)

# (최소 점수, 등급, 평점, 설명)
GRADE_TABLE = [
    (95, "A+", 4.0, "Exceptional"),
    (90, "A", 4.0, "Excellent"),
    (85, "A-", 3.7, "Very Good"),
    (80, "B+", 3.3, "Good"),
    (75, "B", 3.0, "Above Average"),
    (70, "B-", 2.7, "Satisfactory"),
    (65, "C+", 2.3, "Acceptable"),
    (60, "C", 2.0, "Average"),
    (55, "C-", 1.7, "Below Average"),
    (50, "D", 1.0, "Poor"),
]
FAILING_GRADE = ("F", 0.0, "Fail")


def get_grade(score: int) -> tuple[str, float, str]:
    for minimum, grade, points, description in GRADE_TABLE:
        if score >= minimum:
            return grade, points, description
    return FAILING_GRADE


def build_question_order(questions: Sequence[Question], seed: str) -> list[dict]:
    """문항 순서와 선택지 순서를 섞어 기록 (같은 seed면 같은 결과)"""
    rng = random.Random(seed)
    shuffled = list(questions)
    rng.shuffle(shuffled)

    order = []
    for question in shuffled:
        options = list(question.options or [])
        rng.shuffle(options)
        order.append({"question_id": question.id, "options": options})
    return order


def score_answers(questions: Sequence[Question], answers: Sequence[dict]) -> tuple[int, int, int]:
    """(정답 수, 전체 문항 수, 0~100 점수)"""
    selected = {a.get("question_id"): a.get("answer") for a in answers if a.get("question_id")}
    total = len(questions)
    correct = sum(1 for q in questions if selected.get(q.id) == q.correct_answer)
    score = round(100 * correct / total) if total else 0
    return correct, total, score


def results_available_at(attempt: QuizAttempt, quiz: Quiz) -> datetime:
    """결과 공개 시각 = coalesce(start_time, created_at) + duration"""
    started = attempt.start_time or attempt.created_at
    return ensure_utc(started) + timedelta(minutes=quiz.duration)


def _present_questions(attempt: QuizAttempt, questions: Sequence[Question]) -> list[attempt_schema.PresentedQuestion]:
    by_id = {q.id: q for q in questions}
    presented = []
    for entry in attempt.question_order or []:
        question = by_id.get(entry.get("question_id"))
        if question is None:
            continue
        presented.append(
            attempt_schema.PresentedQuestion(
                question_id=question.id,
                question_text=question.question_text,
                options=entry.get("options") or list(question.options),
            )
        )
    return presented


def _ordered_questions(attempt: QuizAttempt, questions: Sequence[Question]) -> list[tuple[Question, list[str]]]:
    """저장된 question_order 기준으로 문항 재구성 (기록에 없는 문항은 뒤에 기본 순서로)"""
    by_id = {q.id: q for q in questions}
    ordered = []
    seen = set()
    for entry in attempt.question_order or []:
        question = by_id.get(entry.get("question_id"))
        if question is None or question.id in seen:
            continue
        seen.add(question.id)
        ordered.append((question, entry.get("options") or list(question.options)))
    for question in questions:
        if question.id not in seen:
            ordered.append((question, list(question.options)))
    return ordered


def _start_response(
    attempt: QuizAttempt,
    quiz: Quiz,
    questions: Sequence[Question],
    now: datetime,
    resumed: bool,
) -> attempt_schema.AttemptStartResponse:
    start_time = ensure_utc(attempt.start_time or attempt.created_at)
    ends_at = start_time + timedelta(minutes=quiz.duration)
    return attempt_schema.AttemptStartResponse(
        attempt_id=attempt.id,
        enrollment_id=attempt.enrollment_id,
        status=attempt.status,
        resumed=resumed,
        start_time=start_time,
        ends_at=ends_at,
        remaining_seconds=max(0, int((ends_at - now).total_seconds())),
        questions=_present_questions(attempt, questions),
        answers=[attempt_schema.AnswerItem.model_validate(a) for a in attempt.answers or []],
    )


async def _get_owned_attempt(session: AsyncSession, attempt_id: str, student_id: str | None) -> QuizAttempt:
    """다른 학생의 응시 기록은 존재하지 않는 것으로 취급"""
    attempt = await attempt_crud.get_attempt_by_id(session, attempt_id)
    if not attempt or (student_id is not None and attempt.student_id != student_id):
        raise AttemptNotFoundError(attempt_id)
    return attempt


async def _get_quiz_or_raise(session: AsyncSession, quiz_id: str) -> Quiz:
    quiz = await quiz_crud.get_quiz_by_id(session, quiz_id)
    if not quiz:
        raise QuizNotFoundError(quiz_id)
    return quiz


async def _finalized_response(
    session: AsyncSession,
    attempt: QuizAttempt,
    quiz: Quiz,
) -> attempt_schema.AttemptTransitionResponse:
    """이미 종료된 응시에 대한 응답 (조건부 쓰기 후 최신 상태로 갱신)"""
    await session.refresh(attempt)
    return attempt_schema.AttemptTransitionResponse(
        attempt_id=attempt.id,
        status=attempt.status,
        outcome="already_finalized",
        end_time=attempt.end_time,
        results_available_at=results_available_at(attempt, quiz),
    )


async def start_attempt(
    session: AsyncSession,
    quiz_id: str,
    request: attempt_schema.AttemptStartRequest,
    now: datetime,
) -> attempt_schema.AttemptStartResponse:
    """응시 시작 (진행 중인 응시가 있으면 재개)

    Raises:
        QuizNotFoundError: 퀴즈가 없는 경우
        EnrollmentNotFoundError: 배정 기록이 없는 경우
        QuizNotAvailableError: 응시 불가 (reason에 사유 코드)
        DanglingParentEnrollmentError: 재배정 체인이 끊어진 경우
    """
    quiz = await _get_quiz_or_raise(session, quiz_id)
    student_id = request.student_id

    enrollment, owned, state = await enrollment_service.resolve_student_enrollment(session, quiz, student_id, now)
    questions = await quiz_crud.get_questions_by_quiz_id(session, quiz_id)

    in_progress = next((a for a in owned if a.status == AttemptStatus.IN_PROGRESS), None)
    if in_progress is not None and enrollment.status == EnrollmentStatus.ENROLLED:
        logger.info(f"진행 중인 응시 재개: attempt_id={in_progress.id}, student_id={student_id}")
        return _start_response(in_progress, quiz, questions, now, resumed=True)

    if not state.is_available:
        logger.info(
            f"응시 불가: quiz_id={quiz_id}, student_id={student_id}, reason={state.reason}"
        )
        available_at = quiz.start_time if state.reason == "not_yet_open" else None
        raise QuizNotAvailableError(state.reason, available_at=available_at)

    # 확정된 응시 구간은 재배정이 아닌 경우에만 강제
    if quiz.scheduling_status == SchedulingStatus.SCHEDULED and not enrollment.is_reassignment:
        window = scheduling_service.get_effective_window(quiz)
        if window is None or not window.contains(now):
            raise QuizNotAvailableError("window_closed", "응시 가능 시간이 종료되었습니다")

    attempt_id = generate_id()
    attempt = QuizAttempt(
        id=attempt_id,
        quiz_id=quiz_id,
        student_id=student_id,
        enrollment_id=enrollment.id,
        status=AttemptStatus.IN_PROGRESS,
        start_time=now,
        timezone=request.timezone or quiz.timezone,
        total_questions=len(questions),
        answers=[],
        question_order=build_question_order(questions, attempt_id),
    )
    enrollment_id = enrollment.id
    enrollment_crud.mark_enrollment_started(enrollment, now)

    try:
        attempt = await attempt_crud.create_attempt(session, attempt)
    except IntegrityError:
        # 동시에 들어온 다른 시작 요청이 먼저 응시를 만든 경우 그 응시를 재개
        await session.rollback()
        existing = await attempt_crud.get_in_progress_attempt(session, enrollment_id)
        if existing is None:
            raise
        logger.info(f"동시 시작 요청, 기존 응시 재개: attempt_id={existing.id}, student_id={student_id}")
        quiz = await _get_quiz_or_raise(session, quiz_id)
        questions = await quiz_crud.get_questions_by_quiz_id(session, quiz_id)
        return _start_response(existing, quiz, questions, now, resumed=True)
    except Exception as e:
        logger.error(f"응시 생성 실패: quiz_id={quiz_id}, student_id={student_id}, error={e}", exc_info=True)
        await session.rollback()
        raise

    logger.info(
        f"응시 시작: attempt_id={attempt.id}, quiz_id={quiz_id}, student_id={student_id}, "
        f"enrollment_id={enrollment.id}, reassignment={enrollment.is_reassignment}"
    )
    return _start_response(attempt, quiz, questions, now, resumed=False)


async def autosave_attempt(
    session: AsyncSession,
    attempt_id: str,
    request: attempt_schema.AutosaveRequest,
    now: datetime,
) -> attempt_schema.AttemptTransitionResponse:
    """진행 중인 응시의 답안 자동 저장"""
    attempt = await _get_owned_attempt(session, attempt_id, request.student_id)
    quiz = await _get_quiz_or_raise(session, attempt.quiz_id)

    if attempt.status.is_terminal:
        return await _finalized_response(session, attempt, quiz)

    answers = [a.model_dump() for a in request.answers]
    saved = await attempt_crud.update_in_progress_answers(session, attempt_id, answers, now)
    if not saved:
        logger.info(f"자동 저장 무시 (이미 종료됨): attempt_id={attempt_id}")
        return await _finalized_response(session, attempt, quiz)

    return attempt_schema.AttemptTransitionResponse(
        attempt_id=attempt_id,
        status=AttemptStatus.IN_PROGRESS,
        outcome="saved",
        results_available_at=results_available_at(attempt, quiz),
    )


async def submit_attempt(
    session: AsyncSession,
    attempt_id: str,
    request: attempt_schema.SubmitRequest,
    now: datetime,
) -> attempt_schema.AttemptTransitionResponse:
    """답안 제출 및 채점 (결과는 공개 시각 이후 get_attempt_result로 조회)"""
    attempt = await _get_owned_attempt(session, attempt_id, request.student_id)
    quiz = await _get_quiz_or_raise(session, attempt.quiz_id)

    if not can_transition_attempt(attempt.status, AttemptStatus.COMPLETED):
        return await _finalized_response(session, attempt, quiz)

    # 제출 본문에 답안이 없으면 자동 저장된 답안으로 채점
    answers = [a.model_dump() for a in request.answers] if request.answers else list(attempt.answers or [])
    questions = await quiz_crud.get_questions_by_quiz_id(session, attempt.quiz_id)
    total_correct, total_questions, score = score_answers(questions, answers)
    started = ensure_utc(attempt.start_time or attempt.created_at)

    try:
        completed = await attempt_crud.transition_attempt(
            session,
            attempt_id,
            AttemptStatus.COMPLETED,
            values={
                "end_time": now,
                "answers": answers,
                "score": score,
                "total_correct": total_correct,
                "total_questions": total_questions,
                "time_spent": max(0, int((now - started).total_seconds())),
                "updated_at": now,
            },
            commit=False,
        )
        if completed and attempt.enrollment_id:
            enrollment = await enrollment_crud.get_enrollment_by_id(session, attempt.enrollment_id)
            if enrollment is not None:
                enrollment_crud.mark_enrollment_completed(enrollment, now)
        await session.commit()
    except BaseAppError:
        raise
    except Exception as e:
        logger.error(f"답안 제출 실패: attempt_id={attempt_id}, error={e}", exc_info=True)
        await session.rollback()
        raise

    if not completed:
        logger.info(f"제출 무시 (이미 종료됨): attempt_id={attempt_id}")
        return await _finalized_response(session, attempt, quiz)

    logger.info(
        f"답안 제출 완료: attempt_id={attempt_id}, score={score}, correct={total_correct}/{total_questions}"
    )
    return attempt_schema.AttemptTransitionResponse(
        attempt_id=attempt_id,
        status=AttemptStatus.COMPLETED,
        outcome="completed",
        end_time=now,
        results_available_at=results_available_at(attempt, quiz),
    )


async def abandon_attempt(
    session: AsyncSession,
    attempt_id: str,
    request: attempt_schema.AbandonRequest,
    now: datetime,
) -> attempt_schema.AttemptTransitionResponse:
    """학습자가 직접 응시 포기 (답안은 비움)"""
    attempt = await _get_owned_attempt(session, attempt_id, request.student_id)
    quiz = await _get_quiz_or_raise(session, attempt.quiz_id)

    if not can_transition_attempt(attempt.status, AttemptStatus.ABANDONED):
        return await _finalized_response(session, attempt, quiz)

    started = ensure_utc(attempt.start_time or attempt.created_at)
    abandoned = await attempt_crud.transition_attempt(
        session,
        attempt_id,
        AttemptStatus.ABANDONED,
        values={
            "end_time": now,
            "answers": [],
            "time_spent": max(0, int((now - started).total_seconds())),
            "updated_at": now,
        },
    )
    if not abandoned:
        logger.info(f"포기 무시 (이미 종료됨): attempt_id={attempt_id}")
        return await _finalized_response(session, attempt, quiz)

    logger.info(f"응시 포기: attempt_id={attempt_id}, student_id={attempt.student_id}")
    return attempt_schema.AttemptTransitionResponse(
        attempt_id=attempt_id,
        status=AttemptStatus.ABANDONED,
        outcome="abandoned",
        end_time=now,
        results_available_at=results_available_at(attempt, quiz),
    )


async def get_attempt_status(session: AsyncSession, attempt_id: str) -> attempt_schema.AttemptStatusResponse:
    attempt = await _get_owned_attempt(session, attempt_id, None)
    quiz = await _get_quiz_or_raise(session, attempt.quiz_id)
    return attempt_schema.AttemptStatusResponse(
        attempt_id=attempt.id,
        quiz_id=attempt.quiz_id,
        student_id=attempt.student_id,
        enrollment_id=attempt.enrollment_id,
        status=attempt.status,
        is_terminal=attempt.status.is_terminal,
        start_time=attempt.start_time,
        end_time=attempt.end_time,
        results_available_at=results_available_at(attempt, quiz),
    )


def build_attempt_result(attempt: QuizAttempt, questions: Sequence[Question]) -> attempt_schema.AttemptResult:
    """저장된 question_order 순서로 채점 결과 구성"""
    answers = {a.get("question_id"): a for a in attempt.answers or [] if a.get("question_id")}
    ordered = _ordered_questions(attempt, questions)

    question_results = []
    for question, options in ordered:
        answer = answers.get(question.id, {})
        selected = answer.get("answer")
        question_results.append(
            attempt_schema.QuestionResult(
                question_id=question.id,
                question_text=question.question_text,
                options=options,
                correct_answer=question.correct_answer,
                selected_answer=selected,
                is_correct=selected == question.correct_answer,
                explanation=question.explanation,
                marked_for_review=bool(answer.get("marked_for_review", False)),
                time_spent=int(answer.get("time_spent") or 0),
            )
        )

    total_questions = attempt.total_questions if attempt.total_questions is not None else len(questions)
    if attempt.score is not None and attempt.total_correct is not None:
        total_correct, score = attempt.total_correct, attempt.score
    else:
        # 제출 없이 종료된 응시는 남아 있는 답안으로 계산
        total_correct = sum(1 for r in question_results if r.is_correct)
        score = round(100 * total_correct / total_questions) if total_questions else 0

    grade, points, description = get_grade(score)
    return attempt_schema.AttemptResult(
        score=score,
        grade=grade,
        grade_points=points,
        grade_description=description,
        total_correct=total_correct,
        total_questions=total_questions,
        wrong_answers=total_questions - total_correct,
        time_spent=attempt.time_spent,
        questions=question_results,
    )


async def get_attempt_result(
    session: AsyncSession,
    attempt_id: str,
    student_id: str,
    now: datetime,
) -> attempt_schema.AttemptResultResponse:
    """결과 조회 (공개 시각 이전에는 too_early)"""
    attempt = await _get_owned_attempt(session, attempt_id, student_id)
    quiz = await _get_quiz_or_raise(session, attempt.quiz_id)
    available_at = results_available_at(attempt, quiz)

    response = attempt_schema.AttemptResultResponse(
        attempt_id=attempt.id,
        quiz_id=attempt.quiz_id,
        status=attempt.status,
        disclosure="available",
        available_at=available_at,
    )

    if attempt.status == AttemptStatus.IN_PROGRESS:
        response.disclosure = "in_progress"
        return response
    if now < available_at:
        response.disclosure = "too_early"
        return response

    questions = await quiz_crud.get_questions_by_quiz_id(session, attempt.quiz_id)
    response.result = build_attempt_result(attempt, questions)
    return response
