"""방치된 응시 정리 (reconciliation sweep)

학습자 요청 없이 응시를 in_progress에서 종료 상태로 옮기는 유일한 경로.
모든 전이는 조건부 쓰기이므로 여러 호스트에서 동시에 실행되어도 안전하다.

판정 규칙 (DURATION_FIRST):
1. 경과 > duration * 2            -> timeout
2. 시작 기록 없음, 경과 > duration * 1.5 -> abandoned
3. 경과 > 절대 상한(240분)          -> abandoned
4. 그 외                            -> 유지
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.core.config import settings
from timed_quiz.crud import quiz_attempt as attempt_crud
from timed_quiz.models.base import get_session_maker
from timed_quiz.models.enums import AttemptStatus
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt
from timed_quiz.schemas import maintenance as maintenance_schema
from timed_quiz.services import enrollment_service
from timed_quiz.utils.timezone import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class SweepPrecedence(str, enum.Enum):
    """duration 규칙과 절대 상한 규칙 중 무엇을 먼저 적용할지"""
    DURATION_FIRST = "duration_first"
    CEILING_FIRST = "ceiling_first"


SWEEP_PRECEDENCE = SweepPrecedence.DURATION_FIRST


class SweepAction(str, enum.Enum):
    TIMEOUT = "timeout"
    ABANDON = "abandon"
    KEEP = "keep"


@dataclass(frozen=True)
class SweepPolicy:
    timeout_multiplier: float = 2.0
    abandon_multiplier: float = 1.5
    absolute_ceiling_minutes: int = 240
    retention_days: int = 7
    precedence: SweepPrecedence = SWEEP_PRECEDENCE

    @classmethod
    def from_settings(cls) -> "SweepPolicy":
        return cls(
            timeout_multiplier=settings.sweep_timeout_multiplier,
            abandon_multiplier=settings.sweep_abandon_multiplier,
            absolute_ceiling_minutes=settings.sweep_absolute_ceiling_minutes,
            retention_days=settings.answer_retention_days,
        )

    def effective_timeout_minutes(self, duration: int | None) -> float:
        if duration is None:
            return float(self.absolute_ceiling_minutes)
        return min(duration * self.timeout_multiplier, self.absolute_ceiling_minutes)


@dataclass(frozen=True)
class SweepDecision:
    attempt_id: str
    action: SweepAction
    reason: str
    elapsed_minutes: float
    effective_timeout_minutes: float


def classify_attempt(
    attempt: QuizAttempt,
    duration: int | None,
    now: datetime,
    policy: SweepPolicy | None = None,
) -> SweepDecision:
    """응시 하나에 대한 정리 판정 (DB 접근 없음)

    경과 시간은 start_time(없으면 created_at) 기준이다.
    퀴즈를 찾을 수 없는 응시(duration=None)는 절대 상한만 적용한다.
    """
    policy = policy or SweepPolicy.from_settings()
    started = attempt.start_time or attempt.created_at
    elapsed = (now - ensure_utc(started)).total_seconds() / 60
    effective = policy.effective_timeout_minutes(duration)

    def decision(action: SweepAction, reason: str) -> SweepDecision:
        return SweepDecision(
            attempt_id=attempt.id,
            action=action,
            reason=reason,
            elapsed_minutes=round(elapsed, 2),
            effective_timeout_minutes=effective,
        )

    if attempt.status != AttemptStatus.IN_PROGRESS:
        return decision(SweepAction.KEEP, "already_terminal")

    over_ceiling = elapsed > policy.absolute_ceiling_minutes
    if policy.precedence == SweepPrecedence.CEILING_FIRST and over_ceiling:
        return decision(SweepAction.ABANDON, "absolute_ceiling")

    if duration is not None:
        if elapsed > duration * policy.timeout_multiplier:
            return decision(SweepAction.TIMEOUT, "duration_timeout")
        if attempt.start_time is None and elapsed > duration * policy.abandon_multiplier:
            return decision(SweepAction.ABANDON, "never_started")

    if over_ceiling:
        return decision(SweepAction.ABANDON, "absolute_ceiling")
    return decision(SweepAction.KEEP, "within_limits")


_TARGET_STATUS = {
    SweepAction.TIMEOUT: AttemptStatus.TIMEOUT,
    SweepAction.ABANDON: AttemptStatus.ABANDONED,
}


def _classify_all(
    rows: list[tuple[QuizAttempt, Quiz | None]],
    now: datetime,
    policy: SweepPolicy,
) -> list[SweepDecision]:
    """쓰기 전에 판정을 모두 끝냄 (롤백 시 로드된 객체가 만료되므로)"""
    decisions = []
    for attempt, quiz in rows:
        if quiz is None:
            logger.warning(f"퀴즈가 없는 응시: attempt_id={attempt.id}, quiz_id={attempt.quiz_id}")
        decisions.append(classify_attempt(attempt, quiz.duration if quiz else None, now, policy))
    return decisions


async def _clean_old_answers(
    session: AsyncSession,
    now: datetime,
    policy: SweepPolicy,
    dry_run: bool,
) -> int:
    """보존 기간이 지난 종료 응시의 답안 원문 삭제 ([]로 설정, updated_at 유지)"""
    cutoff = now - timedelta(days=policy.retention_days)
    candidates = await attempt_crud.get_retention_candidates(session, cutoff)
    ids = [attempt_id for attempt_id, answers in candidates if answers]
    if dry_run or not ids:
        return len(ids)
    return await attempt_crud.clear_answers(session, ids)


async def run_sweep(
    session: AsyncSession,
    now: datetime,
    policy: SweepPolicy | None = None,
    dry_run: bool = False,
) -> maintenance_schema.SweepReportResponse:
    """진행 중인 응시 전체를 판정하고 종료 처리

    행 단위로 커밋하며, 한 행의 실패는 기록 후 다음 행으로 진행한다.
    """
    policy = policy or SweepPolicy.from_settings()
    report = maintenance_schema.SweepReportResponse(dry_run=dry_run, started_at=now)

    rows = await attempt_crud.get_in_progress_attempts_with_quiz(session)
    decisions = _classify_all(rows, now, policy)
    logger.info(f"정리 작업 시작: candidates={len(decisions)}, dry_run={dry_run}, precedence={policy.precedence.value}")

    for decision in decisions:
        report.total_processed += 1

        if decision.action == SweepAction.KEEP:
            report.still_valid += 1
            continue

        if dry_run:
            report.decisions.append(
                maintenance_schema.SweepDecisionItem(
                    attempt_id=decision.attempt_id,
                    action=decision.action.value,
                    reason=decision.reason,
                    elapsed_minutes=decision.elapsed_minutes,
                    effective_timeout_minutes=decision.effective_timeout_minutes,
                )
            )
            if decision.action == SweepAction.TIMEOUT:
                report.timed_out += 1
            else:
                report.abandoned += 1
            continue

        try:
            transitioned = await attempt_crud.transition_attempt(
                session,
                decision.attempt_id,
                _TARGET_STATUS[decision.action],
                values={"end_time": now, "updated_at": now},
            )
        except Exception as e:
            await session.rollback()
            report.failed += 1
            report.errors.append(maintenance_schema.SweepErrorItem(attempt_id=decision.attempt_id, error=str(e)))
            logger.error(f"응시 정리 실패: attempt_id={decision.attempt_id}, error={e}", exc_info=True)
            continue

        if not transitioned:
            # 학습자 제출 등으로 이미 종료됨
            report.skipped += 1
            continue

        if decision.action == SweepAction.TIMEOUT:
            report.timed_out += 1
        else:
            report.abandoned += 1
        logger.info(
            f"응시 정리: attempt_id={decision.attempt_id}, action={decision.action.value}, "
            f"reason={decision.reason}, elapsed={decision.elapsed_minutes}분"
        )

    try:
        report.old_data_cleaned = await _clean_old_answers(session, now, policy, dry_run)
    except Exception as e:
        await session.rollback()
        report.failed += 1
        report.errors.append(maintenance_schema.SweepErrorItem(attempt_id="*", error=f"answer retention: {e}"))
        logger.error(f"답안 보존 기간 정리 실패: {e}", exc_info=True)

    report.finished_at = utcnow()
    logger.info(
        f"정리 작업 완료: timed_out={report.timed_out}, abandoned={report.abandoned}, "
        f"still_valid={report.still_valid}, skipped={report.skipped}, failed={report.failed}, "
        f"old_data_cleaned={report.old_data_cleaned}, dry_run={dry_run}"
    )
    return report


async def get_sweep_statistics(
    session: AsyncSession,
    now: datetime,
) -> maintenance_schema.SweepStatisticsResponse:
    """정리 대상 현황"""
    by_status = await attempt_crud.count_attempts_by_status(session)
    over_hour = await attempt_crud.count_in_progress_older_than(session, now - timedelta(hours=1))
    over_day = await attempt_crud.count_in_progress_older_than(session, now - timedelta(days=1))
    dangling = await enrollment_service.find_dangling_parents(session)

    return maintenance_schema.SweepStatisticsResponse(
        by_status=by_status,
        in_progress_over_hour=over_hour,
        in_progress_over_day=over_day,
        dangling_parent_enrollments=[e.id for e in dangling],
        recommendation="Run cleanup to process stuck attempts" if over_day > 0 else "No cleanup needed",
    )


async def run_periodic_sweep(interval_minutes: int) -> None:
    """주기 실행 루프 (앱 lifespan에서 태스크로 실행)"""
    logger.info(f"주기 정리 작업 시작: interval={interval_minutes}분")
    while True:
        try:
            async with get_session_maker()() as session:
                await run_sweep(session, utcnow())
        except Exception as e:
            logger.error(f"주기 정리 작업 실패: {e}", exc_info=True)
        await asyncio.sleep(interval_minutes * 60)
