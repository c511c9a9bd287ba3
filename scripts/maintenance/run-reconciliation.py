#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""방치된 응시 정리 작업 수동 실행 (cron 등록용)

사용법:
    python scripts/maintenance/run-reconciliation.py            # 실제 정리
    python scripts/maintenance/run-reconciliation.py --dry-run  # 판정 결과만 출력
    python scripts/maintenance/run-reconciliation.py --stats    # 현황만 출력
"""
import argparse
import asyncio
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# 환경변수 로드
from dotenv import load_dotenv
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
else:
    env_file = project_root / "env" / ".env"
    if env_file.exists():
        load_dotenv(env_file)

from timed_quiz.core.logging import setup_logging
from timed_quiz.models.base import get_engine, get_session_maker
from timed_quiz.services.reconciliation_service import SweepPolicy, get_sweep_statistics, run_sweep
from timed_quiz.utils.timezone import utcnow


async def main(dry_run: bool, stats_only: bool) -> int:
    session_maker = get_session_maker()
    try:
        async with session_maker() as session:
            if stats_only:
                stats = await get_sweep_statistics(session, utcnow())
                print(stats.model_dump_json(indent=2))
                return 0

            policy = SweepPolicy.from_settings()
            print(
                f"[INFO] 정책: timeout x{policy.timeout_multiplier}, abandon x{policy.abandon_multiplier}, "
                f"상한 {policy.absolute_ceiling_minutes}분, 보존 {policy.retention_days}일, "
                f"우선순위 {policy.precedence.value}"
            )
            report = await run_sweep(session, utcnow(), policy=policy, dry_run=dry_run)
    finally:
        await get_engine().dispose()

    print(f"\n{'='*60}")
    print(f"정리 결과{' (dry-run)' if dry_run else ''}")
    print(f"{'='*60}")
    print(f"  timeout 처리: {report.timed_out}")
    print(f"  abandoned 처리: {report.abandoned}")
    print(f"  유지: {report.still_valid}")
    print(f"  건너뜀: {report.skipped}")
    print(f"  실패: {report.failed}")
    print(f"  답안 정리: {report.old_data_cleaned}")
    for decision in report.decisions:
        print(
            f"  - {decision.attempt_id}: {decision.action} ({decision.reason}, "
            f"경과 {decision.elapsed_minutes}분 / 기준 {decision.effective_timeout_minutes}분)"
        )
    for error in report.errors:
        print(f"  [ERROR] {error.attempt_id}: {error.error}")

    return 1 if report.failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="방치된 응시 정리 작업")
    parser.add_argument("--dry-run", action="store_true", help="상태를 변경하지 않고 판정 결과만 출력")
    parser.add_argument("--stats", action="store_true", help="정리 대상 현황만 출력")
    args = parser.parse_args()

    setup_logging()
    try:
        exit_code = asyncio.run(main(dry_run=args.dry_run, stats_only=args.stats))
    except Exception as e:
        print(f"\n[ERROR] 에러 발생: {e.__class__.__name__}: {str(e)}")
        import traceback
        traceback.print_exc()
        exit_code = 1
    sys.exit(exit_code)
