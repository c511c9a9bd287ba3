from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.api.deps import get_now
from timed_quiz.models.base import get_db
from timed_quiz.schemas import maintenance as maintenance_schema
from timed_quiz.services import reconciliation_service

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/reconcile", response_model=maintenance_schema.SweepReportResponse)
async def reconcile_attempts(
    dry_run: bool = Query(False, description="true면 판정 결과만 보고하고 쓰지 않음"),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """방치된 응시 정리 API"""
    return await reconciliation_service.run_sweep(db, now, dry_run=dry_run)


@router.get("/reconcile/stats", response_model=maintenance_schema.SweepStatisticsResponse)
async def get_reconcile_stats(
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """정리 대상 현황 API"""
    return await reconciliation_service.get_sweep_statistics(db, now)
