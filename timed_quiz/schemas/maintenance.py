from datetime import datetime

from pydantic import BaseModel, Field


class SweepErrorItem(BaseModel):
    attempt_id: str
    error: str


class SweepDecisionItem(BaseModel):
    """dry-run 시 보고되는 개별 전이 예정 항목"""
    attempt_id: str
    action: str
    reason: str
    elapsed_minutes: float
    effective_timeout_minutes: float


class SweepReportResponse(BaseModel):
    """정리 작업 결과"""
    dry_run: bool
    timed_out: int = 0
    abandoned: int = 0
    still_valid: int = 0
    old_data_cleaned: int = 0
    skipped: int = Field(0, description="다른 요청이 먼저 종료시켜 건너뛴 수")
    failed: int = 0
    total_processed: int = 0
    errors: list[SweepErrorItem] = Field(default_factory=list)
    decisions: list[SweepDecisionItem] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime | None = None


class SweepStatisticsResponse(BaseModel):
    """응시 상태 통계"""
    by_status: dict[str, int]
    in_progress_over_hour: int
    in_progress_over_day: int
    dangling_parent_enrollments: list[str]
    recommendation: str
