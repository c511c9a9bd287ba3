from fastapi import APIRouter

from timed_quiz.core.config import settings
from timed_quiz.utils.timezone import SUPPORTED_TIMEZONES

router = APIRouter(prefix="/timezones", tags=["timezones"])


@router.get("")
async def get_timezones():
    """선택 가능한 시간대 목록"""
    return {"timezones": SUPPORTED_TIMEZONES, "default": settings.default_timezone}
