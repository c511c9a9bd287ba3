"""학습자 로컬 시각 <-> 저장용 UTC 시각 변환

원칙:
1. DB에는 모든 시각을 UTC(aware)로 저장한다.
2. 입력은 시간대 정보가 없는 로컬 벽시계 시각 + IANA 시간대 식별자로 받는다.
3. 오프셋은 고정값이 아니라 해당 날짜 기준으로 계산한다 (DST 대응).
4. 알 수 없는 시간대는 예외 대신 기본 시간대로 대체한다 (표시 우선).
"""
import logging
from datetime import datetime, timezone as dt_timezone

import pytz

from timed_quiz.core.config import settings

logger = logging.getLogger(__name__)

WALL_CLOCK_FORMAT = "%Y-%m-%dT%H:%M"

# 선택 가능한 시간대 목록 (주 사용자층 우선)
SUPPORTED_TIMEZONES = [
    {"value": "Asia/Kolkata", "label": "India Standard Time (IST)", "country": "India"},
    {"value": "Asia/Dhaka", "label": "Bangladesh Standard Time (BST)", "country": "Bangladesh"},
    {"value": "Asia/Karachi", "label": "Pakistan Standard Time (PKT)", "country": "Pakistan"},
    {"value": "Asia/Colombo", "label": "Sri Lanka Standard Time", "country": "Sri Lanka"},
    {"value": "Asia/Kathmandu", "label": "Nepal Time (NPT)", "country": "Nepal"},
    {"value": "UTC", "label": "Coordinated Universal Time (UTC)", "country": "Global"},
    {"value": "America/New_York", "label": "Eastern Time (ET)", "country": "USA"},
    {"value": "America/Chicago", "label": "Central Time (CT)", "country": "USA"},
    {"value": "America/Los_Angeles", "label": "Pacific Time (PT)", "country": "USA"},
    {"value": "Europe/London", "label": "Greenwich Mean Time (GMT)", "country": "UK"},
    {"value": "Europe/Berlin", "label": "Central European Time (CET)", "country": "Germany"},
    {"value": "Asia/Dubai", "label": "Gulf Standard Time (GST)", "country": "UAE"},
    {"value": "Asia/Singapore", "label": "Singapore Standard Time (SST)", "country": "Singapore"},
    {"value": "Asia/Seoul", "label": "Korea Standard Time (KST)", "country": "South Korea"},
    {"value": "Asia/Tokyo", "label": "Japan Standard Time (JST)", "country": "Japan"},
    {"value": "Australia/Sydney", "label": "Australian Eastern Time (AET)", "country": "Australia"},
]


def utcnow() -> datetime:
    """현재 UTC 시각 (aware)"""
    return datetime.now(dt_timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """naive 값은 UTC로 간주하고, aware 값은 UTC로 변환"""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt_timezone.utc)
    return value.astimezone(dt_timezone.utc)


def is_valid_timezone(zone_id: str | None) -> bool:
    if not zone_id:
        return False
    try:
        pytz.timezone(zone_id)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def resolve_timezone(zone_id: str | None, fallback_zone: str | None = None):
    """IANA 식별자를 tzinfo로 변환 (실패 시 기본 시간대로 대체)"""
    fallback = fallback_zone or settings.default_timezone
    if zone_id:
        try:
            return pytz.timezone(zone_id)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"알 수 없는 시간대, 기본값 사용: zone_id={zone_id}, fallback={fallback}")
    return pytz.timezone(fallback)


def parse_wall_clock(value: str) -> datetime:
    """'2025-09-03T08:46' 형식(초 선택) 문자열을 naive datetime으로 파싱

    Raises:
        ValueError: 형식이 잘못된 경우
    """
    text = value.strip()
    if not text:
        raise ValueError("빈 시각 문자열입니다")
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"잘못된 시각 형식입니다 (YYYY-MM-DDTHH:MM): {value}") from e


def format_wall_clock(value: datetime) -> str:
    """naive 벽시계 시각을 datetime-local 입력 형식으로 변환"""
    return value.strftime(WALL_CLOCK_FORMAT)


def to_canonical_instant(
    local_wall_clock: datetime | str,
    zone_id: str | None,
    fallback_zone: str | None = None,
) -> datetime:
    """로컬 벽시계 시각을 해당 시간대 기준으로 해석하여 UTC 시각으로 변환

    모호하거나 존재하지 않는 로컬 시각(DST 전환 구간)은 표준시(is_dst=False)로 해석한다.
    """
    if isinstance(local_wall_clock, str):
        local_wall_clock = parse_wall_clock(local_wall_clock)

    # 이미 오프셋이 포함된 값은 그대로 UTC로 변환
    if local_wall_clock.tzinfo is not None:
        return local_wall_clock.astimezone(dt_timezone.utc)

    tz = resolve_timezone(zone_id, fallback_zone)
    localized = tz.localize(local_wall_clock, is_dst=False)
    return localized.astimezone(dt_timezone.utc)


def to_local_wall_clock(
    instant: datetime,
    zone_id: str | None,
    fallback_zone: str | None = None,
) -> datetime:
    """UTC 시각을 해당 시간대의 벽시계 시각(naive)으로 변환"""
    tz = resolve_timezone(zone_id, fallback_zone)
    return ensure_utc(instant).astimezone(tz).replace(tzinfo=None)


def format_in_timezone(instant: datetime | None, zone_id: str | None) -> str:
    """표시용 문자열 (예: '03 Sep 2025, 08:46 IST')"""
    if instant is None:
        return "Not scheduled"
    tz = resolve_timezone(zone_id)
    local = ensure_utc(instant).astimezone(tz)
    return local.strftime("%d %b %Y, %H:%M %Z")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def describe_relative_time(instant: datetime, now: datetime) -> str:
    """상대 시간 설명 ('in 2 hours', '30 minutes ago')"""
    diff_minutes = int((ensure_utc(instant) - ensure_utc(now)).total_seconds() // 60)

    if diff_minutes > 0:
        if diff_minutes < 60:
            return f"in {_plural(diff_minutes, 'minute')}"
        if diff_minutes < 1440:
            return f"in {_plural(diff_minutes // 60, 'hour')}"
        return f"in {_plural(diff_minutes // 1440, 'day')}"

    past = abs(diff_minutes)
    if past < 60:
        return f"{_plural(past, 'minute')} ago"
    if past < 1440:
        return f"{_plural(past // 60, 'hour')} ago"
    return f"{_plural(past // 1440, 'day')} ago"
