from datetime import datetime

from timed_quiz.utils.timezone import utcnow


def get_now() -> datetime:
    """요청 처리 기준 시각 (테스트에서 dependency_overrides로 고정)"""
    return utcnow()
