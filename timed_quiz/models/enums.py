import enum


class SchedulingStatus(str, enum.Enum):
    """퀴즈 시작 시각 결정 방식"""
    LEGACY = "legacy"        # 생성 시 시각 고정
    DEFERRED = "deferred"    # 생성 시 미정, 공개 전 별도 스케줄링 필요
    SCHEDULED = "scheduled"  # deferred 퀴즈에 시각이 지정된 상태


class QuizStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ATTEMPT_STATUSES


TERMINAL_ATTEMPT_STATUSES = frozenset(
    {AttemptStatus.COMPLETED, AttemptStatus.ABANDONED, AttemptStatus.TIMEOUT}
)

# 허용되는 응시 상태 전이 (종료 상태에서는 어떤 전이도 없음)
ATTEMPT_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.IN_PROGRESS: TERMINAL_ATTEMPT_STATUSES,
    AttemptStatus.COMPLETED: frozenset(),
    AttemptStatus.ABANDONED: frozenset(),
    AttemptStatus.TIMEOUT: frozenset(),
}

QUIZ_TRANSITIONS: dict[QuizStatus, frozenset[QuizStatus]] = {
    QuizStatus.DRAFT: frozenset({QuizStatus.PUBLISHED, QuizStatus.ARCHIVED}),
    QuizStatus.PUBLISHED: frozenset({QuizStatus.ARCHIVED}),
    QuizStatus.ARCHIVED: frozenset(),
}


def can_transition_attempt(current: AttemptStatus, target: AttemptStatus) -> bool:
    if current not in ATTEMPT_TRANSITIONS:
        raise ValueError(f"정의되지 않은 응시 상태입니다: {current}")
    return target in ATTEMPT_TRANSITIONS[current]


def can_transition_quiz(current: QuizStatus, target: QuizStatus) -> bool:
    if current not in QUIZ_TRANSITIONS:
        raise ValueError(f"정의되지 않은 퀴즈 상태입니다: {current}")
    return target in QUIZ_TRANSITIONS[current]
