from timed_quiz.services.attempt_service import (
    abandon_attempt,
    autosave_attempt,
    get_attempt_result,
    get_attempt_status,
    start_attempt,
    submit_attempt,
)
from timed_quiz.services.enrollment_service import (
    check_availability,
    enroll_students,
    list_enrollment_history,
    reassign_students,
)
from timed_quiz.services.reconciliation_service import (
    SweepPolicy,
    SweepPrecedence,
    get_sweep_statistics,
    run_sweep,
)
from timed_quiz.services.scheduling_service import (
    archive_quiz,
    create_quiz,
    publish_quiz,
    schedule_quiz,
)

__all__ = [
    "create_quiz",
    "schedule_quiz",
    "publish_quiz",
    "archive_quiz",
    "enroll_students",
    "reassign_students",
    "check_availability",
    "list_enrollment_history",
    "start_attempt",
    "autosave_attempt",
    "submit_attempt",
    "abandon_attempt",
    "get_attempt_status",
    "get_attempt_result",
    "SweepPolicy",
    "SweepPrecedence",
    "run_sweep",
    "get_sweep_statistics",
]
