from timed_quiz.crud.enrollment import (
    create_enrollment,
    get_dangling_parent_enrollments,
    get_enrollment_by_id,
    get_enrollments_by_quiz,
    get_enrollments_for_student,
    mark_enrollment_completed,
    mark_enrollment_started,
)
from timed_quiz.crud.quiz import (
    count_questions,
    create_quiz,
    get_questions_by_quiz_id,
    get_quiz_by_id,
    save_quiz,
)
from timed_quiz.crud.quiz_attempt import (
    clear_answers,
    count_attempts_by_status,
    count_in_progress_older_than,
    create_attempt,
    get_attempt_by_id,
    get_attempts_for_student,
    get_in_progress_attempts_with_quiz,
    get_retention_candidates,
    transition_attempt,
    update_in_progress_answers,
)

__all__ = [
    "get_quiz_by_id",
    "create_quiz",
    "save_quiz",
    "count_questions",
    "get_questions_by_quiz_id",
    "get_enrollment_by_id",
    "get_enrollments_for_student",
    "get_enrollments_by_quiz",
    "create_enrollment",
    "mark_enrollment_started",
    "mark_enrollment_completed",
    "get_dangling_parent_enrollments",
    "get_attempt_by_id",
    "get_attempts_for_student",
    "create_attempt",
    "transition_attempt",
    "update_in_progress_answers",
    "get_in_progress_attempts_with_quiz",
    "get_retention_candidates",
    "clear_answers",
    "count_attempts_by_status",
    "count_in_progress_older_than",
]
