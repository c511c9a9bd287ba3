from timed_quiz.models.base import Base, get_db
from timed_quiz.models.enrollment import Enrollment
from timed_quiz.models.enums import AttemptStatus, EnrollmentStatus, QuizStatus, SchedulingStatus
from timed_quiz.models.question import Question
from timed_quiz.models.quiz import Quiz
from timed_quiz.models.quiz_attempt import QuizAttempt

__all__ = [
    "Base",
    "Quiz",
    "Question",
    "Enrollment",
    "QuizAttempt",
    "SchedulingStatus",
    "QuizStatus",
    "EnrollmentStatus",
    "AttemptStatus",
    "get_db",
]
