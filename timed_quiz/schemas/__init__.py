from timed_quiz.schemas.attempt import (
    AbandonRequest,
    AnswerItem,
    AttemptResultResponse,
    AttemptStartRequest,
    AttemptStartResponse,
    AttemptStatusResponse,
    AttemptTransitionResponse,
    AutosaveRequest,
    SubmitRequest,
)
from timed_quiz.schemas.enrollment import (
    AvailabilityResponse,
    EnrollmentHistoryResponse,
    EnrollmentResponse,
    EnrollStudentsRequest,
    EnrollStudentsResponse,
    ReassignRequest,
    ReassignResponse,
)
from timed_quiz.schemas.maintenance import SweepReportResponse, SweepStatisticsResponse
from timed_quiz.schemas.quiz import (
    QuestionCreateRequest,
    QuizCreateRequest,
    QuizResponse,
    QuizScheduleRequest,
)

__all__ = [
    "QuestionCreateRequest",
    "QuizCreateRequest",
    "QuizScheduleRequest",
    "QuizResponse",
    "EnrollStudentsRequest",
    "EnrollStudentsResponse",
    "ReassignRequest",
    "ReassignResponse",
    "EnrollmentResponse",
    "EnrollmentHistoryResponse",
    "AvailabilityResponse",
    "AttemptStartRequest",
    "AttemptStartResponse",
    "AnswerItem",
    "AutosaveRequest",
    "SubmitRequest",
    "AbandonRequest",
    "AttemptTransitionResponse",
    "AttemptStatusResponse",
    "AttemptResultResponse",
    "SweepReportResponse",
    "SweepStatisticsResponse",
]
