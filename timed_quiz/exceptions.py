"""커스텀 예외 클래스 정의"""
from datetime import datetime
from typing import Any


class BaseAppError(Exception):
    """애플리케이션 기본 예외 클래스"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "internal_error",
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.extra = extra or {}
        super().__init__(self.message)


class QuizNotFoundError(BaseAppError):
    """퀴즈를 찾을 수 없을 때 발생하는 예외 (404)"""

    def __init__(self, quiz_id: str):
        super().__init__(f"퀴즈를 찾을 수 없습니다: {quiz_id}", status_code=404, code="quiz_not_found")


class EnrollmentNotFoundError(BaseAppError):
    """배정 기록을 찾을 수 없을 때 발생하는 예외 (404)"""

    def __init__(self, quiz_id: str, student_id: str):
        super().__init__(
            f"배정 기록을 찾을 수 없습니다: quiz_id={quiz_id}, student_id={student_id}",
            status_code=404,
            code="enrollment_not_found",
        )


class AttemptNotFoundError(BaseAppError):
    """응시 기록을 찾을 수 없을 때 발생하는 예외 (404)"""

    def __init__(self, attempt_id: str):
        super().__init__(f"응시 기록을 찾을 수 없습니다: {attempt_id}", status_code=404, code="attempt_not_found")


class InvalidRequestError(BaseAppError):
    """잘못된 요청일 때 발생하는 예외 (400)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=400, code="invalid_request")


class SchedulingValidationError(BaseAppError):
    """시작 시각/시간대 검증 실패 (400)

    재시도 대상이 아니며 호출자에게 즉시 전달된다.
    """

    def __init__(self, message: str):
        super().__init__(message, status_code=400, code="invalid_schedule")


class QuizStateConflictError(BaseAppError):
    """퀴즈 상태 전이가 허용되지 않을 때 발생하는 예외 (409)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=409, code="quiz_state_conflict")


class QuizNotAvailableError(BaseAppError):
    """학습자가 현재 퀴즈를 시작할 수 없을 때 발생하는 예외 (403)"""

    def __init__(self, reason: str, message: str | None = None, available_at: datetime | None = None):
        extra: dict[str, Any] = {"reason": reason}
        if available_at is not None:
            extra["available_at"] = available_at.isoformat()
        super().__init__(
            message or f"현재 응시할 수 없는 퀴즈입니다: {reason}",
            status_code=403,
            code="quiz_not_available",
            extra=extra,
        )
        self.reason = reason


class DanglingParentEnrollmentError(BaseAppError):
    """재배정의 parent_enrollment_id가 존재하지 않는 배정을 가리킬 때 (409)"""

    def __init__(self, enrollment_id: str | None, parent_enrollment_id: str):
        super().__init__(
            f"원본 배정을 찾을 수 없습니다: enrollment_id={enrollment_id}, "
            f"parent_enrollment_id={parent_enrollment_id}",
            status_code=409,
            code="dangling_parent_enrollment",
            extra={"enrollment_id": enrollment_id, "parent_enrollment_id": parent_enrollment_id},
        )
        self.enrollment_id = enrollment_id
        self.parent_enrollment_id = parent_enrollment_id
