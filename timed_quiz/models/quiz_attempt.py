from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from timed_quiz.models.base import Base, JSONType, TimestampMixin, UTCDateTime, enum_column, generate_id
from timed_quiz.models.enums import AttemptStatus


class QuizAttempt(Base, TimestampMixin):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("ix_quiz_attempts_status_updated_at", "status", "updated_at"),
        Index("ix_quiz_attempts_quiz_student", "quiz_id", "student_id"),
        # 배정당 진행 중인 응시는 하나만 허용
        Index(
            "uq_quiz_attempts_enrollment_in_progress",
            "enrollment_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    quiz_id: Mapped[str] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    enrollment_id: Mapped[str | None] = mapped_column(ForeignKey("enrollments.id"), default=None, index=True)
    status: Mapped[AttemptStatus] = mapped_column(
        enum_column(AttemptStatus), nullable=False, default=AttemptStatus.IN_PROGRESS, index=True
    )
    # 행 생성 시각이 아니라 학습자가 실제로 시작한 시각
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    score: Mapped[int | None] = mapped_column(Integer, default=None)
    total_questions: Mapped[int | None] = mapped_column(Integer, default=None)
    total_correct: Mapped[int | None] = mapped_column(Integer, default=None)
    time_spent: Mapped[int | None] = mapped_column(Integer, default=None)
    timezone: Mapped[str | None] = mapped_column(String(64), default=None)
    answers: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    question_order: Mapped[list[dict] | None] = mapped_column(JSONType, default=None)
