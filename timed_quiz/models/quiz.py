from datetime import datetime

from sqlalchemy import CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timed_quiz.models.base import Base, JSONType, TimestampMixin, UTCDateTime, enum_column, generate_id
from timed_quiz.models.enums import QuizStatus, SchedulingStatus


class Quiz(Base, TimestampMixin):
    __tablename__ = "quizzes"
    __table_args__ = (
        CheckConstraint("duration > 0", name="ck_quizzes_duration_positive"),
        # deferred 상태에서만 start_time이 비어 있을 수 있다
        CheckConstraint(
            "(scheduling_status = 'deferred' AND start_time IS NULL) "
            "OR (scheduling_status <> 'deferred' AND start_time IS NOT NULL)",
            name="ck_quizzes_start_time_matches_scheduling",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    educator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    scheduling_status: Mapped[SchedulingStatus] = mapped_column(
        enum_column(SchedulingStatus), nullable=False, default=SchedulingStatus.LEGACY
    )
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None, index=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QuizStatus] = mapped_column(
        enum_column(QuizStatus), nullable=False, default=QuizStatus.DRAFT, index=True
    )
    time_configuration: Mapped[dict | None] = mapped_column(JSONType, default=None)
    scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    scheduled_by: Mapped[str | None] = mapped_column(String(64), default=None)
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)

    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="quiz",
        order_by="Question.order_index",
        cascade="all, delete-orphan",
    )
