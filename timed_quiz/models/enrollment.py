from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from timed_quiz.models.base import Base, TimestampMixin, UTCDateTime, enum_column, generate_id
from timed_quiz.models.enums import EnrollmentStatus


class Enrollment(Base, TimestampMixin):
    __tablename__ = "enrollments"
    __table_args__ = (
        Index("ix_enrollments_quiz_student_enrolled_at", "quiz_id", "student_id", "enrolled_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    quiz_id: Mapped[str] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    enrolled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[EnrollmentStatus] = mapped_column(
        enum_column(EnrollmentStatus), nullable=False, default=EnrollmentStatus.ENROLLED
    )
    is_reassignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 재배정이 대체하는 이전 배정 (존재하지 않는 id를 가리키면 무결성 이상으로 보고)
    parent_enrollment_id: Mapped[str | None] = mapped_column(
        ForeignKey("enrollments.id"), default=None, index=True
    )
    reassignment_reason: Mapped[str | None] = mapped_column(Text, default=None)
    reassigned_by: Mapped[str | None] = mapped_column(String(64), default=None)
    reassigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
