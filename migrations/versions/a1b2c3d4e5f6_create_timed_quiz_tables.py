"""create_timed_quiz_tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 10:12:41.503117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """quizzes, questions, enrollments, quiz_attempts 테이블 생성"""
    op.create_table(
        'quizzes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('educator_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('scheduling_status', sa.String(length=20), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('time_configuration', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_by', sa.String(length=64), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('duration > 0', name='ck_quizzes_duration_positive'),
        sa.CheckConstraint(
            "(scheduling_status = 'deferred' AND start_time IS NULL) "
            "OR (scheduling_status <> 'deferred' AND start_time IS NOT NULL)",
            name='ck_quizzes_start_time_matches_scheduling',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_quizzes_educator_id', 'quizzes', ['educator_id'])
    op.create_index('ix_quizzes_start_time', 'quizzes', ['start_time'])
    op.create_index('ix_quizzes_status', 'quizzes', ['status'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('quiz_id', sa.String(length=36), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('correct_answer', sa.Text(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('quiz_id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_reassignment', sa.Boolean(), nullable=False),
        sa.Column('parent_enrollment_id', sa.String(length=36), nullable=True),
        sa.Column('reassignment_reason', sa.Text(), nullable=True),
        sa.Column('reassigned_by', sa.String(length=64), nullable=True),
        sa.Column('reassigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_enrollment_id'], ['enrollments.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_enrollments_quiz_id', 'enrollments', ['quiz_id'])
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])
    op.create_index('ix_enrollments_parent_enrollment_id', 'enrollments', ['parent_enrollment_id'])
    op.create_index(
        'ix_enrollments_quiz_student_enrolled_at', 'enrollments', ['quiz_id', 'student_id', 'enrolled_at']
    )

    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('quiz_id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('enrollment_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('total_questions', sa.Integer(), nullable=True),
        sa.Column('total_correct', sa.Integer(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('answers', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('question_order', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['enrollment_id'], ['enrollments.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_quiz_attempts_enrollment_id', 'quiz_attempts', ['enrollment_id'])
    op.create_index('ix_quiz_attempts_status', 'quiz_attempts', ['status'])
    op.create_index('ix_quiz_attempts_status_updated_at', 'quiz_attempts', ['status', 'updated_at'])
    op.create_index('ix_quiz_attempts_quiz_student', 'quiz_attempts', ['quiz_id', 'student_id'])
    # 배정당 진행 중인 응시는 하나만 허용 (동시 시작 요청 방지)
    op.create_index(
        'uq_quiz_attempts_enrollment_in_progress',
        'quiz_attempts',
        ['enrollment_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )


def downgrade() -> None:
    """테이블 삭제 (역순)"""
    op.drop_index('uq_quiz_attempts_enrollment_in_progress', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_quiz_student', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_status_updated_at', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_status', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_enrollment_id', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')

    op.drop_index('ix_enrollments_quiz_student_enrolled_at', table_name='enrollments')
    op.drop_index('ix_enrollments_parent_enrollment_id', table_name='enrollments')
    op.drop_index('ix_enrollments_student_id', table_name='enrollments')
    op.drop_index('ix_enrollments_quiz_id', table_name='enrollments')
    op.drop_table('enrollments')

    op.drop_index('ix_questions_quiz_id', table_name='questions')
    op.drop_table('questions')

    op.drop_index('ix_quizzes_status', table_name='quizzes')
    op.drop_index('ix_quizzes_start_time', table_name='quizzes')
    op.drop_index('ix_quizzes_educator_id', table_name='quizzes')
    op.drop_table('quizzes')
