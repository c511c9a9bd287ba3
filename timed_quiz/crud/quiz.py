from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timed_quiz.models.question import Question
from timed_quiz.models.quiz import Quiz


async def get_quiz_by_id(session: AsyncSession, quiz_id: str) -> Quiz | None:
    """ID로 퀴즈 조회

    Args:
        session: 데이터베이스 세션
        quiz_id: 퀴즈 ID
    """
    result = await session.execute(select(Quiz).where(Quiz.id == quiz_id))
    return result.scalar_one_or_none()


async def create_quiz(session: AsyncSession, quiz: Quiz, questions: list[Question]) -> Quiz:
    """퀴즈와 문항 생성"""
    for index, question in enumerate(questions):
        if question.order_index is None:
            question.order_index = index
    quiz.questions = questions
    session.add(quiz)
    await session.commit()
    await session.refresh(quiz)
    return quiz


async def save_quiz(session: AsyncSession, quiz: Quiz) -> Quiz:
    """변경된 퀴즈 저장"""
    await session.commit()
    await session.refresh(quiz)
    return quiz


async def get_questions_by_quiz_id(session: AsyncSession, quiz_id: str) -> Sequence[Question]:
    """퀴즈의 문항 목록 (기본 순서)"""
    stmt = (
        select(Question)
        .where(Question.quiz_id == quiz_id)
        .order_by(Question.order_index, Question.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def count_questions(session: AsyncSession, quiz_id: str) -> int:
    """퀴즈의 문항 수"""
    stmt = select(func.count(Question.id)).where(Question.quiz_id == quiz_id)
    return (await session.scalar(stmt)) or 0
