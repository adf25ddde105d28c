from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quizzes import Quiz


class QuizzesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, quiz_id: int) -> Quiz | None:
        return await session.get(Quiz, quiz_id)
