from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


class UsersRepo:
    @staticmethod
    async def increment_stats(
        session: AsyncSession,
        *,
        user_id: int,
        score_delta: int,
        attempt_delta: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                points=User.points + score_delta,
                total_correct=User.total_correct + score_delta,
                quizzes_attempted=User.quizzes_attempted + attempt_delta,
                updated_at=now_utc,
            )
            .returning(User.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
