from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quiz_attempts import QuizAttempt

IN_PROGRESS = "IN_PROGRESS"
TERMINAL_STATUSES = ("FINISHED", "TIMED_OUT")


class QuizAttemptsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, attempt_id: UUID) -> QuizAttempt | None:
        return await session.get(QuizAttempt, attempt_id, populate_existing=True)

    @staticmethod
    async def has_finished_for_quiz_user(
        session: AsyncSession,
        *,
        quiz_id: int,
        user_id: int,
    ) -> bool:
        stmt = (
            select(QuizAttempt.id)
            .where(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.user_id == user_id,
                QuizAttempt.status == "FINISHED",
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(session: AsyncSession, *, attempt: QuizAttempt) -> QuizAttempt:
        session.add(attempt)
        await session.flush()
        return attempt

    @staticmethod
    async def save_answers_if_in_progress(
        session: AsyncSession,
        *,
        attempt_id: UUID,
        answers: list[dict[str, object]],
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(QuizAttempt)
            .where(
                QuizAttempt.id == attempt_id,
                QuizAttempt.status == IN_PROGRESS,
            )
            .values(answers=answers, updated_at=now_utc)
            .returning(QuizAttempt.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def finalize_if_in_progress(
        session: AsyncSession,
        *,
        attempt_id: UUID,
        status: str,
        answers: list[dict[str, object]],
        score: int,
        auto_submitted: bool,
        finished_at: datetime,
    ) -> bool:
        stmt = (
            update(QuizAttempt)
            .where(
                QuizAttempt.id == attempt_id,
                QuizAttempt.status == IN_PROGRESS,
            )
            .values(
                status=status,
                answers=answers,
                score=score,
                auto_submitted=auto_submitted,
                finished_at=finished_at,
                updated_at=finished_at,
            )
            .returning(QuizAttempt.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_overdue_in_progress_ids(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[UUID]:
        resolved_limit = max(1, int(limit))
        stmt = (
            select(QuizAttempt.id)
            .where(
                QuizAttempt.status == IN_PROGRESS,
                QuizAttempt.expires_at.is_not(None),
                QuizAttempt.expires_at <= now_utc,
            )
            .order_by(QuizAttempt.expires_at.asc(), QuizAttempt.id.asc())
            .limit(resolved_limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_overdue_backlog(
        session: AsyncSession,
        *,
        now_utc: datetime,
    ) -> tuple[int, datetime | None]:
        stmt = select(func.count(QuizAttempt.id), func.min(QuizAttempt.expires_at)).where(
            QuizAttempt.status == IN_PROGRESS,
            QuizAttempt.expires_at.is_not(None),
            QuizAttempt.expires_at <= now_utc,
        )
        overdue_total, oldest_expires_at = (await session.execute(stmt)).one()
        return int(overdue_total or 0), oldest_expires_at

    @staticmethod
    async def list_recent_terminal_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        limit: int,
    ) -> list[QuizAttempt]:
        stmt = (
            select(QuizAttempt)
            .where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.status.in_(TERMINAL_STATUSES),
            )
            .order_by(QuizAttempt.finished_at.desc(), QuizAttempt.id.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
