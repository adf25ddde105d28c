from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quiz_attempts import QuizAttempt
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.game.attempts.errors import (
    AttemptDependencyError,
    AttemptForbiddenError,
    AttemptNotFoundError,
)

logger = structlog.get_logger("app.game.attempts.service")


@asynccontextmanager
async def _storage_guard(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "attempt_storage_failed",
            operation=operation,
            error_type=type(exc).__name__,
        )
        raise AttemptDependencyError from exc


async def _load_attempt(session: AsyncSession, *, attempt_id: UUID) -> QuizAttempt:
    async with _storage_guard("load_attempt"):
        attempt = await QuizAttemptsRepo.get_by_id(session, attempt_id)
    if attempt is None:
        raise AttemptNotFoundError
    return attempt


async def _load_attempt_for_caller(
    session: AsyncSession,
    *,
    attempt_id: UUID,
    caller_user_id: int,
) -> QuizAttempt:
    attempt = await _load_attempt(session, attempt_id=attempt_id)
    if int(attempt.user_id) != int(caller_user_id):
        raise AttemptForbiddenError
    return attempt
