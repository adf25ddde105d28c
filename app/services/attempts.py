"""Transaction boundaries for the attempt lifecycle.

Each operation runs in its own unit of work. ``finalize`` commits the guarded
status transition first and only then enqueues the user stats increment, so a
broker outage can never undo or fail an already-committed finalization.
"""

from __future__ import annotations

import random
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.game.attempts.constants import FINALIZE_TRIGGER_EXPIRY, FINALIZE_TRIGGER_USER
from app.game.attempts.errors import AttemptDependencyError
from app.game.attempts.service import (
    finalize_attempt,
    list_user_attempts,
    read_attempt,
    save_progress,
    start_attempt,
)
from app.game.attempts.types import (
    AttemptHistoryItem,
    AttemptView,
    FinalizeAttemptResult,
    GradingPolicy,
    SaveProgressResult,
    StartAttemptResult,
)
from app.workers.tasks.user_stats import enqueue_user_stats_increment


def grading_policy_from_settings() -> GradingPolicy:
    settings = get_settings()
    return GradingPolicy(
        fuzzy_threshold=float(settings.grading_fuzzy_threshold),
        numeric_tolerance=float(settings.grading_numeric_tolerance),
    )


class AttemptsService:
    @staticmethod
    async def start(
        *,
        quiz_id: int,
        user_id: int,
        username: str,
        now_utc: datetime,
        rng: random.Random | None = None,
    ) -> StartAttemptResult:
        try:
            async with SessionLocal.begin() as session:
                return await start_attempt(
                    session,
                    quiz_id=quiz_id,
                    user_id=user_id,
                    username=username,
                    now_utc=now_utc,
                    rng=rng,
                )
        except SQLAlchemyError as exc:
            raise AttemptDependencyError from exc

    @staticmethod
    async def save(
        *,
        attempt_id: UUID,
        caller_user_id: int,
        answers_payload: object,
        now_utc: datetime,
    ) -> SaveProgressResult:
        try:
            async with SessionLocal.begin() as session:
                return await save_progress(
                    session,
                    attempt_id=attempt_id,
                    caller_user_id=caller_user_id,
                    answers_payload=answers_payload,
                    now_utc=now_utc,
                )
        except SQLAlchemyError as exc:
            raise AttemptDependencyError from exc

    @staticmethod
    async def finalize_and_publish(
        *,
        attempt_id: UUID,
        caller_user_id: int | None,
        trigger: str,
        now_utc: datetime,
        supplied_answers: object = None,
    ) -> FinalizeAttemptResult:
        try:
            async with SessionLocal.begin() as session:
                result = await finalize_attempt(
                    session,
                    attempt_id=attempt_id,
                    caller_user_id=caller_user_id,
                    trigger=trigger,
                    now_utc=now_utc,
                    supplied_answers=supplied_answers,
                    policy=grading_policy_from_settings(),
                )
        except SQLAlchemyError as exc:
            raise AttemptDependencyError from exc

        await enqueue_user_stats_increment(
            user_id=result.user_id,
            score_delta=result.score,
            attempt_delta=1,
        )
        return result

    @staticmethod
    async def submit(
        *,
        attempt_id: UUID,
        caller_user_id: int,
        supplied_answers: object,
        now_utc: datetime,
    ) -> FinalizeAttemptResult:
        return await AttemptsService.finalize_and_publish(
            attempt_id=attempt_id,
            caller_user_id=caller_user_id,
            trigger=FINALIZE_TRIGGER_USER,
            now_utc=now_utc,
            supplied_answers=supplied_answers,
        )

    @staticmethod
    async def expire(*, attempt_id: UUID, now_utc: datetime) -> FinalizeAttemptResult:
        return await AttemptsService.finalize_and_publish(
            attempt_id=attempt_id,
            caller_user_id=None,
            trigger=FINALIZE_TRIGGER_EXPIRY,
            now_utc=now_utc,
        )

    @staticmethod
    async def read(*, attempt_id: UUID, caller_user_id: int) -> AttemptView:
        try:
            async with SessionLocal() as session:
                return await read_attempt(
                    session,
                    attempt_id=attempt_id,
                    caller_user_id=caller_user_id,
                )
        except SQLAlchemyError as exc:
            raise AttemptDependencyError from exc

    @staticmethod
    async def history(*, user_id: int, limit: int | None = None) -> list[AttemptHistoryItem]:
        resolved_limit = limit if limit is not None else get_settings().attempt_history_default_limit
        try:
            async with SessionLocal() as session:
                return await list_user_attempts(session, user_id=user_id, limit=resolved_limit)
        except SQLAlchemyError as exc:
            raise AttemptDependencyError from exc
