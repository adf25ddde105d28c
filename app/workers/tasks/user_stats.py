from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.db.repo.users_repo import UsersRepo
from app.db.session import SessionLocal
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


async def increment_user_stats_async(
    *,
    user_id: int,
    score_delta: int,
    attempt_delta: int,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        updated = await UsersRepo.increment_stats(
            session,
            user_id=user_id,
            score_delta=score_delta,
            attempt_delta=attempt_delta,
            now_utc=now_utc,
        )
    result = {
        "user_id": user_id,
        "score_delta": score_delta,
        "attempt_delta": attempt_delta,
        "updated": int(updated),
    }
    if updated:
        logger.info("user_stats_incremented", **result)
    else:
        logger.warning("user_stats_user_missing", **result)
    return result


@celery_app.task(name="app.workers.tasks.user_stats.increment_user_stats")
def increment_user_stats(*, user_id: int, score_delta: int, attempt_delta: int) -> dict[str, int]:
    return run_async_job(
        increment_user_stats_async(
            user_id=user_id,
            score_delta=score_delta,
            attempt_delta=attempt_delta,
        )
    )


async def enqueue_user_stats_increment(
    *,
    user_id: int,
    score_delta: int,
    attempt_delta: int = 1,
) -> bool:
    """Fire-and-forget: a failure here is logged and never reaches the caller."""

    def enqueue_call() -> object:
        return increment_user_stats.delay(
            user_id=user_id,
            score_delta=score_delta,
            attempt_delta=attempt_delta,
        )

    timeout_seconds = max(0.1, float(get_settings().stats_enqueue_timeout_seconds))
    try:
        if _is_celery_task(increment_user_stats):
            await asyncio.wait_for(asyncio.to_thread(enqueue_call), timeout=timeout_seconds)
        else:
            enqueue_call()
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "attempt_stats_enqueue_timeout",
            user_id=user_id,
            score_delta=score_delta,
            enqueue_timeout_seconds=timeout_seconds,
        )
        return False
    except Exception as exc:
        logger.warning(
            "attempt_stats_enqueue_failed",
            user_id=user_id,
            score_delta=score_delta,
            error_type=type(exc).__name__,
        )
        return False
