from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.db.session import SessionLocal
from app.game.attempts.errors import AttemptConflictError, AttemptNotFoundError
from app.services.attempts import AttemptsService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()

EXPIRY_BATCH_SIZE = max(1, int(settings.attempt_expiry_batch_size))
SCAN_INTERVAL_SECONDS = max(15, int(settings.attempt_expiry_scan_interval_seconds))

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def run_attempt_expiry_sweep_async(
    *,
    batch_size: int = EXPIRY_BATCH_SIZE,
    now_utc: datetime | None = None,
    clock: Clock | None = None,
) -> dict[str, int]:
    if now_utc is None:
        now_utc = (clock or _utc_now)()
    resolved_batch_size = max(1, int(batch_size))

    async with SessionLocal() as session:
        overdue_ids = await QuizAttemptsRepo.list_overdue_in_progress_ids(
            session,
            now_utc=now_utc,
            limit=resolved_batch_size,
        )

    finalized = 0
    skipped = 0
    failed = 0
    for attempt_id in overdue_ids:
        try:
            await AttemptsService.expire(attempt_id=attempt_id, now_utc=now_utc)
            finalized += 1
        except (AttemptConflictError, AttemptNotFoundError) as exc:
            # A user submit or an overlapping sweep got there first.
            skipped += 1
            logger.info(
                "attempt_expiry_skipped",
                attempt_id=str(attempt_id),
                reason=type(exc).__name__,
            )
        except Exception:
            failed += 1
            logger.exception("attempt_expiry_failed", attempt_id=str(attempt_id))

    result = {
        "batch_size": resolved_batch_size,
        "selected_total": len(overdue_ids),
        "finalized_total": finalized,
        "skipped_total": skipped,
        "failed_total": failed,
    }
    logger.info("attempt_expiry_sweep_processed", **result)
    return result


@celery_app.task(name="app.workers.tasks.attempt_expiry.run_attempt_expiry_sweep")
def run_attempt_expiry_sweep(batch_size: int = EXPIRY_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_attempt_expiry_sweep_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "attempt-expiry-sweep": {
            "task": "app.workers.tasks.attempt_expiry.run_attempt_expiry_sweep",
            "schedule": float(SCAN_INTERVAL_SECONDS),
            "options": {"queue": "q_normal"},
        },
    }
)
