from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.game.attempts.constants import ATTEMPT_STATUS_IN_PROGRESS
from app.game.attempts.errors import AttemptConflictError
from app.game.attempts.snapshot import snapshot_from_payload
from app.game.attempts.types import SaveProgressResult

from .answers_payload import ensure_known_qids, merge_answer_entries, parse_answers_payload
from .attempts_loading import _load_attempt_for_caller, _storage_guard

logger = structlog.get_logger("app.game.attempts.service")


async def save_progress(
    session: AsyncSession,
    *,
    attempt_id: UUID,
    caller_user_id: int,
    answers_payload: object,
    now_utc: datetime,
) -> SaveProgressResult:
    attempt = await _load_attempt_for_caller(
        session,
        attempt_id=attempt_id,
        caller_user_id=caller_user_id,
    )
    incoming = parse_answers_payload(answers_payload)
    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        raise AttemptConflictError("Attempt is not in progress")

    ensure_known_qids(
        incoming,
        known_qids={question.qid for question in snapshot_from_payload(attempt.question_snapshot or [])},
    )
    merged = merge_answer_entries(attempt.answers or [], incoming)

    async with _storage_guard("save_answers"):
        saved = await QuizAttemptsRepo.save_answers_if_in_progress(
            session,
            attempt_id=attempt_id,
            answers=merged,
            now_utc=now_utc,
        )
    if not saved:
        logger.info("attempt_save_rejected_not_in_progress", attempt_id=str(attempt_id))
        raise AttemptConflictError("Attempt is no longer in progress")

    logger.info(
        "attempt_saved",
        attempt_id=str(attempt_id),
        user_id=caller_user_id,
        answers_count=len(merged),
        updated_qids=len(incoming),
    )
    return SaveProgressResult(
        attempt_id=attempt_id,
        answers_count=len(merged),
        saved_at=now_utc,
    )
