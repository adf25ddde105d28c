from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quiz_attempts import QuizAttempt
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.game.attempts.constants import (
    ATTEMPT_STATUS_FINISHED,
    ATTEMPT_STATUS_IN_PROGRESS,
    ATTEMPT_STATUS_TIMED_OUT,
    FINALIZE_TRIGGER_EXPIRY,
    FINALIZE_TRIGGER_USER,
    FINALIZE_TRIGGERS,
)
from app.game.attempts.errors import AttemptConflictError, AttemptInvalidInputError
from app.game.attempts.grading import DEFAULT_GRADING_POLICY, grade_all
from app.game.attempts.snapshot import snapshot_from_payload
from app.game.attempts.types import FinalizeAttemptResult, GradeSummary, GradingPolicy

from .answers_payload import (
    answers_by_qid,
    ensure_known_qids,
    merge_answer_entries,
    parse_answers_payload,
)
from .attempts_loading import _load_attempt, _load_attempt_for_caller, _storage_guard

logger = structlog.get_logger("app.game.attempts.service")


def _is_deadline_passed(attempt: QuizAttempt, *, now_utc: datetime) -> bool:
    return attempt.expires_at is not None and now_utc >= attempt.expires_at


def _graded_answer_entries(
    summary: GradeSummary,
    *,
    answer_entries: list[dict[str, object]],
) -> list[dict[str, object]]:
    time_taken_by_qid = {
        str(entry["qid"]): int(entry.get("timeTakenSeconds") or 0) for entry in answer_entries
    }
    return [
        {
            "qid": detail.qid,
            "userAnswer": detail.user_answer,
            "isCorrect": detail.is_correct,
            "timeTakenSeconds": time_taken_by_qid.get(detail.qid, 0),
        }
        for detail in summary.details
    ]


async def finalize_attempt(
    session: AsyncSession,
    *,
    attempt_id: UUID,
    caller_user_id: int | None,
    trigger: str,
    now_utc: datetime,
    supplied_answers: object = None,
    policy: GradingPolicy = DEFAULT_GRADING_POLICY,
) -> FinalizeAttemptResult:
    if trigger not in FINALIZE_TRIGGERS:
        raise AttemptInvalidInputError(f"Unknown finalize trigger: {trigger}")

    if trigger == FINALIZE_TRIGGER_USER:
        if caller_user_id is None:
            raise AttemptInvalidInputError("Caller identity is required to submit")
        attempt = await _load_attempt_for_caller(
            session,
            attempt_id=attempt_id,
            caller_user_id=caller_user_id,
        )
        incoming = parse_answers_payload(supplied_answers)
    else:
        incoming = []
        attempt = await _load_attempt(session, attempt_id=attempt_id)

    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        raise AttemptConflictError("Attempt already finished or timed-out")

    deadline_passed = _is_deadline_passed(attempt, now_utc=now_utc)
    if trigger == FINALIZE_TRIGGER_EXPIRY and not deadline_passed:
        raise AttemptConflictError("Attempt deadline has not passed")

    snapshot = snapshot_from_payload(attempt.question_snapshot or [])
    ensure_known_qids(incoming, known_qids={question.qid for question in snapshot})
    answer_entries = merge_answer_entries(attempt.answers or [], incoming)

    summary = grade_all(snapshot, answers_by_qid(answer_entries), policy)
    status = ATTEMPT_STATUS_TIMED_OUT if trigger == FINALIZE_TRIGGER_EXPIRY else ATTEMPT_STATUS_FINISHED

    async with _storage_guard("finalize_attempt"):
        finalized = await QuizAttemptsRepo.finalize_if_in_progress(
            session,
            attempt_id=attempt_id,
            status=status,
            answers=_graded_answer_entries(summary, answer_entries=answer_entries),
            score=summary.total_correct,
            auto_submitted=deadline_passed,
            finished_at=now_utc,
        )
    if not finalized:
        logger.info(
            "attempt_finalize_race_lost",
            attempt_id=str(attempt_id),
            trigger=trigger,
        )
        raise AttemptConflictError("Attempt already finalized")

    logger.info(
        "attempt_finalized",
        attempt_id=str(attempt_id),
        quiz_id=int(attempt.quiz_id),
        user_id=int(attempt.user_id),
        trigger=trigger,
        status=status,
        score=summary.total_correct,
        total_questions=len(snapshot),
        auto_submitted=deadline_passed,
    )
    return FinalizeAttemptResult(
        attempt_id=attempt_id,
        quiz_id=int(attempt.quiz_id),
        user_id=int(attempt.user_id),
        status=status,
        score=summary.total_correct,
        total_questions=len(snapshot),
        auto_submitted=deadline_passed,
        finished_at=now_utc,
        details=summary.details,
    )
