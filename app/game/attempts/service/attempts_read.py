from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quiz_attempts import QuizAttempt
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.game.attempts.constants import (
    ATTEMPT_STATUS_PUBLIC_NAMES,
    ATTEMPT_TERMINAL_STATUSES,
    HISTORY_MAX_LIMIT,
    HISTORY_MIN_LIMIT,
)
from app.game.attempts.grading import expected_value
from app.game.attempts.snapshot import (
    public_question_view,
    review_question_view,
    snapshot_from_payload,
)
from app.game.attempts.types import AttemptHistoryItem, AttemptView, ReviewItem

from .attempts_loading import _load_attempt_for_caller, _storage_guard


def _public_status(status: str) -> str:
    return ATTEMPT_STATUS_PUBLIC_NAMES.get(status, status.lower())


def _in_progress_view(attempt: QuizAttempt) -> AttemptView:
    snapshot = snapshot_from_payload(attempt.question_snapshot or [])
    return AttemptView(
        attempt_id=attempt.id,
        quiz_id=int(attempt.quiz_id),
        status=_public_status(attempt.status),
        started_at=attempt.started_at,
        expires_at=attempt.expires_at,
        finished_at=None,
        attempt_duration_seconds=attempt.attempt_duration_seconds,
        total_questions=int(attempt.total_questions),
        questions=[public_question_view(question) for question in snapshot],
        # raw values only: nothing graded may leak before the attempt ends
        answers={
            str(entry["qid"]): entry.get("userAnswer")
            for entry in attempt.answers or []
            if entry.get("qid")
        },
    )


def _terminal_view(attempt: QuizAttempt) -> AttemptView:
    snapshot = snapshot_from_payload(attempt.question_snapshot or [])
    stored_by_qid = {
        str(entry["qid"]): dict(entry) for entry in attempt.answers or [] if entry.get("qid")
    }
    review = []
    for question in snapshot:
        stored = stored_by_qid.get(question.qid, {})
        review.append(
            ReviewItem(
                qid=question.qid,
                question=question.question,
                is_correct=bool(stored.get("isCorrect", False)),
                expected=expected_value(question),
                user_answer=stored.get("userAnswer"),  # type: ignore[arg-type]
                explanation=question.explanation,
            )
        )
    return AttemptView(
        attempt_id=attempt.id,
        quiz_id=int(attempt.quiz_id),
        status=_public_status(attempt.status),
        started_at=attempt.started_at,
        expires_at=attempt.expires_at,
        finished_at=attempt.finished_at,
        attempt_duration_seconds=attempt.attempt_duration_seconds,
        total_questions=int(attempt.total_questions),
        questions=[review_question_view(question) for question in snapshot],
        answers=stored_by_qid,
        score=int(attempt.score),
        auto_submitted=bool(attempt.auto_submitted),
        review=review,
    )


async def read_attempt(
    session: AsyncSession,
    *,
    attempt_id: UUID,
    caller_user_id: int,
) -> AttemptView:
    attempt = await _load_attempt_for_caller(
        session,
        attempt_id=attempt_id,
        caller_user_id=caller_user_id,
    )
    if attempt.status in ATTEMPT_TERMINAL_STATUSES:
        return _terminal_view(attempt)
    return _in_progress_view(attempt)


async def list_user_attempts(
    session: AsyncSession,
    *,
    user_id: int,
    limit: int,
) -> list[AttemptHistoryItem]:
    resolved_limit = max(HISTORY_MIN_LIMIT, min(HISTORY_MAX_LIMIT, int(limit)))
    async with _storage_guard("list_user_attempts"):
        attempts = await QuizAttemptsRepo.list_recent_terminal_for_user(
            session,
            user_id=user_id,
            limit=resolved_limit,
        )
    return [
        AttemptHistoryItem(
            attempt_id=attempt.id,
            quiz_id=int(attempt.quiz_id),
            status=_public_status(attempt.status),
            score=int(attempt.score),
            total_questions=int(attempt.total_questions),
            auto_submitted=bool(attempt.auto_submitted),
            started_at=attempt.started_at,
            finished_at=attempt.finished_at,
        )
        for attempt in attempts
    ]
