from __future__ import annotations

import random
from datetime import datetime, timedelta
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.quiz_attempts import QuizAttempt
from app.db.models.quizzes import Quiz
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.db.repo.quizzes_repo import QuizzesRepo
from app.game.attempts.constants import ATTEMPT_STATUS_IN_PROGRESS
from app.game.attempts.errors import (
    AttemptForbiddenError,
    AttemptNotFoundError,
    AttemptPolicyViolationError,
)
from app.game.attempts.snapshot import (
    build_question_snapshot,
    public_question_view,
    snapshot_to_payload,
)
from app.game.attempts.types import StartAttemptResult

from .attempts_loading import _storage_guard

logger = structlog.get_logger("app.game.attempts.service")


def _resolve_attempt_duration_seconds(quiz: Quiz) -> int | None:
    duration = quiz.attempt_duration_seconds
    if duration is None:
        duration = quiz.time_limit_seconds
    if duration is None or int(duration) <= 0:
        return None
    return int(duration)


def _assert_quiz_available(quiz: Quiz, *, now_utc: datetime) -> None:
    if quiz.start_at is not None and now_utc < quiz.start_at:
        raise AttemptPolicyViolationError("Quiz has not started yet")
    if quiz.end_at is not None and now_utc > quiz.end_at:
        raise AttemptPolicyViolationError("Quiz has ended")


async def start_attempt(
    session: AsyncSession,
    *,
    quiz_id: int,
    user_id: int,
    username: str,
    now_utc: datetime,
    rng: random.Random | None = None,
) -> StartAttemptResult:
    async with _storage_guard("load_quiz"):
        quiz = await QuizzesRepo.get_by_id(session, quiz_id)
    if quiz is None:
        raise AttemptNotFoundError("Quiz not found")

    _assert_quiz_available(quiz, now_utc=now_utc)

    # Check-then-insert: two concurrent starts can both pass this check.
    async with _storage_guard("check_single_attempt"):
        already_finished = await QuizAttemptsRepo.has_finished_for_quiz_user(
            session,
            quiz_id=quiz_id,
            user_id=user_id,
        )
    if already_finished:
        raise AttemptForbiddenError("You have already completed this quiz (single attempt only)")

    snapshot = build_question_snapshot(
        quiz.questions or [],
        shuffle=bool(quiz.shuffle_questions),
        rng=rng,
    )
    duration_seconds = _resolve_attempt_duration_seconds(quiz)
    expires_at = now_utc + timedelta(seconds=duration_seconds) if duration_seconds else None

    attempt = QuizAttempt(
        id=uuid4(),
        quiz_id=quiz_id,
        user_id=user_id,
        username=username,
        status=ATTEMPT_STATUS_IN_PROGRESS,
        started_at=now_utc,
        expires_at=expires_at,
        finished_at=None,
        attempt_duration_seconds=duration_seconds,
        auto_submitted=False,
        question_snapshot=snapshot_to_payload(snapshot),
        answers=[],
        score=0,
        total_questions=len(snapshot),
        created_at=now_utc,
        updated_at=now_utc,
    )
    async with _storage_guard("create_attempt"):
        await QuizAttemptsRepo.create(session, attempt=attempt)

    logger.info(
        "attempt_started",
        attempt_id=str(attempt.id),
        quiz_id=quiz_id,
        user_id=user_id,
        total_questions=len(snapshot),
        expires_at=expires_at.isoformat() if expires_at is not None else None,
        shuffled=bool(quiz.shuffle_questions),
    )
    return StartAttemptResult(
        attempt_id=attempt.id,
        quiz_id=quiz_id,
        started_at=now_utc,
        expires_at=expires_at,
        attempt_duration_seconds=duration_seconds,
        total_questions=len(snapshot),
        questions=[public_question_view(question) for question in snapshot],
    )
