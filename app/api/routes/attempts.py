from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from app.core.config import get_settings
from app.game.attempts.constants import (
    ATTEMPT_STATUS_PUBLIC_NAMES,
    HISTORY_MAX_LIMIT,
    HISTORY_MIN_LIMIT,
)
from app.game.attempts.errors import (
    AttemptConflictError,
    AttemptDependencyError,
    AttemptError,
    AttemptForbiddenError,
    AttemptInvalidInputError,
    AttemptNotFoundError,
    AttemptPolicyViolationError,
)
from app.game.attempts.types import AttemptView, FinalizeAttemptResult
from app.services.attempts import AttemptsService
from app.services.internal_auth import is_internal_request_authenticated

from .attempts_models import (
    AnswersRequest,
    AttemptHistoryItemResponse,
    AttemptHistoryResponse,
    AttemptResponse,
    GradeDetailResponse,
    SaveProgressResponse,
    StartAttemptResponse,
    SubmitAttemptResponse,
)

router = APIRouter(prefix="/attempts", tags=["attempts"])
logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES: dict[type[AttemptError], int] = {
    AttemptNotFoundError: 404,
    AttemptForbiddenError: 403,
    AttemptPolicyViolationError: 400,
    AttemptConflictError: 409,
    AttemptInvalidInputError: 422,
    AttemptDependencyError: 503,
}


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    user_id: int
    username: str


def _resolve_caller(request: Request) -> CallerIdentity:
    if not is_internal_request_authenticated(
        request,
        expected_token=get_settings().internal_api_token,
    ):
        logger.warning("attempts_auth_failed", reason="invalid_credentials")
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    raw_user_id = (request.headers.get("X-User-Id") or "").strip()
    if not raw_user_id.isdigit() or int(raw_user_id) <= 0:
        logger.warning("attempts_auth_failed", reason="invalid_user_id")
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHENTICATED"})

    user_id = int(raw_user_id)
    username = (request.headers.get("X-User-Name") or "").strip() or f"user-{user_id}"
    return CallerIdentity(user_id=user_id, username=username)


def _as_http_error(exc: AttemptError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": exc.message},
    )


def _public_status(status: str) -> str:
    return ATTEMPT_STATUS_PUBLIC_NAMES.get(status, status.lower())


def _submit_as_response(result: FinalizeAttemptResult) -> SubmitAttemptResponse:
    return SubmitAttemptResponse(
        attempt_id=result.attempt_id,
        quiz_id=result.quiz_id,
        status=_public_status(result.status),
        score=result.score,
        total_questions=result.total_questions,
        auto_submitted=result.auto_submitted,
        finished_at=result.finished_at,
        details=[
            GradeDetailResponse(
                qid=detail.qid,
                question=detail.question,
                is_correct=detail.is_correct,
                expected=detail.expected,
                user_answer=detail.user_answer,
                explanation=detail.explanation,
            )
            for detail in result.details
        ],
    )


def _view_as_response(view: AttemptView) -> AttemptResponse:
    review = None
    if view.review is not None:
        review = [
            GradeDetailResponse(
                qid=item.qid,
                question=item.question,
                is_correct=item.is_correct,
                expected=item.expected,
                user_answer=item.user_answer,
                explanation=item.explanation,
            )
            for item in view.review
        ]
    return AttemptResponse(
        attempt_id=view.attempt_id,
        quiz_id=view.quiz_id,
        status=view.status,
        started_at=view.started_at,
        expires_at=view.expires_at,
        finished_at=view.finished_at,
        attempt_duration_seconds=view.attempt_duration_seconds,
        total_questions=view.total_questions,
        questions=view.questions,
        answers=view.answers,
        score=view.score,
        auto_submitted=view.auto_submitted,
        review=review,
    )


@router.get("/history/me", response_model=AttemptHistoryResponse)
async def get_my_attempt_history(
    request: Request,
    limit: int | None = Query(default=None, ge=HISTORY_MIN_LIMIT, le=HISTORY_MAX_LIMIT),
) -> AttemptHistoryResponse:
    caller = _resolve_caller(request)
    try:
        items = await AttemptsService.history(user_id=caller.user_id, limit=limit)
    except AttemptError as exc:
        raise _as_http_error(exc) from exc

    return AttemptHistoryResponse(
        items=[
            AttemptHistoryItemResponse(
                attempt_id=item.attempt_id,
                quiz_id=item.quiz_id,
                status=item.status,
                score=item.score,
                total_questions=item.total_questions,
                auto_submitted=item.auto_submitted,
                started_at=item.started_at,
                finished_at=item.finished_at,
            )
            for item in items
        ]
    )


@router.post("/quizzes/{quiz_id}/start", response_model=StartAttemptResponse, status_code=201)
async def start_quiz_attempt(quiz_id: int, request: Request) -> StartAttemptResponse:
    caller = _resolve_caller(request)
    try:
        result = await AttemptsService.start(
            quiz_id=quiz_id,
            user_id=caller.user_id,
            username=caller.username,
            now_utc=datetime.now(timezone.utc),
        )
    except AttemptError as exc:
        raise _as_http_error(exc) from exc

    return StartAttemptResponse(
        attempt_id=result.attempt_id,
        quiz_id=result.quiz_id,
        started_at=result.started_at,
        expires_at=result.expires_at,
        attempt_duration_seconds=result.attempt_duration_seconds,
        total_questions=result.total_questions,
        questions=result.questions,
    )


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(attempt_id: UUID, request: Request) -> AttemptResponse:
    caller = _resolve_caller(request)
    try:
        view = await AttemptsService.read(attempt_id=attempt_id, caller_user_id=caller.user_id)
    except AttemptError as exc:
        raise _as_http_error(exc) from exc
    return _view_as_response(view)


@router.patch("/{attempt_id}/save", response_model=SaveProgressResponse)
async def save_attempt_progress(
    attempt_id: UUID,
    payload: AnswersRequest,
    request: Request,
) -> SaveProgressResponse:
    caller = _resolve_caller(request)
    try:
        result = await AttemptsService.save(
            attempt_id=attempt_id,
            caller_user_id=caller.user_id,
            answers_payload=payload.answers,
            now_utc=datetime.now(timezone.utc),
        )
    except AttemptError as exc:
        raise _as_http_error(exc) from exc

    return SaveProgressResponse(
        attempt_id=result.attempt_id,
        answers_count=result.answers_count,
        saved_at=result.saved_at,
    )


@router.post("/{attempt_id}/submit", response_model=SubmitAttemptResponse)
async def submit_attempt(
    attempt_id: UUID,
    request: Request,
    payload: AnswersRequest | None = None,
) -> SubmitAttemptResponse:
    caller = _resolve_caller(request)
    try:
        result = await AttemptsService.submit(
            attempt_id=attempt_id,
            caller_user_id=caller.user_id,
            supplied_answers=payload.answers if payload is not None else None,
            now_utc=datetime.now(timezone.utc),
        )
    except AttemptError as exc:
        raise _as_http_error(exc) from exc
    return _submit_as_response(result)
