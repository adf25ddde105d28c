from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.game.attempts.errors import AttemptConflictError, AttemptDependencyError
from app.game.attempts.types import FinalizeAttemptResult
from app.services import attempts as attempts_service
from app.services.attempts import AttemptsService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeUnitOfWork:
    def __init__(self, events: list[str]) -> None:
        self.events = events

    async def __aenter__(self) -> object:
        self.events.append("begin")
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.events.append("rollback" if exc_type else "commit")
        return False


def _install_session(monkeypatch: pytest.MonkeyPatch, events: list[str]) -> None:
    monkeypatch.setattr(
        attempts_service,
        "SessionLocal",
        SimpleNamespace(begin=lambda: _FakeUnitOfWork(events)),
    )


def _finalized(attempt_id) -> FinalizeAttemptResult:  # noqa: ANN001
    return FinalizeAttemptResult(
        attempt_id=attempt_id,
        quiz_id=1,
        user_id=7,
        status="FINISHED",
        score=2,
        total_questions=3,
        auto_submitted=False,
        finished_at=NOW,
    )


async def test_submit_enqueues_stats_after_commit(monkeypatch) -> None:
    events: list[str] = []
    attempt_id = uuid4()
    _install_session(monkeypatch, events)

    async def fake_finalize_attempt(session, **kwargs):  # noqa: ANN001
        del session
        events.append(f"finalize:{kwargs['trigger']}")
        return _finalized(kwargs["attempt_id"])

    async def fake_enqueue(**kwargs) -> bool:
        events.append(f"enqueue:{kwargs['user_id']}:{kwargs['score_delta']}:{kwargs['attempt_delta']}")
        return True

    monkeypatch.setattr(attempts_service, "finalize_attempt", fake_finalize_attempt)
    monkeypatch.setattr(attempts_service, "enqueue_user_stats_increment", fake_enqueue)

    result = await AttemptsService.submit(
        attempt_id=attempt_id,
        caller_user_id=7,
        supplied_answers={"q1": 1},
        now_utc=NOW,
    )

    assert result.score == 2
    assert events == ["begin", "finalize:user", "commit", "enqueue:7:2:1"]


async def test_finalize_result_survives_failed_enqueue(monkeypatch) -> None:
    events: list[str] = []
    _install_session(monkeypatch, events)

    async def fake_finalize_attempt(session, **kwargs):  # noqa: ANN001
        del session
        return _finalized(kwargs["attempt_id"])

    async def fake_enqueue(**kwargs) -> bool:
        del kwargs
        return False

    monkeypatch.setattr(attempts_service, "finalize_attempt", fake_finalize_attempt)
    monkeypatch.setattr(attempts_service, "enqueue_user_stats_increment", fake_enqueue)

    result = await AttemptsService.expire(attempt_id=uuid4(), now_utc=NOW)
    assert result.status == "FINISHED"


async def test_conflict_skips_stats_enqueue(monkeypatch) -> None:
    events: list[str] = []
    _install_session(monkeypatch, events)

    async def fake_finalize_attempt(session, **kwargs):  # noqa: ANN001
        del session, kwargs
        raise AttemptConflictError("Attempt already finalized")

    async def fake_enqueue(**kwargs) -> bool:
        events.append("enqueue")
        return True

    monkeypatch.setattr(attempts_service, "finalize_attempt", fake_finalize_attempt)
    monkeypatch.setattr(attempts_service, "enqueue_user_stats_increment", fake_enqueue)

    with pytest.raises(AttemptConflictError):
        await AttemptsService.expire(attempt_id=uuid4(), now_utc=NOW)
    assert events == ["begin", "rollback"]


async def test_commit_failure_becomes_dependency_error(monkeypatch) -> None:
    class _FailingCommit(_FakeUnitOfWork):
        async def __aexit__(self, exc_type, exc, tb) -> bool:
            raise SQLAlchemyError("commit failed")

    monkeypatch.setattr(
        attempts_service,
        "SessionLocal",
        SimpleNamespace(begin=lambda: _FailingCommit([])),
    )

    async def fake_save_progress(session, **kwargs):  # noqa: ANN001
        del session, kwargs
        return SimpleNamespace(answers_count=1)

    monkeypatch.setattr(attempts_service, "save_progress", fake_save_progress)

    with pytest.raises(AttemptDependencyError):
        await AttemptsService.save(
            attempt_id=uuid4(),
            caller_user_id=7,
            answers_payload={"q1": 1},
            now_utc=NOW,
        )


def test_grading_policy_from_settings(monkeypatch) -> None:
    monkeypatch.setattr(
        attempts_service,
        "get_settings",
        lambda: SimpleNamespace(grading_fuzzy_threshold=0.9, grading_numeric_tolerance=0.01),
    )

    policy = attempts_service.grading_policy_from_settings()
    assert policy.fuzzy_threshold == 0.9
    assert policy.numeric_tolerance == 0.01
