from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from app.game.attempts.errors import AttemptConflictError
from app.game.attempts.service import finalize_attempt, start_attempt
from app.workers.tasks import attempt_expiry
from tests.game.attempt_store_fixtures import InMemoryAttemptStore, make_quiz

UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class _FakeSessionContext:
    async def __aenter__(self) -> object:
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryAttemptStore:
    attempt_store = InMemoryAttemptStore()
    attempt_store.quizzes[1] = make_quiz(1, attempt_duration_seconds=60)
    attempt_store.quizzes[2] = make_quiz(2, attempt_duration_seconds=3600)
    attempt_store.install(monkeypatch)

    async def fake_expire(*, attempt_id: UUID, now_utc: datetime):
        return await finalize_attempt(
            object(),
            attempt_id=attempt_id,
            caller_user_id=None,
            trigger="expiry",
            now_utc=now_utc,
        )

    monkeypatch.setattr(attempt_expiry, "SessionLocal", lambda: _FakeSessionContext())
    monkeypatch.setattr(attempt_expiry.AttemptsService, "expire", fake_expire)
    return attempt_store


async def _start(*, quiz_id: int, user_id: int) -> UUID:
    result = await start_attempt(
        object(),
        quiz_id=quiz_id,
        user_id=user_id,
        username=f"user-{user_id}",
        now_utc=NOW,
    )
    return result.attempt_id


def test_run_attempt_expiry_sweep_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {
            "batch_size": batch_size,
            "selected_total": 3,
            "finalized_total": 2,
            "skipped_total": 1,
            "failed_total": 0,
        }

    monkeypatch.setattr(attempt_expiry, "run_attempt_expiry_sweep_async", fake_async)

    result = attempt_expiry.run_attempt_expiry_sweep(batch_size=7)
    assert result["batch_size"] == 7
    assert result["finalized_total"] == 2


def test_beat_schedule_registers_expiry_sweep() -> None:
    entry = attempt_expiry.celery_app.conf.beat_schedule["attempt-expiry-sweep"]
    assert entry["task"] == "app.workers.tasks.attempt_expiry.run_attempt_expiry_sweep"
    assert entry["schedule"] >= 15


async def test_sweep_times_out_overdue_attempts_only(store) -> None:
    overdue_id = await _start(quiz_id=1, user_id=7)
    running_id = await _start(quiz_id=2, user_id=7)

    result = await attempt_expiry.run_attempt_expiry_sweep_async(
        batch_size=10,
        now_utc=NOW + timedelta(minutes=5),
    )

    assert result == {
        "batch_size": 10,
        "selected_total": 1,
        "finalized_total": 1,
        "skipped_total": 0,
        "failed_total": 0,
    }
    assert store.attempts[overdue_id].status == "TIMED_OUT"
    assert store.attempts[overdue_id].auto_submitted is True
    assert store.attempts[running_id].status == "IN_PROGRESS"


async def test_sweep_is_idempotent_across_runs(store) -> None:
    await _start(quiz_id=1, user_id=7)
    await _start(quiz_id=1, user_id=8)
    later = NOW + timedelta(minutes=5)

    first = await attempt_expiry.run_attempt_expiry_sweep_async(batch_size=10, now_utc=later)
    second = await attempt_expiry.run_attempt_expiry_sweep_async(batch_size=10, now_utc=later)

    assert first["finalized_total"] == 2
    assert second["selected_total"] == 0
    assert second["finalized_total"] == 0


async def test_sweep_respects_batch_size(store) -> None:
    for user_id in range(1, 6):
        await _start(quiz_id=1, user_id=user_id)

    result = await attempt_expiry.run_attempt_expiry_sweep_async(
        batch_size=2,
        now_utc=NOW + timedelta(minutes=5),
    )

    assert result["selected_total"] == 2
    remaining = [record for record in store.attempts.values() if record.status == "IN_PROGRESS"]
    assert len(remaining) == 3


async def test_sweep_uses_injected_clock_when_now_is_not_given(store) -> None:
    await _start(quiz_id=1, user_id=7)

    early = await attempt_expiry.run_attempt_expiry_sweep_async(batch_size=10, clock=lambda: NOW)
    late = await attempt_expiry.run_attempt_expiry_sweep_async(
        batch_size=10,
        clock=lambda: NOW + timedelta(hours=1),
    )

    assert early["selected_total"] == 0
    assert late["finalized_total"] == 1


async def test_sweep_counts_conflicts_as_skipped_and_continues_after_failures(monkeypatch) -> None:
    ids = [uuid4(), uuid4(), uuid4()]
    calls: list[UUID] = []

    async def fake_list_overdue(session, *, now_utc: datetime, limit: int) -> list[UUID]:  # noqa: ANN001
        del session, now_utc, limit
        return list(ids)

    async def fake_expire(*, attempt_id: UUID, now_utc: datetime) -> None:
        del now_utc
        calls.append(attempt_id)
        if attempt_id == ids[0]:
            raise AttemptConflictError("Attempt already finalized")
        if attempt_id == ids[1]:
            raise RuntimeError("boom")

    monkeypatch.setattr(attempt_expiry, "SessionLocal", lambda: _FakeSessionContext())
    monkeypatch.setattr(
        attempt_expiry.QuizAttemptsRepo,
        "list_overdue_in_progress_ids",
        fake_list_overdue,
    )
    monkeypatch.setattr(attempt_expiry.AttemptsService, "expire", fake_expire)

    result = await attempt_expiry.run_attempt_expiry_sweep_async(batch_size=5, now_utc=NOW)

    assert calls == ids
    assert result == {
        "batch_size": 5,
        "selected_total": 3,
        "finalized_total": 1,
        "skipped_total": 1,
        "failed_total": 1,
    }
