from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.main import app

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _store_check(*, lag_seconds: int = 0, overdue: int = 0):
    async def _check(now_utc: datetime) -> dict[str, object]:
        del now_utc
        return {"status": "ok", "overdue_attempts": overdue, "sweep_lag_seconds": lag_seconds}

    return _check


async def _broker_ok() -> dict[str, str]:
    return {"status": "ok"}


async def _broker_down() -> dict[str, str]:
    return {"status": "failed", "error": "task_broker_unavailable"}


async def _store_down(now_utc: datetime) -> dict[str, str]:
    del now_utc
    return {"status": "failed", "error": "attempt_store_unavailable"}


@pytest.fixture(autouse=True)
def _settings(monkeypatch) -> None:
    monkeypatch.setattr(
        health_routes,
        "get_settings",
        lambda: SimpleNamespace(
            attempt_expiry_max_lag_seconds=300,
            celery_broker_url="redis://broker.invalid:6379/1",
        ),
    )


def test_live_needs_no_dependencies() -> None:
    client = TestClient(app)
    response = client.get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_ready_reports_attempt_store_and_broker(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_check(lag_seconds=40, overdue=3))
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_ok)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {
            "attempt_store": {"status": "ok", "overdue_attempts": 3, "sweep_lag_seconds": 40},
            "task_broker": {"status": "ok"},
        },
    }


def test_ready_returns_503_when_broker_is_down(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_check())
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_down)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"
    assert response.json()["checks"]["task_broker"]["error"] == "task_broker_unavailable"


def test_ready_ignores_sweeper_lag(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_check(lag_seconds=10_000, overdue=50))
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_ok)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert "expiry_sweeper" not in response.json()["checks"]


def test_health_ok_when_sweeper_keeps_up(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_check(lag_seconds=90, overdue=2))
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_ok)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["checks"]["expiry_sweeper"] == {"status": "ok", "sweep_lag_seconds": 90}


def test_health_degraded_when_sweeper_lags(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_check(lag_seconds=301, overdue=12))
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_ok)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["expiry_sweeper"] == {
        "status": "failed",
        "error": "expiry_sweeper_lagging",
        "sweep_lag_seconds": 301,
        "overdue_attempts": 12,
    }


def test_health_sweeper_unknown_when_store_is_down(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_attempt_store", _store_down)
    monkeypatch.setattr(health_routes, "_check_task_broker", _broker_ok)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    checks = response.json()["checks"]
    assert checks["attempt_store"]["error"] == "attempt_store_unavailable"
    assert checks["expiry_sweeper"]["error"] == "attempt_store_unavailable"


class _FakeSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


@pytest.mark.asyncio
async def test_attempt_store_check_measures_oldest_overdue(monkeypatch) -> None:
    captured: dict[str, object] = {}

    async def fake_backlog(session, *, now_utc):  # noqa: ANN001
        del session
        captured["now_utc"] = now_utc
        return 4, NOW - timedelta(seconds=75)

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _FakeSession())
    monkeypatch.setattr(health_routes.QuizAttemptsRepo, "get_overdue_backlog", fake_backlog)

    result = await health_routes._check_attempt_store(NOW)

    assert result == {"status": "ok", "overdue_attempts": 4, "sweep_lag_seconds": 75}
    assert captured["now_utc"] == NOW


@pytest.mark.asyncio
async def test_attempt_store_check_reports_zero_lag_without_backlog(monkeypatch) -> None:
    async def fake_backlog(session, *, now_utc):  # noqa: ANN001
        del session, now_utc
        return 0, None

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _FakeSession())
    monkeypatch.setattr(health_routes.QuizAttemptsRepo, "get_overdue_backlog", fake_backlog)

    result = await health_routes._check_attempt_store(NOW)

    assert result == {"status": "ok", "overdue_attempts": 0, "sweep_lag_seconds": 0}


@pytest.mark.asyncio
async def test_attempt_store_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    result = await health_routes._check_attempt_store(NOW)
    assert result == {"status": "failed", "error": "attempt_store_unavailable"}


@pytest.mark.asyncio
async def test_task_broker_check_pings_celery_broker(monkeypatch) -> None:
    urls: list[str] = []
    closed: list[bool] = []

    class _Broker:
        async def ping(self) -> bool:
            return True

        async def aclose(self) -> None:
            closed.append(True)

    def fake_from_url(url: str):
        urls.append(url)
        return _Broker()

    monkeypatch.setattr(health_routes.Redis, "from_url", fake_from_url)

    result = await health_routes._check_task_broker()

    assert result == {"status": "ok"}
    assert urls == ["redis://broker.invalid:6379/1"]
    assert closed == [True]


@pytest.mark.asyncio
async def test_task_broker_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenBroker:
        async def ping(self) -> bool:
            raise ConnectionError("redis://:password@broker:6379/1 refused")

        async def aclose(self) -> None:
            return None

    monkeypatch.setattr(health_routes.Redis, "from_url", lambda url: _BrokenBroker())

    result = await health_routes._check_task_broker()
    assert result == {"status": "failed", "error": "task_broker_unavailable"}
