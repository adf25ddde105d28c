from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from app.core.config import get_settings
from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.db.session import SessionLocal

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

HealthCheck = dict[str, Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _failed(error: str, **extra: Any) -> HealthCheck:
    return {"status": "failed", "error": error, **extra}


async def _check_attempt_store(now_utc: datetime) -> HealthCheck:
    try:
        async with SessionLocal() as session:
            overdue_total, oldest_expires_at = await QuizAttemptsRepo.get_overdue_backlog(
                session,
                now_utc=now_utc,
            )
    except Exception as exc:
        logger.warning("health_check_failed", check="attempt_store", error_type=type(exc).__name__)
        return _failed("attempt_store_unavailable")

    lag_seconds = 0
    if oldest_expires_at is not None:
        lag_seconds = max(0, int((now_utc - oldest_expires_at).total_seconds()))
    return {"status": "ok", "overdue_attempts": overdue_total, "sweep_lag_seconds": lag_seconds}


async def _check_task_broker() -> HealthCheck:
    """Expiry sweeps and stats increments are both queued through this broker."""
    broker: Redis | None = None
    try:
        broker = Redis.from_url(get_settings().celery_broker_url)
        if await broker.ping() is not True:
            return _failed("task_broker_unexpected_ping_response")
        return {"status": "ok"}
    except Exception as exc:
        logger.warning("health_check_failed", check="task_broker", error_type=type(exc).__name__)
        return _failed("task_broker_unavailable")
    finally:
        if broker is not None:
            await broker.aclose()


def _assess_expiry_sweeper(store_check: HealthCheck, *, max_lag_seconds: int) -> HealthCheck:
    if store_check.get("status") != "ok":
        return _failed("attempt_store_unavailable")
    lag_seconds = int(store_check["sweep_lag_seconds"])
    if lag_seconds > max_lag_seconds:
        return _failed(
            "expiry_sweeper_lagging",
            sweep_lag_seconds=lag_seconds,
            overdue_attempts=store_check["overdue_attempts"],
        )
    return {"status": "ok", "sweep_lag_seconds": lag_seconds}


def _respond(checks: dict[str, HealthCheck], *, ok: str, not_ok: str) -> JSONResponse:
    is_ok = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok if is_ok else not_ok, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
async def ready() -> JSONResponse:
    store_check, broker_check = await asyncio.gather(
        _check_attempt_store(_utc_now()),
        _check_task_broker(),
    )
    return _respond(
        {"attempt_store": store_check, "task_broker": broker_check},
        ok="ready",
        not_ok="not_ready",
    )


@router.get("/health")
async def health() -> JSONResponse:
    store_check, broker_check = await asyncio.gather(
        _check_attempt_store(_utc_now()),
        _check_task_broker(),
    )
    sweeper_check = _assess_expiry_sweeper(
        store_check,
        max_lag_seconds=get_settings().attempt_expiry_max_lag_seconds,
    )
    return _respond(
        {
            "attempt_store": store_check,
            "task_broker": broker_check,
            "expiry_sweeper": sweeper_check,
        },
        ok="ok",
        not_ok="degraded",
    )
