"""Health check endpoints. No authentication required.

- /health       — process is up (legacy probe)
- /health/live  — liveness probe (always 200)
- /health/ready — readiness: the configured table store must answer,
                  Redis may be down (save locks fail open)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_redis, get_rest_client
from app.core.config import settings
from app.core.metrics import store_health_check_duration_seconds, store_health_status

router = APIRouter()
logger = structlog.stdlib.get_logger("workflow_router.health")

_HEALTH_CHECK_TIMEOUT = 3.0


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "workflow-router"}


@router.get("/health/live")
async def liveness():
    return {"status": "live"}


async def _probe(name: str, check: Callable[[], Awaitable[object]], required: bool) -> dict:
    """Run one dependency check, record its metrics and report ok/error/degraded."""
    start = time.monotonic()
    try:
        await asyncio.wait_for(check(), timeout=_HEALTH_CHECK_TIMEOUT)
        ok, detail = True, None
    except Exception as exc:
        ok, detail = False, str(exc) or type(exc).__name__

    store_health_check_duration_seconds.labels(store=name).observe(time.monotonic() - start)
    store_health_status.labels(store=name).set(1 if ok else 0)
    if ok:
        return {"status": "ok"}

    logger.warning("readiness_check_failed", dependency=name, required=required, error=detail)
    return {"status": "error" if required else "degraded", "detail": detail}


async def _ping_database(db: AsyncSession) -> None:
    await db.execute(text("SELECT 1"))


async def _ping_rest_store() -> None:
    response = await get_rest_client().get("/")
    response.raise_for_status()


@router.get("/health/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    if settings.store.store_backend == "rest":
        store_name, store_check = "rest_store", _ping_rest_store
    else:
        store_name, store_check = "database", lambda: _ping_database(db)

    store_result, redis_result = await asyncio.gather(
        _probe(store_name, store_check, required=True),
        _probe("redis", redis.ping, required=False),
    )
    checks = {store_name: store_result, "redis": redis_result}
    healthy = store_result["status"] == "ok"

    return JSONResponse(
        content={"status": "ready" if healthy else "not_ready", "checks": checks},
        status_code=200 if healthy else 503,
    )
