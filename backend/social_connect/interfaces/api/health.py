"""Liveness, readiness and Prometheus endpoints.

Readiness depends only on what the connect flows touch: the credential store
and the Redis state store. The refresh worker heartbeat and the configured
platforms are reported but never fail readiness.
"""

from time import perf_counter

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from social_connect.core.config import settings
from social_connect.infrastructure.cache.redis_client import get_redis_client
from social_connect.infrastructure.db.session import SessionLocal
from social_connect.infrastructure.observability.metrics import measure_redis, metrics_response
from social_connect.integrations.providers import get_provider, list_registered_platforms

router = APIRouter()


def _elapsed_ms(started_at: float) -> float:
    return round((perf_counter() - started_at) * 1000, 2)


def _check_credential_store() -> tuple[str, float | None]:
    started_at = perf_counter()
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "down", None
    return "up", _elapsed_ms(started_at)


def _check_state_store() -> tuple[str, float | None, str | None]:
    started_at = perf_counter()
    try:
        redis_client = get_redis_client()
        with measure_redis("health_ping"):
            redis_client.ping()
        latency_ms = _elapsed_ms(started_at)
        with measure_redis("health_worker_heartbeat_check"):
            last_heartbeat = redis_client.get(settings.worker_heartbeat_key)
    except RedisError:
        return "down", None, None
    return "up", latency_ms, last_heartbeat


def _configured_platforms() -> list[str]:
    return [platform for platform in list_registered_platforms() if get_provider(platform).is_configured]


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check() -> dict:
    db_status, db_latency_ms = _check_credential_store()
    redis_status, redis_latency_ms, last_heartbeat = _check_state_store()
    overall = "ok" if db_status == "up" and redis_status == "up" else "degraded"

    return {
        "status": overall,
        "services": {
            "api": "up",
            "database": db_status,
            "redis": redis_status,
            "worker_alive": last_heartbeat is not None,
            "worker_last_heartbeat": last_heartbeat,
            "db_latency_ms": db_latency_ms,
            "redis_latency_ms": redis_latency_ms,
        },
        "configured_platforms": _configured_platforms(),
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(response: Response) -> dict:
    payload = health_check()
    ready = payload["status"] == "ok"
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "not_ready", "services": payload["services"]}


@router.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_response()
