import asyncio
import logging
from datetime import UTC, datetime
from time import perf_counter

from social_connect.application.services.token_refresh_service import refresh_expiring_accounts
from social_connect.core.config import settings
from social_connect.domain import models  # noqa: F401
from social_connect.infrastructure.cache.redis_client import get_redis_client
from social_connect.infrastructure.db.session import SessionLocal
from social_connect.infrastructure.observability.metrics import measure_redis
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.worker_heartbeat")
def worker_heartbeat() -> dict:
    redis_client = get_redis_client()
    now = datetime.now(UTC).isoformat()
    with measure_redis("worker_heartbeat_set"):
        redis_client.set(
            settings.worker_heartbeat_key,
            now,
            ex=max(15, settings.worker_heartbeat_ttl_seconds),
        )
    return {"heartbeat_at": now}


@celery_app.task(name="workers.tasks.refresh_expiring_tokens")
def refresh_expiring_tokens() -> dict:
    started_at = perf_counter()
    with SessionLocal() as db:
        summary = asyncio.run(refresh_expiring_accounts(db))
    logger.info(
        "refresh_expiring_tokens completed checked=%s fresh=%s reconnect_required=%s failed=%s duration_ms=%s",
        summary["checked"],
        summary["fresh"],
        summary["reconnect_required"],
        summary["failed"],
        round((perf_counter() - started_at) * 1000, 2),
    )
    return summary
