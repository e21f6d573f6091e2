from celery import Celery
from celery.schedules import schedule
from kombu import Queue

from social_connect.core.config import settings

celery_app = Celery(
    "social_connect",
    broker=settings.cache_redis_url,
    backend=settings.cache_redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="tokens",
    task_queues=(
        Queue("tokens"),
        Queue("scheduler"),
    ),
    task_routes={
        "workers.tasks.refresh_expiring_tokens": {"queue": "tokens"},
        "workers.tasks.worker_heartbeat": {"queue": "scheduler"},
    },
    beat_schedule={
        "refresh-expiring-tokens-every-15m": {
            "task": "workers.tasks.refresh_expiring_tokens",
            "schedule": schedule(900.0),
            "options": {"queue": "tokens"},
        },
        "worker-heartbeat-every-15s": {
            "task": "workers.tasks.worker_heartbeat",
            "schedule": schedule(15.0),
            "options": {"queue": "scheduler"},
        },
    },
)

celery_app.autodiscover_tasks(["workers"])
