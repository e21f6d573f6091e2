from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import sessionmaker

from social_connect.application.services.social_account_service import upsert_social_account
from social_connect.core.config import settings
from workers import tasks
from workers.celery_app import celery_app


def test_beat_schedules_token_sweep_and_heartbeat():
    schedule = celery_app.conf.beat_schedule
    tasks_by_name = {entry["task"]: entry for entry in schedule.values()}

    assert "workers.tasks.refresh_expiring_tokens" in tasks_by_name
    assert "workers.tasks.worker_heartbeat" in tasks_by_name
    assert tasks_by_name["workers.tasks.refresh_expiring_tokens"]["options"] == {"queue": "tokens"}


def test_worker_heartbeat_writes_key(monkeypatch, redis_store):
    monkeypatch.setattr(tasks, "get_redis_client", lambda: redis_store)

    result = tasks.worker_heartbeat()

    assert redis_store.store[settings.worker_heartbeat_key] == result["heartbeat_at"]


def test_refresh_task_runs_the_sweep(monkeypatch, db_engine, db_session, user, configure_platform, provider_http):
    configure_platform("linkedin")
    upsert_social_account(
        db_session,
        user_id=user.id,
        platform="linkedin",
        account_id="li-member-9",
        access_token="access-old",
        refresh_token="refresh-1",
        token_expiry=datetime.now(UTC) + timedelta(minutes=5),
    )
    db_session.commit()
    provider_http.add(
        "POST",
        "https://www.linkedin.com/oauth/v2/accessToken",
        json={"access_token": "access-new", "expires_in": 5184000},
    )
    monkeypatch.setattr(tasks, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=db_engine))

    summary = tasks.refresh_expiring_tokens()

    assert summary == {"checked": 1, "fresh": 1, "reconnect_required": 0, "failed": 0}
