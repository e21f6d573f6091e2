import uuid

from redis.exceptions import RedisError

from social_connect.core.config import settings
from social_connect.core.security import create_access_token
from social_connect.interfaces.api import health


def test_register_login_and_me(client):
    register = client.post("/auth/register", json={"email": "  Owner@Example.test ", "password": "correct-horse"})
    assert register.status_code == 201
    assert register.json()["user"]["email"] == "owner@example.test"

    duplicate = client.post("/auth/register", json={"email": "owner@example.test", "password": "correct-horse"})
    assert duplicate.status_code == 409

    bad_login = client.post("/auth/login", json={"email": "owner@example.test", "password": "wrong-password"})
    assert bad_login.status_code == 401
    assert bad_login.json()["error_code"] == "401"

    login = client.post("/auth/login", json={"email": "owner@example.test", "password": "correct-horse"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "owner@example.test"


def test_protected_routes_reject_bad_tokens(client, user):
    assert client.get("/api/social-accounts").status_code == 401
    assert client.get("/api/social-accounts", headers={"Authorization": "Bearer garbage"}).status_code == 401

    unknown_user = create_access_token(user_id=uuid.UUID(int=0))
    response = client.get("/api/social-accounts", headers={"Authorization": f"Bearer {unknown_user}"})
    assert response.status_code == 401


def test_responses_carry_request_id_and_security_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_health_reports_dependencies(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"]["database"] == "up"
    assert body["services"]["redis"] == "up"
    assert body["services"]["worker_alive"] is False


def test_health_reports_worker_heartbeat_and_configured_platforms(client, redis_store, configure_platform):
    configure_platform("linkedin")
    redis_store.set(settings.worker_heartbeat_key, "2026-01-01T00:00:00+00:00")

    body = client.get("/health").json()

    assert body["services"]["worker_alive"] is True
    assert body["services"]["worker_last_heartbeat"] == "2026-01-01T00:00:00+00:00"
    assert body["configured_platforms"] == ["linkedin"]


def test_ready_fails_when_redis_is_down(client, monkeypatch):
    class BrokenRedis:
        def ping(self):
            raise RedisError("down")

    monkeypatch.setattr(health, "get_redis_client", lambda: BrokenRedis())

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_metrics_expose_connect_counters(client, auth_headers, configure_platform):
    configure_platform("linkedin")
    assert client.get("/api/linkedin/auth", headers=auth_headers).status_code == 200

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'oauth_connect_attempts_total{platform="linkedin",outcome="started"}' in response.text
    assert 'path="/api/{platform}/auth"' in response.text
