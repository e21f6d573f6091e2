import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-0123456789-abcdefghijklmnop"
os.environ["TOKEN_ENCRYPTION_KEY"] = "test-token-encryption-key"
os.environ["PUBLIC_API_URL"] = "http://localhost:8000"
os.environ["PUBLIC_APP_URL"] = "http://localhost:3000"

from collections.abc import Callable
from urllib.parse import parse_qs, urlsplit
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from social_connect.core.config import settings
from social_connect.core.security import create_access_token
from social_connect.domain.models.user import User
from social_connect.infrastructure.db.base import Base
from social_connect.infrastructure.db.session import get_db
from social_connect.integrations import oauth_state
from social_connect.integrations.providers import http_client
from social_connect.interfaces.api import health

PLATFORM_CREDENTIALS = {
    "twitter": ("twitter_client_id", "twitter_client_secret"),
    "facebook": ("facebook_app_id", "facebook_app_secret"),
    "instagram": ("instagram_app_id", "instagram_app_secret"),
    "linkedin": ("linkedin_client_id", "linkedin_client_secret"),
    "snapchat": ("snapchat_client_id", "snapchat_client_secret"),
    "tiktok": ("tiktok_client_key", "tiktok_client_secret"),
    "youtube": ("youtube_client_id", "youtube_client_secret"),
    "google": ("google_client_id", "google_client_secret"),
}


class InMemoryRedis:
    """Just enough of the redis-py surface for OAuth state and health checks."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        return True

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.store[key] = value
        return True

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.store)

    def ping(self) -> bool:
        return True


class ProviderHTTPMock:
    """Routes outbound provider calls to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: list[tuple[str, str, Callable[[httpx.Request], httpx.Response]]] = []
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        *,
        status_code: int = 200,
        json: object | None = None,
        text: str | None = None,
        headers: dict | None = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        def _respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status_code, text=text, headers=headers)
            return httpx.Response(status_code, json=json if json is not None else {}, headers=headers)

        self.routes.append((method.upper(), url, handler or _respond))

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [request for request in self.requests if str(request.url).split("?", 1)[0] == url]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        request_url = str(request.url).split("?", 1)[0]
        for method, url, responder in self.routes:
            if request.method == method and request_url == url:
                return responder(request)
        raise AssertionError(f"Unexpected provider call {request.method} {request_url}")


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def redis_store(monkeypatch) -> InMemoryRedis:
    store = InMemoryRedis()
    monkeypatch.setattr(oauth_state, "get_redis_client", lambda: store)
    monkeypatch.setattr(health, "get_redis_client", lambda: store)
    return store


@pytest.fixture(autouse=True)
def provider_http(monkeypatch) -> ProviderHTTPMock:
    mock = ProviderHTTPMock()

    def _client(**kwargs) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", 5.0)
        return httpx.AsyncClient(transport=httpx.MockTransport(mock.handle), **kwargs)

    monkeypatch.setattr(http_client, "get_http_client", _client)
    return mock


@pytest.fixture
def configure_platform(monkeypatch):
    def _configure(platform: str, client_id: str = "client-id", client_secret: str = "client-secret") -> None:
        id_setting, secret_setting = PLATFORM_CREDENTIALS[platform]
        monkeypatch.setattr(settings, id_setting, client_id)
        monkeypatch.setattr(settings, secret_setting, client_secret)

    return _configure


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(db_session, email: str) -> User:
    user = User(email=email, password_hash="not-a-real-hash")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def user(db_session) -> User:
    return _create_user(db_session, f"owner-{uuid.uuid4().hex[:8]}@example.test")


@pytest.fixture
def other_user(db_session) -> User:
    return _create_user(db_session, f"other-{uuid.uuid4().hex[:8]}@example.test")


@pytest.fixture
def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id)}"}


def query_params(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}
