from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUESTS_TOTAL = Counter(
    "total_requests",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY_SECONDS = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path"),
)
DB_QUERY_DURATION_SECONDS = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    labelnames=("operation",),
)
REDIS_LATENCY_SECONDS = Histogram(
    "redis_latency_seconds",
    "Redis command latency in seconds",
    labelnames=("operation",),
)
PROVIDER_REQUEST_LATENCY_SECONDS = Histogram(
    "provider_request_latency_seconds",
    "Latency of outbound calls to social platform APIs",
    labelnames=("platform", "operation"),
)
OAUTH_CONNECT_ATTEMPTS_TOTAL = Counter(
    "oauth_connect_attempts_total",
    "Account connection attempts by platform and outcome",
    labelnames=("platform", "outcome"),
)
TOKEN_REFRESH_TOTAL = Counter(
    "token_refresh_total",
    "Access token refresh attempts by platform and outcome",
    labelnames=("platform", "outcome"),
)


def record_request(method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def observe_db_query(duration_seconds: float, operation: str = "sql") -> None:
    DB_QUERY_DURATION_SECONDS.labels(operation=operation).observe(duration_seconds)


def observe_redis_latency(duration_seconds: float, operation: str) -> None:
    REDIS_LATENCY_SECONDS.labels(operation=operation).observe(duration_seconds)


def observe_provider_latency(duration_seconds: float, *, platform: str, operation: str) -> None:
    PROVIDER_REQUEST_LATENCY_SECONDS.labels(platform=platform, operation=operation).observe(duration_seconds)


def record_connect_attempt(platform: str, outcome: str) -> None:
    OAUTH_CONNECT_ATTEMPTS_TOTAL.labels(platform=platform, outcome=outcome).inc()


def record_token_refresh(platform: str, outcome: str) -> None:
    TOKEN_REFRESH_TOTAL.labels(platform=platform, outcome=outcome).inc()


@contextmanager
def measure_redis(operation: str):
    started_at = perf_counter()
    try:
        yield
    finally:
        observe_redis_latency(perf_counter() - started_at, operation=operation)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
