import httpx

from social_connect.core.config import settings


def get_http_client(**kwargs) -> httpx.AsyncClient:
    kwargs.setdefault("timeout", settings.provider_http_timeout_seconds)
    return httpx.AsyncClient(**kwargs)
