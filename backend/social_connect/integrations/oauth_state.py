import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from uuid import UUID

from redis.exceptions import RedisError

from social_connect.application.errors import InvalidCallback, StateStoreUnavailable
from social_connect.core.config import settings
from social_connect.core.security import decrypt_secret, encrypt_secret
from social_connect.infrastructure.cache.redis_client import get_redis_client
from social_connect.infrastructure.observability.metrics import measure_redis

logger = logging.getLogger(__name__)


def _urlsafe_b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _urlsafe_b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def _sign_state(encoded_payload: str) -> str:
    secret = settings.jwt_secret_key.encode("utf-8")
    signature = hmac.new(secret, encoded_payload.encode("utf-8"), hashlib.sha256).digest()
    return _urlsafe_b64encode(signature)


def _build_nonce_key(provider: str, nonce: str) -> str:
    return f"oauth_state:{provider}:{nonce}"


def _build_request_token_key(provider: str, oauth_token: str) -> str:
    return f"oauth1_request_token:{provider}:{oauth_token}"


def _consume_key(key: str, *, provider: str, operation: str) -> str | None:
    redis_client = get_redis_client()
    try:
        with measure_redis(operation):
            cached = redis_client.get(key)
            if cached:
                redis_client.delete(key)
    except RedisError as exc:
        raise StateStoreUnavailable("Unable to validate OAuth state", platform=provider) from exc
    return cached or None


def create_oauth_state(
    *,
    provider: str,
    user_id: UUID | None,
    extra: dict | None = None,
    ttl_seconds: int | None = None,
) -> str:
    ttl = ttl_seconds or settings.oauth_state_ttl_seconds
    now = int(time.time())
    nonce = secrets.token_urlsafe(24)
    payload = {
        "provider": provider,
        "user_id": str(user_id) if user_id else None,
        "nonce": nonce,
        "iat": now,
        "exp": now + ttl,
    }
    raw_payload = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    encoded_payload = _urlsafe_b64encode(raw_payload)
    signature = _sign_state(encoded_payload)
    state = f"{encoded_payload}.{signature}"

    redis_client = get_redis_client()
    try:
        nonce_key = _build_nonce_key(provider, nonce)
        with measure_redis("oauth_state_store"):
            # Extras such as the PKCE verifier stay server side, encrypted.
            redis_client.setex(nonce_key, ttl, encrypt_secret(json.dumps(extra or {}, separators=(",", ":"))))
    except RedisError as exc:
        raise StateStoreUnavailable("Unable to initialize OAuth state", platform=provider) from exc

    return state


def verify_and_consume_oauth_state(state: str, *, provider: str) -> dict:
    try:
        encoded_payload, signature = state.split(".", 1)
    except ValueError as exc:
        raise InvalidCallback("Invalid OAuth state format", platform=provider) from exc

    expected_signature = _sign_state(encoded_payload)
    if not hmac.compare_digest(signature, expected_signature):
        raise InvalidCallback("Invalid OAuth state signature", platform=provider)

    try:
        payload = json.loads(_urlsafe_b64decode(encoded_payload))
    except (json.JSONDecodeError, ValueError) as exc:
        raise InvalidCallback("Invalid OAuth state payload", platform=provider) from exc

    if payload.get("provider") != provider:
        raise InvalidCallback("Invalid OAuth state provider", platform=provider)

    exp = int(payload.get("exp", 0))
    if exp <= int(time.time()):
        raise InvalidCallback("OAuth state expired", platform=provider)

    nonce = str(payload.get("nonce") or "")
    if not nonce:
        raise InvalidCallback("OAuth state nonce missing", platform=provider)

    cached = _consume_key(_build_nonce_key(provider, nonce), provider=provider, operation="oauth_state_consume")
    if not cached:
        raise InvalidCallback("OAuth state already used or expired", platform=provider)

    try:
        payload["extra"] = json.loads(decrypt_secret(cached))
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning("oauth_state_record_corrupt provider=%s", provider)
        raise InvalidCallback("OAuth state record is invalid", platform=provider) from exc

    return payload


def store_request_token(
    *,
    provider: str,
    oauth_token: str,
    oauth_token_secret: str,
    user_id: UUID | None,
    ttl_seconds: int | None = None,
) -> None:
    """Remember an OAuth 1.0a request token until the provider redirects back."""
    ttl = ttl_seconds or settings.oauth_state_ttl_seconds
    record = {
        "user_id": str(user_id) if user_id else None,
        "oauth_token_secret": encrypt_secret(oauth_token_secret),
    }
    redis_client = get_redis_client()
    try:
        with measure_redis("oauth1_request_token_store"):
            redis_client.setex(
                _build_request_token_key(provider, oauth_token),
                ttl,
                json.dumps(record, separators=(",", ":")),
            )
    except RedisError as exc:
        raise StateStoreUnavailable("Unable to initialize OAuth request token", platform=provider) from exc


def consume_request_token(*, provider: str, oauth_token: str) -> dict:
    cached = _consume_key(
        _build_request_token_key(provider, oauth_token),
        provider=provider,
        operation="oauth1_request_token_consume",
    )
    if not cached:
        raise InvalidCallback("OAuth request token unknown, used or expired", platform=provider)

    try:
        record = json.loads(cached)
        oauth_token_secret = decrypt_secret(record["oauth_token_secret"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("oauth1_request_token_corrupt provider=%s", provider)
        raise InvalidCallback("OAuth request token record is invalid", platform=provider) from exc

    return {"user_id": record.get("user_id"), "oauth_token_secret": oauth_token_secret}
