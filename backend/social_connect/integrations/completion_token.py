"""Signed, short-lived tokens that carry a provider redirect to ``complete-auth``.

The provider redirect lands on the API, which cannot rely on a browser
session. Instead it mints one of these tokens and hands it to the client app,
which posts it back to finish the connection. The authorization code, OAuth1
verifier and any extras are Fernet-encrypted inside the claims. Expiry is
enforced by the JWT ``exp`` claim.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt

from social_connect.application.errors import InvalidCallback, TokenExpiredLocal
from social_connect.core.config import settings
from social_connect.core.security import decrypt_secret, encrypt_secret

TOKEN_TYPE = "oauth_completion"


@dataclass(frozen=True)
class PendingAuthState:
    platform: str
    user_id: str | None
    code: str | None = None
    oauth_token: str | None = None
    oauth_verifier: str | None = None
    extra: dict = field(default_factory=dict)
    issued_at: datetime | None = None
    expires_at: datetime | None = None


def issue_completion_token(
    *,
    platform: str,
    user_id: str | None,
    code: str | None = None,
    oauth_token: str | None = None,
    oauth_verifier: str | None = None,
    extra: dict | None = None,
    ttl_seconds: int | None = None,
) -> str:
    now = datetime.now(UTC)
    ttl = ttl_seconds or settings.completion_token_ttl_seconds
    sealed = {
        "code": code,
        "oauth_token": oauth_token,
        "oauth_verifier": oauth_verifier,
        "extra": extra or {},
    }
    claims = {
        "type": TOKEN_TYPE,
        "platform": platform,
        "uid": user_id,
        "sec": encrypt_secret(json.dumps(sealed, separators=(",", ":"))),
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
        "jti": str(uuid4()),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_completion_token(token: str, *, platform: str) -> PendingAuthState:
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredLocal(
            "Authorization expired, please start the connection again",
            platform=platform,
        ) from exc
    except jwt.PyJWTError as exc:
        raise InvalidCallback("Invalid completion token", platform=platform) from exc

    if claims.get("type") != TOKEN_TYPE:
        raise InvalidCallback("Invalid completion token type", platform=platform)
    if claims.get("platform") != platform:
        raise InvalidCallback("Completion token issued for another platform", platform=platform)

    try:
        sealed = json.loads(decrypt_secret(str(claims.get("sec") or "")))
    except ValueError as exc:
        raise InvalidCallback("Invalid completion token payload", platform=platform) from exc
    if not isinstance(sealed, dict):
        raise InvalidCallback("Invalid completion token payload", platform=platform)

    return PendingAuthState(
        platform=platform,
        user_id=claims.get("uid"),
        code=sealed.get("code"),
        oauth_token=sealed.get("oauth_token"),
        oauth_verifier=sealed.get("oauth_verifier"),
        extra=sealed.get("extra") or {},
        issued_at=datetime.fromtimestamp(claims["iat"], tz=UTC) if "iat" in claims else None,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC) if "exp" in claims else None,
    )
