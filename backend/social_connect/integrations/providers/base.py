from abc import ABC, abstractmethod
import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
import hashlib
import logging
import secrets
from time import perf_counter
from typing import Any, ClassVar
from uuid import UUID

import httpx

from social_connect.application.errors import (
    AuthorizationDenied,
    CredentialsMissing,
    InvalidCallback,
    ProviderExchangeFailed,
    ProviderRequestFailed,
    ProviderTimeout,
    ReconnectRequired,
    UnsupportedOperation,
)
from social_connect.application.services.provider_error_mapper import (
    CONNECT_OPERATIONS,
    raise_for_provider_response,
)
from social_connect.core.config import settings
from social_connect.infrastructure.observability.metrics import observe_provider_latency
from social_connect.integrations import oauth_state
from social_connect.integrations.providers import http_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthLink:
    auth_url: str
    state: str | None = None
    oauth_token: str | None = None
    oauth_token_secret: str | None = None


@dataclass(frozen=True)
class CallbackParams:
    code: str | None = None
    state: str | None = None
    oauth_token: str | None = None
    oauth_verifier: str | None = None
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class VerifiedCallback:
    params: CallbackParams
    user_id: str | None


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str | None = None
    access_token_secret: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None
    raw: dict = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class NormalizedAccount:
    platform: str
    account_id: str
    account_name: str | None = None
    username: str | None = None
    display_name: str | None = None
    profile_url: str | None = None
    metadata: dict = field(default_factory=dict)
    # Set when the stored credential differs from the user grant, e.g. a Page token.
    stored_tokens: TokenSet | None = None


@dataclass(frozen=True)
class AccountCredentials:
    account_id: str
    access_token: str
    access_token_secret: str | None = None
    refresh_token: str | None = None
    username: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PublishResult:
    platform: str
    external_post_id: str
    url: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AccountStats:
    platform: str
    account_id: str
    username: str | None = None
    followers: int | None = None
    following: int | None = None
    posts: int | None = None
    engagement: dict = field(default_factory=dict)


def expires_at_from(expires_in: Any, *, default_seconds: int | None = None) -> datetime | None:
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        if default_seconds is None:
            return None
        seconds = default_seconds
    return datetime.now(UTC) + timedelta(seconds=max(1, seconds))


def build_code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def malformed_response(platform: str, operation: str, detail: str) -> Exception:
    message = f"{platform} {operation} returned {detail}"
    if operation in CONNECT_OPERATIONS:
        return ProviderExchangeFailed(message, platform=platform)
    return ProviderRequestFailed(message, platform=platform)


def read_json(response: httpx.Response, *, platform: str, operation: str) -> dict:
    try:
        payload = response.json()
    except ValueError as exc:
        raise malformed_response(platform, operation, "a non-JSON body") from exc
    if not isinstance(payload, dict):
        raise malformed_response(platform, operation, "an unexpected body")
    return payload


class OAuthProvider(ABC):
    """One social platform's side of the connect, refresh, publish and stats flows.

    Subclasses declare their endpoints and credential settings as class
    attributes. The default implementation covers the OAuth 2.0 authorization
    code flow; providers that differ override the relevant hooks.
    """

    platform: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    client_id_setting: ClassVar[str] = ""
    client_secret_setting: ClassVar[str] = ""
    scope_setting: ClassVar[str | None] = None
    authorize_url: ClassVar[str] = ""
    client_id_param: ClassVar[str] = "client_id"
    uses_pkce: ClassVar[bool] = False
    supports_refresh: ClassVar[bool] = False
    # Whether complete-auth may fall back to the user id sealed in the completion token.
    allows_sessionless_completion: ClassVar[bool] = False
    extra_authorize_params: ClassVar[dict[str, str]] = {}

    @property
    def client_id(self) -> str | None:
        return getattr(settings, self.client_id_setting, None) or None

    @property
    def client_secret(self) -> str | None:
        return getattr(settings, self.client_secret_setting, None) or None

    @property
    def scope(self) -> str:
        if not self.scope_setting:
            return ""
        return str(getattr(settings, self.scope_setting, "") or "")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def redirect_uri(self) -> str:
        override = getattr(settings, f"{self.platform}_callback_url", None)
        if override:
            return override
        return f"{settings.public_api_url.rstrip('/')}/api/{self.platform}/callback"

    def require_credentials(self) -> tuple[str, str]:
        client_id = self.client_id
        client_secret = self.client_secret
        if not client_id or not client_secret:
            raise CredentialsMissing(f"{self.display_name} API credentials are not configured", platform=self.platform)
        return client_id, client_secret

    async def generate_auth_link(self, *, user_id: UUID | None) -> AuthLink:
        client_id, _ = self.require_credentials()
        extra: dict[str, str] = {}
        code_challenge = None
        if self.uses_pkce:
            code_verifier = secrets.token_urlsafe(48)
            code_challenge = build_code_challenge(code_verifier)
            extra["code_verifier"] = code_verifier

        state = oauth_state.create_oauth_state(provider=self.platform, user_id=user_id, extra=extra)
        params = {
            self.client_id_param: client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
            **self.extra_authorize_params,
        }
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        return AuthLink(auth_url=str(httpx.URL(self.authorize_url, params=params)), state=state)

    def parse_callback(self, query: Mapping[str, str]) -> CallbackParams:
        if query.get("error"):
            raise AuthorizationDenied(
                f"{self.display_name} authorization was denied",
                platform=self.platform,
                provider_error_code=str(query.get("error"))[:64],
            )
        code = (query.get("code") or "").strip()
        state = (query.get("state") or "").strip()
        if not code or not state:
            raise InvalidCallback(f"{self.display_name} callback is missing code or state", platform=self.platform)
        return CallbackParams(code=code, state=state)

    def verify_callback(self, params: CallbackParams) -> VerifiedCallback:
        payload = oauth_state.verify_and_consume_oauth_state(params.state or "", provider=self.platform)
        extra = payload.get("extra") or {}
        if self.uses_pkce and not extra.get("code_verifier"):
            raise InvalidCallback(f"Missing {self.display_name} OAuth code verifier", platform=self.platform)
        return VerifiedCallback(
            params=CallbackParams(code=params.code, extra=extra),
            user_id=payload.get("user_id"),
        )

    @abstractmethod
    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        raise NotImplementedError

    @abstractmethod
    async def fetch_profile(self, tokens: TokenSet) -> dict:
        raise NotImplementedError

    @abstractmethod
    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        raise NotImplementedError

    async def refresh_access_token(self, credentials: AccountCredentials) -> TokenSet:
        raise ReconnectRequired(f"{self.display_name} tokens cannot be refreshed", platform=self.platform)

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        raise UnsupportedOperation(f"Publishing is not supported for {self.display_name}", platform=self.platform)

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        raise UnsupportedOperation(f"Stats are not supported for {self.display_name}", platform=self.platform)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        **kwargs,
    ) -> httpx.Response:
        started_at = perf_counter()
        try:
            async with http_client.get_http_client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("provider_request_timeout platform=%s operation=%s", self.platform, operation)
            raise ProviderTimeout(f"{self.display_name} {operation} timed out", platform=self.platform) from exc
        except httpx.TransportError as exc:
            logger.warning(
                "provider_request_transport_error platform=%s operation=%s error=%s",
                self.platform,
                operation,
                type(exc).__name__,
            )
            message = f"{self.display_name} {operation} unreachable"
            if operation in CONNECT_OPERATIONS:
                raise ProviderExchangeFailed(message, platform=self.platform) from exc
            raise ProviderRequestFailed(message, platform=self.platform, retryable=True) from exc
        finally:
            observe_provider_latency(perf_counter() - started_at, platform=self.platform, operation=operation)

        if response.status_code >= 400:
            logger.warning(
                "provider_request_failed platform=%s operation=%s status=%s",
                self.platform,
                operation,
                response.status_code,
            )
        raise_for_provider_response(response, platform=self.platform, operation=operation)
        return response

    async def _request_json(self, method: str, url: str, *, operation: str, **kwargs) -> dict:
        response = await self._request(method, url, operation=operation, **kwargs)
        return read_json(response, platform=self.platform, operation=operation)

    async def _exchange_authorization_code(
        self,
        token_url: str,
        params: CallbackParams,
        *,
        default_expires_in: int | None = None,
        use_basic_auth: bool = False,
    ) -> TokenSet:
        client_id, client_secret = self.require_credentials()
        data = {
            "grant_type": "authorization_code",
            "code": params.code or "",
            "redirect_uri": self.redirect_uri,
            self.client_id_param: client_id,
        }
        auth = None
        if use_basic_auth:
            auth = (client_id, client_secret)
        else:
            data["client_secret"] = client_secret
        code_verifier = params.extra.get("code_verifier")
        if code_verifier:
            data["code_verifier"] = code_verifier
        payload = await self._request_json(
            "POST",
            token_url,
            operation="exchange",
            data=data,
            auth=auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return self._token_set_from(payload, operation="exchange", default_expires_in=default_expires_in)

    async def _refresh_with_grant(
        self,
        token_url: str,
        credentials: AccountCredentials,
        *,
        default_expires_in: int | None = None,
        use_basic_auth: bool = False,
    ) -> TokenSet:
        client_id, client_secret = self.require_credentials()
        if not credentials.refresh_token:
            raise ReconnectRequired(f"{self.display_name} refresh token missing", platform=self.platform)
        data = {
            "grant_type": "refresh_token",
            "refresh_token": credentials.refresh_token,
            self.client_id_param: client_id,
        }
        auth = None
        if use_basic_auth:
            auth = (client_id, client_secret)
        else:
            data["client_secret"] = client_secret
        payload = await self._request_json(
            "POST",
            token_url,
            operation="refresh",
            data=data,
            auth=auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        tokens = self._token_set_from(payload, operation="refresh", default_expires_in=default_expires_in)
        if tokens.refresh_token:
            return tokens
        # Providers that do not rotate refresh tokens keep the old one valid.
        return TokenSet(
            access_token=tokens.access_token,
            refresh_token=credentials.refresh_token,
            expires_at=tokens.expires_at,
            scope=tokens.scope,
            raw=tokens.raw,
        )

    def _token_set_from(self, payload: dict, *, operation: str, default_expires_in: int | None = None) -> TokenSet:
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            if operation == "refresh":
                raise ReconnectRequired(f"{self.display_name} refresh returned no access token", platform=self.platform)
            raise malformed_response(self.platform, operation, "no access_token")
        return TokenSet(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at_from(payload.get("expires_in"), default_seconds=default_expires_in),
            scope=payload.get("scope") or None,
            raw={key: value for key, value in payload.items() if "token" not in key},
        )
