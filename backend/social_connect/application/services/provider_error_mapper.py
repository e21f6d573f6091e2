from dataclasses import dataclass

import httpx

from social_connect.application.errors import (
    ProviderExchangeFailed,
    ProviderRequestFailed,
    ReconnectRequired,
)

CONNECT_OPERATIONS = frozenset({"request_token", "exchange", "profile"})
AUTH_ERROR_CODES = frozenset({"190", "invalid_token", "expired_token", "invalid_grant", "unauthorized_client"})


@dataclass(frozen=True)
class NormalizedProviderError:
    provider: str
    error_code: str
    category: str
    retryable: bool
    suggested_action: str


def map_provider_error(
    *,
    provider: str,
    error_code: str | None,
    message: str = "",
    status_code: int | None = None,
) -> NormalizedProviderError:
    normalized_provider = provider.strip().lower()
    code = (error_code or "unknown_error").strip().lower()
    text = (message or "").lower()

    if (
        status_code == 401
        or code in AUTH_ERROR_CODES
        or any(token in code for token in ("auth", "token"))
        or "unauthorized" in text
    ):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="auth",
            retryable=False,
            suggested_action="Reconnect the account to grant fresh credentials",
        )
    if status_code == 429 or any(token in code for token in ("rate", "throttle", "too_many_requests")):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="rate_limit",
            retryable=True,
            suggested_action="Wait for cooldown and retry with backoff",
        )
    if status_code == 403 or any(token in code for token in ("permission", "scope", "forbidden")):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="permission",
            retryable=False,
            suggested_action="Check the app permissions granted for this account",
        )
    if (status_code is not None and status_code >= 500) or any(
        token in code for token in ("server", "timeout", "unavailable", "network")
    ):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="server_error",
            retryable=True,
            suggested_action="Retry later; provider instability detected",
        )

    return NormalizedProviderError(
        provider=normalized_provider,
        error_code=code,
        category="rejected",
        retryable=False,
        suggested_action="Inspect the request sent to the provider",
    )


def extract_provider_error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        for key in ("code", "type", "status"):
            value = error.get(key)
            if value not in (None, ""):
                return str(value)
    for key in ("error_code", "code", "serviceErrorCode"):
        value = body.get(key)
        if value not in (None, ""):
            return str(value)
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        value = errors[0].get("code")
        if value not in (None, ""):
            return str(value)
    return None


def raise_for_provider_response(response: httpx.Response, *, platform: str, operation: str) -> None:
    """Translate a failed provider response into the connect error taxonomy.

    Failures while connecting an account are exchange failures. A rejected
    refresh grant means the stored credentials are dead. On authenticated
    post/stats calls only auth-category failures demand a reconnect.
    """
    if response.status_code < 400:
        return

    mapped = map_provider_error(
        provider=platform,
        error_code=extract_provider_error_code(response),
        status_code=response.status_code,
    )
    message = f"{platform} {operation} failed: {response.status_code}"

    if operation in CONNECT_OPERATIONS:
        raise ProviderExchangeFailed(message, platform=platform, provider_error_code=mapped.error_code)

    if operation == "refresh":
        if mapped.category in {"auth", "permission", "rejected"}:
            raise ReconnectRequired(
                f"{platform} refresh rejected: {response.status_code}",
                platform=platform,
                provider_error_code=mapped.error_code,
            )
        raise ProviderRequestFailed(
            message,
            retryable=mapped.retryable,
            platform=platform,
            provider_error_code=mapped.error_code,
        )

    if mapped.category == "auth":
        raise ReconnectRequired(
            f"{platform} rejected the stored credentials",
            platform=platform,
            provider_error_code=mapped.error_code,
        )
    raise ProviderRequestFailed(
        message,
        retryable=mapped.retryable,
        platform=platform,
        provider_error_code=mapped.error_code,
    )
