"""Error taxonomy for account connection, token refresh and provider calls.

Every failure surfaced to a client is a ``ConnectError`` subclass. The class
carries the stable ``error_type`` reported as ``error_code`` in JSON payloads
and the HTTP status it maps to. ``error_payload`` is the single mapping used by
the API exception handler.
"""

from fastapi import status


class ConnectError(RuntimeError):
    error_type: str = "CONNECT_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        platform: str | None = None,
        provider_error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.provider_error_code = provider_error_code


class CredentialsMissing(ConnectError):
    error_type = "CREDENTIALS_MISSING"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class AuthorizationDenied(ConnectError):
    error_type = "AUTHORIZATION_DENIED"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidCallback(ConnectError):
    error_type = "INVALID_CALLBACK"
    status_code = status.HTTP_400_BAD_REQUEST


class SessionRequired(ConnectError):
    error_type = "SESSION_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED


class TokenExpiredLocal(ConnectError):
    error_type = "TOKEN_EXPIRED"
    status_code = status.HTTP_400_BAD_REQUEST


class ProviderError(ConnectError):
    error_type = "PROVIDER_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


class ProviderExchangeFailed(ProviderError):
    error_type = "PROVIDER_EXCHANGE_FAILED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ProviderTimeout(ProviderError):
    error_type = "PROVIDER_TIMEOUT"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class ProviderRequestFailed(ProviderError):
    error_type = "PROVIDER_REQUEST_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, retryable: bool = False, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable


class NoEligibleAccountFound(ConnectError):
    error_type = "NO_ELIGIBLE_ACCOUNT"
    status_code = status.HTTP_400_BAD_REQUEST


class AccountNotConnected(ConnectError):
    error_type = "ACCOUNT_NOT_CONNECTED"
    status_code = status.HTTP_403_FORBIDDEN


class ReconnectRequired(ConnectError):
    error_type = "RECONNECT_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidRequest(ConnectError):
    error_type = "INVALID_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST


class UnsupportedOperation(ConnectError):
    error_type = "UNSUPPORTED_OPERATION"
    status_code = status.HTTP_400_BAD_REQUEST


class UnknownPlatform(ConnectError):
    error_type = "UNKNOWN_PLATFORM"
    status_code = status.HTTP_404_NOT_FOUND


class StateStoreUnavailable(ConnectError):
    error_type = "STATE_STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


def error_payload(exc: ConnectError, *, trace_id: str | None) -> dict:
    payload = {
        "error_code": exc.error_type,
        "message": exc.message,
        "trace_id": trace_id,
    }
    if exc.platform:
        payload["platform"] = exc.platform
    if exc.retryable:
        payload["retryable"] = True
    return payload


def callback_error_flag(exc: ConnectError, *, platform: str) -> str:
    """Query flag appended to the connect page when the provider redirect fails."""
    if isinstance(exc, AuthorizationDenied):
        return f"{platform}_authorization_denied"
    if isinstance(exc, CredentialsMissing):
        return f"{platform}_not_configured"
    if isinstance(exc, StateStoreUnavailable):
        return f"{platform}_unavailable"
    return f"{platform}_invalid_callback"
