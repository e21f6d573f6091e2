from social_connect.integrations.providers.base import (
    AccountCredentials,
    AccountStats,
    AuthLink,
    CallbackParams,
    NormalizedAccount,
    OAuthProvider,
    PublishResult,
    TokenSet,
    VerifiedCallback,
)
from social_connect.integrations.providers.factory import get_provider, list_registered_platforms

__all__ = [
    "AccountCredentials",
    "AccountStats",
    "AuthLink",
    "CallbackParams",
    "NormalizedAccount",
    "OAuthProvider",
    "PublishResult",
    "TokenSet",
    "VerifiedCallback",
    "get_provider",
    "list_registered_platforms",
]
