from social_connect.domain.models.social_account import Platform
from social_connect.integrations.providers.base import (
    AccountCredentials,
    CallbackParams,
    NormalizedAccount,
    OAuthProvider,
    TokenSet,
    malformed_response,
)
from social_connect.integrations.providers.normalizer import clean_optional

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_DEFAULT_EXPIRES_IN = 3600


class GoogleOAuthProvider(OAuthProvider):
    """Google's authorization server, shared by Google sign-in and YouTube."""

    authorize_url = GOOGLE_AUTHORIZE_URL
    supports_refresh = True
    # Google only returns a refresh token on consent, so ask for it every time.
    extra_authorize_params = {"access_type": "offline", "prompt": "consent", "include_granted_scopes": "true"}

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        return await self._exchange_authorization_code(
            GOOGLE_TOKEN_URL,
            params,
            default_expires_in=GOOGLE_DEFAULT_EXPIRES_IN,
        )

    async def refresh_access_token(self, credentials: AccountCredentials) -> TokenSet:
        return await self._refresh_with_grant(
            GOOGLE_TOKEN_URL,
            credentials,
            default_expires_in=GOOGLE_DEFAULT_EXPIRES_IN,
        )


class GoogleProvider(GoogleOAuthProvider):
    platform = Platform.GOOGLE.value
    display_name = "Google"
    client_id_setting = "google_client_id"
    client_secret_setting = "google_client_secret"
    scope_setting = "google_oauth_scope"

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        return await self._request_json(
            "GET",
            GOOGLE_USERINFO_URL,
            operation="profile",
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        account_id = clean_optional(profile.get("id")) or clean_optional(profile.get("sub"))
        if not account_id:
            raise malformed_response(self.platform, "profile", "no user id")
        email = clean_optional(profile.get("email"))
        name = clean_optional(profile.get("name"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=account_id,
            account_name=name or email,
            username=email,
            display_name=name,
            profile_url=clean_optional(profile.get("picture")),
            metadata={"verified_email": bool(profile.get("verified_email"))},
        )
