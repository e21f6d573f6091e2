from social_connect.application.errors import InvalidRequest
from social_connect.domain.models.social_account import Platform
from social_connect.integrations.providers.base import (
    AccountCredentials,
    AccountStats,
    CallbackParams,
    NormalizedAccount,
    OAuthProvider,
    PublishResult,
    TokenSet,
    malformed_response,
)
from social_connect.integrations.providers.normalizer import clean_optional, safe_int

SNAPCHAT_AUTHORIZE_URL = "https://accounts.snapchat.com/accounts/oauth2/auth"
SNAPCHAT_TOKEN_URL = "https://accounts.snapchat.com/login/oauth2/access_token"
SNAPCHAT_API_URL = "https://adsapi.snapchat.com/v1"


class SnapchatProvider(OAuthProvider):
    platform = Platform.SNAPCHAT.value
    display_name = "Snapchat"
    client_id_setting = "snapchat_client_id"
    client_secret_setting = "snapchat_client_secret"
    scope_setting = "snapchat_oauth_scope"
    authorize_url = SNAPCHAT_AUTHORIZE_URL
    supports_refresh = True

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        return await self._exchange_authorization_code(SNAPCHAT_TOKEN_URL, params)

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        payload = await self._request_json(
            "GET",
            f"{SNAPCHAT_API_URL}/me",
            operation="profile",
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        # The Marketing API wraps the user under "me"; older responses are flat.
        me = payload.get("me")
        return me if isinstance(me, dict) else payload

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        account_id = clean_optional(profile.get("id")) or clean_optional(profile.get("sub"))
        if not account_id:
            raise malformed_response(self.platform, "profile", "no user id")
        username = clean_optional(profile.get("username"))
        name = clean_optional(profile.get("display_name")) or clean_optional(profile.get("name"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=account_id,
            account_name=username or name,
            username=username,
            display_name=name,
            profile_url=clean_optional(profile.get("picture")) or clean_optional(profile.get("bitmoji_avatar_url")),
            metadata={
                "organization_id": clean_optional(profile.get("organization_id")),
                "email": clean_optional(profile.get("email")),
            },
        )

    async def refresh_access_token(self, credentials: AccountCredentials) -> TokenSet:
        return await self._refresh_with_grant(SNAPCHAT_TOKEN_URL, credentials)

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        if not media_url:
            raise InvalidRequest("Snapchat posts require a media URL", platform=self.platform)
        payload = await self._request_json(
            "POST",
            f"{SNAPCHAT_API_URL}/marketing/snapshots",
            operation="publish",
            json={"caption": content, "media_url": media_url},
            headers={"Authorization": f"Bearer {credentials.access_token}"},
        )
        snapshot_id = clean_optional(payload.get("id")) or clean_optional(payload.get("snapshot_id"))
        if not snapshot_id:
            raise malformed_response(self.platform, "publish", "no snapshot id")
        return PublishResult(platform=self.platform, external_post_id=snapshot_id, raw=payload)

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        organization_id = clean_optional(credentials.metadata.get("organization_id")) or credentials.account_id
        payload = await self._request_json(
            "GET",
            f"{SNAPCHAT_API_URL}/organizations/{organization_id}/stats",
            operation="stats",
            headers={"Authorization": f"Bearer {credentials.access_token}"},
        )
        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=credentials.username,
            followers=safe_int(payload.get("followers")),
            engagement={
                "views": safe_int(payload.get("views")) or 0,
                "interactions": safe_int(payload.get("interactions")) or 0,
                "shares": safe_int(payload.get("shares")) or 0,
            },
        )
