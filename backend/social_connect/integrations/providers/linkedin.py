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
    read_json,
)
from social_connect.integrations.providers.normalizer import clean_optional, safe_int

LINKEDIN_AUTHORIZE_URL = "https://www.linkedin.com/oauth/v2/authorization"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
LINKEDIN_USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
LINKEDIN_UGC_POSTS_URL = "https://api.linkedin.com/v2/ugcPosts"
LINKEDIN_NETWORK_SIZE_URL = "https://api.linkedin.com/v2/networkSizes"
LINKEDIN_POST_MAX_LENGTH = 3000


class LinkedInProvider(OAuthProvider):
    platform = Platform.LINKEDIN.value
    display_name = "LinkedIn"
    client_id_setting = "linkedin_client_id"
    client_secret_setting = "linkedin_client_secret"
    scope_setting = "linkedin_oauth_scope"
    authorize_url = LINKEDIN_AUTHORIZE_URL
    supports_refresh = True
    allows_sessionless_completion = True

    @staticmethod
    def _headers(access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "X-Restli-Protocol-Version": "2.0.0",
        }

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        return await self._exchange_authorization_code(LINKEDIN_TOKEN_URL, params)

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        return await self._request_json(
            "GET",
            LINKEDIN_USERINFO_URL,
            operation="profile",
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        member_id = clean_optional(profile.get("sub"))
        if not member_id:
            raise malformed_response(self.platform, "profile", "no member id")
        name = clean_optional(profile.get("name"))
        if not name:
            parts = [clean_optional(profile.get("given_name")), clean_optional(profile.get("family_name"))]
            name = " ".join(part for part in parts if part) or None
        return NormalizedAccount(
            platform=self.platform,
            account_id=member_id,
            account_name=name,
            username=clean_optional(profile.get("email")),
            display_name=name,
            profile_url=clean_optional(profile.get("picture")),
            metadata={"member_urn": f"urn:li:person:{member_id}"},
        )

    async def refresh_access_token(self, credentials: AccountCredentials) -> TokenSet:
        return await self._refresh_with_grant(LINKEDIN_TOKEN_URL, credentials)

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        text = content.strip()
        if not text:
            raise InvalidRequest("LinkedIn post content is empty", platform=self.platform)
        if len(text) > LINKEDIN_POST_MAX_LENGTH:
            raise InvalidRequest(f"LinkedIn post exceeds {LINKEDIN_POST_MAX_LENGTH} characters", platform=self.platform)

        share_content: dict = {
            "shareCommentary": {"text": text},
            "shareMediaCategory": "NONE",
        }
        if media_url:
            share_content["shareMediaCategory"] = "ARTICLE"
            share_content["media"] = [{"status": "READY", "originalUrl": media_url}]
        payload = {
            "author": f"urn:li:person:{credentials.account_id}",
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share_content},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }
        response = await self._request(
            "POST",
            LINKEDIN_UGC_POSTS_URL,
            operation="publish",
            json=payload,
            headers=self._headers(credentials.access_token),
        )
        external_post_id = response.headers.get("x-restli-id")
        if not external_post_id and response.content:
            body = read_json(response, platform=self.platform, operation="publish")
            external_post_id = clean_optional(body.get("id"))
        if not external_post_id:
            raise malformed_response(self.platform, "publish", "no post id")
        return PublishResult(
            platform=self.platform,
            external_post_id=external_post_id,
            url=f"https://www.linkedin.com/feed/update/{external_post_id}",
        )

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        member_urn = f"urn:li:person:{credentials.account_id}"
        payload = await self._request_json(
            "GET",
            f"{LINKEDIN_NETWORK_SIZE_URL}/{member_urn}",
            operation="stats",
            params={"edgeType": "CompanyFollowedByMember"},
            headers=self._headers(credentials.access_token),
        )
        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=credentials.username,
            followers=safe_int(payload.get("firstDegreeSize")),
        )
