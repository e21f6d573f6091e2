from social_connect.application.errors import InvalidRequest, ReconnectRequired
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
from social_connect.integrations.providers.meta import is_video_url
from social_connect.integrations.providers.normalizer import clean_optional, dig, safe_int

TIKTOK_AUTHORIZE_URL = "https://www.tiktok.com/v2/auth/authorize/"
TIKTOK_TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
TIKTOK_USERINFO_URL = "https://open.tiktokapis.com/v2/user/info/"
TIKTOK_VIDEO_LIST_URL = "https://open.tiktokapis.com/v2/video/list/"
TIKTOK_VIDEO_INIT_URL = "https://open.tiktokapis.com/v2/post/publish/video/init/"
TIKTOK_DEFAULT_EXPIRES_IN = 86400
TIKTOK_CAPTION_MAX_LENGTH = 2200


def _api_error_code(payload: dict) -> str | None:
    # TikTok reports failures inside a 200 body; "ok" means success.
    code = clean_optional(dig(payload, "error", "code"))
    if code and code != "ok":
        return code
    return None


class TikTokProvider(OAuthProvider):
    platform = Platform.TIKTOK.value
    display_name = "TikTok"
    client_id_setting = "tiktok_client_key"
    client_secret_setting = "tiktok_client_secret"
    scope_setting = "tiktok_oauth_scope"
    authorize_url = TIKTOK_AUTHORIZE_URL
    client_id_param = "client_key"
    uses_pkce = True
    supports_refresh = True
    allows_sessionless_completion = True

    @staticmethod
    def _headers(access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=UTF-8",
        }

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        return await self._exchange_authorization_code(
            TIKTOK_TOKEN_URL,
            params,
            default_expires_in=TIKTOK_DEFAULT_EXPIRES_IN,
        )

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        payload = await self._request_json(
            "GET",
            TIKTOK_USERINFO_URL,
            operation="profile",
            params={"fields": "open_id,union_id,avatar_url,display_name,username"},
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        if _api_error_code(payload):
            raise malformed_response(self.platform, "profile", f"error {_api_error_code(payload)}")
        return dig(payload, "data", "user") or {}

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        open_id = clean_optional(profile.get("open_id")) or clean_optional(tokens.raw.get("open_id"))
        if not open_id:
            raise malformed_response(self.platform, "profile", "no open_id")
        username = clean_optional(profile.get("username"))
        display_name = clean_optional(profile.get("display_name"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=open_id,
            account_name=display_name or username,
            username=username,
            display_name=display_name,
            profile_url=clean_optional(profile.get("avatar_url")),
            metadata={"union_id": clean_optional(profile.get("union_id"))},
        )

    async def refresh_access_token(self, credentials: AccountCredentials) -> TokenSet:
        tokens = await self._refresh_with_grant(
            TIKTOK_TOKEN_URL,
            credentials,
            default_expires_in=TIKTOK_DEFAULT_EXPIRES_IN,
        )
        if _api_error_code(tokens.raw):
            raise ReconnectRequired("TikTok refresh rejected", platform=self.platform)
        return tokens

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        if not media_url or not is_video_url(media_url):
            raise InvalidRequest("TikTok posts require a video URL", platform=self.platform)

        payload = {
            "post_info": {
                "title": content.strip()[:TIKTOK_CAPTION_MAX_LENGTH],
                "privacy_level": "PUBLIC_TO_EVERYONE",
                "disable_comment": False,
                "disable_duet": False,
                "disable_stitch": False,
            },
            "source_info": {
                "source": "PULL_FROM_URL",
                "video_url": media_url,
            },
        }
        init_payload = await self._request_json(
            "POST",
            TIKTOK_VIDEO_INIT_URL,
            operation="publish",
            json=payload,
            headers=self._headers(credentials.access_token),
        )
        error_code = _api_error_code(init_payload)
        if error_code:
            raise malformed_response(self.platform, "publish", f"error {error_code}")
        publish_id = clean_optional(dig(init_payload, "data", "publish_id"))
        if not publish_id:
            raise malformed_response(self.platform, "publish", "no publish_id")
        return PublishResult(platform=self.platform, external_post_id=publish_id, raw=init_payload.get("data") or {})

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        user_payload = await self._request_json(
            "GET",
            TIKTOK_USERINFO_URL,
            operation="stats",
            params={"fields": "open_id,username,follower_count,following_count,likes_count,video_count"},
            headers={"Authorization": f"Bearer {credentials.access_token}"},
        )
        user = dig(user_payload, "data", "user") or {}
        videos_payload = await self._request_json(
            "POST",
            TIKTOK_VIDEO_LIST_URL,
            operation="stats",
            params={"fields": "id,like_count,comment_count,share_count,view_count"},
            json={"max_count": 10},
            headers=self._headers(credentials.access_token),
        )
        videos = dig(videos_payload, "data", "videos") or []
        totals = {"likes": 0, "comments": 0, "shares": 0, "views": 0}
        for video in videos:
            totals["likes"] += safe_int(video.get("like_count")) or 0
            totals["comments"] += safe_int(video.get("comment_count")) or 0
            totals["shares"] += safe_int(video.get("share_count")) or 0
            totals["views"] += safe_int(video.get("view_count")) or 0

        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=clean_optional(user.get("username")) or credentials.username,
            followers=safe_int(user.get("follower_count")),
            following=safe_int(user.get("following_count")),
            posts=safe_int(user.get("video_count")),
            engagement={**totals, "total_likes": safe_int(user.get("likes_count"))},
        )
