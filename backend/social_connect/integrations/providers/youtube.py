from social_connect.application.errors import InvalidRequest, NoEligibleAccountFound, UnsupportedOperation
from social_connect.domain.models.social_account import Platform
from social_connect.integrations.providers.base import (
    AccountCredentials,
    AccountStats,
    NormalizedAccount,
    PublishResult,
    TokenSet,
)
from social_connect.integrations.providers.google import GoogleOAuthProvider
from social_connect.integrations.providers.meta import is_video_url
from social_connect.integrations.providers.normalizer import clean_optional, dig, safe_int

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"


class YouTubeProvider(GoogleOAuthProvider):
    platform = Platform.YOUTUBE.value
    display_name = "YouTube"
    client_id_setting = "youtube_client_id"
    client_secret_setting = "youtube_client_secret"
    scope_setting = "youtube_oauth_scope"
    allows_sessionless_completion = True

    async def _my_channel(self, access_token: str, *, operation: str) -> dict | None:
        payload = await self._request_json(
            "GET",
            f"{YOUTUBE_API_URL}/channels",
            operation=operation,
            params={"part": "snippet,statistics", "mine": "true"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        for item in payload.get("items") or []:
            if isinstance(item, dict) and clean_optional(item.get("id")):
                return item
        return None

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        channel = await self._my_channel(tokens.access_token, operation="profile")
        if channel is None:
            raise NoEligibleAccountFound("No YouTube channel found for this Google account", platform=self.platform)
        return channel

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        channel_id = clean_optional(profile.get("id"))
        if not channel_id:
            raise NoEligibleAccountFound("No YouTube channel found for this Google account", platform=self.platform)
        title = clean_optional(dig(profile, "snippet", "title"))
        custom_url = clean_optional(dig(profile, "snippet", "customUrl"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=channel_id,
            account_name=title,
            username=custom_url,
            display_name=title,
            profile_url=clean_optional(dig(profile, "snippet", "thumbnails", "default", "url")),
            metadata={
                "entity": "youtube_channel",
                "channel_url": f"https://www.youtube.com/channel/{channel_id}",
            },
        )

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        if not media_url or not is_video_url(media_url):
            raise InvalidRequest("YouTube posts require a video URL", platform=self.platform)
        # TODO: implement the resumable upload protocol (videos.insert with uploadType=resumable).
        raise UnsupportedOperation("YouTube video upload is not available yet", platform=self.platform)

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        channel = await self._my_channel(credentials.access_token, operation="stats") or {}
        statistics = channel.get("statistics") or {}
        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=clean_optional(dig(channel, "snippet", "customUrl")) or credentials.username,
            followers=safe_int(statistics.get("subscriberCount")),
            posts=safe_int(statistics.get("videoCount")),
            engagement={"views": safe_int(statistics.get("viewCount")) or 0},
        )
