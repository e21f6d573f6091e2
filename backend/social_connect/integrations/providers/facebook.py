from social_connect.application.errors import InvalidRequest
from social_connect.domain.models.social_account import Platform
from social_connect.integrations.providers.base import (
    AccountCredentials,
    AccountStats,
    NormalizedAccount,
    PublishResult,
    TokenSet,
    malformed_response,
)
from social_connect.integrations.providers.meta import MetaGraphProvider, is_video_url
from social_connect.integrations.providers.normalizer import clean_optional, dig, safe_int, select_first_eligible

PAGE_FIELDS = "id,name,access_token,link"


class FacebookProvider(MetaGraphProvider):
    platform = Platform.FACEBOOK.value
    display_name = "Facebook"
    client_id_setting = "facebook_app_id"
    client_secret_setting = "facebook_app_secret"
    scope_setting = "facebook_oauth_scope"

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        user = await self._graph_get("me", tokens.access_token, operation="profile", fields="id,name")
        pages = await self._list_pages(tokens.access_token, fields=PAGE_FIELDS)
        return {"user": user, "pages": pages}

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        pages = profile.get("pages") or []
        page = select_first_eligible(
            pages,
            lambda candidate: bool(clean_optional(candidate.get("id")) and clean_optional(candidate.get("access_token"))),
            platform=self.platform,
            message="No Facebook Page with publishing access was found for this account",
        )
        page_id = clean_optional(page.get("id"))
        page_name = clean_optional(page.get("name"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=page_id,
            account_name=page_name,
            username=page_name,
            display_name=page_name,
            profile_url=clean_optional(page.get("link")) or f"https://www.facebook.com/{page_id}",
            metadata={
                "entity": "facebook_page",
                "facebook_user_id": clean_optional(dig(profile, "user", "id")),
                "eligible_page_ids": [
                    str(candidate["id"])
                    for candidate in pages
                    if isinstance(candidate, dict) and candidate.get("id") and candidate.get("access_token")
                ],
            },
            # Page tokens minted from a long-lived user token do not expire.
            stored_tokens=TokenSet(access_token=str(page["access_token"])),
        )

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        page_id = credentials.account_id
        if not content.strip() and not media_url:
            raise InvalidRequest("Facebook post needs content or media", platform=self.platform)

        if media_url and is_video_url(media_url):
            payload = await self._graph_post(
                f"{page_id}/videos",
                credentials.access_token,
                operation="publish",
                file_url=media_url,
                description=content,
            )
        elif media_url:
            payload = await self._graph_post(
                f"{page_id}/photos",
                credentials.access_token,
                operation="publish",
                url=media_url,
                caption=content,
            )
        else:
            payload = await self._graph_post(
                f"{page_id}/feed",
                credentials.access_token,
                operation="publish",
                message=content,
            )

        post_id = clean_optional(payload.get("post_id")) or clean_optional(payload.get("id"))
        if not post_id:
            raise malformed_response(self.platform, "publish", "no post id")
        return PublishResult(
            platform=self.platform,
            external_post_id=post_id,
            url=f"https://www.facebook.com/{post_id}",
            raw=payload,
        )

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        page_id = credentials.account_id
        page = await self._graph_get(
            page_id,
            credentials.access_token,
            operation="stats",
            fields="id,name,fan_count,followers_count",
        )
        posts_payload = await self._graph_get(
            f"{page_id}/posts",
            credentials.access_token,
            operation="stats",
            fields="id,likes.summary(true),comments.summary(true),shares",
            limit=10,
        )
        posts = posts_payload.get("data") or []
        likes = sum(safe_int(dig(post, "likes", "summary", "total_count")) or 0 for post in posts)
        comments = sum(safe_int(dig(post, "comments", "summary", "total_count")) or 0 for post in posts)
        shares = sum(safe_int(dig(post, "shares", "count")) or 0 for post in posts)

        return AccountStats(
            platform=self.platform,
            account_id=page_id,
            username=clean_optional(page.get("name")) or credentials.username,
            followers=safe_int(page.get("followers_count")) or safe_int(page.get("fan_count")),
            following=None,
            posts=len(posts),
            engagement={"likes": likes, "comments": comments, "shares": shares},
        )
