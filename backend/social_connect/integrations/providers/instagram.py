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

PAGE_FIELDS = "id,name,access_token,instagram_business_account"
INSTAGRAM_FIELDS = "id,username,name,profile_picture_url"


def _has_business_account(page: dict) -> bool:
    return bool(clean_optional(dig(page, "instagram_business_account", "id")) and clean_optional(page.get("access_token")))


class InstagramProvider(MetaGraphProvider):
    """Instagram Business accounts reached through the Facebook Page they are linked to."""

    platform = Platform.INSTAGRAM.value
    display_name = "Instagram"
    client_id_setting = "instagram_app_id"
    client_secret_setting = "instagram_app_secret"
    scope_setting = "instagram_oauth_scope"

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        pages = await self._list_pages(tokens.access_token, fields=PAGE_FIELDS)
        page = select_first_eligible(
            pages,
            _has_business_account,
            platform=self.platform,
            message="No Instagram Business account linked to a Facebook Page was found",
        )
        instagram_id = str(page["instagram_business_account"]["id"])
        instagram = await self._graph_get(
            instagram_id,
            str(page["access_token"]),
            operation="profile",
            fields=INSTAGRAM_FIELDS,
        )
        return {
            "page": page,
            "instagram": instagram,
            "eligible_page_ids": [str(candidate["id"]) for candidate in pages if _has_business_account(candidate)],
        }

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        page = profile.get("page") or {}
        instagram = profile.get("instagram") or {}
        account_id = clean_optional(instagram.get("id")) or clean_optional(dig(page, "instagram_business_account", "id"))
        if not account_id:
            raise malformed_response(self.platform, "profile", "no business account id")
        username = clean_optional(instagram.get("username"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=account_id,
            account_name=username or clean_optional(instagram.get("name")),
            username=username,
            display_name=clean_optional(instagram.get("name")),
            profile_url=f"https://www.instagram.com/{username}" if username else None,
            metadata={
                "entity": "instagram_business_account",
                "linked_page_id": clean_optional(page.get("id")),
                "linked_page_name": clean_optional(page.get("name")),
                "profile_picture_url": clean_optional(instagram.get("profile_picture_url")),
                "eligible_page_ids": profile.get("eligible_page_ids") or [],
            },
            stored_tokens=TokenSet(access_token=str(page.get("access_token") or tokens.access_token)),
        )

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        if not media_url:
            raise InvalidRequest("Instagram posts require an image or video URL", platform=self.platform)

        container_fields = {"caption": content}
        if is_video_url(media_url):
            container_fields.update(media_type="REELS", video_url=media_url)
        else:
            container_fields["image_url"] = media_url
        container = await self._graph_post(
            f"{credentials.account_id}/media",
            credentials.access_token,
            operation="publish",
            **container_fields,
        )
        creation_id = clean_optional(container.get("id"))
        if not creation_id:
            raise malformed_response(self.platform, "publish", "no media container id")

        published = await self._graph_post(
            f"{credentials.account_id}/media_publish",
            credentials.access_token,
            operation="publish",
            creation_id=creation_id,
        )
        media_id = clean_optional(published.get("id"))
        if not media_id:
            raise malformed_response(self.platform, "publish", "no media id")
        return PublishResult(platform=self.platform, external_post_id=media_id, raw=published)

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        account = await self._graph_get(
            credentials.account_id,
            credentials.access_token,
            operation="stats",
            fields="id,username,followers_count,follows_count,media_count",
        )
        media_payload = await self._graph_get(
            f"{credentials.account_id}/media",
            credentials.access_token,
            operation="stats",
            fields="id,like_count,comments_count",
            limit=10,
        )
        media = media_payload.get("data") or []
        likes = sum(safe_int(item.get("like_count")) or 0 for item in media)
        comments = sum(safe_int(item.get("comments_count")) or 0 for item in media)

        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=clean_optional(account.get("username")) or credentials.username,
            followers=safe_int(account.get("followers_count")),
            following=safe_int(account.get("follows_count")),
            posts=safe_int(account.get("media_count")),
            engagement={"likes": likes, "comments": comments, "recent_posts": len(media)},
        )
