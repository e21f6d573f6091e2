from collections.abc import Mapping
import logging
from urllib.parse import parse_qsl
from uuid import UUID

from authlib.integrations.httpx_client import OAuth1Auth
import httpx

from social_connect.application.errors import (
    AuthorizationDenied,
    InvalidCallback,
    InvalidRequest,
    ProviderExchangeFailed,
)
from social_connect.domain.models.social_account import Platform
from social_connect.integrations import oauth_state
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
    malformed_response,
)
from social_connect.integrations.providers.normalizer import clean_optional, dig, safe_int

logger = logging.getLogger(__name__)

TWITTER_REQUEST_TOKEN_URL = "https://api.twitter.com/oauth/request_token"
TWITTER_AUTHORIZE_URL = "https://api.twitter.com/oauth/authorize"
TWITTER_ACCESS_TOKEN_URL = "https://api.twitter.com/oauth/access_token"
TWITTER_API_BASE_URL = "https://api.twitter.com/2"
TWEET_MAX_LENGTH = 280


class TwitterProvider(OAuthProvider):
    """Twitter/X over OAuth 1.0a; user tokens never expire and carry a secret."""

    platform = Platform.TWITTER.value
    display_name = "Twitter"
    client_id_setting = "twitter_client_id"
    client_secret_setting = "twitter_client_secret"

    def _user_auth(self, credentials: AccountCredentials) -> OAuth1Auth:
        client_id, client_secret = self.require_credentials()
        return OAuth1Auth(
            client_id,
            client_secret,
            token=credentials.access_token,
            token_secret=credentials.access_token_secret,
        )

    async def generate_auth_link(self, *, user_id: UUID | None) -> AuthLink:
        client_id, client_secret = self.require_credentials()
        auth = OAuth1Auth(client_id, client_secret, redirect_uri=self.redirect_uri)
        response = await self._request("POST", TWITTER_REQUEST_TOKEN_URL, operation="request_token", auth=auth)
        payload = dict(parse_qsl(response.text))
        oauth_token = payload.get("oauth_token")
        oauth_token_secret = payload.get("oauth_token_secret")
        if not oauth_token or not oauth_token_secret:
            raise ProviderExchangeFailed("Twitter request token response incomplete", platform=self.platform)
        if payload.get("oauth_callback_confirmed") not in (None, "true"):
            raise ProviderExchangeFailed("Twitter did not confirm the callback URL", platform=self.platform)

        oauth_state.store_request_token(
            provider=self.platform,
            oauth_token=oauth_token,
            oauth_token_secret=oauth_token_secret,
            user_id=user_id,
        )
        logger.info("oauth1_request_token_issued platform=%s", self.platform)
        auth_url = str(httpx.URL(TWITTER_AUTHORIZE_URL, params={"oauth_token": oauth_token}))
        return AuthLink(auth_url=auth_url, oauth_token=oauth_token, oauth_token_secret=oauth_token_secret)

    def parse_callback(self, query: Mapping[str, str]) -> CallbackParams:
        if query.get("denied"):
            raise AuthorizationDenied("Twitter authorization was denied", platform=self.platform)
        oauth_token = (query.get("oauth_token") or "").strip()
        oauth_verifier = (query.get("oauth_verifier") or "").strip()
        if not oauth_token or not oauth_verifier:
            raise InvalidCallback("Twitter callback is missing oauth_token or oauth_verifier", platform=self.platform)
        return CallbackParams(oauth_token=oauth_token, oauth_verifier=oauth_verifier)

    def verify_callback(self, params: CallbackParams) -> VerifiedCallback:
        record = oauth_state.consume_request_token(provider=self.platform, oauth_token=params.oauth_token or "")
        return VerifiedCallback(
            params=CallbackParams(
                oauth_token=params.oauth_token,
                oauth_verifier=params.oauth_verifier,
                extra={"oauth_token_secret": record["oauth_token_secret"]},
            ),
            user_id=record.get("user_id"),
        )

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        client_id, client_secret = self.require_credentials()
        request_token_secret = params.extra.get("oauth_token_secret")
        if not params.oauth_token or not params.oauth_verifier or not request_token_secret:
            raise InvalidCallback("Twitter request token is incomplete", platform=self.platform)

        auth = OAuth1Auth(
            client_id,
            client_secret,
            token=params.oauth_token,
            token_secret=request_token_secret,
            verifier=params.oauth_verifier,
        )
        response = await self._request("POST", TWITTER_ACCESS_TOKEN_URL, operation="exchange", auth=auth)
        payload = dict(parse_qsl(response.text))
        access_token = payload.get("oauth_token")
        access_token_secret = payload.get("oauth_token_secret")
        if not access_token or not access_token_secret:
            raise ProviderExchangeFailed("Twitter access token response incomplete", platform=self.platform)
        return TokenSet(
            access_token=access_token,
            access_token_secret=access_token_secret,
            raw={"user_id": payload.get("user_id"), "screen_name": payload.get("screen_name")},
        )

    async def fetch_profile(self, tokens: TokenSet) -> dict:
        credentials = AccountCredentials(
            account_id=str(tokens.raw.get("user_id") or ""),
            access_token=tokens.access_token,
            access_token_secret=tokens.access_token_secret,
        )
        payload = await self._request_json(
            "GET",
            f"{TWITTER_API_BASE_URL}/users/me",
            operation="profile",
            params={"user.fields": "profile_image_url,name,username"},
            auth=self._user_auth(credentials),
        )
        return payload.get("data") or {}

    def normalize(self, tokens: TokenSet, profile: dict) -> NormalizedAccount:
        account_id = clean_optional(profile.get("id")) or clean_optional(tokens.raw.get("user_id"))
        if not account_id:
            raise ProviderExchangeFailed("Twitter profile id missing", platform=self.platform)
        username = clean_optional(profile.get("username")) or clean_optional(tokens.raw.get("screen_name"))
        return NormalizedAccount(
            platform=self.platform,
            account_id=account_id,
            account_name=username,
            username=username,
            display_name=clean_optional(profile.get("name")),
            profile_url=clean_optional(profile.get("profile_image_url")),
        )

    async def publish(
        self,
        credentials: AccountCredentials,
        *,
        content: str,
        media_url: str | None = None,
    ) -> PublishResult:
        text = content.strip()
        if media_url:
            text = f"{text}\n{media_url}".strip()
        if not text:
            raise InvalidRequest("Tweet content is empty", platform=self.platform)
        if len(text) > TWEET_MAX_LENGTH:
            raise InvalidRequest(
                f"Tweet exceeds {TWEET_MAX_LENGTH} characters",
                platform=self.platform,
            )

        payload = await self._request_json(
            "POST",
            f"{TWITTER_API_BASE_URL}/tweets",
            operation="publish",
            json={"text": text},
            auth=self._user_auth(credentials),
        )
        tweet_id = clean_optional(dig(payload, "data", "id"))
        if not tweet_id:
            raise malformed_response(self.platform, "publish", "no tweet id")
        url = f"https://twitter.com/{credentials.username}/status/{tweet_id}" if credentials.username else None
        return PublishResult(platform=self.platform, external_post_id=tweet_id, url=url, raw=payload.get("data") or {})

    async def fetch_stats(self, credentials: AccountCredentials) -> AccountStats:
        auth = self._user_auth(credentials)
        user_payload = await self._request_json(
            "GET",
            f"{TWITTER_API_BASE_URL}/users/{credentials.account_id}",
            operation="stats",
            params={"user.fields": "public_metrics"},
            auth=auth,
        )
        metrics = dig(user_payload, "data", "public_metrics") or {}

        tweets_payload = await self._request_json(
            "GET",
            f"{TWITTER_API_BASE_URL}/users/{credentials.account_id}/tweets",
            operation="stats",
            params={"max_results": 10, "tweet.fields": "public_metrics"},
            auth=auth,
        )
        tweets = tweets_payload.get("data") or []
        interactions = 0
        for tweet in tweets:
            tweet_metrics = tweet.get("public_metrics") or {}
            interactions += sum(
                safe_int(tweet_metrics.get(key)) or 0
                for key in ("like_count", "retweet_count", "reply_count", "quote_count")
            )

        return AccountStats(
            platform=self.platform,
            account_id=credentials.account_id,
            username=credentials.username,
            followers=safe_int(metrics.get("followers_count")),
            following=safe_int(metrics.get("following_count")),
            posts=safe_int(metrics.get("tweet_count")),
            engagement={
                "recent_posts": len(tweets),
                "average_interactions": round(interactions / len(tweets), 2) if tweets else 0,
            },
        )
