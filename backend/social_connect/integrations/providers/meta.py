from social_connect.core.config import settings
from social_connect.core.security import build_appsecret_proof
from social_connect.integrations.providers.base import CallbackParams, OAuthProvider, TokenSet, expires_at_from

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".m4v")


def is_video_url(media_url: str) -> bool:
    path = media_url.split("?", 1)[0].lower()
    return path.endswith(VIDEO_EXTENSIONS)


class MetaGraphProvider(OAuthProvider):
    """Shared Graph API plumbing for Facebook Pages and Instagram Business accounts."""

    allows_sessionless_completion = True

    @property
    def authorize_url(self) -> str:
        return settings.meta_dialog_url

    @property
    def graph_url(self) -> str:
        return settings.meta_graph_api_base_url.rstrip("/")

    def _graph_params(self, access_token: str, **params) -> dict:
        _, client_secret = self.require_credentials()
        return {
            **params,
            "access_token": access_token,
            "appsecret_proof": build_appsecret_proof(access_token, client_secret),
        }

    async def _graph_get(self, path: str, access_token: str, *, operation: str, **params) -> dict:
        return await self._request_json(
            "GET",
            f"{self.graph_url}/{path.lstrip('/')}",
            operation=operation,
            params=self._graph_params(access_token, **params),
        )

    async def _graph_post(self, path: str, access_token: str, *, operation: str, **data) -> dict:
        return await self._request_json(
            "POST",
            f"{self.graph_url}/{path.lstrip('/')}",
            operation=operation,
            data=self._graph_params(access_token, **data),
        )

    async def _list_pages(self, user_access_token: str, *, fields: str) -> list[dict]:
        pages: list[dict] = []
        payload = await self._graph_get("me/accounts", user_access_token, operation="profile", fields=fields, limit=100)
        pages.extend(payload.get("data") or [])
        next_url = (payload.get("paging") or {}).get("next")
        while next_url:
            # Graph paging links already embed the token and proof.
            payload = await self._request_json("GET", next_url, operation="profile")
            pages.extend(payload.get("data") or [])
            next_url = (payload.get("paging") or {}).get("next")
        return pages

    async def exchange_code(self, params: CallbackParams) -> TokenSet:
        client_id, client_secret = self.require_credentials()
        short_lived = await self._request_json(
            "GET",
            f"{self.graph_url}/oauth/access_token",
            operation="exchange",
            params={
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": self.redirect_uri,
                "code": params.code or "",
            },
        )
        short_lived_tokens = self._token_set_from(short_lived, operation="exchange")

        long_lived = await self._request_json(
            "GET",
            f"{self.graph_url}/oauth/access_token",
            operation="exchange",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": client_id,
                "client_secret": client_secret,
                "fb_exchange_token": short_lived_tokens.access_token,
            },
        )
        access_token = long_lived.get("access_token") or short_lived_tokens.access_token
        return TokenSet(
            access_token=access_token,
            expires_at=expires_at_from(long_lived.get("expires_in")),
            raw={"token_type": long_lived.get("token_type") or short_lived.get("token_type")},
        )
