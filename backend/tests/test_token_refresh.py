import asyncio
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from social_connect.application.errors import ReconnectRequired
from social_connect.application.services.social_account_service import (
    as_utc,
    decrypted_access_token,
    decrypted_refresh_token,
    upsert_social_account,
)
from social_connect.application.services.token_refresh_service import (
    ensure_fresh_credentials,
    refresh_expiring_accounts,
)
from social_connect.integrations.providers import get_provider

LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
LINKEDIN_NETWORK_URL = "https://api.linkedin.com/v2/networkSizes/urn:li:person:li-member-9"


def _linkedin_account(db_session, user, *, expires_in: timedelta, refresh_token: str | None = "refresh-1"):
    account = upsert_social_account(
        db_session,
        user_id=user.id,
        platform="linkedin",
        account_id="li-member-9",
        access_token="access-old",
        refresh_token=refresh_token,
        token_expiry=datetime.now(UTC) + expires_in,
    )
    db_session.commit()
    db_session.refresh(account)
    return account


def test_expired_token_without_refresh_token_requires_reconnect(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("linkedin")
    _linkedin_account(db_session, user, expires_in=timedelta(minutes=-5), refresh_token=None)

    response = client.get("/api/linkedin/stats", headers=auth_headers)

    assert response.status_code == 401
    assert response.json()["error_code"] == "RECONNECT_REQUIRED"
    assert provider_http.requests == []


def test_stats_refresh_an_expiring_token_first(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(seconds=10))
    provider_http.add(
        "POST",
        LINKEDIN_TOKEN_URL,
        json={"access_token": "access-new", "expires_in": 5184000, "refresh_token": "refresh-2"},
    )

    def _network_size(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer access-new"
        return httpx.Response(200, json={"firstDegreeSize": 512})

    provider_http.add("GET", LINKEDIN_NETWORK_URL, handler=_network_size)

    response = client.get("/api/linkedin/stats", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["followers"] == 512
    refresh_form = parse_qs(provider_http.calls_to(LINKEDIN_TOKEN_URL)[0].content.decode("utf-8"))
    assert refresh_form["grant_type"] == ["refresh_token"]
    assert refresh_form["refresh_token"] == ["refresh-1"]

    db_session.refresh(account)
    assert decrypted_access_token(account) == "access-new"
    assert decrypted_refresh_token(account) == "refresh-2"
    assert as_utc(account.token_expiry) > datetime.now(UTC) + timedelta(days=30)


async def test_concurrent_callers_share_a_single_refresh(db_session, user, configure_platform, provider_http):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(minutes=-1))

    def _token(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "access-new", "expires_in": 3600})

    provider_http.add("POST", LINKEDIN_TOKEN_URL, handler=_token)
    provider = get_provider("linkedin")

    results = await asyncio.gather(
        *(ensure_fresh_credentials(db_session, account=account, provider=provider) for _ in range(5))
    )

    assert len(provider_http.calls_to(LINKEDIN_TOKEN_URL)) == 1
    assert {credentials.access_token for credentials in results} == {"access-new"}
    # The provider did not rotate, so the original refresh token stays valid.
    assert {credentials.refresh_token for credentials in results} == {"refresh-1"}


async def test_concurrent_callers_do_not_retry_a_revoked_refresh(db_session, user, configure_platform, provider_http):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(minutes=-1))
    provider_http.add("POST", LINKEDIN_TOKEN_URL, status_code=400, json={"error": "invalid_grant"})
    provider = get_provider("linkedin")

    results = await asyncio.gather(
        *(ensure_fresh_credentials(db_session, account=account, provider=provider) for _ in range(4)),
        return_exceptions=True,
    )

    assert len(provider_http.calls_to(LINKEDIN_TOKEN_URL)) == 1
    assert all(isinstance(result, ReconnectRequired) for result in results)
    db_session.refresh(account)
    assert account.is_connected is False


async def test_token_without_refresh_token_is_used_until_it_lapses(
    db_session, user, configure_platform, provider_http
):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(seconds=30), refresh_token=None)

    credentials = await ensure_fresh_credentials(db_session, account=account, provider=get_provider("linkedin"))

    assert credentials.access_token == "access-old"
    assert provider_http.requests == []


async def test_revoked_refresh_token_disconnects_the_account(db_session, user, configure_platform, provider_http):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(minutes=-1))
    provider_http.add("POST", LINKEDIN_TOKEN_URL, status_code=400, json={"error": "invalid_grant"})

    with pytest.raises(ReconnectRequired) as exc_info:
        await ensure_fresh_credentials(db_session, account=account, provider=get_provider("linkedin"))

    assert exc_info.value.provider_error_code == "invalid_grant"
    db_session.refresh(account)
    assert account.is_connected is False
    assert decrypted_access_token(account) == "access-old"


def test_revoked_account_reports_reconnect_on_later_calls(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(days=10))
    account.is_connected = False
    db_session.commit()

    response = client.post("/api/linkedin/post", json={"content": "hello"}, headers=auth_headers)

    assert response.status_code == 401
    assert response.json()["error_code"] == "RECONNECT_REQUIRED"
    assert provider_http.requests == []


async def test_fresh_token_is_used_without_refreshing(db_session, user, configure_platform, provider_http):
    configure_platform("linkedin")
    account = _linkedin_account(db_session, user, expires_in=timedelta(days=10))

    credentials = await ensure_fresh_credentials(db_session, account=account, provider=get_provider("linkedin"))

    assert credentials.access_token == "access-old"
    assert provider_http.requests == []


async def test_proactive_sweep_summarizes_outcomes(db_session, user, other_user, configure_platform, provider_http):
    configure_platform("linkedin")
    configure_platform("snapchat")
    _linkedin_account(db_session, user, expires_in=timedelta(minutes=10))
    upsert_social_account(
        db_session,
        user_id=other_user.id,
        platform="snapchat",
        account_id="snap-user-1",
        access_token="snap-old",
        refresh_token="snap-refresh",
        token_expiry=datetime.now(UTC) + timedelta(minutes=5),
    )
    upsert_social_account(
        db_session,
        user_id=other_user.id,
        platform="linkedin",
        account_id="li-far-future",
        access_token="li-other",
        refresh_token="li-other-refresh",
        token_expiry=datetime.now(UTC) + timedelta(days=20),
    )
    db_session.commit()
    provider_http.add("POST", LINKEDIN_TOKEN_URL, json={"access_token": "access-new", "expires_in": 5184000})
    provider_http.add(
        "POST",
        "https://accounts.snapchat.com/login/oauth2/access_token",
        status_code=401,
        json={"error": "invalid_grant"},
    )

    summary = await refresh_expiring_accounts(db_session, within_seconds=3600)

    assert summary == {"checked": 2, "fresh": 1, "reconnect_required": 1, "failed": 0}
    assert len(provider_http.calls_to(LINKEDIN_TOKEN_URL)) == 1


def test_youtube_expired_token_refreshes_before_stats(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("youtube", client_id="yt-client", client_secret="yt-secret")
    account = upsert_social_account(
        db_session,
        user_id=user.id,
        platform="youtube",
        account_id="UC-channel-1",
        username="@acme",
        access_token="yt-access-old",
        refresh_token="yt-refresh",
        token_expiry=datetime.now(UTC) - timedelta(minutes=2),
    )
    db_session.commit()
    provider_http.add(
        "POST",
        "https://oauth2.googleapis.com/token",
        json={"access_token": "yt-access-new", "expires_in": 3599, "token_type": "Bearer"},
    )

    def _channels(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer yt-access-new"
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "id": "UC-channel-1",
                        "snippet": {"title": "Acme", "customUrl": "@acme"},
                        "statistics": {"subscriberCount": "1200", "videoCount": "15", "viewCount": "98000"},
                    }
                ]
            },
        )

    provider_http.add("GET", "https://www.googleapis.com/youtube/v3/channels", handler=_channels)

    response = client.get("/api/youtube/stats", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["followers"] == 1200
    assert body["posts"] == 15
    assert body["engagement"]["views"] == 98000

    refresh_form = parse_qs(provider_http.calls_to("https://oauth2.googleapis.com/token")[0].content.decode("utf-8"))
    assert refresh_form["grant_type"] == ["refresh_token"]
    assert refresh_form["refresh_token"] == ["yt-refresh"]
    assert refresh_form["client_id"] == ["yt-client"]
    assert refresh_form["client_secret"] == ["yt-secret"]

    db_session.refresh(account)
    assert decrypted_access_token(account) == "yt-access-new"
    assert decrypted_refresh_token(account) == "yt-refresh"
    assert as_utc(account.token_expiry) > datetime.now(UTC) + timedelta(minutes=50)


async def test_snapchat_refresh_stores_the_rotated_refresh_token(db_session, user, configure_platform, provider_http):
    configure_platform("snapchat")
    account = upsert_social_account(
        db_session,
        user_id=user.id,
        platform="snapchat",
        account_id="snap-user-1",
        access_token="snap-old",
        refresh_token="snap-refresh-1",
        token_expiry=datetime.now(UTC) + timedelta(seconds=20),
    )
    db_session.commit()
    db_session.refresh(account)
    provider_http.add(
        "POST",
        "https://accounts.snapchat.com/login/oauth2/access_token",
        json={"access_token": "snap-new", "refresh_token": "snap-refresh-2", "expires_in": 1800},
    )

    credentials = await ensure_fresh_credentials(db_session, account=account, provider=get_provider("snapchat"))

    assert credentials.access_token == "snap-new"
    assert credentials.refresh_token == "snap-refresh-2"
    refresh_call = provider_http.calls_to("https://accounts.snapchat.com/login/oauth2/access_token")[0]
    assert parse_qs(refresh_call.content.decode("utf-8"))["refresh_token"] == ["snap-refresh-1"]
    db_session.refresh(account)
    assert decrypted_refresh_token(account) == "snap-refresh-2"
