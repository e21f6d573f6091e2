from datetime import UTC, datetime, timedelta
import json
import uuid

import httpx
from sqlalchemy import select

from social_connect.application.services.social_account_service import upsert_social_account
from social_connect.domain.models.social_account import SocialAccount

TWEETS_URL = "https://api.twitter.com/2/tweets"


def _twitter_account(db_session, user) -> SocialAccount:
    account = upsert_social_account(
        db_session,
        user_id=user.id,
        platform="twitter",
        account_id="42",
        username="acme",
        display_name="Acme Corp",
        access_token="user-token",
        access_token_secret="user-secret",
    )
    db_session.commit()
    db_session.refresh(account)
    return account


def test_post_without_connected_account_is_rejected_locally(client, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")

    response = client.post("/api/twitter/post", json={"content": "hello"}, headers=auth_headers)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ACCOUNT_NOT_CONNECTED"
    assert provider_http.requests == []


def test_publish_tweet_with_media_alias(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")
    _twitter_account(db_session, user)
    provider_http.add("POST", TWEETS_URL, status_code=201, json={"data": {"id": "999", "text": "hi"}})

    response = client.post(
        "/api/twitter/post",
        json={"content": "Launch day", "mediaUrl": "https://cdn.example/launch.png"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["platform"] == "twitter"
    assert body["external_post_id"] == "999"
    assert body["url"] == "https://twitter.com/acme/status/999"

    sent = provider_http.calls_to(TWEETS_URL)[0]
    assert json.loads(sent.content) == {"text": "Launch day\nhttps://cdn.example/launch.png"}
    assert sent.headers["Authorization"].startswith("OAuth ")
    assert 'oauth_token="user-token"' in sent.headers["Authorization"]


def test_overlong_tweet_fails_before_provider_call(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")
    _twitter_account(db_session, user)

    response = client.post("/api/twitter/post", json={"content": "x" * 281}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_REQUEST"
    assert provider_http.requests == []


def test_media_only_platform_rejects_text_post(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("tiktok")
    upsert_social_account(
        db_session,
        user_id=user.id,
        platform="tiktok",
        account_id="open-77",
        access_token="tt-access",
        refresh_token="tt-refresh",
        token_expiry=datetime.now(UTC) + timedelta(hours=12),
    )
    db_session.commit()

    response = client.post("/api/tiktok/post", json={"content": "no video"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_REQUEST"
    assert provider_http.requests == []


def test_stats_rejected_credentials_require_reconnect(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("twitter")
    _twitter_account(db_session, user)
    provider_http.add(
        "GET",
        "https://api.twitter.com/2/users/42",
        status_code=401,
        json={"title": "Unauthorized", "status": 401},
    )

    response = client.get("/api/twitter/stats", headers=auth_headers)

    assert response.status_code == 401
    assert response.json()["error_code"] == "RECONNECT_REQUIRED"
    assert response.json()["platform"] == "twitter"


def test_stats_rate_limit_is_retryable(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")
    _twitter_account(db_session, user)
    provider_http.add("GET", "https://api.twitter.com/2/users/42", status_code=429, json={"title": "Too Many Requests"})

    response = client.get("/api/twitter/stats", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error_code"] == "PROVIDER_REQUEST_FAILED"
    assert response.json()["retryable"] is True


def test_stats_timeout_is_reported(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")
    _twitter_account(db_session, user)

    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider_http.add("GET", "https://api.twitter.com/2/users/42", handler=_timeout)

    response = client.get("/api/twitter/stats", headers=auth_headers)

    assert response.status_code == 503
    assert response.json()["error_code"] == "PROVIDER_TIMEOUT"


def test_unreachable_provider_is_a_retryable_request_failure(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("twitter")
    _twitter_account(db_session, user)

    def _refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider_http.add("GET", "https://api.twitter.com/2/users/42", handler=_refused)

    response = client.get("/api/twitter/stats", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error_code"] == "PROVIDER_REQUEST_FAILED"
    assert response.json()["retryable"] is True


def test_linkedin_publish_with_unreadable_body_is_reported(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("linkedin")
    upsert_social_account(
        db_session,
        user_id=user.id,
        platform="linkedin",
        account_id="li-member-9",
        access_token="li-access",
        token_expiry=datetime.now(UTC) + timedelta(days=30),
    )
    db_session.commit()
    provider_http.add("POST", "https://api.linkedin.com/v2/ugcPosts", status_code=201, text="<html>created</html>")

    response = client.post("/api/linkedin/post", json={"content": "hello"}, headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error_code"] == "PROVIDER_REQUEST_FAILED"


def test_twitter_stats_summarize_recent_tweets(client, db_session, user, auth_headers, configure_platform, provider_http):
    configure_platform("twitter")
    _twitter_account(db_session, user)
    provider_http.add(
        "GET",
        "https://api.twitter.com/2/users/42",
        json={"data": {"id": "42", "public_metrics": {"followers_count": 10, "following_count": 3, "tweet_count": 7}}},
    )
    provider_http.add(
        "GET",
        "https://api.twitter.com/2/users/42/tweets",
        json={
            "data": [
                {"id": "1", "public_metrics": {"like_count": 4, "retweet_count": 1}},
                {"id": "2", "public_metrics": {"like_count": 1}},
            ]
        },
    )

    response = client.get("/api/twitter/stats", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "platform": "twitter",
        "account_id": "42",
        "username": "acme",
        "followers": 10,
        "following": 3,
        "posts": 7,
        "engagement": {"recent_posts": 2, "average_interactions": 3.0},
    }


def test_social_accounts_listing_never_exposes_tokens(client, db_session, user, auth_headers):
    _twitter_account(db_session, user)

    response = client.get("/api/social-accounts", headers=auth_headers)

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["platform"] == "twitter"
    assert items[0]["has_refresh_token"] is False
    assert "user-token" not in response.text
    assert "user-secret" not in response.text
    assert "access_token" not in items[0]


def test_delete_social_account_is_scoped_to_owner(client, db_session, user, other_user, auth_headers):
    own = _twitter_account(db_session, user)
    foreign = _twitter_account(db_session, other_user)

    assert client.delete(f"/api/social-accounts/{foreign.id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/social-accounts/{uuid.uuid4()}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/social-accounts/{own.id}", headers=auth_headers).json() == {"success": True}

    remaining = db_session.execute(select(SocialAccount)).scalars().all()
    assert [account.user_id for account in remaining] == [other_user.id]


def test_disconnect_reports_whether_anything_was_removed(client, db_session, user, auth_headers):
    _twitter_account(db_session, user)

    first = client.delete("/api/twitter/disconnect", headers=auth_headers)
    second = client.delete("/api/twitter/disconnect", headers=auth_headers)

    assert first.json() == {"success": True, "removed": True}
    assert second.json() == {"success": True, "removed": False}


def test_platform_overview_lists_every_platform(client, db_session, user, auth_headers, configure_platform):
    configure_platform("twitter")
    _twitter_account(db_session, user)

    response = client.get("/api/platforms", headers=auth_headers)

    assert response.status_code == 200
    items = {item["platform"]: item for item in response.json()["items"]}
    assert set(items) == {"facebook", "google", "instagram", "linkedin", "snapchat", "tiktok", "twitter", "youtube"}
    assert items["twitter"]["configured"] is True
    assert items["twitter"]["connected"] is True
    assert items["twitter"]["supports_refresh"] is False
    assert items["linkedin"]["configured"] is False
    assert items["linkedin"]["connected"] is False


def test_manual_refresh_without_refresh_token_requires_reconnect(
    client, db_session, user, auth_headers, configure_platform, provider_http
):
    configure_platform("twitter")
    _twitter_account(db_session, user)

    response = client.post("/api/twitter/refresh", headers=auth_headers)

    assert response.status_code == 401
    assert response.json()["error_code"] == "RECONNECT_REQUIRED"
    assert provider_http.requests == []
