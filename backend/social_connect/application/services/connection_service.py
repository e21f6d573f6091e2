"""Connect flow shared by every platform.

``start_connection`` builds the provider authorization link. The provider then
redirects to ``handle_provider_redirect``, which verifies the callback and
seals it into a completion token. The client posts that token to
``complete_connection``, which exchanges it, fetches and normalizes the
profile, and stores the account. Nothing is written until every provider call
has succeeded.
"""

from collections.abc import Mapping
import logging
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from social_connect.application.errors import (
    AuthorizationDenied,
    ConnectError,
    InvalidCallback,
    SessionRequired,
    callback_error_flag,
)
from social_connect.application.services.social_account_service import (
    delete_social_account,
    get_social_account,
    upsert_social_account,
)
from social_connect.core.config import settings
from social_connect.domain.models.social_account import SocialAccount
from social_connect.domain.models.user import User
from social_connect.infrastructure.observability.metrics import record_connect_attempt
from social_connect.integrations.completion_token import decode_completion_token, issue_completion_token
from social_connect.integrations.providers import AuthLink, CallbackParams, OAuthProvider, get_provider

logger = logging.getLogger(__name__)


def _log_stage(platform: str, stage: str, **fields) -> None:
    extras = "".join(f" {key}={value}" for key, value in fields.items())
    logger.info("oauth_callback_stage platform=%s stage=%s%s", platform, stage, extras)


def build_connect_page_redirect(**params: str) -> str:
    return f"{settings.connect_page_url}?{urlencode(params)}"


async def start_connection(platform: str, *, user_id: UUID | None) -> AuthLink:
    provider = get_provider(platform)
    link = await provider.generate_auth_link(user_id=user_id)
    record_connect_attempt(provider.platform, "started")
    _log_stage(provider.platform, "initiated", user_id=user_id)
    return link


def handle_provider_redirect(platform: str, query: Mapping[str, str]) -> str:
    """Turn a provider redirect into a URL on the client connect page.

    Failures become an ``error`` flag instead of an exception so the browser
    always lands back in the app.
    """
    provider = get_provider(platform)
    _log_stage(provider.platform, "awaiting_provider_redirect")
    try:
        params = provider.parse_callback(query)
        verified = provider.verify_callback(params)
    except ConnectError as exc:
        outcome = "denied" if isinstance(exc, AuthorizationDenied) else "failed"
        record_connect_attempt(provider.platform, outcome)
        logger.warning(
            "oauth_callback_rejected platform=%s error_code=%s",
            provider.platform,
            exc.error_type,
        )
        return build_connect_page_redirect(error=callback_error_flag(exc, platform=provider.platform))

    token = issue_completion_token(
        platform=provider.platform,
        user_id=verified.user_id,
        code=verified.params.code,
        oauth_token=verified.params.oauth_token,
        oauth_verifier=verified.params.oauth_verifier,
        extra=verified.params.extra,
    )
    _log_stage(provider.platform, "code_received", has_user=bool(verified.user_id))
    return build_connect_page_redirect(action=f"{provider.platform}_connect", token=token)


def _resolve_user(
    db: Session,
    *,
    provider: OAuthProvider,
    session_user: User | None,
    token_user_id: str | None,
) -> User | None:
    if session_user is not None:
        if token_user_id and token_user_id != str(session_user.id):
            raise InvalidCallback("Completion token belongs to another user", platform=provider.platform)
        return session_user

    if not token_user_id or not provider.allows_sessionless_completion:
        return None
    try:
        user_id = UUID(token_user_id)
    except ValueError as exc:
        raise InvalidCallback("Invalid completion token payload", platform=provider.platform) from exc
    user = db.get(User, user_id)
    if user is None:
        raise InvalidCallback("Completion token user no longer exists", platform=provider.platform)
    return user


async def complete_connection(
    db: Session,
    *,
    platform: str,
    token: str,
    session_user: User | None,
) -> SocialAccount:
    """Finish a connection from a completion token.

    Raises ``SessionRequired`` when neither the session nor the token names a
    user the platform may complete for.
    """
    provider = get_provider(platform)
    try:
        pending = decode_completion_token(token, platform=provider.platform)
    except ConnectError:
        record_connect_attempt(provider.platform, "failed")
        raise

    user = _resolve_user(db, provider=provider, session_user=session_user, token_user_id=pending.user_id)
    if user is None:
        raise SessionRequired("Sign in to finish connecting this account", platform=provider.platform)

    params = CallbackParams(
        code=pending.code,
        oauth_token=pending.oauth_token,
        oauth_verifier=pending.oauth_verifier,
        extra=pending.extra,
    )
    return await handle_callback(db, user_id=user.id, provider=provider, params=params)


async def handle_callback(
    db: Session,
    *,
    user_id: UUID,
    provider: OAuthProvider,
    params: CallbackParams,
) -> SocialAccount:
    platform = provider.platform
    try:
        tokens = await provider.exchange_code(params)
        _log_stage(platform, "token_exchanged", expires=bool(tokens.expires_at), refresh=bool(tokens.refresh_token))

        profile = await provider.fetch_profile(tokens)
        normalized = provider.normalize(tokens, profile)
        _log_stage(platform, "profile_fetched", account_id=normalized.account_id)
    except ConnectError as exc:
        record_connect_attempt(platform, "failed")
        logger.warning("oauth_callback_failed platform=%s error_code=%s", platform, exc.error_type)
        raise

    stored = normalized.stored_tokens or tokens
    fields = {
        "user_id": user_id,
        "platform": platform,
        "account_id": normalized.account_id,
        "account_name": normalized.account_name,
        "username": normalized.username,
        "display_name": normalized.display_name,
        "profile_url": normalized.profile_url,
        "access_token": stored.access_token,
        "access_token_secret": stored.access_token_secret,
        "refresh_token": stored.refresh_token,
        "token_expiry": stored.expires_at,
        "metadata_json": normalized.metadata,
    }
    try:
        account = upsert_social_account(db, **fields)
        try:
            db.commit()
        except IntegrityError:
            # Another first-time connect for this user and platform committed in between.
            db.rollback()
            logger.info("oauth_callback_upsert_conflict platform=%s user_id=%s", platform, user_id)
            account = upsert_social_account(db, **fields)
            db.commit()
    except Exception:
        db.rollback()
        record_connect_attempt(platform, "failed")
        raise

    db.refresh(account)
    record_connect_attempt(platform, "succeeded")
    _log_stage(platform, "stored", social_account_id=account.id)
    return account


def disconnect(db: Session, *, user_id: UUID, platform: str) -> bool:
    provider = get_provider(platform)
    account = get_social_account(db, user_id=user_id, platform=provider.platform)
    if account is None:
        return False
    delete_social_account(db, account=account)
    db.commit()
    logger.info("social_account_disconnected platform=%s user_id=%s", provider.platform, user_id)
    return True
