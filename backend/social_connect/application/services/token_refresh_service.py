import asyncio
import logging
from uuid import UUID
from weakref import WeakValueDictionary

from sqlalchemy.orm import Session

from social_connect.application.errors import ConnectError, ReconnectRequired
from social_connect.application.services.social_account_service import (
    decrypted_access_token,
    decrypted_access_token_secret,
    decrypted_refresh_token,
    is_token_expiring,
    list_accounts_expiring_within,
    update_social_account_tokens,
)
from social_connect.core.config import settings
from social_connect.domain.models.social_account import SocialAccount
from social_connect.infrastructure.observability.metrics import record_token_refresh
from social_connect.integrations.providers import AccountCredentials, OAuthProvider, get_provider

logger = logging.getLogger(__name__)

# Entries vanish once no coroutine holds the lock.
_refresh_locks: "WeakValueDictionary[UUID, asyncio.Lock]" = WeakValueDictionary()


def _lock_for(account_id: UUID) -> asyncio.Lock:
    lock = _refresh_locks.get(account_id)
    if lock is None:
        lock = asyncio.Lock()
        _refresh_locks[account_id] = lock
    return lock


def build_account_credentials(account: SocialAccount) -> AccountCredentials:
    return AccountCredentials(
        account_id=account.account_id,
        access_token=decrypted_access_token(account),
        access_token_secret=decrypted_access_token_secret(account) or None,
        refresh_token=decrypted_refresh_token(account) or None,
        username=account.username,
        metadata=dict(account.metadata_json or {}),
    )


async def _refresh_locked(db: Session, *, account: SocialAccount, provider: OAuthProvider) -> AccountCredentials:
    platform = provider.platform
    try:
        tokens = await provider.refresh_access_token(build_account_credentials(account))
    except ReconnectRequired:
        record_token_refresh(platform, "reconnect_required")
        logger.warning("token_refresh_revoked platform=%s social_account_id=%s", platform, account.id)
        account.is_connected = False
        db.add(account)
        db.commit()
        raise
    except ConnectError as exc:
        record_token_refresh(platform, "failed")
        logger.warning(
            "token_refresh_failed platform=%s social_account_id=%s error_code=%s",
            platform,
            account.id,
            exc.error_type,
        )
        raise

    try:
        update_social_account_tokens(
            db,
            account=account,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expiry=tokens.expires_at,
        )
        db.commit()
    except Exception:
        db.rollback()
        record_token_refresh(platform, "failed")
        raise

    db.refresh(account)
    record_token_refresh(platform, "refreshed")
    logger.info(
        "token_refreshed platform=%s social_account_id=%s rotated=%s",
        platform,
        account.id,
        bool(tokens.refresh_token),
    )
    return build_account_credentials(account)


async def ensure_fresh_credentials(
    db: Session,
    *,
    account: SocialAccount,
    provider: OAuthProvider,
    within_seconds: int | None = None,
) -> AccountCredentials:
    """Return usable credentials, refreshing first when the token is about to lapse.

    Concurrent callers for one account share a lock and re-read the row after
    acquiring it, so only the first of them hits the provider.
    """
    window = settings.token_refresh_skew_seconds if within_seconds is None else within_seconds
    if not is_token_expiring(account, within_seconds=window):
        return build_account_credentials(account)

    if not account.refresh_token:
        # Nothing to refresh with, so the token stays usable until it has actually lapsed.
        if not is_token_expiring(account, within_seconds=0):
            return build_account_credentials(account)
        record_token_refresh(provider.platform, "reconnect_required")
        raise ReconnectRequired(
            f"{provider.display_name} access expired, reconnect the account",
            platform=provider.platform,
        )

    async with _lock_for(account.id):
        db.refresh(account)
        if not account.is_connected:
            record_token_refresh(provider.platform, "reconnect_required")
            raise ReconnectRequired(
                f"{provider.display_name} access was revoked, reconnect the account",
                platform=provider.platform,
            )
        if not is_token_expiring(account, within_seconds=window):
            record_token_refresh(provider.platform, "skipped")
            return build_account_credentials(account)
        return await _refresh_locked(db, account=account, provider=provider)


async def force_refresh(db: Session, *, account: SocialAccount, provider: OAuthProvider) -> AccountCredentials:
    if not account.refresh_token:
        raise ReconnectRequired(
            f"{provider.display_name} account has no refresh token, reconnect the account",
            platform=provider.platform,
        )
    async with _lock_for(account.id):
        db.refresh(account)
        return await _refresh_locked(db, account=account, provider=provider)


async def refresh_expiring_accounts(db: Session, *, within_seconds: int | None = None) -> dict[str, int]:
    window = settings.proactive_refresh_window_seconds if within_seconds is None else within_seconds
    summary = {"checked": 0, "fresh": 0, "reconnect_required": 0, "failed": 0}
    for account in list_accounts_expiring_within(db, within_seconds=window):
        summary["checked"] += 1
        try:
            provider = get_provider(account.platform)
            await ensure_fresh_credentials(db, account=account, provider=provider, within_seconds=window)
        except ReconnectRequired:
            summary["reconnect_required"] += 1
            logger.info("proactive_refresh_reconnect_required platform=%s social_account_id=%s", account.platform, account.id)
        except ConnectError as exc:
            summary["failed"] += 1
            logger.warning(
                "proactive_refresh_failed platform=%s social_account_id=%s error_code=%s",
                account.platform,
                account.id,
                exc.error_type,
            )
        else:
            summary["fresh"] += 1
    return summary
