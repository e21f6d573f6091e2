from dataclasses import asdict
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from social_connect.application.errors import AccountNotConnected, ReconnectRequired
from social_connect.application.services.social_account_service import as_utc, get_social_account, list_social_accounts
from social_connect.application.services.token_refresh_service import ensure_fresh_credentials, force_refresh
from social_connect.domain.models.social_account import SocialAccount
from social_connect.integrations.providers import OAuthProvider, get_provider, list_registered_platforms

logger = logging.getLogger(__name__)


def _require_account(db: Session, *, user_id: UUID, provider: OAuthProvider) -> SocialAccount:
    account = get_social_account(db, user_id=user_id, platform=provider.platform)
    if account is None:
        raise AccountNotConnected(f"No {provider.display_name} account is connected", platform=provider.platform)
    if not account.is_connected:
        raise ReconnectRequired(
            f"{provider.display_name} access was revoked, reconnect the account",
            platform=provider.platform,
        )
    return account


async def publish_post(
    db: Session,
    *,
    user_id: UUID,
    platform: str,
    content: str,
    media_url: str | None = None,
) -> dict:
    provider = get_provider(platform)
    account = _require_account(db, user_id=user_id, provider=provider)
    credentials = await ensure_fresh_credentials(db, account=account, provider=provider)
    result = await provider.publish(credentials, content=content, media_url=media_url)
    logger.info(
        "post_published platform=%s social_account_id=%s external_post_id=%s",
        provider.platform,
        account.id,
        result.external_post_id,
    )
    return asdict(result)


async def get_account_stats(db: Session, *, user_id: UUID, platform: str) -> dict:
    provider = get_provider(platform)
    account = _require_account(db, user_id=user_id, provider=provider)
    credentials = await ensure_fresh_credentials(db, account=account, provider=provider)
    stats = await provider.fetch_stats(credentials)
    return asdict(stats)


async def refresh_account_token(db: Session, *, user_id: UUID, platform: str) -> SocialAccount:
    provider = get_provider(platform)
    account = get_social_account(db, user_id=user_id, platform=provider.platform)
    if account is None:
        raise AccountNotConnected(f"No {provider.display_name} account is connected", platform=provider.platform)
    await force_refresh(db, account=account, provider=provider)
    return account


def list_platform_status(db: Session, *, user_id: UUID) -> list[dict]:
    accounts = {account.platform: account for account in list_social_accounts(db, user_id=user_id)}
    items = []
    for platform in list_registered_platforms():
        provider = get_provider(platform)
        account = accounts.get(platform)
        expiry = as_utc(account.token_expiry) if account else None
        items.append(
            {
                "platform": platform,
                "display_name": provider.display_name,
                "configured": provider.is_configured,
                "connected": bool(account and account.is_connected),
                "supports_refresh": provider.supports_refresh,
                "token_expires_at": expiry.isoformat() if expiry else None,
            }
        )
    return items
