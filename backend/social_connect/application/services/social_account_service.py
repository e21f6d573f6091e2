from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from social_connect.core.security import decrypt_secret, encrypt_secret
from social_connect.domain.models.social_account import SocialAccount


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def upsert_social_account(
    db: Session,
    *,
    user_id: UUID,
    platform: str,
    account_id: str,
    access_token: str,
    account_name: str | None = None,
    username: str | None = None,
    display_name: str | None = None,
    profile_url: str | None = None,
    access_token_secret: str | None = None,
    refresh_token: str | None = None,
    token_expiry: datetime | None = None,
    metadata_json: dict | None = None,
) -> SocialAccount:
    """Insert or update the single account row for ``(user_id, platform)``.

    A reconnect overwrites the stored identity and tokens. The previous
    refresh token survives only when the provider did not issue a new one
    and the reconnect targets the same provider account.
    """
    normalized_platform = platform.strip().lower()
    account = get_social_account(db, user_id=user_id, platform=normalized_platform)

    if account is None:
        account = SocialAccount(
            user_id=user_id,
            platform=normalized_platform,
            account_id=account_id,
            refresh_token=(encrypt_secret(refresh_token) if refresh_token else None),
        )
    else:
        same_account = account.account_id == account_id
        if refresh_token:
            account.refresh_token = encrypt_secret(refresh_token)
        elif not same_account:
            account.refresh_token = None
        account.account_id = account_id

    account.account_name = account_name
    account.username = username
    account.display_name = display_name
    account.profile_url = profile_url
    account.access_token = encrypt_secret(access_token)
    account.access_token_secret = encrypt_secret(access_token_secret) if access_token_secret else None
    account.token_expiry = token_expiry
    account.is_connected = True
    account.metadata_json = metadata_json or {}

    db.add(account)
    return account


def get_social_account(db: Session, *, user_id: UUID, platform: str) -> SocialAccount | None:
    normalized_platform = platform.strip().lower()
    return db.execute(
        select(SocialAccount).where(
            SocialAccount.user_id == user_id,
            SocialAccount.platform == normalized_platform,
        )
    ).scalar_one_or_none()


def get_social_account_by_id(db: Session, *, user_id: UUID, social_account_id: UUID) -> SocialAccount | None:
    return db.execute(
        select(SocialAccount).where(
            SocialAccount.id == social_account_id,
            SocialAccount.user_id == user_id,
        )
    ).scalar_one_or_none()


def list_social_accounts(db: Session, *, user_id: UUID) -> list[SocialAccount]:
    return list(
        db.execute(
            select(SocialAccount)
            .where(SocialAccount.user_id == user_id)
            .order_by(SocialAccount.platform.asc())
        ).scalars()
    )


def list_accounts_expiring_within(db: Session, *, within_seconds: int) -> list[SocialAccount]:
    cutoff = datetime.now(UTC) + timedelta(seconds=within_seconds)
    return list(
        db.execute(
            select(SocialAccount).where(
                SocialAccount.is_connected.is_(True),
                SocialAccount.refresh_token.is_not(None),
                SocialAccount.token_expiry.is_not(None),
                SocialAccount.token_expiry <= cutoff,
            )
        ).scalars()
    )


def delete_social_account(db: Session, *, account: SocialAccount) -> None:
    db.delete(account)


def update_social_account_tokens(
    db: Session,
    *,
    account: SocialAccount,
    access_token: str,
    refresh_token: str | None,
    token_expiry: datetime | None,
) -> SocialAccount:
    account.access_token = encrypt_secret(access_token)
    if refresh_token:
        account.refresh_token = encrypt_secret(refresh_token)
    account.token_expiry = token_expiry
    db.add(account)
    return account


def decrypted_access_token(account: SocialAccount) -> str:
    if not account.access_token:
        return ""
    return decrypt_secret(account.access_token)


def decrypted_access_token_secret(account: SocialAccount) -> str:
    if not account.access_token_secret:
        return ""
    return decrypt_secret(account.access_token_secret)


def decrypted_refresh_token(account: SocialAccount) -> str:
    if not account.refresh_token:
        return ""
    return decrypt_secret(account.refresh_token)


def is_token_expiring(account: SocialAccount, *, within_seconds: int = 60) -> bool:
    expiry = as_utc(account.token_expiry)
    if expiry is None:
        return False
    return expiry <= datetime.now(UTC) + timedelta(seconds=within_seconds)


def serialize_social_account(account: SocialAccount) -> dict:
    expiry = as_utc(account.token_expiry)
    return {
        "id": str(account.id),
        "platform": account.platform,
        "account_id": account.account_id,
        "account_name": account.account_name,
        "username": account.username,
        "display_name": account.display_name,
        "profile_url": account.profile_url,
        "is_connected": account.is_connected,
        "token_expires_at": expiry.isoformat() if expiry else None,
        "has_refresh_token": bool(account.refresh_token),
        "metadata": account.metadata_json or {},
    }
