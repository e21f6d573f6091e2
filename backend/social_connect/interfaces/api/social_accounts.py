import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from social_connect.application.services.social_account_service import (
    delete_social_account,
    get_social_account_by_id,
    list_social_accounts,
    serialize_social_account,
)
from social_connect.domain.models.user import User
from social_connect.infrastructure.db.session import get_db
from social_connect.interfaces.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/social-accounts", tags=["social-accounts"])


@router.get("", status_code=status.HTTP_200_OK)
def list_accounts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    accounts = list_social_accounts(db, user_id=current_user.id)
    return {"items": [serialize_social_account(account) for account in accounts]}


@router.delete("/{social_account_id}", status_code=status.HTTP_200_OK)
def delete_account(
    social_account_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = get_social_account_by_id(db, user_id=current_user.id, social_account_id=social_account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Social account not found")
    platform = account.platform
    delete_social_account(db, account=account)
    db.commit()
    logger.info("social_account_deleted platform=%s social_account_id=%s", platform, social_account_id)
    return {"success": True}
