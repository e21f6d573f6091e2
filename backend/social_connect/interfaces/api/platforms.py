from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from social_connect.application.services import connection_service, platform_service
from social_connect.application.services.social_account_service import serialize_social_account
from social_connect.domain.models.user import User
from social_connect.infrastructure.db.session import get_db
from social_connect.interfaces.api.deps import get_current_user, get_optional_current_user

router = APIRouter(prefix="/api", tags=["platforms"])


class CompleteAuthRequest(BaseModel):
    token: str = Field(min_length=1)


class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(default="", max_length=10000)
    media_url: str | None = Field(default=None, alias="mediaUrl")


@router.get("/platforms", status_code=status.HTTP_200_OK)
def list_platforms(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return {"items": platform_service.list_platform_status(db, user_id=current_user.id)}


@router.get("/{platform}/auth", status_code=status.HTTP_200_OK)
async def start_auth(platform: str, current_user: User = Depends(get_current_user)) -> dict:
    link = await connection_service.start_connection(platform, user_id=current_user.id)
    payload = {"auth_url": link.auth_url, "state": link.state}
    if link.oauth_token:
        payload["oauth_token"] = link.oauth_token
        payload["oauth_token_secret"] = link.oauth_token_secret
    return payload


@router.get("/{platform}/callback")
def provider_callback(platform: str, request: Request) -> RedirectResponse:
    redirect_url = connection_service.handle_provider_redirect(platform, request.query_params)
    return RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)


@router.post("/{platform}/complete-auth", status_code=status.HTTP_200_OK)
async def complete_auth(
    platform: str,
    payload: CompleteAuthRequest,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_current_user),
) -> dict:
    account = await connection_service.complete_connection(
        db,
        platform=platform,
        token=payload.token,
        session_user=current_user,
    )
    return {"success": True, "account": serialize_social_account(account)}


@router.delete("/{platform}/disconnect", status_code=status.HTTP_200_OK)
def disconnect(
    platform: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    removed = connection_service.disconnect(db, user_id=current_user.id, platform=platform)
    return {"success": True, "removed": removed}


@router.post("/{platform}/post", status_code=status.HTTP_200_OK)
async def publish_post(
    platform: str,
    payload: PublishRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return await platform_service.publish_post(
        db,
        user_id=current_user.id,
        platform=platform,
        content=payload.content,
        media_url=payload.media_url,
    )


@router.get("/{platform}/stats", status_code=status.HTTP_200_OK)
async def account_stats(
    platform: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return await platform_service.get_account_stats(db, user_id=current_user.id, platform=platform)


@router.post("/{platform}/refresh", status_code=status.HTTP_200_OK)
async def refresh_token(
    platform: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = await platform_service.refresh_account_token(db, user_id=current_user.id, platform=platform)
    return {"success": True, "account": serialize_social_account(account)}
