import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from social_connect.application.services.auth_service import AuthService
from social_connect.core.security import create_access_token
from social_connect.domain.models.user import User
from social_connect.infrastructure.db.session import get_db
from social_connect.interfaces.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


def _serialize_user(user: User) -> dict:
    return {"id": str(user.id), "email": user.email}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> dict:
    user = AuthService.register(db, email=payload.email, password=payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    logger.info("user_registered user_id=%s", user.id)
    return {
        "access_token": create_access_token(user_id=user.id),
        "token_type": "bearer",
        "user": _serialize_user(user),
    }


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user = AuthService.authenticate(db, email=payload.email, password=payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return {
        "access_token": create_access_token(user_id=user.id),
        "token_type": "bearer",
        "user": _serialize_user(user),
    }


@router.get("/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return _serialize_user(current_user)
