from fastapi import APIRouter

from social_connect.interfaces.api.auth import router as auth_router
from social_connect.interfaces.api.health import router as health_router
from social_connect.interfaces.api.platforms import router as platforms_router
from social_connect.interfaces.api.social_accounts import router as social_accounts_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(social_accounts_router)
api_router.include_router(platforms_router)
