from social_connect.domain.models.social_account import Platform, SocialAccount
from social_connect.domain.models.user import User

__all__ = [
    "Platform",
    "SocialAccount",
    "User",
]
