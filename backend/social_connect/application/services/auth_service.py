from sqlalchemy import select
from sqlalchemy.orm import Session

from social_connect.core.security import hash_password, verify_password
from social_connect.domain.models.user import User


class AuthService:
    @staticmethod
    def get_by_email(db: Session, *, email: str) -> User | None:
        normalized_email = email.strip().lower()
        return db.execute(select(User).where(User.email == normalized_email)).scalar_one_or_none()

    @staticmethod
    def authenticate(db: Session, *, email: str, password: str) -> User | None:
        user = AuthService.get_by_email(db, email=email)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def register(db: Session, *, email: str, password: str) -> User | None:
        if AuthService.get_by_email(db, email=email) is not None:
            return None
        try:
            user = User(email=email.strip().lower(), password_hash=hash_password(password))
            db.add(user)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(user)
        return user
