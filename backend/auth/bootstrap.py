import logging

from sqlalchemy.orm import Session

from auth.utils import hash_password, normalize_email, normalize_username
from config import settings
from db.database import SessionLocal
from db.models import User

logger = logging.getLogger(__name__)


def ensure_admin_account(db: Session | None = None) -> User:
    """Make sure at least one active ADMIN exists, creating it from settings if not."""
    own_session = db is None
    db = db or SessionLocal()
    try:
        admin_user = (
            db.query(User)
            .filter(User.role == "ADMIN", User.is_active.is_(True))
            .order_by(User.created_at, User.id)
            .first()
        )
        if admin_user:
            return admin_user

        base_username = normalize_username(settings.ADMIN_USERNAME) or "admin"
        final_username = base_username
        suffix = 2
        # Username or email may already belong to a regular account.
        while db.query(User).filter(User.username == final_username).first():
            final_username = f"{base_username}{suffix}"
            suffix += 1
        email = normalize_email(settings.ADMIN_EMAIL)
        if db.query(User).filter(User.email == email).first():
            email = f"{final_username}@{email.split('@', 1)[-1] or 'localhost'}"

        admin_user = User(
            username=final_username,
            email=email,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role="ADMIN",
            first_name=settings.ADMIN_FIRST_NAME,
            last_name=settings.ADMIN_LAST_NAME,
            is_active=True,
            token_version=0,
        )
        db.add(admin_user)
        db.commit()
        db.refresh(admin_user)
        logger.info(f"Created bootstrap admin account '{final_username}'")
        return admin_user
    finally:
        if own_session:
            db.close()
