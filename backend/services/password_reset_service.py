from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from fastapi import HTTPException
from sqlalchemy.orm import Session

from auth.utils import find_user_by_login
from config import settings
from db.models import PasswordResetToken, User
from services import email_service, user_service
from services.errors import StateChangedError
from services.side_effects import best_effort
from utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def request_reset(db: Session, email: str) -> str | None:
    """Issue a reset token for an active account. Unknown emails are a silent no-op.

    Returns the raw token (only the hash is stored) so callers and tests can
    reach it without reading mail.
    """
    user = find_user_by_login(db, email) if "@" in (email or "") else None
    if user is None or not user.is_active:
        return None

    db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).delete(synchronize_session=False)
    raw = secrets.token_hex(32)
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=_hash(raw),
            expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES),
        )
    )
    db.flush()

    reset_url = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?{urlencode({'token': raw})}"
    with best_effort("Password reset email"):
        email_service.send_password_reset(user.email, user.display_name, reset_url)
    return raw


def reset_password(db: Session, token: str, new_password: str) -> User:
    row = db.query(PasswordResetToken).filter(PasswordResetToken.token_hash == _hash(token or "")).first()
    if row is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    if row.expires_at < utcnow():
        db.delete(row)
        db.flush()
        raise StateChangedError(status_code=410, detail="Reset token has expired")
    user = db.get(User, row.user_id)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    user_service.change_password(user, new_password)
    db.delete(row)
    db.flush()
    logger.info(f"Password reset completed for user {user.id}")
    return user
