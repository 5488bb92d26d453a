from __future__ import annotations

import json
import logging

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from auth.utils import hash_password, normalize_email, normalize_username
from db.models import ROLES, AdminAuditLog, User
from utils.datetime_utils import isoformat_utc

logger = logging.getLogger(__name__)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name or "",
        "last_name": user.last_name or "",
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "bio": user.bio,
        "is_active": bool(user.is_active),
        "created_at": isoformat_utc(user.created_at),
    }


def validate_role(role: str | None) -> str:
    value = (role or "").strip().upper()
    if value not in ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role. Use one of: {', '.join(ROLES)}")
    return value


def ensure_unique_identity(db: Session, *, email: str | None = None, username: str | None = None, exclude_id: int | None = None) -> None:
    if email:
        q = db.query(User).filter(func.lower(User.email) == normalize_email(email))
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first():
            raise HTTPException(status_code=409, detail="Email already registered")
    if username:
        q = db.query(User).filter(func.lower(User.username) == normalize_username(username))
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first():
            raise HTTPException(status_code=409, detail="Username already taken")


def create_account(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    role: str = "CLIENT",
    first_name: str = "",
    last_name: str = "",
) -> User:
    """Insert a new account after the email/username uniqueness check."""
    username_normalized = normalize_username(username)
    if not username_normalized:
        raise HTTPException(status_code=400, detail="Username is required")
    ensure_unique_identity(db, email=email, username=username_normalized)
    user = User(
        username=username_normalized,
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=validate_role(role),
        first_name=(first_name or "").strip(),
        last_name=(last_name or "").strip(),
        is_active=True,
        token_version=0,
    )
    db.add(user)
    db.flush()
    return user


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def search_users(db: Session, *, q: str | None = None, role: str | None = None):
    query = db.query(User)
    if role:
        query = query.filter(User.role == validate_role(role))
    if q and q.strip():
        needle = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(User.username).like(needle),
                func.lower(User.email).like(needle),
                func.lower(User.first_name).like(needle),
                func.lower(User.last_name).like(needle),
            )
        )
    return query.order_by(User.created_at.desc(), User.id.desc())


def update_self(db: Session, user: User, changes: dict) -> User:
    if "email" in changes and changes["email"]:
        ensure_unique_identity(db, email=changes["email"], exclude_id=user.id)
        user.email = normalize_email(changes["email"])
    for field in ("first_name", "last_name"):
        if field in changes and changes[field] is not None:
            setattr(user, field, changes[field].strip())
    for field in ("avatar_url", "bio"):
        if field in changes:
            setattr(user, field, changes[field])
    return user


def change_password(user: User, new_password: str) -> None:
    user.password_hash = hash_password(new_password)
    user.token_version = int(user.token_version or 0) + 1


def audit(
    db: Session,
    *,
    admin_user_id: int,
    action: str,
    target_user_id: int | None = None,
    details: dict | None = None,
    success: bool = True,
) -> None:
    db.add(
        AdminAuditLog(
            admin_user_id=admin_user_id,
            target_user_id=target_user_id,
            action=action,
            details_json=json.dumps(details or {}, ensure_ascii=True, default=str),
            success=bool(success),
        )
    )
