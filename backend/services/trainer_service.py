"""Trainer applications: apply, admin review, and the approval gate.

An application's ``review_status`` is the single source of truth. The
``validated_by_admin`` flag mirrors it (true exactly when APPROVED) and is
kept for list filtering and older clients.
"""
from __future__ import annotations

import json
import logging

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from db.models import REVIEW_STATUSES, ClientProfile, TrainerProfile, User
from services import notification_service
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

# Fields a trainer (or an admin on their behalf) may edit. Review state is not among them.
EDITABLE_FIELDS = ("certification", "specialties", "avatar_url", "document_urls", "hourly_rate")


def parse_specialties(value) -> list[str]:
    """Accept a list or a comma-separated string; drop blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(item).strip() for item in items if str(item).strip()]


def _load_list(raw: str | None) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def serialize_trainer(profile: TrainerProfile, *, client_count: int | None = None) -> dict:
    user = profile.user
    data = {
        "id": profile.id,
        "user_id": profile.user_id,
        "username": user.username if user else None,
        "name": user.display_name if user else None,
        "email": user.email if user else None,
        "certification": profile.certification,
        "specialties": _load_list(profile.specialties),
        "avatar_url": profile.avatar_url or (user.avatar_url if user else None),
        "document_urls": _load_list(profile.document_urls),
        "hourly_rate": profile.hourly_rate,
        "rating": profile.rating or 0.0,
        "review_status": profile.review_status,
        "validated_by_admin": bool(profile.validated_by_admin),
        "validated_at": isoformat_utc(profile.validated_at),
        "rejection_reason": profile.rejection_reason,
        "rejected_at": isoformat_utc(profile.rejected_at),
        "created_at": isoformat_utc(profile.created_at),
    }
    if client_count is not None:
        data["client_count"] = int(client_count)
    return data


def get_trainer_or_404(db: Session, trainer_id: int) -> TrainerProfile:
    profile = db.get(TrainerProfile, trainer_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Trainer not found")
    return profile


def get_for_user(db: Session, user_id: int) -> TrainerProfile | None:
    return db.query(TrainerProfile).filter(TrainerProfile.user_id == user_id).first()


def is_approved(profile: TrainerProfile | None) -> bool:
    return bool(profile is not None and profile.review_status == "APPROVED")


def require_approved(db: Session, trainer_id: int, *, status_code: int = 403) -> TrainerProfile:
    """Gate used at assignment time: the application must be APPROVED right now."""
    profile = db.get(TrainerProfile, trainer_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Trainer not found")
    if not is_approved(profile):
        raise HTTPException(status_code=status_code, detail="Trainer is not approved")
    return profile


def _apply_fields(profile: TrainerProfile, changes: dict) -> None:
    for field in EDITABLE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "specialties":
            profile.specialties = json.dumps(parse_specialties(value))
        elif field == "document_urls":
            profile.document_urls = json.dumps(parse_specialties(value))
        else:
            setattr(profile, field, value)


def apply(
    db: Session,
    user: User,
    *,
    certification: str | None = None,
    specialties=None,
    document_url: str | None = None,
    hourly_rate: float | None = None,
) -> TrainerProfile:
    """Open (or reopen after a rejection) a PENDING application and alert every admin.

    The applicant's role is left untouched until an admin approves.
    """
    profile = get_for_user(db, user.id)
    if profile is not None and profile.review_status in ("PENDING", "APPROVED"):
        raise HTTPException(status_code=409, detail="A trainer application already exists for this account")

    if profile is None:
        profile = TrainerProfile(user_id=user.id)
        db.add(profile)
    profile.certification = certification
    profile.specialties = json.dumps(parse_specialties(specialties))
    profile.document_urls = json.dumps([document_url] if document_url else [])
    profile.hourly_rate = hourly_rate
    profile.review_status = "PENDING"
    profile.validated_by_admin = False
    profile.validated_at = None
    profile.rejection_reason = None
    profile.rejected_at = None
    profile.reviewed_by_admin_id = None
    db.flush()

    with best_effort("Trainer application admin alert"):
        notification_service.notify_admins(
            db,
            "ALERT",
            {
                "request": "TRAINER_VALIDATION",
                "trainer_id": profile.id,
                "user_id": user.id,
                "name": user.display_name,
            },
        )
    logger.info(f"Trainer application {profile.id} opened by user {user.id}")
    return profile


def approve(db: Session, trainer_id: int, admin: User) -> TrainerProfile:
    profile = get_trainer_or_404(db, trainer_id)
    profile.review_status = "APPROVED"
    profile.validated_by_admin = True
    profile.validated_at = utcnow()
    profile.rejection_reason = None
    profile.rejected_at = None
    profile.reviewed_by_admin_id = admin.id
    if profile.user is not None:
        profile.user.role = "TRAINER"
    db.flush()

    with best_effort("Trainer approved notification"):
        notification_service.notify(db, profile.user_id, "TRAINER_APPROVED", {"trainer_id": profile.id})
    return profile


def reject(db: Session, trainer_id: int, admin: User, reason: str | None) -> TrainerProfile:
    profile = get_trainer_or_404(db, trainer_id)
    clean_reason = (reason or "").strip() or None
    profile.review_status = "REJECTED"
    profile.validated_by_admin = False
    profile.validated_at = None
    profile.rejection_reason = clean_reason
    profile.rejected_at = utcnow()
    profile.reviewed_by_admin_id = admin.id
    # A previously approved trainer loses the role too.
    if profile.user is not None and profile.user.role != "ADMIN":
        profile.user.role = "CLIENT"
    db.flush()

    with best_effort("Trainer rejected notification"):
        notification_service.notify(
            db, profile.user_id, "TRAINER_REJECTED", {"trainer_id": profile.id, "reason": clean_reason}
        )
    return profile


def update_profile(db: Session, profile: TrainerProfile, changes: dict) -> TrainerProfile:
    _apply_fields(profile, changes)
    db.flush()
    return profile


def create_approved(db: Session, user: User, admin: User) -> TrainerProfile:
    """Application for an account an admin created directly as TRAINER."""
    now = utcnow()
    profile = TrainerProfile(
        user_id=user.id,
        specialties="[]",
        document_urls="[]",
        review_status="APPROVED",
        validated_by_admin=True,
        validated_at=now,
        reviewed_by_admin_id=admin.id,
    )
    db.add(profile)
    db.flush()
    return profile


def list_for_admin(db: Session, review_status: str | None = None):
    query = db.query(TrainerProfile)
    if review_status:
        value = review_status.strip().upper()
        if value not in REVIEW_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid review status")
        query = query.filter(TrainerProfile.review_status == value)
    return query.order_by(TrainerProfile.created_at.desc(), TrainerProfile.id.desc())


def list_public(db: Session, *, q: str | None = None, sort: str | None = None):
    """APPROVED trainers with their client count, as (profile, count) rows."""
    client_count = func.count(ClientProfile.id).label("client_count")
    query = (
        db.query(TrainerProfile, client_count)
        .join(User, User.id == TrainerProfile.user_id)
        .outerjoin(ClientProfile, ClientProfile.trainer_id == TrainerProfile.id)
        .filter(TrainerProfile.review_status == "APPROVED", User.is_active.is_(True))
        .group_by(TrainerProfile.id, User.id)
    )
    if q and q.strip():
        needle = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(User.first_name).like(needle),
                func.lower(User.last_name).like(needle),
                func.lower(User.username).like(needle),
                func.lower(TrainerProfile.specialties).like(needle),
            )
        )
    if (sort or "").lower() == "clients":
        query = query.order_by(client_count.desc(), TrainerProfile.id)
    else:
        query = query.order_by(func.lower(User.first_name), func.lower(User.last_name), TrainerProfile.id)
    return query
