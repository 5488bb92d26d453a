from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from db.models import ClientProfile, TrainerProfile, User
from services import notification_service, trainer_service, user_service
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("goals", "injuries", "preferences")


def serialize_client(profile: ClientProfile) -> dict:
    user = profile.user
    trainer = profile.trainer
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "name": user.display_name if user else None,
        "username": user.username if user else None,
        "email": user.email if user else None,
        "trainer_id": profile.trainer_id,
        "trainer_name": trainer.user.display_name if trainer and trainer.user else None,
        "joined_at": isoformat_utc(profile.joined_at),
        "goals": profile.goals,
        "injuries": profile.injuries,
        "preferences": profile.preferences,
        "current_weight": profile.current_weight,
        "current_muscle_mass": profile.current_muscle_mass,
    }


def get_or_create_profile(db: Session, user: User) -> ClientProfile:
    """The one place a missing client profile is created, with no trainer assigned."""
    profile = db.query(ClientProfile).filter(ClientProfile.user_id == user.id).first()
    if profile is None:
        profile = ClientProfile(user_id=user.id, trainer_id=None)
        db.add(profile)
        db.flush()
    return profile


def get_profile_for_user(db: Session, user_id: int) -> ClientProfile | None:
    return db.query(ClientProfile).filter(ClientProfile.user_id == user_id).first()


def get_client_or_404(db: Session, client_id: int) -> ClientProfile:
    profile = db.get(ClientProfile, client_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Client not found")
    return profile


def update_profile(db: Session, profile: ClientProfile, changes: dict) -> ClientProfile:
    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(profile, field, changes[field])
    db.flush()
    return profile


def trainer_for_user_or_403(db: Session, user: User) -> TrainerProfile:
    profile = trainer_service.get_for_user(db, user.id)
    if profile is None:
        raise HTTPException(status_code=403, detail="No trainer profile for this account")
    return profile


def create_for_trainer(db: Session, trainer_user: User, data: dict) -> ClientProfile:
    """A trainer registers a client account directly under its own application."""
    trainer = trainer_for_user_or_403(db, trainer_user)
    trainer_service.require_approved(db, trainer.id)
    user = user_service.create_account(
        db,
        username=data["username"],
        email=data["email"],
        password=data["password"],
        role="CLIENT",
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
    )
    profile = ClientProfile(
        user_id=user.id,
        trainer_id=trainer.id,
        goals=data.get("goals"),
        injuries=data.get("injuries"),
        preferences=data.get("preferences"),
    )
    db.add(profile)
    db.flush()
    with best_effort("New client notification"):
        notification_service.notify(
            db, trainer_user.id, "NEW_CLIENT", {"client_id": profile.id, "name": user.display_name}
        )
    return profile


def list_for_trainer(db: Session, trainer_id: int):
    return (
        db.query(ClientProfile)
        .filter(ClientProfile.trainer_id == trainer_id)
        .order_by(ClientProfile.joined_at.desc(), ClientProfile.id.desc())
    )


def client_display_name(db: Session, client_id: int) -> str:
    """Best-effort human-readable name for a client profile."""
    profile = db.get(ClientProfile, client_id)
    if profile is None or profile.user is None:
        return "Client"
    return profile.user.display_name or "Client"


def assert_trainer_owns_client(db: Session, trainer_user: User, client: ClientProfile) -> None:
    trainer = trainer_service.get_for_user(db, trainer_user.id)
    if trainer is None or client.trainer_id != trainer.id:
        raise HTTPException(status_code=403, detail="Client is not assigned to you")
