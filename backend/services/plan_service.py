from __future__ import annotations

import json
import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from config import settings
from db.models import (
    COMPLETION_STATUSES,
    ClientProfile,
    CompletionLog,
    TrainerProfile,
    TrainingPlan,
    TrainingSession,
    User,
)
from services import client_service, notification_service, trainer_service
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc, to_naive_utc, utc_midnight

logger = logging.getLogger(__name__)

ALLOWED_FREQUENCIES = (3, 4, 5)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _load_exercises(raw: str | None) -> list[dict]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def serialize_session(s: TrainingSession) -> dict:
    return {
        "id": s.id,
        "plan_id": s.plan_id,
        "day_of_week": s.day_of_week,
        "order_index": s.order_index,
        "notes": s.notes,
        "exercises": _load_exercises(s.exercises),
        "created_at": isoformat_utc(s.created_at),
        "updated_at": isoformat_utc(s.updated_at),
    }


def serialize_plan(plan: TrainingPlan, *, include_sessions: bool = False) -> dict:
    data = {
        "id": plan.id,
        "client_id": plan.client_id,
        "trainer_id": plan.trainer_id,
        "title": plan.title,
        "description": plan.description,
        "frequency_per_week": plan.frequency_per_week,
        "start_date": isoformat_utc(plan.start_date),
        "end_date": isoformat_utc(plan.end_date),
        "created_at": isoformat_utc(plan.created_at),
        "updated_at": isoformat_utc(plan.updated_at),
    }
    if include_sessions:
        data["sessions"] = [serialize_session(s) for s in plan.sessions]
    return data


def serialize_completion(log: CompletionLog) -> dict:
    return {
        "id": log.id,
        "client_id": log.client_id,
        "trainer_id": log.trainer_id,
        "plan_id": log.plan_id,
        "session_id": log.session_id,
        "date": isoformat_utc(log.date),
        "status": log.status,
        "reason": log.reason,
        "proof_image": log.proof_image,
        "created_at": isoformat_utc(log.created_at),
        "updated_at": isoformat_utc(log.updated_at),
    }


# ---------------------------------------------------------------------------
# Access scoping
# ---------------------------------------------------------------------------

def _caller_trainer(db: Session, user: User) -> TrainerProfile | None:
    return trainer_service.get_for_user(db, user.id) if user.role == "TRAINER" else None


def _caller_client(db: Session, user: User) -> ClientProfile | None:
    return client_service.get_profile_for_user(db, user.id) if user.role == "CLIENT" else None


def _assert_can_view(db: Session, user: User, plan: TrainingPlan) -> None:
    if user.role == "ADMIN":
        return
    if user.role == "TRAINER":
        trainer = _caller_trainer(db, user)
        if trainer is not None and plan.trainer_id == trainer.id:
            return
    if user.role == "CLIENT":
        client = _caller_client(db, user)
        if client is not None and plan.client_id == client.id:
            return
    raise HTTPException(status_code=403, detail="You do not have access to this plan")


def _assert_can_edit(db: Session, user: User, plan: TrainingPlan) -> None:
    if user.role == "ADMIN":
        return
    trainer = _caller_trainer(db, user)
    if trainer is None or plan.trainer_id != trainer.id:
        raise HTTPException(status_code=403, detail="Only the plan's trainer can modify it")


def get_plan_or_404(db: Session, plan_id: int) -> TrainingPlan:
    plan = db.get(TrainingPlan, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


def get_session_or_404(db: Session, session_id: int) -> TrainingSession:
    s = db.get(TrainingSession, session_id)
    if not s:
        raise HTTPException(status_code=404, detail="Session not found")
    return s


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

def _normalize_dates(data: dict) -> dict:
    out = dict(data)
    for field in ("start_date", "end_date"):
        if out.get(field) is not None:
            out[field] = to_naive_utc(out[field])
    return out


def _validate_schedule(frequency: int | None, start: datetime | None, end: datetime | None) -> None:
    if frequency is not None and frequency not in ALLOWED_FREQUENCIES:
        raise HTTPException(status_code=400, detail="frequency_per_week must be 3, 4 or 5")
    if start is not None and end is not None and end < start:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")


def list_plans(db: Session, user: User, *, client_id: int | None = None, trainer_id: int | None = None):
    query = db.query(TrainingPlan)
    if user.role == "TRAINER":
        trainer = _caller_trainer(db, user)
        query = query.filter(TrainingPlan.trainer_id == (trainer.id if trainer else -1))
    elif user.role == "CLIENT":
        client = _caller_client(db, user)
        query = query.filter(TrainingPlan.client_id == (client.id if client else -1))
    if client_id is not None:
        query = query.filter(TrainingPlan.client_id == client_id)
    if trainer_id is not None:
        query = query.filter(TrainingPlan.trainer_id == trainer_id)
    return query.order_by(TrainingPlan.created_at.desc(), TrainingPlan.id.desc())


def create_plan(db: Session, user: User, data: dict) -> TrainingPlan:
    data = _normalize_dates(data)
    trainer_id = data.get("trainer_id")
    if user.role == "TRAINER":
        own = _caller_trainer(db, user)
        if own is None:
            raise HTTPException(status_code=403, detail="No trainer profile for this account")
        if trainer_id is not None and int(trainer_id) != own.id:
            raise HTTPException(status_code=403, detail="Trainers can only create their own plans")
        trainer_id = own.id
    if trainer_id is None:
        raise HTTPException(status_code=400, detail="trainer_id is required")

    trainer_service.require_approved(db, int(trainer_id))
    client = client_service.get_client_or_404(db, int(data["client_id"]))
    _validate_schedule(data.get("frequency_per_week"), data.get("start_date"), data.get("end_date"))

    plan = TrainingPlan(
        client_id=client.id,
        trainer_id=int(trainer_id),
        title=data["title"].strip(),
        description=data.get("description"),
        frequency_per_week=int(data["frequency_per_week"]),
        start_date=data["start_date"],
        end_date=data.get("end_date"),
    )
    db.add(plan)
    db.flush()

    with best_effort("New plan notification"):
        notification_service.notify(
            db, client.user_id, "NEW_PLAN", {"plan_id": plan.id, "title": plan.title, "trainer_id": plan.trainer_id}
        )
    return plan


def get_plan(db: Session, user: User, plan_id: int) -> TrainingPlan:
    plan = get_plan_or_404(db, plan_id)
    _assert_can_view(db, user, plan)
    return plan


def update_plan(db: Session, user: User, plan_id: int, changes: dict) -> TrainingPlan:
    plan = get_plan_or_404(db, plan_id)
    _assert_can_edit(db, user, plan)
    changes = _normalize_dates(changes)

    if changes.get("trainer_id") is not None and int(changes["trainer_id"]) != plan.trainer_id:
        if user.role != "ADMIN":
            raise HTTPException(status_code=403, detail="Only an admin can reassign a plan")
        trainer_service.require_approved(db, int(changes["trainer_id"]))
        plan.trainer_id = int(changes["trainer_id"])

    _validate_schedule(
        changes.get("frequency_per_week"),
        changes.get("start_date", plan.start_date),
        changes.get("end_date", plan.end_date),
    )
    for field in ("title", "description", "frequency_per_week", "start_date", "end_date"):
        if field in changes and (changes[field] is not None or field in ("description", "end_date")):
            setattr(plan, field, changes[field])
    db.flush()
    return plan


def delete_plan(db: Session, user: User, plan_id: int) -> None:
    """Delete a plan and its sessions. Completion logs that reference them are kept."""
    plan = get_plan_or_404(db, plan_id)
    _assert_can_edit(db, user, plan)
    db.delete(plan)
    db.flush()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def _validate_exercises(exercises: list | None) -> None:
    if exercises is not None and len(exercises) > settings.MAX_EXERCISES_PER_SESSION:
        raise HTTPException(
            status_code=400,
            detail=f"A session can have at most {settings.MAX_EXERCISES_PER_SESSION} exercises",
        )


def _validate_day(day_of_week: int | None) -> None:
    if day_of_week is not None and not 0 <= int(day_of_week) <= 6:
        raise HTTPException(status_code=400, detail="day_of_week must be between 0 and 6")


def list_sessions(db: Session, user: User, plan_id: int) -> list[TrainingSession]:
    plan = get_plan(db, user, plan_id)
    return list(plan.sessions)


def create_session(db: Session, user: User, plan_id: int, data: dict) -> TrainingSession:
    plan = get_plan_or_404(db, plan_id)
    _assert_can_edit(db, user, plan)
    _validate_day(data.get("day_of_week"))
    exercises = data.get("exercises") or []
    _validate_exercises(exercises)
    s = TrainingSession(
        plan_id=plan.id,
        day_of_week=int(data["day_of_week"]),
        order_index=int(data.get("order_index") or 0),
        notes=data.get("notes"),
        exercises=json.dumps(exercises, ensure_ascii=True),
    )
    db.add(s)
    db.flush()
    return s


def get_session(db: Session, user: User, session_id: int) -> TrainingSession:
    s = get_session_or_404(db, session_id)
    _assert_can_view(db, user, s.plan)
    return s


def update_session(db: Session, user: User, session_id: int, changes: dict) -> TrainingSession:
    s = get_session_or_404(db, session_id)
    _assert_can_edit(db, user, s.plan)
    if "day_of_week" in changes and changes["day_of_week"] is not None:
        _validate_day(changes["day_of_week"])
        s.day_of_week = int(changes["day_of_week"])
    if "exercises" in changes and changes["exercises"] is not None:
        _validate_exercises(changes["exercises"])
        s.exercises = json.dumps(changes["exercises"], ensure_ascii=True)
    if changes.get("order_index") is not None:
        s.order_index = int(changes["order_index"])
    if "notes" in changes:
        s.notes = changes["notes"]
    db.flush()
    return s


def delete_session(db: Session, user: User, session_id: int) -> None:
    s = get_session_or_404(db, session_id)
    _assert_can_edit(db, user, s.plan)
    db.delete(s)
    db.flush()


# ---------------------------------------------------------------------------
# Completion log
# ---------------------------------------------------------------------------

def upsert_completion(db: Session, user: User, data: dict) -> tuple[CompletionLog, bool]:
    """Record DONE/MISSED for (client, session, UTC day). Returns (row, created)."""
    status = (data.get("status") or "").strip().upper()
    if status not in COMPLETION_STATUSES:
        raise HTTPException(status_code=400, detail="status must be DONE or MISSED")
    if data.get("date") is None:
        raise HTTPException(status_code=400, detail="date is required")

    client = client_service.get_or_create_profile(db, user)
    if data.get("client_id") is not None and int(data["client_id"]) != client.id:
        raise HTTPException(status_code=403, detail="You can only log your own workouts")

    plan = get_plan_or_404(db, int(data["plan_id"]))
    if plan.client_id != client.id:
        raise HTTPException(status_code=403, detail="This plan does not belong to you")
    if data.get("trainer_id") is not None and int(data["trainer_id"]) != plan.trainer_id:
        raise HTTPException(status_code=400, detail="trainer_id does not match the plan")
    session = get_session_or_404(db, int(data["session_id"]))
    if session.plan_id != plan.id:
        raise HTTPException(status_code=400, detail="Session does not belong to this plan")

    day = utc_midnight(data["date"])
    reason = None if status == "DONE" else ((data.get("reason") or "").strip() or None)

    log = (
        db.query(CompletionLog)
        .filter(
            CompletionLog.client_id == client.id,
            CompletionLog.session_id == session.id,
            CompletionLog.date == day,
        )
        .first()
    )
    created = log is None
    if created:
        log = CompletionLog(client_id=client.id, session_id=session.id, date=day)
        db.add(log)
    log.plan_id = plan.id
    log.trainer_id = plan.trainer_id
    log.status = status
    log.reason = reason
    if "proof_image" in data:
        log.proof_image = data.get("proof_image")
    db.flush()

    with best_effort("Completion notification"):
        trainer = db.get(TrainerProfile, plan.trainer_id)
        if trainer is None:
            raise ValueError(f"trainer {plan.trainer_id} not found")
        notification_service.notify(
            db,
            trainer.user_id,
            "WORKOUT_DONE" if status == "DONE" else "MISSED_WORKOUT",
            {
                "completion_id": log.id,
                "client_id": client.id,
                "client_name": client_service.client_display_name(db, client.id),
                "plan_id": plan.id,
                "session_id": session.id,
                "date": isoformat_utc(day),
                "status": status,
                "reason": reason,
            },
        )
    return log, created


def list_completions(
    db: Session,
    user: User,
    *,
    client_id: int | None = None,
    trainer_id: int | None = None,
    plan_id: int | None = None,
    session_id: int | None = None,
    status: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    query = db.query(CompletionLog)
    if user.role == "TRAINER":
        trainer = _caller_trainer(db, user)
        query = query.filter(CompletionLog.trainer_id == (trainer.id if trainer else -1))
    elif user.role == "CLIENT":
        client = _caller_client(db, user)
        query = query.filter(CompletionLog.client_id == (client.id if client else -1))
    if client_id is not None:
        query = query.filter(CompletionLog.client_id == client_id)
    if trainer_id is not None:
        query = query.filter(CompletionLog.trainer_id == trainer_id)
    if plan_id is not None:
        query = query.filter(CompletionLog.plan_id == plan_id)
    if session_id is not None:
        query = query.filter(CompletionLog.session_id == session_id)
    if status:
        value = status.strip().upper()
        if value not in COMPLETION_STATUSES:
            raise HTTPException(status_code=400, detail="status must be DONE or MISSED")
        query = query.filter(CompletionLog.status == value)
    if date_from is not None:
        query = query.filter(CompletionLog.date >= utc_midnight(date_from))
    if date_to is not None:
        query = query.filter(CompletionLog.date <= utc_midnight(date_to))
    return query.order_by(CompletionLog.date.desc(), CompletionLog.id.desc())


def delete_completion(db: Session, completion_id: int) -> None:
    log = db.get(CompletionLog, completion_id)
    if not log:
        raise HTTPException(status_code=404, detail="Completion log not found")
    db.delete(log)
    db.flush()
