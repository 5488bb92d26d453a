from __future__ import annotations

from collections import Counter
from datetime import datetime

from sqlalchemy.orm import Session

from db.models import ClientProfile, CompletionLog, TrainerProfile, User
from services import client_service, trainer_service
from utils.datetime_utils import utc_midnight


def _completion_dates(
    db: Session,
    *,
    status: str = "DONE",
    client_id: int | None = None,
    trainer_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[datetime]:
    query = db.query(CompletionLog.date).filter(CompletionLog.status == status)
    if client_id is not None:
        query = query.filter(CompletionLog.client_id == client_id)
    if trainer_id is not None:
        query = query.filter(CompletionLog.trainer_id == trainer_id)
    if date_from is not None:
        query = query.filter(CompletionLog.date >= utc_midnight(date_from))
    if date_to is not None:
        query = query.filter(CompletionLog.date <= utc_midnight(date_to))
    return [row[0] for row in query.all()]


def group_by_week(dates: list[datetime]) -> list[dict]:
    """ISO week buckets, oldest first."""
    counts = Counter(tuple(d.isocalendar())[:2] for d in dates)
    return [
        {"year": year, "week": week, "total_completions": total}
        for (year, week), total in sorted(counts.items())
    ]


def group_by_month(dates: list[datetime]) -> list[dict]:
    counts = Counter((d.year, d.month) for d in dates)
    return [
        {"year": year, "month": month, "total_completions": total}
        for (year, month), total in sorted(counts.items())
    ]


def completions(db: Session, period: str, **filters) -> list[dict]:
    dates = _completion_dates(db, status="DONE", **filters)
    return group_by_week(dates) if period == "weekly" else group_by_month(dates)


def my_completions_filters(db: Session, user: User) -> dict | None:
    """Filters that scope stats to the caller. None means the caller has no profile to report on."""
    if user.role == "CLIENT":
        profile = client_service.get_profile_for_user(db, user.id)
        return {"client_id": profile.id} if profile else None
    if user.role == "TRAINER":
        profile = trainer_service.get_for_user(db, user.id)
        return {"trainer_id": profile.id} if profile else None
    return {}


def my_completions(db: Session, user: User, period: str) -> list[dict]:
    filters = my_completions_filters(db, user)
    if filters is None:
        return []
    return completions(db, period, **filters)


def admin_overview(db: Session) -> dict:
    done = _completion_dates(db, status="DONE")
    missed = _completion_dates(db, status="MISSED")
    return {
        "total_users": db.query(User).count(),
        "total_trainers": db.query(TrainerProfile).filter(TrainerProfile.review_status == "APPROVED").count(),
        "total_clients": db.query(ClientProfile).count(),
        "pending_applications": db.query(TrainerProfile).filter(TrainerProfile.review_status == "PENDING").count(),
        "total_workouts_completed": len(done),
        "total_workouts_missed": len(missed),
        "weekly_activity": group_by_week(done)[-8:],
        "monthly_activity": group_by_month(done)[-6:],
        "monthly_missed": group_by_month(missed)[-6:],
    }
