from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auth.utils import get_current_user, require_admin
from db.database import get_db
from db.models import User
from services import stats_service

router = APIRouter(prefix="/stats", tags=["stats"])

PERIODS = ("weekly", "monthly")


def _check_period(period: str) -> str:
    if period not in PERIODS:
        raise HTTPException(status_code=404, detail="Unknown period")
    return period


@router.get("/admin/overview")
def admin_overview(admin_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return stats_service.admin_overview(db)


@router.get("/my/{period}")
def my_completions(period: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return stats_service.my_completions(db, user, _check_period(period))


@router.get("/completions/{period}")
def completions(
    period: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    client_id: Optional[int] = Query(default=None, alias="clientId"),
    trainer_id: Optional[int] = Query(default=None, alias="trainerId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user.role != "ADMIN":
        scoped = stats_service.my_completions_filters(db, user)
        if scoped is None:
            return []
        client_id = scoped.get("client_id", client_id)
        trainer_id = scoped.get("trainer_id", trainer_id)
    return stats_service.completions(
        db,
        _check_period(period),
        client_id=client_id,
        trainer_id=trainer_id,
        date_from=date_from,
        date_to=date_to,
    )
