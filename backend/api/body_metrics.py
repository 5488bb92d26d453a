from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import BodyMetric, User
from services import client_service
from utils.datetime_utils import isoformat_utc

router = APIRouter(prefix="/body-metrics", tags=["body-metrics"])


class BodyMetricCreate(BaseModel):
    weight: Optional[float] = Field(default=None, gt=0, le=500)
    muscle_mass: Optional[float] = Field(default=None, ge=0, le=100)
    completion_log_id: Optional[int] = None


def _metric_to_dict(m: BodyMetric) -> dict:
    return {
        "id": m.id,
        "weight": m.weight,
        "muscle_mass": m.muscle_mass,
        "completion_log_id": m.completion_log_id,
        "recorded_at": isoformat_utc(m.recorded_at),
    }


@router.get("")
def list_my_metrics(
    limit: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(BodyMetric)
        .filter(BodyMetric.user_id == user.id)
        .order_by(BodyMetric.recorded_at.desc(), BodyMetric.id.desc())
        .limit(limit)
        .all()
    )
    return [_metric_to_dict(m) for m in rows]


@router.get("/current")
def current_metrics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = client_service.get_profile_for_user(db, user.id)
    return {
        "current_weight": profile.current_weight if profile else None,
        "current_muscle_mass": profile.current_muscle_mass if profile else None,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def record_metric(req: BodyMetricCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if req.weight is None and req.muscle_mass is None:
        raise HTTPException(status_code=400, detail="Provide at least weight or muscle mass")
    metric = BodyMetric(
        user_id=user.id,
        weight=req.weight,
        muscle_mass=req.muscle_mass,
        completion_log_id=req.completion_log_id,
    )
    db.add(metric)
    profile = client_service.get_profile_for_user(db, user.id)
    if profile is not None:
        if req.weight is not None:
            profile.current_weight = req.weight
        if req.muscle_mass is not None:
            profile.current_muscle_mass = req.muscle_mass
    db.commit()
    db.refresh(metric)
    return _metric_to_dict(metric)
