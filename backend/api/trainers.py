from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user, require_admin, require_roles
from db.database import get_db
from db.models import User
from services import trainer_service
from utils.pagination import clamp_page, paginate

router = APIRouter(prefix="/trainers", tags=["trainers"])


class TrainerApplyRequest(BaseModel):
    certification: Optional[str] = Field(default=None, max_length=200)
    specialties: Optional[Union[str, list[str]]] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    document_url: Optional[str] = None


class TrainerProfileUpdate(BaseModel):
    certification: Optional[str] = Field(default=None, max_length=200)
    specialties: Optional[Union[str, list[str]]] = None
    avatar_url: Optional[str] = None
    document_urls: Optional[list[str]] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)


class TrainerRejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


@router.get("/public")
def list_public_trainers(
    q: Optional[str] = None,
    sort: Optional[str] = Query(default="name", description="name | clients"),
    page: int = Query(default=1),
    limit: int = Query(default=6),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=6, maximum=50)
    query = trainer_service.list_public(db, q=q, sort=sort)
    return paginate(
        query,
        page,
        limit,
        lambda row: trainer_service.serialize_trainer(row[0], client_count=row[1]),
    )


@router.get("/me")
def get_my_trainer_profile(user: User = Depends(require_roles("TRAINER")), db: Session = Depends(get_db)):
    profile = trainer_service.get_for_user(db, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Trainer profile not found")
    return trainer_service.serialize_trainer(profile)


@router.put("/me")
def update_my_trainer_profile(
    req: TrainerProfileUpdate,
    user: User = Depends(require_roles("TRAINER")),
    db: Session = Depends(get_db),
):
    profile = trainer_service.get_for_user(db, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Trainer profile not found")
    trainer_service.update_profile(db, profile, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(profile)
    return trainer_service.serialize_trainer(profile)


@router.post("/apply", status_code=status.HTTP_201_CREATED)
def apply_as_trainer(req: TrainerApplyRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.role != "CLIENT":
        raise HTTPException(status_code=403, detail="Only client accounts can apply to become trainers")
    profile = trainer_service.apply(
        db,
        user,
        certification=req.certification,
        specialties=req.specialties,
        document_url=req.document_url,
        hourly_rate=req.hourly_rate,
    )
    db.commit()
    db.refresh(profile)
    return trainer_service.serialize_trainer(profile)


@router.get("")
def list_trainers(
    review_status: Optional[str] = None,
    page: int = Query(default=1),
    limit: int = Query(default=20),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    return paginate(trainer_service.list_for_admin(db, review_status), page, limit, trainer_service.serialize_trainer)


@router.patch("/{trainer_id}/validate")
def validate_trainer(trainer_id: int, admin_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    profile = trainer_service.approve(db, trainer_id, admin_user)
    db.commit()
    db.refresh(profile)
    return trainer_service.serialize_trainer(profile)


@router.patch("/{trainer_id}/reject")
def reject_trainer(
    trainer_id: int,
    req: Optional[TrainerRejectRequest] = None,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    profile = trainer_service.reject(db, trainer_id, admin_user, req.reason if req else None)
    db.commit()
    db.refresh(profile)
    return trainer_service.serialize_trainer(profile)


@router.patch("/{trainer_id}")
def admin_update_trainer(
    trainer_id: int,
    req: TrainerProfileUpdate,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    profile = trainer_service.get_trainer_or_404(db, trainer_id)
    trainer_service.update_profile(db, profile, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(profile)
    return trainer_service.serialize_trainer(profile)
