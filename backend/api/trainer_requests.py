from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import require_admin, require_roles
from db.database import get_db
from db.models import User
from services import trainer_change_service
from utils.pagination import clamp_page, paginate

router = APIRouter(prefix="/trainer-requests", tags=["trainer-requests"])


class TrainerChangeCreate(BaseModel):
    requested_trainer_id: int
    reason: Optional[str] = Field(default=None, max_length=1000)


class TrainerChangeDecision(BaseModel):
    status: str


@router.post("", status_code=status.HTTP_201_CREATED)
def request_trainer_change(
    req: TrainerChangeCreate,
    user: User = Depends(require_roles("CLIENT")),
    db: Session = Depends(get_db),
):
    change = trainer_change_service.request_change(db, user, req.requested_trainer_id, req.reason)
    db.commit()
    db.refresh(change)
    return trainer_change_service.serialize_request(change)


@router.get("")
def list_trainer_requests(
    status: Optional[str] = None,
    page: int = Query(default=1),
    limit: int = Query(default=20),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    return paginate(
        trainer_change_service.list_requests(db, status), page, limit, trainer_change_service.serialize_request
    )


@router.patch("/{request_id}")
def decide_trainer_request(
    request_id: int,
    req: TrainerChangeDecision,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    change = trainer_change_service.decide(db, request_id, admin_user, req.status)
    db.commit()
    db.refresh(change)
    return trainer_change_service.serialize_request(change)
