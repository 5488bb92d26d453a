from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from auth.utils import require_roles
from db.database import get_db
from db.models import User
from services import client_service
from utils.pagination import clamp_page, paginate

router = APIRouter(prefix="/clients", tags=["clients"])


class ClientProfileUpdate(BaseModel):
    goals: Optional[str] = Field(default=None, max_length=2000)
    injuries: Optional[str] = Field(default=None, max_length=2000)
    preferences: Optional[str] = Field(default=None, max_length=2000)


class TrainerCreatesClientRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    goals: Optional[str] = None
    injuries: Optional[str] = None
    preferences: Optional[str] = None


@router.get("/me")
def get_my_profile(user: User = Depends(require_roles("CLIENT")), db: Session = Depends(get_db)):
    profile = client_service.get_or_create_profile(db, user)
    db.commit()
    return client_service.serialize_client(profile)


@router.put("/me")
def update_my_profile(
    req: ClientProfileUpdate,
    user: User = Depends(require_roles("CLIENT")),
    db: Session = Depends(get_db),
):
    profile = client_service.get_or_create_profile(db, user)
    client_service.update_profile(db, profile, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(profile)
    return client_service.serialize_client(profile)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_client(
    req: TrainerCreatesClientRequest,
    user: User = Depends(require_roles("TRAINER")),
    db: Session = Depends(get_db),
):
    profile = client_service.create_for_trainer(db, user, req.model_dump())
    db.commit()
    db.refresh(profile)
    return client_service.serialize_client(profile)


@router.get("/my")
def list_my_clients(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    user: User = Depends(require_roles("TRAINER")),
    db: Session = Depends(get_db),
):
    trainer = client_service.trainer_for_user_or_403(db, user)
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    return paginate(client_service.list_for_trainer(db, trainer.id), page, limit, client_service.serialize_client)
