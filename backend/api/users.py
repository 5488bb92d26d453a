import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user, require_admin, verify_password
from db.database import get_db
from db.models import User
from services import client_service, trainer_service, user_service
from utils.pagination import clamp_page, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class ProfileUpdateRequest(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=2000)


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=128)


class AdminCreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: str = "CLIENT"
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class AdminUpdateUserRequest(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return user_service.serialize_user(user)


@router.put("/me")
def update_me(req: ProfileUpdateRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user_service.update_self(db, user, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(user)
    return user_service.serialize_user(user)


@router.patch("/me/password")
def change_my_password(req: PasswordChangeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not verify_password(req.current_password, user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    user_service.change_password(user, req.new_password)
    db.commit()
    return {"message": "Password updated. Please sign in again."}


@router.get("")
def search_users(
    q: Optional[str] = None,
    role: Optional[str] = None,
    page: int = Query(default=1),
    limit: int = Query(default=20),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    return paginate(user_service.search_users(db, q=q, role=role), page, limit, user_service.serialize_user)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(req: AdminCreateUserRequest, admin_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    role = user_service.validate_role(req.role)
    user = user_service.create_account(
        db,
        username=req.username,
        email=req.email,
        password=req.password,
        role=role,
        first_name=req.first_name,
        last_name=req.last_name,
    )
    if role == "TRAINER":
        trainer_service.create_approved(db, user, admin_user)
    elif role == "CLIENT":
        client_service.get_or_create_profile(db, user)
    user_service.audit(
        db, admin_user_id=admin_user.id, target_user_id=user.id, action="user.create", details={"role": role}
    )
    db.commit()
    db.refresh(user)
    return user_service.serialize_user(user)


@router.put("/{user_id}")
def update_user(
    user_id: int,
    req: AdminUpdateUserRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = user_service.get_user_or_404(db, user_id)
    changes = req.model_dump(exclude_unset=True)
    if changes.get("role") is not None:
        user.role = user_service.validate_role(changes["role"])
    if changes.get("is_active") is not None:
        user.is_active = bool(changes["is_active"])
    user_service.update_self(db, user, {k: v for k, v in changes.items() if k in ("email", "first_name", "last_name")})
    user_service.audit(
        db, admin_user_id=admin_user.id, target_user_id=user.id, action="user.update", details=changes
    )
    db.commit()
    db.refresh(user)
    return user_service.serialize_user(user)


@router.patch("/{user_id}/toggle")
def toggle_user(user_id: int, admin_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = user_service.get_user_or_404(db, user_id)
    if user.id == admin_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user.is_active = not bool(user.is_active)
    user_service.audit(
        db,
        admin_user_id=admin_user.id,
        target_user_id=user.id,
        action="user.activate" if user.is_active else "user.deactivate",
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {admin_user.id} set user {user.id} active={user.is_active}")
    return user_service.serialize_user(user)
