import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from auth.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
    UserResponse,
)
from auth.utils import (
    decode_refresh_token,
    find_user_by_login,
    get_current_user,
    issue_tokens,
    user_from_token_payload,
    verify_password,
)
from db.database import get_db
from db.models import User
from services import client_service, password_reset_service, trainer_service, user_service
from services.errors import committing
from services.rate_limit_service import enforce_rate_limit, login_rule, password_reset_rule, register_rule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If the email is registered, a reset link has been sent."


def _auth_payload(user: User) -> dict:
    return {"user": user_service.serialize_user(user), **issue_tokens(user)}


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(register_rule(), request)
    user = user_service.create_account(
        db,
        username=req.username,
        email=req.email,
        password=req.password,
        role="CLIENT",
        first_name=req.first_name,
        last_name=req.last_name,
    )
    client_service.get_or_create_profile(db, user)
    if req.wants_trainer:
        trainer_service.apply(
            db,
            user,
            certification=req.certification,
            specialties=req.specialties,
            document_url=req.document_url,
            hourly_rate=req.hourly_rate,
        )
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} (wants_trainer={req.wants_trainer})")
    return _auth_payload(user)


@router.post("/login", response_model=AuthResponse)
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(login_rule(), request, scope=req.identifier)
    user = find_user_by_login(db, req.identifier)
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return _auth_payload(user)


@router.post("/refresh", response_model=TokenPair)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_refresh_token(req.refresh_token)
    try:
        user = user_from_token_payload(db, payload)
    except HTTPException as e:
        raise HTTPException(status_code=401, detail=e.detail)
    return issue_tokens(user)


@router.post("/forgot-password")
def forgot_password(req: ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(password_reset_rule(), request, scope=req.email)
    password_reset_service.request_reset(db, req.email)
    db.commit()
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password")
def reset_password(req: ResetPasswordRequest, db: Session = Depends(get_db)):
    with committing(db):
        password_reset_service.reset_password(db, req.token, req.new_password)
    return {"message": "Password updated. Please sign in again."}


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user_service.serialize_user(user)
