from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.models import QrCodeRequest
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import qr_login_service
from services.errors import committing

router = APIRouter(prefix="/auth/qr", tags=["qr-login"])


@router.post("/start", status_code=status.HTTP_201_CREATED)
def start(db: Session = Depends(get_db)):
    token = qr_login_service.start(db)
    db.commit()
    return qr_login_service.serialize_token(token)


@router.post("/approve")
def approve(req: QrCodeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with committing(db):
        qr_login_service.approve(db, req.code, user)
    return {"message": "Login approved"}


@router.post("/reject")
def reject(req: QrCodeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    qr_login_service.reject(db, req.code)
    db.commit()
    return {"message": "Login rejected"}


@router.get("/poll")
def poll(code: str = Query(min_length=1), db: Session = Depends(get_db)):
    with committing(db):
        result = qr_login_service.poll(db, code)
    return result


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    token = qr_login_service.generate(db, user)
    db.commit()
    return qr_login_service.serialize_token(token)


@router.post("/scan-login")
def scan_login(req: QrCodeRequest, db: Session = Depends(get_db)):
    with committing(db):
        result = qr_login_service.scan_login(db, req.code)
    return result
