"""Cross-device QR login.

Two flows share the ``qr_login_tokens`` table and are told apart by ``flow``:

DEVICE_APPROVAL
    A signed-out device calls ``start`` and shows the code. A signed-in device
    approves or rejects it, and the first device picks up tokens via ``poll``.
SELF_SHARE
    A signed-in user calls ``generate`` to mint a pre-approved code that another
    device redeems with ``scan_login``.

A code is only ever looked up within its own flow. Successful consumption
deletes the row, so every code logs in at most once.
"""
from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session

from auth.utils import issue_tokens
from config import settings
from db.models import QrLoginToken, User
from services.errors import StateChangedError
from services.user_service import serialize_user
from utils.datetime_utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

DEVICE_APPROVAL = "DEVICE_APPROVAL"
SELF_SHARE = "SELF_SHARE"


def _new_code() -> str:
    return secrets.token_hex(20)


def _find(db: Session, code: str | None, flow: str) -> QrLoginToken:
    token = None
    if code:
        token = db.query(QrLoginToken).filter(QrLoginToken.code == code, QrLoginToken.flow == flow).first()
    if token is None:
        raise HTTPException(status_code=404, detail="QR code not found")
    return token


def _is_expired(token: QrLoginToken) -> bool:
    return token.expires_at < utcnow()


def _gone(db: Session, token: QrLoginToken, message: str = "QR code expired") -> StateChangedError:
    """Flush the token's current state and build the 410 to raise; the router commits it."""
    db.flush()
    return StateChangedError(status_code=410, detail={"message": message, "status": token.status})


def _consume(db: Session, token: QrLoginToken) -> dict:
    user = db.get(User, token.user_id) if token.user_id else None
    if user is None or not user.is_active:
        token.status = "EXPIRED"
        raise _gone(db, token, "The account for this QR code is no longer available")
    db.delete(token)
    db.flush()
    logger.info(f"QR login consumed for user {user.id} via {token.flow}")
    return {"status": "APPROVED", "user": serialize_user(user), **issue_tokens(user)}


# ---------------------------------------------------------------------------
# DEVICE_APPROVAL
# ---------------------------------------------------------------------------

def start(db: Session) -> QrLoginToken:
    token = QrLoginToken(
        code=_new_code(),
        flow=DEVICE_APPROVAL,
        status="PENDING",
        expires_at=utcnow() + timedelta(seconds=settings.QR_LOGIN_TTL_SECONDS),
    )
    db.add(token)
    db.flush()
    return token


def approve(db: Session, code: str, user: User) -> QrLoginToken:
    token = _find(db, code, DEVICE_APPROVAL)
    if _is_expired(token):
        if token.status != "APPROVED":
            token.status = "EXPIRED"
        raise _gone(db, token)
    if token.status != "PENDING":
        raise HTTPException(status_code=400, detail=f"QR code is already {token.status}")
    token.status = "APPROVED"
    token.user_id = user.id
    db.flush()
    return token


def reject(db: Session, code: str) -> QrLoginToken:
    """Mark the login REJECTED whatever its current state, including APPROVED."""
    token = _find(db, code, DEVICE_APPROVAL)
    token.status = "REJECTED"
    db.flush()
    return token


def poll(db: Session, code: str) -> dict:
    token = _find(db, code, DEVICE_APPROVAL)
    if _is_expired(token):
        # An approved-but-expired login is left as APPROVED.
        if token.status != "APPROVED":
            token.status = "EXPIRED"
        raise _gone(db, token)
    if token.status == "PENDING":
        return {"status": "PENDING"}
    if token.status == "REJECTED":
        raise HTTPException(status_code=403, detail={"message": "Login was rejected", "status": "REJECTED"})
    if token.status == "APPROVED":
        return _consume(db, token)
    return {"status": token.status}


# ---------------------------------------------------------------------------
# SELF_SHARE
# ---------------------------------------------------------------------------

def generate(db: Session, user: User) -> QrLoginToken:
    """Mint a pre-approved code for ``user``, retiring any earlier live one."""
    (
        db.query(QrLoginToken)
        .filter(
            QrLoginToken.user_id == user.id,
            QrLoginToken.flow == SELF_SHARE,
            QrLoginToken.status.in_(("PENDING", "APPROVED")),
        )
        .update({QrLoginToken.status: "EXPIRED"}, synchronize_session=False)
    )
    token = QrLoginToken(
        code=_new_code(),
        flow=SELF_SHARE,
        status="APPROVED",
        user_id=user.id,
        expires_at=utcnow() + timedelta(seconds=settings.QR_SHARE_TTL_SECONDS),
    )
    db.add(token)
    db.flush()
    return token


def scan_login(db: Session, code: str) -> dict:
    token = _find(db, code, SELF_SHARE)
    if _is_expired(token):
        token.status = "EXPIRED"
        raise _gone(db, token)
    if token.status != "APPROVED":
        raise HTTPException(status_code=400, detail=f"QR code is {token.status}")
    return _consume(db, token)


def serialize_token(token: QrLoginToken) -> dict:
    return {
        "code": token.code,
        "flow": token.flow,
        "status": token.status,
        "expires_at": isoformat_utc(token.expires_at),
    }
