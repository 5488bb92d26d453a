"""Client-initiated, admin-arbitrated trainer reassignment."""
from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import REVIEW_STATUSES, TrainerChangeRequest, TrainerProfile, User
from services import client_service, notification_service, trainer_service
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)


def serialize_request(req: TrainerChangeRequest) -> dict:
    client_user = req.client.user if req.client else None
    return {
        "id": req.id,
        "client_id": req.client_id,
        "client_name": client_user.display_name if client_user else None,
        "current_trainer_id": req.current_trainer_id,
        "requested_trainer_id": req.requested_trainer_id,
        "reason": req.reason,
        "status": req.status,
        "decided_by_admin_id": req.decided_by_admin_id,
        "decided_at": isoformat_utc(req.decided_at),
        "created_at": isoformat_utc(req.created_at),
    }


def _pending_for_client(db: Session, client_id: int) -> TrainerChangeRequest | None:
    return (
        db.query(TrainerChangeRequest)
        .filter(TrainerChangeRequest.client_id == client_id, TrainerChangeRequest.status == "PENDING")
        .first()
    )


def request_change(db: Session, user: User, requested_trainer_id: int, reason: str | None = None) -> TrainerChangeRequest:
    client = client_service.get_or_create_profile(db, user)

    requested = db.get(TrainerProfile, requested_trainer_id)
    if requested is None or not trainer_service.is_approved(requested):
        raise HTTPException(status_code=400, detail="Requested trainer is not available")
    if client.trainer_id == requested.id:
        raise HTTPException(status_code=400, detail="This trainer is already assigned to you")
    if _pending_for_client(db, client.id) is not None:
        raise HTTPException(status_code=409, detail="A trainer change request is already pending")

    req = TrainerChangeRequest(
        client_id=client.id,
        current_trainer_id=client.trainer_id,
        requested_trainer_id=requested.id,
        reason=(reason or "").strip() or None,
        status="PENDING",
    )
    db.add(req)
    try:
        db.flush()
    except IntegrityError:
        # Lost a race against a concurrent request for the same client.
        db.rollback()
        raise HTTPException(status_code=409, detail="A trainer change request is already pending")

    with best_effort("Trainer change admin alert"):
        notification_service.notify_admins(
            db,
            "TRAINER_CHANGE_REQUEST",
            {
                "request_id": req.id,
                "client_id": client.id,
                "client_name": user.display_name,
                "current_trainer_id": req.current_trainer_id,
                "requested_trainer_id": req.requested_trainer_id,
            },
        )
    return req


def decide(db: Session, request_id: int, admin: User, status: str) -> TrainerChangeRequest:
    decision = (status or "").strip().upper()
    if decision not in REVIEW_STATUSES or decision == "PENDING":
        raise HTTPException(status_code=400, detail="Status must be APPROVED or REJECTED")

    req = db.get(TrainerChangeRequest, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Request not found")
    if req.status != "PENDING":
        raise HTTPException(status_code=400, detail="Request has already been decided")

    req.status = decision
    req.decided_by_admin_id = admin.id
    req.decided_at = utcnow()

    client = req.client
    requested = req.requested_trainer
    if decision == "APPROVED":
        client.trainer_id = requested.id
        if requested.user is not None and requested.user.role != "ADMIN":
            requested.user.role = "TRAINER"
    db.flush()

    if decision == "APPROVED":
        with best_effort("New client notification"):
            notification_service.notify(
                db,
                requested.user_id,
                "NEW_CLIENT",
                {"client_id": client.id, "name": client.user.display_name if client.user else "Client"},
            )
    with best_effort("Trainer change decision notification"):
        notification_service.notify(
            db,
            client.user_id,
            "TRAINER_CHANGE_DECIDED",
            {"request_id": req.id, "status": decision, "trainer_id": requested.id},
        )
    return req


def list_requests(db: Session, status: str | None = None):
    query = db.query(TrainerChangeRequest)
    if status:
        value = status.strip().upper()
        if value not in REVIEW_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status")
        query = query.filter(TrainerChangeRequest.status == value)
    return query.order_by(TrainerChangeRequest.created_at.desc(), TrainerChangeRequest.id.desc())
