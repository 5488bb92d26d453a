from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user, require_roles
from db.database import get_db
from db.models import User
from services import client_service, notification_service
from utils.pagination import clamp_page, paginate

router = APIRouter(prefix="/notifications", tags=["notifications"])


class AlertRequest(BaseModel):
    client_id: int
    message: str = Field(min_length=1, max_length=1000)
    data: Optional[dict[str, Any]] = None


@router.get("")
def list_notifications(
    only_unread: bool = Query(default=False),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    query = notification_service.list_notifications(db, user.id, only_unread=only_unread)
    result = paginate(query, page, limit, notification_service.serialize_notification)
    result["unread"] = notification_service.unread_count(db, user.id)
    return result


@router.post("/read-all")
def mark_all_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = notification_service.mark_all_read(db, user.id)
    db.commit()
    return {"updated": updated}


@router.post("/{notification_id}/read")
def mark_read(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = notification_service.mark_read(db, notification_id, user.id)
    db.commit()
    db.refresh(row)
    return notification_service.serialize_notification(row)


@router.post("/alerts", status_code=status.HTTP_201_CREATED)
def send_alert(req: AlertRequest, user: User = Depends(require_roles("TRAINER")), db: Session = Depends(get_db)):
    client = client_service.get_client_or_404(db, req.client_id)
    client_service.assert_trainer_owns_client(db, user, client)
    row = notification_service.notify(
        db,
        client.user_id,
        "ALERT",
        {**(req.data or {}), "message": req.message, "trainer_user_id": user.id, "trainer_name": user.display_name},
    )
    db.commit()
    db.refresh(row)
    return notification_service.serialize_notification(row)
