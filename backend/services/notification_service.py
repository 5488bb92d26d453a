from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import HTTPException
from sqlalchemy import event
from sqlalchemy.orm import Session

from db.models import NOTIFICATION_TYPES, Notification, User
from services.realtime import hub
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

_OUTBOX_KEY = "realtime_outbox"


def serialize_notification(n: Notification) -> dict:
    try:
        payload = json.loads(n.payload) if n.payload else {}
    except (TypeError, ValueError):
        payload = {}
    return {
        "id": n.id,
        "recipient_id": n.recipient_id,
        "type": n.type,
        "payload": payload,
        "is_read": bool(n.is_read),
        "read_at": isoformat_utc(n.read_at),
        "created_at": isoformat_utc(n.created_at),
    }


def queue_push(
    db: Session,
    event_name: str,
    data: dict[str, Any],
    *,
    user_id: int | None = None,
    conversation_id: int | None = None,
) -> None:
    """Defer a realtime push until the session commits. Dropped on rollback."""
    db.info.setdefault(_OUTBOX_KEY, []).append((user_id, conversation_id, event_name, data))


@event.listens_for(Session, "after_commit")
def _flush_outbox(session: Session) -> None:
    pending = session.info.pop(_OUTBOX_KEY, None) or []
    for user_id, conversation_id, event_name, data in pending:
        with best_effort(f"Realtime push {event_name}"):
            if conversation_id is not None:
                hub.emit_to_conversation(conversation_id, event_name, data)
            if user_id is not None:
                hub.emit_to_user(user_id, event_name, data)


@event.listens_for(Session, "after_rollback")
def _drop_outbox(session: Session) -> None:
    session.info.pop(_OUTBOX_KEY, None)


def notify(db: Session, recipient_id: int, notification_type: str, payload: dict | None = None) -> Notification:
    """Persist one notification and queue its push to the recipient's sockets."""
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    if not db.get(User, recipient_id):
        raise ValueError(f"Notification recipient {recipient_id} does not exist")
    row = Notification(
        recipient_id=recipient_id,
        type=notification_type,
        payload=json.dumps(payload or {}, ensure_ascii=True, default=str),
    )
    # A failed insert only unwinds this savepoint, never the caller's write.
    with db.begin_nested():
        db.add(row)
    queue_push(db, "notification:new", serialize_notification(row), user_id=recipient_id)
    return row


def active_admin_ids(db: Session) -> list[int]:
    rows = (
        db.query(User.id)
        .filter(User.role == "ADMIN", User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )
    return [int(r[0]) for r in rows]


def notify_admins(db: Session, notification_type: str, payload: dict | None = None) -> list[Notification]:
    """One row and one push per active admin."""
    admin_ids = active_admin_ids(db)
    if not admin_ids:
        return []
    encoded = json.dumps(payload or {}, ensure_ascii=True, default=str)
    rows = [Notification(recipient_id=admin_id, type=notification_type, payload=encoded) for admin_id in admin_ids]
    with db.begin_nested():
        db.add_all(rows)
    for row in rows:
        queue_push(db, "notification:new", serialize_notification(row), user_id=row.recipient_id)
    return rows


def list_notifications(db: Session, user_id: int, *, only_unread: bool = False):
    query = db.query(Notification).filter(Notification.recipient_id == user_id)
    if only_unread:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc())


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(Notification)
        .filter(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
    row = db.get(Notification, notification_id)
    if not row or row.recipient_id != user_id:
        raise HTTPException(status_code=404, detail="Notification not found")
    if not row.is_read:
        row.is_read = True
        row.read_at = utcnow()
    return row


def mark_all_read(db: Session, user_id: int) -> int:
    now = utcnow()
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: now}, synchronize_session=False)
    )
    return int(updated or 0)
