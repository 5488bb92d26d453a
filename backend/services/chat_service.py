from __future__ import annotations

import json
import logging

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from db.models import Conversation, Message, User
from services import client_service, notification_service, trainer_service
from services.side_effects import best_effort
from utils.datetime_utils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

LAST_MESSAGE_MAX_CHARS = 200
PREVIEW_CHARS = 50


def serialize_conversation(c: Conversation) -> dict:
    return {
        "id": c.id,
        "client_id": c.client_id,
        "trainer_id": c.trainer_id,
        "participants": c.participant_ids,
        "last_message_at": isoformat_utc(c.last_message_at),
        "last_message_text": c.last_message_text,
        "created_at": isoformat_utc(c.created_at),
    }


def serialize_message(m: Message) -> dict:
    try:
        attachments = json.loads(m.attachments) if m.attachments else []
    except (TypeError, ValueError):
        attachments = []
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "sender_id": m.sender_id,
        "content": m.content,
        "attachments": attachments,
        "read_at": isoformat_utc(m.read_at),
        "created_at": isoformat_utc(m.created_at),
    }


def is_participant(conversation: Conversation, user_id: int) -> bool:
    return int(user_id) in conversation.participant_ids


def get_for_participant(db: Session, conversation_id: int, user: User) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not is_participant(conversation, user.id):
        raise HTTPException(status_code=403, detail="You are not part of this conversation")
    return conversation


def ensure_conversation(db: Session, user: User, client_id: int, trainer_id: int) -> tuple[Conversation, bool]:
    """Get or create the single conversation for a (client, trainer) pair."""
    client = client_service.get_client_or_404(db, client_id)
    trainer = trainer_service.get_trainer_or_404(db, trainer_id)
    participants = {int(client.user_id), int(trainer.user_id)}
    if len(participants) != 2:
        raise HTTPException(status_code=400, detail="A conversation needs exactly two participants")
    if user.role != "ADMIN" and user.id not in participants:
        raise HTTPException(status_code=403, detail="You are not part of this conversation")

    conversation = (
        db.query(Conversation)
        .filter(Conversation.client_id == client.id, Conversation.trainer_id == trainer.id)
        .first()
    )
    if conversation is not None:
        return conversation, False

    conversation = Conversation(
        client_id=client.id,
        trainer_id=trainer.id,
        participant_a_id=client.user_id,
        participant_b_id=trainer.user_id,
    )
    db.add(conversation)
    db.flush()
    return conversation, True


def list_conversations(db: Session, user: User):
    return (
        db.query(Conversation)
        .filter(or_(Conversation.participant_a_id == user.id, Conversation.participant_b_id == user.id))
        .order_by(
            Conversation.last_message_at.is_(None),
            Conversation.last_message_at.desc(),
            Conversation.updated_at.desc(),
            Conversation.id.desc(),
        )
    )


def list_messages(db: Session, conversation: Conversation):
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )


def send_message(
    db: Session,
    conversation: Conversation,
    sender: User,
    content: str | None,
    attachments: list[str] | None = None,
) -> Message:
    text = (content or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message content is required")

    message = Message(
        conversation_id=conversation.id,
        sender_id=sender.id,
        content=text,
        attachments=json.dumps([a for a in (attachments or []) if a], ensure_ascii=True),
    )
    db.add(message)
    db.flush()

    conversation.last_message_at = message.created_at or utcnow()
    conversation.last_message_text = text[:LAST_MESSAGE_MAX_CHARS]
    db.flush()

    notification_service.queue_push(
        db, "chat:message", serialize_message(message), conversation_id=conversation.id
    )

    recipient_id = next((pid for pid in conversation.participant_ids if pid != sender.id), None)
    if recipient_id is not None:
        with best_effort("New message notification"):
            notification_service.notify(
                db,
                recipient_id,
                "NEW_MESSAGE",
                {
                    "conversation_id": conversation.id,
                    "sender_id": sender.id,
                    "sender_name": sender.display_name,
                    "preview": text[:PREVIEW_CHARS],
                },
            )
    return message


def mark_message_read(db: Session, message_id: int, user: User) -> Message:
    message = db.get(Message, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    conversation = get_for_participant(db, message.conversation_id, user)
    if message.sender_id == user.id:
        raise HTTPException(status_code=403, detail="Only the recipient can mark a message as read")
    if message.read_at is None:
        message.read_at = utcnow()
    db.flush()
    logger.debug(f"Message {message.id} read in conversation {conversation.id}")
    return message


def unread_message_count(db: Session, conversation: Conversation, user: User) -> int:
    return (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation.id,
            Message.sender_id != user.id,
            Message.read_at.is_(None),
        )
        .count()
    )
