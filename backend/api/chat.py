from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import chat_service
from utils.pagination import clamp_page, paginate

router = APIRouter(tags=["chat"])


class EnsureConversationRequest(BaseModel):
    client_id: int
    trainer_id: int


class SendMessageRequest(BaseModel):
    content: str = Field(max_length=5000)
    attachments: Optional[list[str]] = None


@router.post("/conversations")
def ensure_conversation(
    req: EnsureConversationRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation, created = chat_service.ensure_conversation(db, user, req.client_id, req.trainer_id)
    db.commit()
    db.refresh(conversation)
    return {"created": created, **chat_service.serialize_conversation(conversation)}


@router.get("/conversations")
def list_conversations(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=50)

    def _row(conversation):
        data = chat_service.serialize_conversation(conversation)
        data["unread"] = chat_service.unread_message_count(db, conversation, user)
        return data

    return paginate(chat_service.list_conversations(db, user), page, limit, _row)


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: int,
    page: int = Query(default=1),
    limit: int = Query(default=30),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = chat_service.get_for_participant(db, conversation_id, user)
    page, limit = clamp_page(page, limit, default=30, maximum=100)
    return paginate(chat_service.list_messages(db, conversation), page, limit, chat_service.serialize_message)


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
def send_message(
    conversation_id: int,
    req: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = chat_service.get_for_participant(db, conversation_id, user)
    message = chat_service.send_message(db, conversation, user, req.content, req.attachments)
    db.commit()
    db.refresh(message)
    return chat_service.serialize_message(message)


@router.patch("/messages/{message_id}/read")
def mark_message_read(message_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    message = chat_service.mark_message_read(db, message_id, user)
    db.commit()
    db.refresh(message)
    return chat_service.serialize_message(message)
