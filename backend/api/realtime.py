import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from auth.utils import decode_access_token, user_from_token_payload
from db.database import get_session_factory
from db.models import Conversation
from services.chat_service import is_participant
from services.realtime import hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

WS_UNAUTHORIZED = 4401


def _authenticate(session_factory, token: str) -> int:
    db = session_factory()
    try:
        return user_from_token_payload(db, decode_access_token(token)).id
    finally:
        db.close()


def _may_join(session_factory, user_id: int, conversation_id: int) -> bool:
    db = session_factory()
    try:
        conversation = db.get(Conversation, conversation_id)
        return conversation is not None and is_participant(conversation, user_id)
    finally:
        db.close()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = "", session_factory=Depends(get_session_factory)):
    # Sessions are opened per check and closed at once; a live socket holds no connection.
    try:
        user_id = await run_in_threadpool(_authenticate, session_factory, token)
    except HTTPException as e:
        logger.info(f"Realtime connection refused: {e.detail}")
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await hub.connect(user_id, websocket)
    await websocket.send_json({"event": "connected", "data": {"user_id": user_id}})
    try:
        while True:
            message = await websocket.receive_json()
            action = (message or {}).get("action") if isinstance(message, dict) else None
            conversation_id = message.get("conversation_id") if isinstance(message, dict) else None
            if action not in ("join", "leave") or not isinstance(conversation_id, int):
                await websocket.send_json({"event": "error", "data": {"message": "Unsupported message"}})
                continue
            if action == "leave":
                hub.leave(conversation_id, websocket)
                await websocket.send_json({"event": "left", "data": {"conversation_id": conversation_id}})
                continue
            if not await run_in_threadpool(_may_join, session_factory, user_id, conversation_id):
                await websocket.send_json(
                    {"event": "error", "data": {"message": "Not a participant", "conversation_id": conversation_id}}
                )
                continue
            hub.join(conversation_id, websocket)
            await websocket.send_json({"event": "joined", "data": {"conversation_id": conversation_id}})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
