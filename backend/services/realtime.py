from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Registry of live sockets, addressable per user and per conversation.

    Request handlers are synchronous and run in worker threads, so pushes are
    scheduled onto the event loop that owns each socket and never awaited.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_user: dict[int, set[WebSocket]] = {}
        self._by_conversation: dict[int, set[WebSocket]] = {}
        self._owner: dict[WebSocket, int] = {}
        self._loops: dict[WebSocket, asyncio.AbstractEventLoop] = {}

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        loop = asyncio.get_running_loop()
        with self._lock:
            self._by_user.setdefault(int(user_id), set()).add(websocket)
            self._owner[websocket] = int(user_id)
            self._loops[websocket] = loop
        logger.info(f"Realtime connect user={user_id}")

    def disconnect(self, websocket: WebSocket) -> None:
        with self._lock:
            user_id = self._owner.pop(websocket, None)
            self._loops.pop(websocket, None)
            if user_id is not None:
                conns = self._by_user.get(user_id)
                if conns is not None:
                    conns.discard(websocket)
                    if not conns:
                        self._by_user.pop(user_id, None)
            for conversation_id in list(self._by_conversation):
                members = self._by_conversation[conversation_id]
                members.discard(websocket)
                if not members:
                    self._by_conversation.pop(conversation_id, None)
        if user_id is not None:
            logger.info(f"Realtime disconnect user={user_id}")

    def join(self, conversation_id: int, websocket: WebSocket) -> None:
        with self._lock:
            self._by_conversation.setdefault(int(conversation_id), set()).add(websocket)

    def leave(self, conversation_id: int, websocket: WebSocket) -> None:
        with self._lock:
            members = self._by_conversation.get(int(conversation_id))
            if not members:
                return
            members.discard(websocket)
            if not members:
                self._by_conversation.pop(int(conversation_id), None)

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._by_user.get(int(user_id)) or ())

    def emit_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._by_user.get(int(user_id)) or ())
        return self._dispatch(targets, {"event": event, "data": data})

    def emit_to_conversation(self, conversation_id: int, event: str, data: dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._by_conversation.get(int(conversation_id)) or ())
        return self._dispatch(targets, {"event": event, "data": data})

    def _dispatch(self, targets: list[WebSocket], frame: dict[str, Any]) -> int:
        scheduled = 0
        for ws in targets:
            with self._lock:
                loop = self._loops.get(ws)
            if loop is None or loop.is_closed():
                self.disconnect(ws)
                continue
            asyncio.run_coroutine_threadsafe(self._send(ws, frame), loop)
            scheduled += 1
        return scheduled

    async def _send(self, websocket: WebSocket, frame: dict[str, Any]) -> None:
        try:
            await websocket.send_json(frame)
        except Exception as e:
            logger.warning(f"Realtime send failed, dropping socket: {e}")
            self.disconnect(websocket)
            try:
                await websocket.close()
            except Exception:
                pass


hub = RealtimeHub()
