"""
api/routes/v1/events.py -- Real-time staff events over WebSocket.

Connect with: ws://localhost:8000/api/v1/ws?token=<jwt>
(the auth cookie is accepted too, for same-origin browser clients)

The connection is subscribed to the channel of the account's role and
receives every event published there:
  <- { "type": "submission.created", "channel": "admin", "data": {...}, "ts": 1700000000.0 }

Client messages (JSON):
  -> { "type": "ping" }      answered with { "type": "pong" }

A missing or invalid session closes the socket with code 4001 before accept.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from auth.sessions import SessionManager
from auth.tokens import COOKIE_NAME
from core.errors import Unauthenticated
from core.roles import Role
from notify.publisher import ChannelHub, topic_for

logger = logging.getLogger("reviewdesk.api.events")

router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4001


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _handle_message(websocket: WebSocket, raw: str) -> None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await websocket.send_json({"type": "error", "message": "Invalid JSON."})
        return
    if isinstance(message, dict) and message.get("type") == "ping":
        await websocket.send_json({"type": "pong"})


@router.websocket("/ws")
async def events_socket(websocket: WebSocket) -> None:
    token = websocket.query_params.get("token") or websocket.cookies.get(COOKIE_NAME)
    sessions: SessionManager = websocket.app.state.sessions
    try:
        account = await asyncio.to_thread(sessions.validate, token)
    except Unauthenticated:
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Authentication required")
        return

    hub: ChannelHub = websocket.app.state.hub
    topic = topic_for(Role.parse(account.role))
    # Subscribed before accept so nothing published after the handshake is missed.
    queue = hub.subscribe(topic)
    forwarder: Optional[asyncio.Task] = None
    try:
        await websocket.accept()
        forwarder = asyncio.create_task(_forward(websocket, queue))
        logger.info("WebSocket open: account %d on %s", account.id, topic)
        while True:
            raw = await websocket.receive_text()
            await _handle_message(websocket, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error("WebSocket error for account %d: %s", account.id, exc)
    finally:
        if forwarder is not None:
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                # send_json fails once the client is gone.
                logger.debug("Event forwarder for account %d stopped: %s", account.id, exc)
        hub.unsubscribe(topic, queue)
        logger.info("WebSocket closed: account %d on %s", account.id, topic)
