# backend/api/websocket.py

from __future__ import annotations

import asyncio
from contextlib import suppress
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from core.exceptions import AuthenticationError
from services.auth_service import resolve_identity
from services.dispatcher import SocketDispatcher
from services.hub import ChatHub

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = None,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None,
    role: Optional[str] = None,
):
    """
    WebSocket endpoint for course chat rooms.

    Lifecycle:
    ==========
    1. Identity is resolved from the handshake (token or user_* params);
       a bad handshake is closed with 1008 before anything is registered
    2. Connection is accepted and registered
    3. A writer task drains the connection's outbound queue to the socket
    4. Inbound text frames are dispatched one at a time (see SocketDispatcher);
       binary frames get an "Invalid frame" error and the socket stays open
    5. On disconnect the connection is unregistered, which removes it from
       every room before any further fan-out can run

    Args:
        websocket: WebSocket connection object
        token: Signed handshake token (required when AUTH_JWT_SECRET is set)
        user_id, user_name, role: Development identity parameters
    """
    hub: ChatHub = websocket.app.state.hub
    dispatcher: SocketDispatcher = websocket.app.state.dispatcher

    try:
        identity = resolve_identity(
            token=token,
            user_id=user_id,
            user_name=user_name,
            role=role,
            settings=websocket.app.state.settings,
        )
    except AuthenticationError as e:
        logger.warning("Handshake rejected: %s", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
        return

    await websocket.accept()
    connection = hub.registry.register(websocket, identity)
    writer = asyncio.create_task(connection.pump())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                dispatcher.reject_frame(connection.id)
                continue
            dispatcher.handle_text(connection.id, text)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection.id, e)
    finally:
        hub.registry.unregister(connection.id)
        writer.cancel()
        with suppress(asyncio.CancelledError):
            await writer
