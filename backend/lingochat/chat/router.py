"""Chat router providing the realtime WebSocket and presence lookups.

This module provides:
    - WebSocket /ws/chat: Realtime chat for an authenticated user
    - GET /presence/{user_id}: Whether a user has an open socket

Handshake:
    The bearer credential comes from the ``token`` query parameter or an
    ``Authorization: Bearer <token>`` header. A missing or invalid credential
    closes the socket with 1008 (policy violation) before it is accepted and
    no event is sent.

Protocol (see events.py for payloads):
    client -> server: join_room, leave_room, send_message, typing, mark_read
    server -> client: error, new_message, user_typing, messages_read
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect

from lingochat.store.schemas import isoformat_utc

from .events import error_frame
from .gateway import ChatGateway

logger = logging.getLogger(__name__)

router = APIRouter()

# 1008 = Policy Violation
WS_POLICY_VIOLATION = 1008


def decode_frame(message: dict) -> Any:
    """Decode a text or binary transport message as UTF-8 JSON.

    Raises:
        ValueError: Payload is not UTF-8 or not JSON.
    """
    raw = message.get("text")
    if raw is None:
        raw = (message.get("bytes") or b"").decode("utf-8")
    return json.loads(raw)


def get_gateway(request: Request) -> ChatGateway:
    """FastAPI dependency returning the gateway built at startup."""
    return request.app.state.gateway


@router.get("/presence/{user_id}", tags=["presence"])
async def get_presence(user_id: int, request: Request) -> dict:
    """Report whether a user currently has at least one open chat socket."""
    presence = get_gateway(request).presence
    return {
        "user_id": user_id,
        "online": presence.is_online(user_id),
        "online_since": isoformat_utc(presence.online_since(user_id)),
    }


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer credential (handshake auth payload)"),
) -> None:
    """WebSocket endpoint for realtime chat.

    Protocol Flow:
        1. Client connects with a credential -> server verifies it, registers
           presence and accepts the socket (or closes with 1008)
        2. Client sends join_room {connectionId} -> admitted or error
        3. Client sends send_message / typing / mark_read
           -> server broadcasts new_message / user_typing / messages_read
        4. On disconnect -> rooms left, presence unregistered

    Args:
        websocket: The WebSocket connection.
        token: Optional credential from the query string.
    """
    gateway: ChatGateway = websocket.app.state.gateway

    session = await gateway.open_session(
        websocket,
        auth_token=token,
        authorization=websocket.headers.get("authorization"),
    )
    if session is None:
        logger.info("[WS] Handshake rejected")
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info(f"[WS] Connection accepted for user {session.user_id} (session {session.id})")

    try:
        # Main message loop: one frame at a time keeps per-socket ordering
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            try:
                frame = decode_frame(message)
            except ValueError:
                await session.send(error_frame("Invalid frame: not JSON"))
                continue
            logger.debug("[WS] Session %s received: event=%s", session.id,
                         frame.get("event", "?") if isinstance(frame, dict) else "?")
            await gateway.handle_frame(session, frame)
    except WebSocketDisconnect:
        logger.info(f"[WS] User {session.user_id} disconnected (session {session.id})")
    finally:
        await gateway.close_session(session)
