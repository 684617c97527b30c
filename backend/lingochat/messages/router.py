"""Message history REST API router.

Endpoints:
    GET  /connections/{connection_id}/messages              - Full history, oldest first
    POST /connections/{connection_id}/messages              - Send a message over REST
    GET  /connections/{connection_id}/messages/unread-count - Unread count for the caller
    POST /connections/{connection_id}/messages/read         - Mark partner's messages read
    GET  /messages/unread                                   - Unread count over all accepted connections

Sending and marking read go through the same relay as the socket
``send_message`` / ``mark_read`` events, so open sockets in the room receive
``new_message`` / ``messages_read``.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from lingochat.auth.verifier import get_current_user_id
from lingochat.chat.errors import AuthorizationError, ChatError, PersistenceError
from lingochat.chat.router import get_gateway
from lingochat.chat.session import authorize_room_access
from lingochat.store.schemas import MessageKind

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])

FORBIDDEN_DETAIL = "Not authorized to access this connection"


class CreateMessageRequest(BaseModel):
    """Request model for sending a message; ``type`` defaults to text."""
    content: str
    type: Optional[MessageKind] = Field(default=None)


class MarkReadRequest(BaseModel):
    """Request model for marking messages read (all unread when omitted)."""
    message_ids: Optional[List[int]] = Field(default=None)


class MarkReadResponse(BaseModel):
    marked_read: int
    message_ids: List[int]


async def _require_access(request: Request, user_id: int, connection_id: int) -> None:
    store = get_gateway(request).store
    try:
        await authorize_room_access(store, user_id, connection_id)
    except AuthorizationError as exc:
        logger.info(f"[Messages] Access denied: {exc}")
        raise HTTPException(status_code=403, detail=FORBIDDEN_DETAIL)


@router.get("/connections/{connection_id}/messages")
async def get_messages(
    connection_id: int,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> List[dict]:
    """Get all messages of a conversation, ordered by id."""
    await _require_access(request, user_id, connection_id)
    messages = await get_gateway(request).store.list_messages(connection_id)
    return [m.to_wire() for m in messages]


@router.post("/connections/{connection_id}/messages", status_code=201)
async def create_message(
    connection_id: int,
    body: CreateMessageRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> dict:
    """Persist a message and broadcast it to the conversation room."""
    relay = get_gateway(request).relay
    try:
        message = await relay.send_message(
            user_id, connection_id, body.content, body.type or MessageKind.TEXT
        )
    except AuthorizationError as exc:
        logger.info(f"[Messages] Access denied: {exc}")
        raise HTTPException(status_code=403, detail=FORBIDDEN_DETAIL)
    except PersistenceError as exc:
        logger.error(f"[Messages] Failed to persist message from user {user_id}: {exc}")
        raise HTTPException(status_code=500, detail="Failed to send message")
    except ChatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return message.to_wire()


@router.get("/connections/{connection_id}/messages/unread-count")
async def get_unread_count(
    connection_id: int,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> dict:
    """Count messages from the partner the caller has not read yet."""
    await _require_access(request, user_id, connection_id)
    count = await get_gateway(request).store.count_unread(connection_id, user_id)
    return {"unread_count": count}


@router.post("/connections/{connection_id}/messages/read", response_model=MarkReadResponse)
async def mark_messages_read(
    connection_id: int,
    request: Request,
    body: Optional[MarkReadRequest] = None,
    user_id: int = Depends(get_current_user_id),
) -> MarkReadResponse:
    """Mark the partner's unread messages as read and notify the room."""
    relay = get_gateway(request).relay
    try:
        changed = await relay.mark_read(
            user_id, connection_id, body.message_ids if body else None
        )
    except AuthorizationError as exc:
        logger.info(f"[Messages] Access denied: {exc}")
        raise HTTPException(status_code=403, detail=FORBIDDEN_DETAIL)
    return MarkReadResponse(marked_read=len(changed), message_ids=changed)


@router.get("/messages/unread")
async def get_total_unread_count(
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> dict:
    """Count unread messages addressed to the caller in all accepted connections."""
    count = await get_gateway(request).store.count_unread_total(user_id)
    return {"total_unread_count": count}
