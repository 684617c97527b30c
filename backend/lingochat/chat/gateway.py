"""ChatGateway: the realtime chat core wired together.

One gateway is built at application startup and stored on ``app.state``.
It owns the presence tracker and room registry, so there is no module-level
mutable state; tests build their own gateway around an in-memory store.

Each inbound frame is handled to completion before the socket's next frame is
read, which keeps per-socket ordering. Frames from different sockets
interleave wherever a handler awaits (store calls and sends).
"""
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from lingochat.auth.verifier import CredentialVerifier
from lingochat.store.base import ChatStore

from .errors import AuthorizationError, ChatError, PersistenceError
from .events import (
    JoinRoom,
    LeaveRoom,
    MarkRead,
    SendMessage,
    Typing,
    error_frame,
    parse_event,
)
from .presence import PresenceTracker
from .relay import MessageRelay
from .rooms import RoomManager
from .session import ChatSession, SessionManager

logger = logging.getLogger(__name__)

InboundEventModel = Union[JoinRoom, LeaveRoom, SendMessage, Typing, MarkRead]


class ChatGateway:
    """Entry point the websocket router talks to.

    Attributes:
        store: Durable data layer.
        presence: Who is online.
        rooms: Which sessions receive which conversation.
        sessions: Handshake and room membership rules.
        relay: Message, typing and read-receipt handling.
    """

    def __init__(
        self,
        store: ChatStore,
        verifier: CredentialVerifier,
        max_message_length: int = 2000,
        presence_mirror_enabled: bool = True,
    ) -> None:
        self.store = store
        self.presence = PresenceTracker(store, mirror_enabled=presence_mirror_enabled)
        self.rooms = RoomManager()
        self.sessions = SessionManager(verifier, self.presence, self.rooms, store)
        self.relay = MessageRelay(store, self.rooms, max_message_length)

    async def open_session(
        self,
        websocket: Any,
        auth_token: Optional[str] = None,
        authorization: Optional[str] = None,
    ) -> Optional[ChatSession]:
        """Authenticate a new socket.

        Returns:
            The authenticated session, or None if the socket must be closed.
        """
        session = ChatSession(websocket)
        token = self.sessions.resolve_token(auth_token, authorization)
        if not await self.sessions.authenticate(session, token):
            return None
        return session

    async def close_session(self, session: ChatSession) -> None:
        await self.sessions.disconnect(session)

    async def handle_frame(self, session: ChatSession, frame: Any) -> None:
        """Parse one raw inbound frame and handle it."""
        if not session.is_authenticated:
            return
        try:
            event = parse_event(frame)
        except (ValidationError, ValueError):
            name = frame.get("event") if isinstance(frame, dict) else None
            logger.debug(f"[Gateway] Invalid frame from {session.id}: {frame!r}")
            await session.send(error_frame(f"Invalid event: {name}"))
            return
        await self.dispatch(session, event)

    async def dispatch(self, session: ChatSession, event: InboundEventModel) -> None:
        """Route a parsed event to its handler."""
        if isinstance(event, JoinRoom):
            await self.sessions.join_room(session, event.connection_id)
        elif isinstance(event, LeaveRoom):
            await self.sessions.leave_room(session, event.connection_id)
        elif isinstance(event, SendMessage):
            await self._send_message(session, event)
        elif isinstance(event, Typing):
            await self.relay.typing(session, event.connection_id, event.is_typing)
        elif isinstance(event, MarkRead):
            await self._mark_read(session, event)
        else:
            raise TypeError(f"Unhandled chat event: {type(event).__name__}")

    async def _send_message(self, session: ChatSession, event: SendMessage) -> None:
        try:
            await self.relay.send_message(
                session.user_id, event.connection_id, event.content, event.type
            )
        except AuthorizationError as exc:
            logger.info(f"[Gateway] send_message denied for user {session.user_id}: {exc}")
            await session.send(error_frame("Access denied"))
        except PersistenceError as exc:
            logger.error(f"[Gateway] Failed to persist message from user {session.user_id}: {exc}")
            await session.send(error_frame("Failed to send message"))
        except ChatError as exc:
            await session.send(error_frame(str(exc)))

    async def _mark_read(self, session: ChatSession, event: MarkRead) -> None:
        try:
            await self.relay.mark_read(session.user_id, event.connection_id, event.message_ids)
        except AuthorizationError as exc:
            logger.info(f"[Gateway] mark_read denied for user {session.user_id}: {exc}")
            await session.send(error_frame("Access denied"))
        except PersistenceError as exc:
            logger.error(f"[Gateway] Failed to mark messages read for user {session.user_id}: {exc}")
            await session.send(error_frame("Failed to mark messages as read"))
