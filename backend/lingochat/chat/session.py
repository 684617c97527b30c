"""Realtime session lifecycle: handshake authentication, rooms, teardown.

State machine per socket::

    CONNECTING --valid credential--> AUTHENTICATED --close--> TERMINATED
        \\--missing/invalid credential------------------------^

While AUTHENTICATED a session can join any number of rooms. Joining checks
that the caller is a party to an accepted connection; leaving never checks.
Closing the transport drops all room memberships and unregisters the socket
from presence.
"""
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Set

from lingochat.auth.verifier import CredentialVerifier, extract_bearer_token
from lingochat.store.base import ChatStore
from lingochat.store.schemas import ConnectionStatus, SocialConnection

from .errors import AuthenticationError, AuthorizationError, PersistenceError
from .events import error_frame
from .presence import PresenceTracker
from .rooms import RoomManager, room_name

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle state of a realtime session."""
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    TERMINATED = "terminated"


class ChatSession:
    """One realtime transport connection and the user behind it.

    Attributes:
        id: Server-generated connection id (used as the presence key).
        websocket: Transport; anything with an async ``send_json``.
        user_id: Authenticated user, None until the handshake succeeds.
        state: Current lifecycle state.
        rooms: Names of rooms this session is a member of.
    """

    def __init__(self, websocket: Any, session_id: Optional[str] = None) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.websocket = websocket
        self.user_id: Optional[int] = None
        self.state = SessionState.CONNECTING
        self.rooms: Set[str] = set()

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    async def send(self, frame: dict) -> None:
        await self.websocket.send_json(frame)

    def __repr__(self) -> str:
        return f"ChatSession(id={self.id!r}, user_id={self.user_id!r}, state={self.state.value})"


async def authorize_room_access(
    store: ChatStore, user_id: int, connection_id: int
) -> SocialConnection:
    """Return the connection if ``user_id`` may chat in it.

    Raises:
        AuthorizationError: Connection missing, caller not a party, or the
            connection is not accepted.
    """
    connection = await store.find_connection(connection_id)
    if connection is None:
        raise AuthorizationError(f"Connection {connection_id} not found")
    if not connection.has_party(user_id):
        raise AuthorizationError(f"User {user_id} is not a party to connection {connection_id}")
    if connection.status is not ConnectionStatus.ACCEPTED:
        raise AuthorizationError(
            f"Connection {connection_id} is {connection.status.value}, not accepted"
        )
    return connection


class SessionManager:
    """Authenticates sessions and manages their room memberships.

    Args:
        verifier: Bearer credential verifier.
        presence: Presence tracker the session registers with.
        rooms: Room membership registry.
        store: Data layer used for access checks.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        presence: PresenceTracker,
        rooms: RoomManager,
        store: ChatStore,
    ) -> None:
        self.verifier = verifier
        self.presence = presence
        self.rooms = rooms
        self.store = store

    @staticmethod
    def resolve_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
        """Pick the handshake credential: auth payload first, then the header."""
        if auth_token:
            return auth_token
        try:
            return extract_bearer_token(authorization)
        except AuthenticationError:
            return None

    async def authenticate(self, session: ChatSession, token: Optional[str]) -> bool:
        """Verify the handshake credential and register the session.

        Returns:
            True if the session is now AUTHENTICATED; False if it was moved
            to TERMINATED and must be force-disconnected.
        """
        if session.state is not SessionState.CONNECTING:
            return session.is_authenticated

        if not token:
            logger.info(f"[Session] {session.id} rejected: no credential")
            session.state = SessionState.TERMINATED
            return False

        try:
            user_id = self.verifier.verify(token)
        except AuthenticationError as exc:
            logger.info(f"[Session] {session.id} rejected: {exc}")
            session.state = SessionState.TERMINATED
            return False

        session.user_id = user_id
        session.state = SessionState.AUTHENTICATED
        await self.presence.register_connection(user_id, session.id)
        logger.info(f"[Session] User {user_id} connected with session {session.id}")
        return True

    async def join_room(self, session: ChatSession, connection_id: int) -> bool:
        """Admit a session to a conversation room if the caller may chat there."""
        if not session.is_authenticated:
            return False

        try:
            await authorize_room_access(self.store, session.user_id, connection_id)
        except AuthorizationError as exc:
            logger.info(f"[Session] Join denied for user {session.user_id}: {exc}")
            await session.send(error_frame("Access denied to this chat"))
            return False
        except PersistenceError as exc:
            logger.error(f"[Session] Join lookup failed for connection {connection_id}: {exc}")
            await session.send(error_frame("Could not join this chat"))
            return False

        room = room_name(connection_id)
        self.rooms.join(room, session)
        logger.info(f"[Session] User {session.user_id} joined room {room}")
        return True

    async def leave_room(self, session: ChatSession, connection_id: int) -> None:
        if not session.is_authenticated:
            return
        room = room_name(connection_id)
        self.rooms.leave(room, session)
        logger.info(f"[Session] User {session.user_id} left room {room}")

    async def disconnect(self, session: ChatSession) -> None:
        """Tear a session down; safe to call more than once."""
        if session.state is SessionState.TERMINATED:
            return
        session.state = SessionState.TERMINATED
        self.rooms.leave_all(session)
        if session.user_id is not None:
            await self.presence.unregister_connection(session.user_id, session.id)
            logger.info(f"[Session] User {session.user_id} disconnected ({session.id})")
