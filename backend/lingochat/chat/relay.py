"""Message relay: persist chat messages and fan events out to rooms.

Access is checked on every send and mark-read, never cached from join time,
so blocking a connection takes effect on the next event. Joining a room is
only needed to *receive* broadcasts: a session that never joined can still
send, it just won't see its own echo.

Senders get their message back through the room broadcast (not a local
copy); clients de-duplicate by message id, which is also the ordering key.
"""
import logging
from typing import Iterable, List, Optional

from lingochat.store.base import ChatStore
from lingochat.store.schemas import Message, MessageKind, utcnow, isoformat_utc

from .errors import ChatError, PersistenceError
from .events import OutboundEvent, envelope
from .rooms import RoomManager, room_name
from .session import ChatSession, authorize_room_access

logger = logging.getLogger(__name__)


class MessageRelay:
    """Validates, persists and broadcasts chat events.

    Args:
        store: Data layer for messages and access checks.
        rooms: Room registry used for broadcast.
        max_message_length: Upper bound on message content length.
    """

    def __init__(self, store: ChatStore, rooms: RoomManager, max_message_length: int = 2000) -> None:
        self.store = store
        self.rooms = rooms
        self.max_message_length = max_message_length

    def validate_content(self, content: str) -> str:
        """Reject empty or oversized content.

        Raises:
            ChatError: With a message suitable for the client.
        """
        if not content or not content.strip():
            raise ChatError("Message content is required")
        if len(content) > self.max_message_length:
            raise ChatError(f"Message exceeds {self.max_message_length} characters")
        return content

    async def send_message(
        self,
        sender_id: int,
        connection_id: int,
        content: str,
        type_: MessageKind = MessageKind.TEXT,
    ) -> Message:
        """Persist a message and broadcast it to the whole room, sender included.

        Raises:
            AuthorizationError: Sender may not chat in this connection.
            ChatError: Content failed validation.
            PersistenceError: The store could not save the message.
        """
        await authorize_room_access(self.store, sender_id, connection_id)
        self.validate_content(content)

        try:
            message = await self.store.create_message(
                connection_id, sender_id, content, type_ or MessageKind.TEXT
            )
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

        room = room_name(connection_id)
        delivered = await self.rooms.broadcast(
            room, envelope(OutboundEvent.NEW_MESSAGE, message.to_wire())
        )
        logger.info(
            f"[Relay] Message {message.id} from user {sender_id} in {room} "
            f"delivered to {delivered} session(s)"
        )
        return message

    async def typing(self, session: ChatSession, connection_id: int, is_typing: bool) -> bool:
        """Relay a typing indicator to the room, minus the sending session.

        Sessions that are not members of the room are ignored silently.
        """
        room = room_name(connection_id)
        if not self.rooms.is_member(room, session):
            logger.debug(f"[Relay] Typing from non-member {session.id} in {room} ignored")
            return False
        await self.rooms.broadcast(
            room,
            envelope(
                OutboundEvent.USER_TYPING,
                {"userId": session.user_id, "isTyping": is_typing},
            ),
            exclude=session,
        )
        return True

    async def mark_read(
        self,
        reader_id: int,
        connection_id: int,
        message_ids: Optional[Iterable[int]] = None,
    ) -> List[int]:
        """Mark the partner's unread messages as read and notify the room.

        Messages the reader sent are never touched, even when listed in
        ``message_ids``. The receipt goes to every session in the room except
        the reader's own.

        Returns:
            Ids of the messages that changed.

        Raises:
            AuthorizationError: Reader may not access this connection.
        """
        await authorize_room_access(self.store, reader_id, connection_id)

        read_at = utcnow()
        changed = await self.store.mark_messages_read(
            connection_id, reader_id, read_at, message_ids
        )
        if not changed:
            return changed

        await self.rooms.broadcast(
            room_name(connection_id),
            envelope(
                OutboundEvent.MESSAGES_READ,
                {
                    "connectionId": connection_id,
                    "readBy": reader_id,
                    "readAt": isoformat_utc(read_at),
                    "messageIds": changed,
                },
            ),
            exclude_user_id=reader_id,
        )
        logger.info(f"[Relay] User {reader_id} read {len(changed)} message(s) in connection {connection_id}")
        return changed
