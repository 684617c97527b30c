"""Conversation rooms: which realtime sessions receive a conversation's events.

A room is named after the social connection it belongs to
(``connection_<id>``). Membership is in-memory and owned by one RoomManager
instance; the durable store is never consulted here.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent delivery
    - Sessions whose send fails are dropped from the room during broadcast
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .session import ChatSession

logger = logging.getLogger(__name__)


def room_name(connection_id: int) -> str:
    """Broadcast group name for a social connection."""
    return f"connection_{connection_id}"


class RoomManager:
    """Tracks room membership of realtime sessions and fans out frames.

    Thread Safety:
        Designed for a single event loop; not safe across threads.
    """

    def __init__(self) -> None:
        # room name -> {session id -> session}, insertion ordered
        self.rooms: Dict[str, Dict[str, "ChatSession"]] = {}

    def join(self, room: str, session: "ChatSession") -> None:
        self.rooms.setdefault(room, {})[session.id] = session
        session.rooms.add(room)

    def leave(self, room: str, session: "ChatSession") -> None:
        """Remove a session from a room; leaving a room you are not in is fine."""
        members = self.rooms.get(room)
        if members is not None:
            members.pop(session.id, None)
            if not members:
                del self.rooms[room]
        session.rooms.discard(room)

    def leave_all(self, session: "ChatSession") -> None:
        for room in list(session.rooms):
            self.leave(room, session)

    def members(self, room: str) -> List["ChatSession"]:
        return list(self.rooms.get(room, {}).values())

    def is_member(self, room: str, session: "ChatSession") -> bool:
        return session.id in self.rooms.get(room, {})

    def get_room_size(self, room: str) -> int:
        """Get the number of sessions in a room."""
        return len(self.rooms.get(room, {}))

    async def broadcast(
        self,
        room: str,
        frame: dict,
        exclude: Optional["ChatSession"] = None,
        exclude_user_id: Optional[int] = None,
    ) -> int:
        """Send a frame to every session in a room concurrently.

        Args:
            room: Room to broadcast to.
            frame: JSON-serializable frame.
            exclude: A single session to skip (typing indicators).
            exclude_user_id: Skip every session of this user (read receipts).

        Returns:
            Number of sessions the frame was delivered to.
        """
        targets = [
            member for member in self.members(room)
            if member is not exclude
            and (exclude_user_id is None or member.user_id != exclude_user_id)
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(member, frame) for member in targets],
            return_exceptions=True,
        )

        failed = [member for member, ok in zip(targets, results) if ok is not True]
        for member in failed:
            self.leave(room, member)
            logger.debug(f"[Rooms] Removed dead session {member.id} from {room}")
        return len(targets) - len(failed)

    async def _safe_send(self, session: "ChatSession", frame: dict) -> bool:
        try:
            await session.send(frame)
            return True
        except Exception as e:
            logger.debug(f"[Rooms] Failed to send to session {session.id}: {e}")
            return False
