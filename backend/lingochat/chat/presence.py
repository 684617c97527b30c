"""Per-user presence derived from open realtime connections.

A user is online while at least one of their sockets is registered. Closing
one socket of several (phone plus laptop) keeps the user online.

The durable ``is_online`` / ``last_active`` columns are a best-effort mirror
written only on offline<->online transitions. Mirror failures are logged and
dropped: presence must never block chat.

State is process-local. Running more than one worker needs a shared
key-value backend behind this same interface.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Set

from lingochat.store.base import ChatStore
from lingochat.store.schemas import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PresenceEntry:
    """Open connections of one user.

    Attributes:
        connection_ids: Ids of the user's registered realtime connections.
        since: UTC time the user came online.
    """
    connection_ids: Set[str] = field(default_factory=set)
    since: datetime = field(default_factory=utcnow)


class PresenceTracker:
    """Maps user ids to their open realtime connections.

    Args:
        store: Data layer used for the durable mirror, or None to skip it.
        mirror_enabled: Turn the durable mirror off without dropping the store.
    """

    def __init__(self, store: Optional[ChatStore] = None, mirror_enabled: bool = True) -> None:
        self._store = store
        self._mirror_enabled = mirror_enabled
        self._entries: Dict[int, PresenceEntry] = {}

    async def register_connection(self, user_id: int, connection_id: str) -> bool:
        """Add a connection for a user.

        Returns:
            True if this made the user go online.
        """
        entry = self._entries.get(user_id)
        came_online = entry is None
        if entry is None:
            entry = self._entries[user_id] = PresenceEntry()
        entry.connection_ids.add(connection_id)

        if came_online:
            logger.info(f"[Presence] User {user_id} online (connection {connection_id})")
            await self._mirror(user_id, online=True)
        return came_online

    async def unregister_connection(self, user_id: int, connection_id: str) -> bool:
        """Remove a connection for a user; unknown ids are ignored.

        Returns:
            True if this made the user go offline.
        """
        entry = self._entries.get(user_id)
        if entry is None or connection_id not in entry.connection_ids:
            return False

        entry.connection_ids.discard(connection_id)
        if entry.connection_ids:
            return False

        del self._entries[user_id]
        logger.info(f"[Presence] User {user_id} offline")
        await self._mirror(user_id, online=False)
        return True

    def is_online(self, user_id: int) -> bool:
        return user_id in self._entries

    def connection_ids(self, user_id: int) -> Set[str]:
        entry = self._entries.get(user_id)
        return set(entry.connection_ids) if entry else set()

    def online_since(self, user_id: int) -> Optional[datetime]:
        entry = self._entries.get(user_id)
        return entry.since if entry else None

    async def _mirror(self, user_id: int, online: bool) -> None:
        if self._store is None or not self._mirror_enabled:
            return
        try:
            await self._store.update_user(
                user_id, {"is_online": online, "last_active": utcnow()}
            )
        except Exception as exc:
            logger.warning(f"[Presence] Could not mirror presence for user {user_id}: {exc}")
