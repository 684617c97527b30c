"""ChatStore abstract interface for the durable data-access layer.

The realtime core only needs four calls (find a connection, create a message,
flip read-state, patch a user). The remaining methods back the REST routers
and test seeding. Every method is a coroutine so a network-backed store can
be dropped in without changing callers; each await is a point where the event
loop may run another socket's handler.

Usage:
    from lingochat.store import DuckDBChatStore

    store = DuckDBChatStore(db_path=":memory:")
    conn = await store.find_connection(7)
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .schemas import (
    ConnectionStatus,
    Correction,
    Message,
    MessageKind,
    SocialConnection,
    User,
)


class ChatStore(ABC):
    """Abstract base class for chat persistence backends."""

    # -- used by the realtime core ------------------------------------------

    @abstractmethod
    async def find_connection(self, connection_id: int) -> Optional[SocialConnection]:
        """Look up a social connection by id, or None."""

    @abstractmethod
    async def create_message(
        self,
        connection_id: int,
        sender_id: int,
        content: str,
        type_: MessageKind = MessageKind.TEXT,
    ) -> Message:
        """Persist a new unread message and return it with its assigned id."""

    @abstractmethod
    async def mark_messages_read(
        self,
        connection_id: int,
        reader_id: int,
        read_at: datetime,
        message_ids: Optional[Iterable[int]] = None,
    ) -> List[int]:
        """Mark unread messages sent to ``reader_id`` as read.

        Only messages of ``connection_id`` whose sender is not the reader are
        touched. When ``message_ids`` is given the update is further limited
        to those ids.

        Returns:
            Ids of the messages that changed, ascending.
        """

    @abstractmethod
    async def update_user(self, user_id: int, patch: Dict[str, Any]) -> None:
        """Apply a partial update to a user record."""

    # -- used by REST routers and seeding -----------------------------------

    @abstractmethod
    async def create_user(self, name: str, user_id: Optional[int] = None) -> User:
        """Create a user record."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]:
        """Return a user, or None."""

    @abstractmethod
    async def create_connection(
        self,
        user_a_id: int,
        user_b_id: int,
        status: ConnectionStatus = ConnectionStatus.PENDING,
    ) -> SocialConnection:
        """Create a connection; raises ValueError if the pair already has one."""

    @abstractmethod
    async def set_connection_status(
        self, connection_id: int, status: ConnectionStatus
    ) -> Optional[SocialConnection]:
        """Change a connection's status and return it, or None if absent."""

    @abstractmethod
    async def get_message(self, message_id: int) -> Optional[Message]:
        """Return a message, or None."""

    @abstractmethod
    async def list_messages(self, connection_id: int) -> List[Message]:
        """Return all messages of a connection, oldest first."""

    @abstractmethod
    async def count_unread(self, connection_id: int, reader_id: int) -> int:
        """Count unread messages sent to ``reader_id`` in a connection."""

    @abstractmethod
    async def count_unread_total(self, reader_id: int) -> int:
        """Count unread messages sent to ``reader_id`` across accepted connections."""

    @abstractmethod
    async def create_correction(
        self,
        message_id: int,
        corrector_id: int,
        original_text: str,
        corrected_text: str,
        explanation: Optional[str] = None,
    ) -> Correction:
        """Persist a correction."""

    @abstractmethod
    async def get_correction(self, correction_id: int) -> Optional[Correction]:
        """Return a correction, or None."""

    @abstractmethod
    async def list_corrections(self, message_id: int) -> List[Correction]:
        """Return corrections of a message, newest first."""

    @abstractmethod
    async def list_corrections_received(self, sender_id: int, limit: int = 50) -> List[Correction]:
        """Return corrections made to messages ``sender_id`` sent, newest first."""

    @abstractmethod
    async def delete_correction(self, correction_id: int) -> bool:
        """Delete a correction; True if a row was removed."""

    def close(self) -> None:
        """Release backend resources."""
