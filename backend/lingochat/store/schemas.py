"""Pydantic records returned by the chat store.

These mirror the rows of the durable tables. The wire format (ISO timestamps,
snake_case keys) is produced by the ``to_wire`` helpers so the realtime
gateway and the REST routers emit identical shapes.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a naive-UTC or aware datetime as ``2024-01-01T10:00:00.000Z``."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow() -> datetime:
    """Naive UTC now; DuckDB TIMESTAMP columns carry no zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ConnectionStatus(str, Enum):
    """Lifecycle of a social connection between two users."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class MessageKind(str, Enum):
    """Content type of a chat message."""
    TEXT = "text"
    IMAGE = "image"


class User(BaseModel):
    id: int
    name: str = ""
    is_online: bool = False
    last_active: Optional[datetime] = None


class SocialConnection(BaseModel):
    """Durable pairing of two users; its id names the chat room."""
    id: int
    user_a_id: int
    user_b_id: int
    status: ConnectionStatus
    created_at: datetime

    def has_party(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def partner_of(self, user_id: int) -> int:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id


class Message(BaseModel):
    id: int
    connection_id: int
    sender_id: int
    content: str
    type: MessageKind = MessageKind.TEXT
    created_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_flagged: bool = False

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "type": self.type.value,
            "created_at": isoformat_utc(self.created_at),
            "is_flagged": self.is_flagged,
            "is_read": self.is_read,
            "read_at": isoformat_utc(self.read_at),
        }


class Correction(BaseModel):
    """A peer's alternative phrasing of someone else's message."""
    id: int
    message_id: int
    corrector_id: int
    original_text: str
    corrected_text: str = Field(..., min_length=1)
    explanation: Optional[str] = None
    created_at: datetime

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "message_id": self.message_id,
            "corrector_id": self.corrector_id,
            "original_text": self.original_text,
            "corrected_text": self.corrected_text,
            "explanation": self.explanation,
            "created_at": isoformat_utc(self.created_at),
        }
