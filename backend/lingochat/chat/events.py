"""Wire protocol for the realtime chat socket.

Every frame in either direction is a JSON object::

    {"event": "<name>", "data": {...}}

The envelope keeps a message's own ``type`` field (text/image) apart from the
event name.

Inbound events form a closed set parsed into one of the models below via a
discriminated union; the gateway dispatches on the model class.

    join_room     {connectionId}
    leave_room    {connectionId}
    send_message  {connectionId, content, type?}
    typing        {connectionId, isTyping}
    mark_read     {connectionId, messageIds?}

Outbound events:

    error          {message}
    new_message    {id, connection_id, sender_id, content, type, created_at,
                    is_flagged, is_read, read_at}
    user_typing    {userId, isTyping}
    messages_read  {connectionId, readBy, readAt, messageIds}
"""
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from lingochat.store.schemas import MessageKind


class OutboundEvent(str, Enum):
    """Names of events the server emits."""
    ERROR = "error"
    NEW_MESSAGE = "new_message"
    USER_TYPING = "user_typing"
    MESSAGES_READ = "messages_read"


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    connection_id: int = Field(..., alias="connectionId")


class JoinRoom(_Inbound):
    event: Literal["join_room"] = "join_room"


class LeaveRoom(_Inbound):
    event: Literal["leave_room"] = "leave_room"


class SendMessage(_Inbound):
    event: Literal["send_message"] = "send_message"
    content: str
    type: MessageKind = MessageKind.TEXT

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> Any:
        # Clients may send an explicit null or empty string for plain text
        return value or MessageKind.TEXT


class Typing(_Inbound):
    event: Literal["typing"] = "typing"
    is_typing: bool = Field(..., alias="isTyping")


class MarkRead(_Inbound):
    event: Literal["mark_read"] = "mark_read"
    message_ids: Optional[List[int]] = Field(default=None, alias="messageIds")


InboundEvent = Annotated[
    Union[JoinRoom, LeaveRoom, SendMessage, Typing, MarkRead],
    Field(discriminator="event"),
]

_inbound_adapter = TypeAdapter(InboundEvent)


def parse_event(frame: Any) -> Union[JoinRoom, LeaveRoom, SendMessage, Typing, MarkRead]:
    """Parse a raw frame into an inbound event model.

    Raises:
        pydantic.ValidationError: Unknown event name or malformed payload.
        ValueError: Frame is not an object.
    """
    if not isinstance(frame, dict):
        raise ValueError("Frame must be a JSON object")
    data = frame.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("Frame data must be a JSON object")
    return _inbound_adapter.validate_python({**data, "event": frame.get("event")})


def envelope(event: OutboundEvent, data: dict) -> dict:
    """Wrap an outbound payload in the wire envelope."""
    return {"event": event.value, "data": data}


def error_frame(message: str) -> dict:
    return envelope(OutboundEvent.ERROR, {"message": message})
