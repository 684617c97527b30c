"""Exception hierarchy for the realtime chat core.

Only the human-readable message of an error ever reaches a client; there are
no structured error codes on the wire.
"""


class ChatError(Exception):
    """Base class for chat failures."""


class AuthenticationError(ChatError):
    """Missing, malformed, expired or otherwise invalid bearer credential.

    Fatal for a realtime connection: the socket is closed during the handshake.
    """


class AuthorizationError(ChatError):
    """Caller may not act on the conversation.

    Also raised when the conversation does not exist, so callers cannot tell
    a missing conversation from one they are not part of.
    """


class NotFoundError(ChatError):
    """Referenced record is absent (REST surface only)."""


class PersistenceError(ChatError):
    """A durable-store call failed."""
