"""Durable data-access layer for users, connections, messages and corrections.

Services:
    - ChatStore: abstract async interface consumed by the chat core.
    - DuckDBChatStore: embedded DuckDB implementation.
"""
from .base import ChatStore
from .duckdb_store import DuckDBChatStore
from .schemas import (
    ConnectionStatus,
    Correction,
    Message,
    MessageKind,
    SocialConnection,
    User,
)

__all__ = [
    "ChatStore",
    "ConnectionStatus",
    "Correction",
    "DuckDBChatStore",
    "Message",
    "MessageKind",
    "SocialConnection",
    "User",
]
