"""DuckDB-backed implementation of the chat store.

Database Schema:
    users:       id, name, is_online, last_active
    connections: id, user_a_id, user_b_id, status, created_at
    messages:    id, connection_id, sender_id, content, type, created_at,
                 is_read, read_at, is_flagged
    corrections: id, message_id, corrector_id, original_text,
                 corrected_text, explanation, created_at

Ids come from per-table sequences, so message ids increase strictly in
insertion order and double as the ordering key clients sort by.

Thread Safety:
    A single DuckDB connection is shared and guarded by a lock. Calls are
    synchronous (DuckDB is embedded and very fast for chat-sized rows); the
    coroutine wrappers exist to satisfy the ChatStore interface.

Usage:
    store = DuckDBChatStore(db_path=":memory:")
    msg = await store.create_message(7, sender_id=1, content="hola")
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import duckdb

from lingochat.chat.errors import PersistenceError

from .base import ChatStore
from .schemas import (
    ConnectionStatus,
    Correction,
    Message,
    MessageKind,
    SocialConnection,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)

_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS connections_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS corrections_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id          INTEGER PRIMARY KEY,
        name        VARCHAR NOT NULL DEFAULT '',
        is_online   BOOLEAN NOT NULL DEFAULT FALSE,
        last_active TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS connections (
        id         INTEGER DEFAULT nextval('connections_seq') PRIMARY KEY,
        user_a_id  INTEGER NOT NULL,
        user_b_id  INTEGER NOT NULL,
        status     VARCHAR NOT NULL DEFAULT 'pending',
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id            INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        connection_id INTEGER NOT NULL,
        sender_id     INTEGER NOT NULL,
        content       VARCHAR NOT NULL,
        type          VARCHAR NOT NULL DEFAULT 'text',
        created_at    TIMESTAMP NOT NULL,
        is_read       BOOLEAN NOT NULL DEFAULT FALSE,
        read_at       TIMESTAMP,
        is_flagged    BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS corrections (
        id             INTEGER DEFAULT nextval('corrections_seq') PRIMARY KEY,
        message_id     INTEGER NOT NULL,
        corrector_id   INTEGER NOT NULL,
        original_text  VARCHAR NOT NULL,
        corrected_text VARCHAR NOT NULL,
        explanation    VARCHAR,
        created_at     TIMESTAMP NOT NULL
    )
    """,
]

_USER_COLUMNS = "id, name, is_online, last_active"
_CONNECTION_COLUMNS = "id, user_a_id, user_b_id, status, created_at"
_MESSAGE_COLUMNS = (
    "id, connection_id, sender_id, content, type, created_at, "
    "is_read, read_at, is_flagged"
)
_CORRECTION_COLUMNS = (
    "id, message_id, corrector_id, original_text, corrected_text, "
    "explanation, created_at"
)

# Columns a caller may patch through update_user()
_USER_PATCHABLE = {"name", "is_online", "last_active"}


class DuckDBChatStore(ChatStore):
    """Chat persistence on an embedded DuckDB database.

    Attributes:
        _db_path: Path to the DuckDB file, or ":memory:".
    """

    _default_db_path: str = "lingochat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        self._lock = threading.Lock()
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(self._db_path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("[ChatStore] Initialized with db=%s", self._db_path)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _execute(self, sql: str, params: Optional[list] = None) -> None:
        if self._conn is None:
            raise PersistenceError("Chat store is closed")
        try:
            with self._lock:
                self._conn.execute(sql, params or [])
        except duckdb.Error as exc:
            logger.error("[ChatStore] Query failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    def _fetchone(self, sql: str, params: Optional[list] = None):
        if self._conn is None:
            raise PersistenceError("Chat store is closed")
        try:
            with self._lock:
                return self._conn.execute(sql, params or []).fetchone()
        except duckdb.Error as exc:
            logger.error("[ChatStore] Query failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    def _fetchall(self, sql: str, params: Optional[list] = None) -> list:
        if self._conn is None:
            raise PersistenceError("Chat store is closed")
        try:
            with self._lock:
                return self._conn.execute(sql, params or []).fetchall()
        except duckdb.Error as exc:
            logger.error("[ChatStore] Query failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    @staticmethod
    def _row_to_user(row) -> User:
        return User(id=row[0], name=row[1], is_online=row[2], last_active=row[3])

    @staticmethod
    def _row_to_connection(row) -> SocialConnection:
        return SocialConnection(
            id=row[0],
            user_a_id=row[1],
            user_b_id=row[2],
            status=ConnectionStatus(row[3]),
            created_at=row[4],
        )

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row[0],
            connection_id=row[1],
            sender_id=row[2],
            content=row[3],
            type=MessageKind(row[4]),
            created_at=row[5],
            is_read=row[6],
            read_at=row[7],
            is_flagged=row[8],
        )

    @staticmethod
    def _row_to_correction(row) -> Correction:
        return Correction(
            id=row[0],
            message_id=row[1],
            corrector_id=row[2],
            original_text=row[3],
            corrected_text=row[4],
            explanation=row[5],
            created_at=row[6],
        )

    # -----------------------------------------------------------------------
    # Realtime core
    # -----------------------------------------------------------------------

    async def find_connection(self, connection_id: int) -> Optional[SocialConnection]:
        row = self._fetchone(
            f"SELECT {_CONNECTION_COLUMNS} FROM connections WHERE id = ?",
            [connection_id],
        )
        return self._row_to_connection(row) if row else None

    async def create_message(
        self,
        connection_id: int,
        sender_id: int,
        content: str,
        type_: MessageKind = MessageKind.TEXT,
    ) -> Message:
        row = self._fetchone(
            f"""
            INSERT INTO messages (connection_id, sender_id, content, type, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING {_MESSAGE_COLUMNS}
            """,
            [connection_id, sender_id, content, MessageKind(type_).value, utcnow()],
        )
        return self._row_to_message(row)

    async def mark_messages_read(
        self,
        connection_id: int,
        reader_id: int,
        read_at: datetime,
        message_ids: Optional[Iterable[int]] = None,
    ) -> List[int]:
        sql = """
            UPDATE messages SET is_read = TRUE, read_at = ?
            WHERE connection_id = ? AND sender_id <> ? AND is_read = FALSE
        """
        params: list = [read_at, connection_id, reader_id]
        if message_ids is not None:
            ids = sorted(set(message_ids))
            if not ids:
                return []
            sql += f" AND id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        rows = self._fetchall(sql + " RETURNING id", params)
        return sorted(row[0] for row in rows)

    async def update_user(self, user_id: int, patch: Dict[str, Any]) -> None:
        fields = {k: v for k, v in patch.items() if k in _USER_PATCHABLE}
        if not fields:
            return
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        self._execute(
            f"UPDATE users SET {set_clause} WHERE id = ?",
            list(fields.values()) + [user_id],
        )

    # -----------------------------------------------------------------------
    # Users and connections
    # -----------------------------------------------------------------------

    async def create_user(self, name: str, user_id: Optional[int] = None) -> User:
        if user_id is None:
            row = self._fetchone(
                f"INSERT INTO users (id, name) VALUES (nextval('users_seq'), ?) "
                f"RETURNING {_USER_COLUMNS}",
                [name],
            )
        else:
            row = self._fetchone(
                f"INSERT INTO users (id, name) VALUES (?, ?) RETURNING {_USER_COLUMNS}",
                [user_id, name],
            )
        return self._row_to_user(row)

    async def get_user(self, user_id: int) -> Optional[User]:
        row = self._fetchone(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", [user_id])
        return self._row_to_user(row) if row else None

    async def create_connection(
        self,
        user_a_id: int,
        user_b_id: int,
        status: ConnectionStatus = ConnectionStatus.PENDING,
    ) -> SocialConnection:
        if user_a_id == user_b_id:
            raise ValueError("A user cannot connect to themselves")
        existing = self._fetchone(
            """
            SELECT id FROM connections
            WHERE (user_a_id = ? AND user_b_id = ?) OR (user_a_id = ? AND user_b_id = ?)
            """,
            [user_a_id, user_b_id, user_b_id, user_a_id],
        )
        if existing:
            raise ValueError("Connection already exists")
        row = self._fetchone(
            f"""
            INSERT INTO connections (user_a_id, user_b_id, status, created_at)
            VALUES (?, ?, ?, ?)
            RETURNING {_CONNECTION_COLUMNS}
            """,
            [user_a_id, user_b_id, ConnectionStatus(status).value, utcnow()],
        )
        return self._row_to_connection(row)

    async def set_connection_status(
        self, connection_id: int, status: ConnectionStatus
    ) -> Optional[SocialConnection]:
        row = self._fetchone(
            f"UPDATE connections SET status = ? WHERE id = ? RETURNING {_CONNECTION_COLUMNS}",
            [ConnectionStatus(status).value, connection_id],
        )
        return self._row_to_connection(row) if row else None

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    async def get_message(self, message_id: int) -> Optional[Message]:
        row = self._fetchone(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", [message_id]
        )
        return self._row_to_message(row) if row else None

    async def list_messages(self, connection_id: int) -> List[Message]:
        rows = self._fetchall(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE connection_id = ? ORDER BY id ASC",
            [connection_id],
        )
        return [self._row_to_message(r) for r in rows]

    async def count_unread(self, connection_id: int, reader_id: int) -> int:
        row = self._fetchone(
            """
            SELECT COUNT(*) FROM messages
            WHERE connection_id = ? AND sender_id <> ? AND is_read = FALSE
            """,
            [connection_id, reader_id],
        )
        return int(row[0])

    async def count_unread_total(self, reader_id: int) -> int:
        row = self._fetchone(
            """
            SELECT COUNT(*) FROM messages m
            JOIN connections c ON c.id = m.connection_id
            WHERE (c.user_a_id = ? OR c.user_b_id = ?)
              AND c.status = 'accepted'
              AND m.sender_id <> ? AND m.is_read = FALSE
            """,
            [reader_id, reader_id, reader_id],
        )
        return int(row[0])

    # -----------------------------------------------------------------------
    # Corrections
    # -----------------------------------------------------------------------

    async def create_correction(
        self,
        message_id: int,
        corrector_id: int,
        original_text: str,
        corrected_text: str,
        explanation: Optional[str] = None,
    ) -> Correction:
        row = self._fetchone(
            f"""
            INSERT INTO corrections
              (message_id, corrector_id, original_text, corrected_text, explanation, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING {_CORRECTION_COLUMNS}
            """,
            [message_id, corrector_id, original_text, corrected_text, explanation, utcnow()],
        )
        return self._row_to_correction(row)

    async def get_correction(self, correction_id: int) -> Optional[Correction]:
        row = self._fetchone(
            f"SELECT {_CORRECTION_COLUMNS} FROM corrections WHERE id = ?", [correction_id]
        )
        return self._row_to_correction(row) if row else None

    async def list_corrections(self, message_id: int) -> List[Correction]:
        rows = self._fetchall(
            f"""
            SELECT {_CORRECTION_COLUMNS} FROM corrections
            WHERE message_id = ? ORDER BY created_at DESC, id DESC
            """,
            [message_id],
        )
        return [self._row_to_correction(r) for r in rows]

    async def list_corrections_received(self, sender_id: int, limit: int = 50) -> List[Correction]:
        columns = ", ".join(f"c.{col.strip()}" for col in _CORRECTION_COLUMNS.split(","))
        rows = self._fetchall(
            f"""
            SELECT {columns} FROM corrections c
            JOIN messages m ON m.id = c.message_id
            WHERE m.sender_id = ?
            ORDER BY c.created_at DESC, c.id DESC
            LIMIT ?
            """,
            [sender_id, limit],
        )
        return [self._row_to_correction(r) for r in rows]

    async def delete_correction(self, correction_id: int) -> bool:
        row = self._fetchone(
            "DELETE FROM corrections WHERE id = ? RETURNING id", [correction_id]
        )
        return row is not None

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
