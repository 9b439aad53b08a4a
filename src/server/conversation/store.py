from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Optional
from uuid import uuid4

from .base import PREVIEW_LENGTH, ConversationStore, parse_ts, utc_now_str
from .models import ConversationRecord, FileRecord, MessageRecord

logger = logging.getLogger(__name__)


_CONVERSATIONS_DDL = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    thread_id TEXT NOT NULL UNIQUE,
    assistant_id TEXT,
    title TEXT,
    last_message_preview TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    archived INTEGER NOT NULL DEFAULT 0
);
"""

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    remote_message_id TEXT,
    seq INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);
"""

_FILES_DDL = """
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    assistant_id TEXT,
    remote_file_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    purpose TEXT NOT NULL,
    bytes INTEGER,
    created_at TEXT NOT NULL
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_conversations_user_updated ON conversations(user_id, updated_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation_seq ON messages(conversation_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_files_assistant ON files(assistant_id);",
]

_CONVERSATION_COLUMNS = (
    "id, user_id, thread_id, assistant_id, title, last_message_preview, created_at, updated_at, archived"
)
_MESSAGE_COLUMNS = "id, conversation_id, role, content, remote_message_id, seq, created_at"
_FILE_COLUMNS = "id, user_id, assistant_id, remote_file_id, filename, purpose, bytes, created_at"


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed repository for conversations, messages and uploaded files."""

    def __init__(self, db_path: str) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.suffix != ".db":
            path = path.with_suffix(".db")
        self._db_path = str(path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def init(self) -> None:
        """Initialise database schema."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with sqlite3.connect(self._db_path) as connection:
                _ensure_pragmas(connection)
                connection.execute(_CONVERSATIONS_DDL)
                connection.execute(_MESSAGES_DDL)
                connection.execute(_FILES_DDL)
                for statement in _CREATE_INDEXES:
                    connection.execute(statement)
                connection.commit()

        await asyncio.to_thread(_init)
        logger.info("Conversation database initialised at %s", self._db_path)

    async def create_conversation(
        self,
        *,
        user_id: str,
        thread_id: str,
        assistant_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConversationRecord:
        conversation_id = uuid4().hex
        now = utc_now_str()

        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO conversations ({_CONVERSATION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)",
                (conversation_id, user_id, thread_id, assistant_id, title, None, now, now),
            )

        return ConversationRecord(
            id=conversation_id,
            user_id=user_id,
            thread_id=thread_id,
            assistant_id=assistant_id,
            title=title,
            created_at=parse_ts(now),
            updated_at=parse_ts(now),
            archived=False,
            last_message_preview=None,
        )

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
            (conversation_id,),
        )
        return self._row_to_conversation(row)

    async def get_conversation_by_thread(self, thread_id: str) -> Optional[ConversationRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE thread_id = ?",
            (thread_id,),
        )
        return self._row_to_conversation(row)

    async def list_conversations(
        self, *, user_id: Optional[str] = None, include_archived: bool = False
    ) -> list[ConversationRecord]:
        conditions: list[str] = []
        params: list[object] = []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if not include_archived:
            conditions.append("archived = 0")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations {where} ORDER BY updated_at DESC, rowid DESC",
            tuple(params),
        )
        return [self._row_to_conversation(row) for row in rows]

    async def append_message(
        self,
        *,
        conversation_id: str,
        role: str,
        content: str,
        remote_message_id: Optional[str] = None,
    ) -> MessageRecord:
        message_id = uuid4().hex
        now = utc_now_str()

        async with self._write_lock:
            def _insert() -> int:
                with sqlite3.connect(self._db_path) as connection:
                    connection.row_factory = sqlite3.Row
                    _ensure_pragmas(connection)

                    cursor = connection.execute(
                        "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE conversation_id = ?",
                        (conversation_id,),
                    )
                    next_seq = int(cursor.fetchone()["max_seq"] or 0) + 1

                    connection.execute(
                        f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (message_id, conversation_id, role, content, remote_message_id, next_seq, now),
                    )
                    connection.execute(
                        "UPDATE conversations SET updated_at = ?, last_message_preview = ? WHERE id = ?",
                        (now, content[:PREVIEW_LENGTH], conversation_id),
                    )
                    connection.commit()
                    return next_seq

            seq = await asyncio.to_thread(_insert)

        return MessageRecord(
            id=message_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            remote_message_id=remote_message_id,
            seq=seq,
            created_at=parse_ts(now),
        )

    async def get_messages(self, conversation_id: str) -> list[MessageRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? ORDER BY seq ASC",
            (conversation_id,),
        )
        return [
            MessageRecord(
                id=row["id"],
                conversation_id=row["conversation_id"],
                role=row["role"],
                content=row["content"],
                remote_message_id=row["remote_message_id"],
                seq=row["seq"],
                created_at=parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    async def rename_conversation(self, conversation_id: str, title: str) -> ConversationRecord:
        now = utc_now_str()
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                (title, now, conversation_id),
            )
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise ValueError(f"Conversation {conversation_id} not found after rename")
        return conversation

    async def set_archived(self, conversation_id: str, archived: bool) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE conversations SET archived = ? WHERE id = ?",
                (1 if archived else 0, conversation_id),
            )

    async def record_file(
        self,
        *,
        user_id: str,
        remote_file_id: str,
        filename: str,
        purpose: str,
        size: Optional[int] = None,
        assistant_id: Optional[str] = None,
    ) -> FileRecord:
        record_id = uuid4().hex
        now = utc_now_str()
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO files ({_FILE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (record_id, user_id, assistant_id, remote_file_id, filename, purpose, size, now),
            )
        return FileRecord(
            id=record_id,
            user_id=user_id,
            assistant_id=assistant_id,
            remote_file_id=remote_file_id,
            filename=filename,
            purpose=purpose,
            bytes=size,
            created_at=parse_ts(now),
        )

    async def list_files(
        self, *, user_id: Optional[str] = None, assistant_id: Optional[str] = None
    ) -> list[FileRecord]:
        conditions: list[str] = []
        params: list[object] = []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if assistant_id is not None:
            conditions.append("assistant_id = ?")
            params.append(assistant_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_FILE_COLUMNS} FROM files {where} ORDER BY created_at DESC, rowid DESC",
            tuple(params),
        )
        return [
            FileRecord(
                id=row["id"],
                user_id=row["user_id"],
                assistant_id=row["assistant_id"],
                remote_file_id=row["remote_file_id"],
                filename=row["filename"],
                purpose=row["purpose"],
                bytes=row["bytes"],
                created_at=parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    def _execute(self, query: str, params: tuple = ()) -> None:
        with sqlite3.connect(self._db_path) as connection:
            _ensure_pragmas(connection)
            connection.execute(query, params)
            connection.commit()

    def _fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchall()

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchone()

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row | None) -> Optional[ConversationRecord]:
        if row is None:
            return None
        return ConversationRecord(
            id=row["id"],
            user_id=row["user_id"],
            thread_id=row["thread_id"],
            assistant_id=row["assistant_id"],
            title=row["title"],
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
            archived=bool(row["archived"]),
            last_message_preview=row["last_message_preview"],
        )
