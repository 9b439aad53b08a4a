"""Single-file JSON conversation store for single-tenant deployments."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from .base import PREVIEW_LENGTH, ConversationStore, parse_ts, utc_now_str
from .models import ConversationRecord, FileRecord, MessageRecord

logger = logging.getLogger(__name__)


def _empty_document() -> dict[str, Any]:
    return {"conversations": {}, "messages": {}, "files": []}


class JSONConversationStore(ConversationStore):
    """Keeps the whole store in one JSON document, rewritten atomically on every change."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def init(self) -> None:
        def _init() -> None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                self._write(_empty_document())

        await asyncio.to_thread(_init)
        logger.info("JSON conversation store initialised at %s", self._path)

    async def create_conversation(
        self,
        *,
        user_id: str,
        thread_id: str,
        assistant_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConversationRecord:
        now = utc_now_str()
        entry = {
            "id": uuid4().hex,
            "user_id": user_id,
            "thread_id": thread_id,
            "assistant_id": assistant_id,
            "title": title,
            "last_message_preview": None,
            "created_at": now,
            "updated_at": now,
            "archived": False,
        }

        def _mutate(document: dict[str, Any]) -> None:
            if any(item["thread_id"] == thread_id for item in document["conversations"].values()):
                raise ValueError(f"Thread {thread_id} is already bound to a conversation")
            document["conversations"][entry["id"]] = entry

        await self._update(_mutate)
        return _to_conversation(entry)

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        document = await self._load()
        entry = document["conversations"].get(conversation_id)
        return _to_conversation(entry) if entry else None

    async def get_conversation_by_thread(self, thread_id: str) -> Optional[ConversationRecord]:
        document = await self._load()
        for entry in document["conversations"].values():
            if entry["thread_id"] == thread_id:
                return _to_conversation(entry)
        return None

    async def list_conversations(
        self, *, user_id: Optional[str] = None, include_archived: bool = False
    ) -> list[ConversationRecord]:
        document = await self._load()
        entries = [
            entry
            for entry in document["conversations"].values()
            if (user_id is None or entry["user_id"] == user_id)
            and (include_archived or not entry["archived"])
        ]
        # dicts keep insertion order, so reversing first makes newer entries win ties
        entries = list(reversed(entries))
        entries.sort(key=lambda entry: entry["updated_at"], reverse=True)
        return [_to_conversation(entry) for entry in entries]

    async def append_message(
        self,
        *,
        conversation_id: str,
        role: str,
        content: str,
        remote_message_id: Optional[str] = None,
    ) -> MessageRecord:
        now = utc_now_str()
        entry: dict[str, Any] = {
            "id": uuid4().hex,
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "remote_message_id": remote_message_id,
            "created_at": now,
        }

        def _mutate(document: dict[str, Any]) -> None:
            conversation = document["conversations"].get(conversation_id)
            if conversation is None:
                raise ValueError(f"Conversation {conversation_id} not found")
            messages = document["messages"].setdefault(conversation_id, [])
            entry["seq"] = len(messages) + 1
            messages.append(entry)
            conversation["updated_at"] = now
            conversation["last_message_preview"] = content[:PREVIEW_LENGTH]

        await self._update(_mutate)
        return _to_message(entry)

    async def get_messages(self, conversation_id: str) -> list[MessageRecord]:
        document = await self._load()
        return [_to_message(entry) for entry in document["messages"].get(conversation_id, [])]

    async def rename_conversation(self, conversation_id: str, title: str) -> ConversationRecord:
        now = utc_now_str()

        def _mutate(document: dict[str, Any]) -> None:
            conversation = document["conversations"].get(conversation_id)
            if conversation is None:
                raise ValueError(f"Conversation {conversation_id} not found")
            conversation["title"] = title
            conversation["updated_at"] = now

        await self._update(_mutate)
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise ValueError(f"Conversation {conversation_id} not found after rename")
        return conversation

    async def set_archived(self, conversation_id: str, archived: bool) -> None:
        def _mutate(document: dict[str, Any]) -> None:
            conversation = document["conversations"].get(conversation_id)
            if conversation is not None:
                conversation["archived"] = archived

        await self._update(_mutate)

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
        entry = {
            "id": uuid4().hex,
            "user_id": user_id,
            "assistant_id": assistant_id,
            "remote_file_id": remote_file_id,
            "filename": filename,
            "purpose": purpose,
            "bytes": size,
            "created_at": utc_now_str(),
        }
        await self._update(lambda document: document["files"].append(entry))
        return _to_file(entry)

    async def list_files(
        self, *, user_id: Optional[str] = None, assistant_id: Optional[str] = None
    ) -> list[FileRecord]:
        document = await self._load()
        entries = [
            entry
            for entry in reversed(document["files"])
            if (user_id is None or entry["user_id"] == user_id)
            and (assistant_id is None or entry["assistant_id"] == assistant_id)
        ]
        return [_to_file(entry) for entry in entries]

    async def _load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def _update(self, mutate) -> None:
        async with self._lock:
            def _apply() -> None:
                document = self._read()
                mutate(document)
                self._write(document)

            await asyncio.to_thread(_apply)

    def _read(self) -> dict[str, Any]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                document = json.load(handle)
        except FileNotFoundError:
            return _empty_document()
        for key, value in _empty_document().items():
            document.setdefault(key, value)
        return document

    def _write(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def _to_conversation(entry: dict[str, Any]) -> ConversationRecord:
    return ConversationRecord(
        id=entry["id"],
        user_id=entry["user_id"],
        thread_id=entry["thread_id"],
        assistant_id=entry.get("assistant_id"),
        title=entry.get("title"),
        created_at=parse_ts(entry["created_at"]),
        updated_at=parse_ts(entry["updated_at"]),
        archived=bool(entry.get("archived")),
        last_message_preview=entry.get("last_message_preview"),
    )


def _to_message(entry: dict[str, Any]) -> MessageRecord:
    return MessageRecord(
        id=entry["id"],
        conversation_id=entry["conversation_id"],
        role=entry["role"],
        content=entry["content"],
        remote_message_id=entry.get("remote_message_id"),
        seq=entry["seq"],
        created_at=parse_ts(entry["created_at"]),
    )


def _to_file(entry: dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=entry["id"],
        user_id=entry["user_id"],
        assistant_id=entry.get("assistant_id"),
        remote_file_id=entry["remote_file_id"],
        filename=entry["filename"],
        purpose=entry["purpose"],
        bytes=entry.get("bytes"),
        created_at=parse_ts(entry["created_at"]),
    )
