from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from .models import ConversationRecord, FileRecord, MessageRecord

PREVIEW_LENGTH = 200


class ConversationStore(ABC):
    """Persistence for conversations, their messages and uploaded files.

    A conversation's ``thread_id`` (the remote thread) is set on creation and
    never rewritten.
    """

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def create_conversation(
        self,
        *,
        user_id: str,
        thread_id: str,
        assistant_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConversationRecord: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]: ...

    @abstractmethod
    async def get_conversation_by_thread(self, thread_id: str) -> Optional[ConversationRecord]: ...

    @abstractmethod
    async def list_conversations(
        self, *, user_id: Optional[str] = None, include_archived: bool = False
    ) -> list[ConversationRecord]: ...

    async def latest_conversation(self, user_id: str) -> Optional[ConversationRecord]:
        conversations = await self.list_conversations(user_id=user_id)
        return conversations[0] if conversations else None

    @abstractmethod
    async def append_message(
        self,
        *,
        conversation_id: str,
        role: str,
        content: str,
        remote_message_id: Optional[str] = None,
    ) -> MessageRecord: ...

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> list[MessageRecord]: ...

    @abstractmethod
    async def rename_conversation(self, conversation_id: str, title: str) -> ConversationRecord: ...

    @abstractmethod
    async def set_archived(self, conversation_id: str, archived: bool) -> None: ...

    @abstractmethod
    async def record_file(
        self,
        *,
        user_id: str,
        remote_file_id: str,
        filename: str,
        purpose: str,
        size: Optional[int] = None,
        assistant_id: Optional[str] = None,
    ) -> FileRecord: ...

    @abstractmethod
    async def list_files(
        self, *, user_id: Optional[str] = None, assistant_id: Optional[str] = None
    ) -> list[FileRecord]: ...


def utc_now_str() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"


def parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value)
