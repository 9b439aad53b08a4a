from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class ConversationRecord:
    id: str
    user_id: str
    thread_id: str
    assistant_id: Optional[str]
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    archived: bool
    last_message_preview: Optional[str]


@dataclass(slots=True)
class MessageRecord:
    id: str
    conversation_id: str
    role: str
    content: str
    remote_message_id: Optional[str]
    seq: int
    created_at: datetime


@dataclass(slots=True)
class FileRecord:
    id: str
    user_id: str
    assistant_id: Optional[str]
    remote_file_id: str
    filename: str
    purpose: str
    bytes: Optional[int]
    created_at: datetime
