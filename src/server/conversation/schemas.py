from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ConversationMessage(BaseModel):
    id: str
    role: str
    content: str
    remote_message_id: Optional[str] = None
    seq: int
    created_at: datetime


class ConversationSummary(BaseModel):
    id: str
    thread_id: str
    assistant_id: Optional[str] = None
    title: Optional[str] = None
    last_message_preview: Optional[str] = None
    updated_at: datetime
    created_at: datetime
    archived: bool = False


class ConversationDetail(ConversationSummary):
    messages: list[ConversationMessage] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]


class ConversationUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, description="Manual conversation title override.")
    archived: Optional[bool] = Field(default=None, description="Archive/unarchive conversation.")

    @field_validator("title")
    @classmethod
    def validate_title_length(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            return None
        if len(value) > 100:
            raise ValueError("Title must be 100 characters or fewer")
        return value


class ArchiveResponse(BaseModel):
    success: bool
