from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class NewThreadRequest(BaseModel):
    assistant_id: Optional[str] = Field(
        default=None, description="Assistant to bind to the conversation; defaults to ASSISTANT_ID."
    )
    fresh: bool = Field(
        default=True,
        description="Always start a new thread. When false the caller's latest conversation is reused.",
    )


class NewThreadResponse(BaseModel):
    thread_id: str
    conversation_id: str


class ChatRequest(BaseModel):
    thread_id: Optional[str] = Field(default=None, description="Remote thread identifier.")
    message: Optional[str] = Field(default=None, description="User message text.")


class ChatResponse(BaseModel):
    text: str
    run_id: str
    message_id: Optional[str] = None


class UploadFailure(BaseModel):
    file: str
    error: str


class UploadResponse(BaseModel):
    assistant_id: str
    uploaded: int
    file_ids: list[str]
    uploaded_ids: list[str] = Field(default_factory=list)
    failures: list[UploadFailure] = Field(default_factory=list)
    message: str


class AttachmentListResponse(BaseModel):
    assistant_id: str
    file_ids: list[str]


class StoredFile(BaseModel):
    id: str
    remote_file_id: str
    filename: str
    purpose: str
    bytes: Optional[int] = None
    assistant_id: Optional[str] = None


class FileListResponse(BaseModel):
    files: list[StoredFile]

