from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.assistant.errors import NotFoundError

from ..dependencies import get_conversation_store, get_current_user_id
from .base import ConversationStore
from .models import ConversationRecord, MessageRecord
from .schemas import (
    ArchiveResponse,
    ConversationDetail,
    ConversationListResponse,
    ConversationMessage,
    ConversationSummary,
    ConversationUpdateRequest,
)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    include_archived: bool = Query(default=False, description="Include archived conversations."),
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationListResponse:
    records = await store.list_conversations(user_id=user_id, include_archived=include_archived)
    return ConversationListResponse(conversations=[_to_summary(record) for record in records])


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationDetail:
    conversation = await _get_owned(store, conversation_id, user_id)
    messages = await store.get_messages(conversation_id)
    return _to_detail(conversation, messages)


@router.patch("/{conversation_id}", response_model=ConversationDetail)
async def update_conversation(
    conversation_id: str,
    payload: ConversationUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationDetail:
    conversation = await _get_owned(store, conversation_id, user_id)

    if payload.title is not None:
        conversation = await store.rename_conversation(conversation_id, payload.title)

    if payload.archived is not None:
        await store.set_archived(conversation_id, payload.archived)
        conversation = await store.get_conversation(conversation_id) or conversation

    messages = await store.get_messages(conversation_id)
    return _to_detail(conversation, messages)


@router.delete("/{conversation_id}", response_model=ArchiveResponse)
async def archive_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> ArchiveResponse:
    # Conversations are only ever soft-deleted.
    await _get_owned(store, conversation_id, user_id)
    await store.set_archived(conversation_id, True)
    return ArchiveResponse(success=True)


async def _get_owned(store: ConversationStore, conversation_id: str, user_id: str) -> ConversationRecord:
    conversation = await store.get_conversation(conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return conversation


def _to_summary(record: ConversationRecord) -> ConversationSummary:
    return ConversationSummary(
        id=record.id,
        thread_id=record.thread_id,
        assistant_id=record.assistant_id,
        title=record.title,
        last_message_preview=record.last_message_preview,
        updated_at=record.updated_at,
        created_at=record.created_at,
        archived=record.archived,
    )


def _to_message(record: MessageRecord) -> ConversationMessage:
    return ConversationMessage(
        id=record.id,
        role=record.role,
        content=record.content,
        remote_message_id=record.remote_message_id,
        seq=record.seq,
        created_at=record.created_at,
    )


def _to_detail(conversation: ConversationRecord, messages: list[MessageRecord]) -> ConversationDetail:
    return ConversationDetail(
        **_to_summary(conversation).model_dump(),
        messages=[_to_message(message) for message in messages],
    )
