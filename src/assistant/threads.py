from __future__ import annotations

import logging
from typing import Optional

from src.server.conversation.base import ConversationStore
from src.server.conversation.models import ConversationRecord

from .client import AssistantClient
from .errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Thread"


class ThreadService:
    """Maps local conversations to remote threads.

    A conversation gets exactly one remote thread, bound when the conversation
    is created. Asking for a new thread creates a new conversation; older
    conversations keep their threads.
    """

    def __init__(self, client: AssistantClient, store: ConversationStore) -> None:
        self._client = client
        self._store = store

    async def get_or_create(
        self,
        user_id: str,
        *,
        conversation_id: Optional[str] = None,
        assistant_id: Optional[str] = None,
    ) -> ConversationRecord:
        if conversation_id:
            conversation = await self._store.get_conversation(conversation_id)
            if conversation is None or conversation.user_id != user_id:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            return conversation

        conversation = await self._store.latest_conversation(user_id)
        if conversation is not None:
            return conversation
        return await self.new_thread(user_id, assistant_id=assistant_id)

    async def new_thread(
        self,
        user_id: str,
        *,
        assistant_id: Optional[str] = None,
        title: Optional[str] = DEFAULT_THREAD_TITLE,
    ) -> ConversationRecord:
        # Nothing is stored unless the remote thread exists.
        thread_id = await self._client.create_thread()
        conversation = await self._store.create_conversation(
            user_id=user_id,
            thread_id=thread_id,
            assistant_id=assistant_id,
            title=title,
        )
        logger.info("Created thread %s for user %s (conversation %s)", thread_id, user_id, conversation.id)
        return conversation
