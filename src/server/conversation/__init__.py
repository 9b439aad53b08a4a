"""Conversation persistence: SQLite and legacy JSON backends plus the CRUD API."""

from .base import ConversationStore
from .json_store import JSONConversationStore
from .store import SQLiteConversationStore

__all__ = ["ConversationStore", "JSONConversationStore", "SQLiteConversationStore"]
