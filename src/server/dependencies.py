from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header

from src.assistant.chat_log import ChatLogger
from src.assistant.client import AssistantClient
from src.assistant.gateway import AssistantGateway
from src.config.configuration import GatewayConfiguration

from .cache import ResponseCache
from .conversation.base import ConversationStore
from .conversation.json_store import JSONConversationStore
from .conversation.store import SQLiteConversationStore

logger = logging.getLogger(__name__)

_CONFIG: Optional[GatewayConfiguration] = None
_STORE: Optional[ConversationStore] = None
_GATEWAY: Optional[AssistantGateway] = None
_CACHE: Optional[ResponseCache] = None

DEFAULT_USER_ID = "anonymous"


def get_configuration() -> GatewayConfiguration:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = GatewayConfiguration.from_env()
    return _CONFIG


def set_configuration(config: Optional[GatewayConfiguration]) -> None:
    global _CONFIG
    _CONFIG = config


def initialise_conversation_store() -> ConversationStore:
    """Create the conversation store selected by THREAD_STORE_BACKEND."""
    global _STORE
    if _STORE is not None:
        return _STORE

    config = get_configuration()
    if config.thread_store_backend == "json":
        store: ConversationStore = JSONConversationStore(config.thread_json_path)
        logger.info("Using JSON conversation store at %s", config.thread_json_path)
    else:
        store = SQLiteConversationStore(config.thread_db_path)
        logger.info("Using SQLite conversation store at %s", store.db_path)
    _STORE = store
    return store


def set_conversation_store(store: Optional[ConversationStore]) -> None:
    global _STORE
    _STORE = store


def initialise_gateway() -> AssistantGateway:
    global _GATEWAY
    if _GATEWAY is not None:
        return _GATEWAY

    config = get_configuration()
    client = AssistantClient(config.openai_api_key or None, base_url=config.openai_base_url)
    _GATEWAY = AssistantGateway(
        client,
        initialise_conversation_store(),
        config,
        chat_logger=ChatLogger(config.chat_log_dir),
    )
    return _GATEWAY


def set_gateway(gateway: Optional[AssistantGateway]) -> None:
    global _GATEWAY
    _GATEWAY = gateway


def initialise_response_cache() -> ResponseCache:
    global _CACHE
    if _CACHE is not None:
        return _CACHE
    config = get_configuration()
    _CACHE = ResponseCache(
        ttl=config.cache_ttl,
        max_entries=config.cache_max_entries,
        sweep_interval=config.cache_sweep_interval,
    )
    return _CACHE


def set_response_cache(cache: Optional[ResponseCache]) -> None:
    global _CACHE
    _CACHE = cache


def get_conversation_store(
    _: ConversationStore = Depends(initialise_conversation_store),
) -> ConversationStore:
    if _STORE is None:
        raise RuntimeError("Conversation store has not been initialised")
    return _STORE


def get_gateway(_: AssistantGateway = Depends(initialise_gateway)) -> AssistantGateway:
    if _GATEWAY is None:
        raise RuntimeError("Gateway has not been initialised")
    return _GATEWAY


def get_response_cache(_: ResponseCache = Depends(initialise_response_cache)) -> ResponseCache:
    if _CACHE is None:
        raise RuntimeError("Response cache has not been initialised")
    return _CACHE


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity as set by the upstream auth layer."""
    return (x_user_id or "").strip() or DEFAULT_USER_ID
