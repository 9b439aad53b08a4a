"""Thin async wrapper over the OpenAI Assistants API.

The rest of the core only sees the small record types defined here, and every
SDK failure is re-raised as :class:`RemoteServiceError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Optional, Union

from openai import AsyncOpenAI, OpenAIError

from .errors import RemoteServiceError

logger = logging.getLogger(__name__)

FileContent = Union[bytes, Any]


@dataclass(slots=True)
class RemoteRun:
    id: str
    thread_id: str
    status: str
    last_error: Optional[str] = None


@dataclass(slots=True)
class RemoteMessage:
    id: str
    role: str
    text: str
    run_id: Optional[str] = None
    created_at: int = 0
    has_text: bool = True


@dataclass(slots=True)
class RemoteAssistant:
    id: str
    file_ids: list[str] = field(default_factory=list)


def _remote_call(operation: str):
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except OpenAIError as exc:
                logger.error("Remote call %s failed: %s", operation, exc)
                raise RemoteServiceError(f"{operation} failed: {exc}") from exc

        return wrapper

    return decorator


class AssistantClient:
    """Remote provider boundary used by the run poller and the upload pipeline."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if client is None:
            try:
                # No SDK level retries: remote calls fail fast.
                client = AsyncOpenAI(
                    api_key=api_key,
                    base_url=base_url,
                    timeout=timeout,
                    max_retries=0,
                )
            except OpenAIError as exc:
                raise RemoteServiceError(f"OpenAI client is not configured: {exc}") from exc
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    @_remote_call("create thread")
    async def create_thread(self) -> str:
        thread = await self._client.beta.threads.create()
        return thread.id

    @_remote_call("create message")
    async def create_message(self, thread_id: str, text: str) -> RemoteMessage:
        message = await self._client.beta.threads.messages.create(
            thread_id,
            role="user",
            content=text,
        )
        return _to_message(message)

    @_remote_call("create run")
    async def create_run(self, thread_id: str, assistant_id: str) -> RemoteRun:
        run = await self._client.beta.threads.runs.create(thread_id, assistant_id=assistant_id)
        return _to_run(run)

    @_remote_call("retrieve run")
    async def retrieve_run(self, thread_id: str, run_id: str) -> RemoteRun:
        run = await self._client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        return _to_run(run)

    @_remote_call("list messages")
    async def list_messages(self, thread_id: str, *, run_id: Optional[str] = None) -> list[RemoteMessage]:
        """Messages of a thread, newest first."""
        params: dict[str, Any] = {"order": "desc"}
        if run_id:
            params["run_id"] = run_id
        page = await self._client.beta.threads.messages.list(thread_id, **params)
        return [_to_message(message) for message in page.data]

    @_remote_call("create file")
    async def create_file(self, filename: str, content: FileContent, purpose: str) -> str:
        created = await self._client.files.create(file=(filename, content), purpose=purpose)
        return created.id

    @_remote_call("retrieve assistant")
    async def retrieve_assistant(self, assistant_id: str) -> RemoteAssistant:
        assistant = await self._client.beta.assistants.retrieve(assistant_id)
        return RemoteAssistant(id=assistant.id, file_ids=_attachment_ids(assistant))

    @_remote_call("update assistant")
    async def update_assistant_files(self, assistant_id: str, file_ids: list[str]) -> RemoteAssistant:
        assistant = await self._client.beta.assistants.update(
            assistant_id,
            tools=[{"type": "code_interpreter"}],
            tool_resources={"code_interpreter": {"file_ids": list(file_ids)}},
        )
        return RemoteAssistant(id=assistant.id, file_ids=_attachment_ids(assistant))


def _to_run(run: Any) -> RemoteRun:
    last_error = getattr(run, "last_error", None)
    detail = None
    if last_error is not None:
        detail = getattr(last_error, "message", None) or str(last_error)
    return RemoteRun(id=run.id, thread_id=run.thread_id, status=str(run.status), last_error=detail)


def _to_message(message: Any) -> RemoteMessage:
    parts: list[str] = []
    for block in message.content or []:
        if getattr(block, "type", None) == "text":
            parts.append(block.text.value)
    return RemoteMessage(
        id=message.id,
        role=message.role,
        text="\n".join(parts),
        run_id=getattr(message, "run_id", None),
        created_at=getattr(message, "created_at", 0) or 0,
        has_text=bool(parts),
    )


def _attachment_ids(assistant: Any) -> list[str]:
    resources = getattr(assistant, "tool_resources", None)
    interpreter = getattr(resources, "code_interpreter", None) if resources else None
    return list(getattr(interpreter, "file_ids", None) or [])
