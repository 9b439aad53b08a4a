"""Message → run → poll → reply state machine for one chat turn."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from .chat_log import ChatLogger
from .client import AssistantClient, RemoteMessage, RemoteRun
from .errors import NoResponseFound, RemoteTerminalFailure, RunTimeoutError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
MessageHook = Callable[[RemoteMessage], Awaitable[None]]


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    CANCELLING = "cancelling"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"
    # Never reported by the provider; set when the poll budget runs out.
    TIMED_OUT = "timed_out"

    @classmethod
    def parse(cls, value: str) -> Optional["RunStatus"]:
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_failure(self) -> bool:
        return self in _FAILURE_STATUSES


_FAILURE_STATUSES = frozenset(
    {RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED, RunStatus.INCOMPLETE}
)


@dataclass(slots=True)
class RunState:
    thread_id: str
    run_id: str
    status: RunStatus = RunStatus.QUEUED
    attempts: int = 0


@dataclass(slots=True)
class ChatReply:
    text: str
    thread_id: str
    run_id: str
    message_id: Optional[str] = None
    user_message_id: Optional[str] = None
    attempts: int = 0


class RunPoller:
    def __init__(
        self,
        client: AssistantClient,
        chat_logger: Optional[ChatLogger] = None,
        *,
        poll_interval: float = 1.0,
        max_attempts: int = 30,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._chat_logger = chat_logger
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def run(
        self,
        thread_id: str,
        text: str,
        assistant_id: str,
        *,
        on_message_posted: Optional[MessageHook] = None,
    ) -> ChatReply:
        """Post ``text`` to the thread, run the assistant and wait for its reply.

        ``on_message_posted`` is awaited once the user message is on the thread,
        before the run starts.

        Raises:
            RemoteTerminalFailure: the run ended failed, cancelled, expired or incomplete.
            RunTimeoutError: no terminal status within ``max_attempts`` polls.
            NoResponseFound: the run completed without an assistant text message.
            RemoteServiceError: any remote call failed.
        """
        user_message = await self._client.create_message(thread_id, text)
        await self._audit("user", text)
        if on_message_posted is not None:
            await on_message_posted(user_message)

        run = await self._client.create_run(thread_id, assistant_id)
        state = RunState(thread_id=thread_id, run_id=run.id)
        logger.info("Started run %s on thread %s", run.id, thread_id)

        await self._poll(state)

        reply = await self._extract_reply(state)
        await self._audit("assistant", reply.text)
        return ChatReply(
            text=reply.text,
            thread_id=thread_id,
            run_id=state.run_id,
            message_id=reply.id,
            user_message_id=user_message.id,
            attempts=state.attempts,
        )

    async def _poll(self, state: RunState) -> None:
        while state.attempts < self._max_attempts:
            state.attempts += 1
            remote = await self._client.retrieve_run(state.thread_id, state.run_id)
            self._advance(state, remote)

            if state.status is RunStatus.COMPLETED:
                logger.info("Run %s completed after %d polls", state.run_id, state.attempts)
                return
            if state.status.is_failure:
                logger.warning(
                    "Run %s ended with status %s: %s",
                    state.run_id,
                    state.status.value,
                    remote.last_error,
                )
                raise RemoteTerminalFailure(state.status.value, remote.last_error)

            if state.attempts < self._max_attempts:
                await self._sleep(self._poll_interval)

        state.status = RunStatus.TIMED_OUT
        logger.warning("Run %s timed out after %d polls", state.run_id, state.attempts)
        raise RunTimeoutError(state.attempts, self._poll_interval)

    @staticmethod
    def _advance(state: RunState, remote: RemoteRun) -> None:
        status = RunStatus.parse(remote.status)
        if status is None:
            logger.warning("Run %s reported unknown status %r; still polling", state.run_id, remote.status)
            return
        state.status = status

    async def _extract_reply(self, state: RunState) -> RemoteMessage:
        messages = await self._client.list_messages(state.thread_id, run_id=state.run_id)
        candidates = [
            message
            for message in messages
            if message.role == "assistant" and message.run_id == state.run_id and message.has_text
        ]
        if not candidates:
            raise NoResponseFound(f"Run {state.run_id} completed without an assistant message")
        return max(candidates, key=lambda message: message.created_at)

    async def _audit(self, role: str, text: str) -> None:
        if self._chat_logger is not None:
            await self._chat_logger.append(role, text)
