from __future__ import annotations

import itertools
from collections import defaultdict
from typing import Iterable, Optional

import pytest

from src.assistant.client import RemoteAssistant, RemoteMessage, RemoteRun
from src.assistant.errors import RemoteServiceError
from src.config.configuration import GatewayConfiguration


class FakeAssistantClient:
    """In-memory stand-in for the remote assistant service.

    ``run_statuses`` is replayed by ``retrieve_run``; once exhausted the last
    status repeats. A completed run leaves one assistant message on the thread
    unless ``reply_text`` is None.
    """

    def __init__(
        self,
        *,
        run_statuses: Iterable[str] = ("completed",),
        reply_text: Optional[str] = "Hi there!",
        last_error: Optional[str] = None,
        failing_uploads: Iterable[str] = (),
        assistant_files: Optional[dict[str, list[str]]] = None,
        fail_thread_creation: bool = False,
        crashing_uploads: Iterable[str] = (),
    ) -> None:
        self.run_statuses = list(run_statuses)
        self.reply_text = reply_text
        self.last_error = last_error
        self.failing_uploads = set(failing_uploads)
        self.assistant_files: dict[str, list[str]] = {
            key: list(value) for key, value in (assistant_files or {}).items()
        }
        self.fail_thread_creation = fail_thread_creation
        self.crashing_uploads = set(crashing_uploads)
        self.calls: list[tuple[str, tuple]] = []
        self.messages: dict[str, list[RemoteMessage]] = defaultdict(list)
        self.uploaded: dict[str, bytes] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1000)
        self._status_iters: dict[str, list[str]] = {}

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def close(self) -> None:
        return None

    async def create_thread(self) -> str:
        self.calls.append(("create_thread", ()))
        if self.fail_thread_creation:
            raise RemoteServiceError("create thread failed: service unavailable")
        return f"thread_{next(self._ids)}"

    async def create_message(self, thread_id: str, text: str) -> RemoteMessage:
        self.calls.append(("create_message", (thread_id, text)))
        message = RemoteMessage(
            id=f"msg_{next(self._ids)}",
            role="user",
            text=text,
            created_at=next(self._clock),
        )
        self.messages[thread_id].append(message)
        return message

    async def create_run(self, thread_id: str, assistant_id: str) -> RemoteRun:
        self.calls.append(("create_run", (thread_id, assistant_id)))
        run_id = f"run_{next(self._ids)}"
        self._status_iters[run_id] = list(self.run_statuses)
        return RemoteRun(id=run_id, thread_id=thread_id, status="queued")

    async def retrieve_run(self, thread_id: str, run_id: str) -> RemoteRun:
        self.calls.append(("retrieve_run", (thread_id, run_id)))
        statuses = self._status_iters[run_id]
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        if status == "completed" and self.reply_text is not None:
            if not any(m.run_id == run_id for m in self.messages[thread_id]):
                self.messages[thread_id].append(
                    RemoteMessage(
                        id=f"msg_{next(self._ids)}",
                        role="assistant",
                        text=self.reply_text,
                        run_id=run_id,
                        created_at=next(self._clock),
                    )
                )
        last_error = self.last_error if status in {"failed", "expired", "cancelled", "incomplete"} else None
        return RemoteRun(id=run_id, thread_id=thread_id, status=status, last_error=last_error)

    async def list_messages(self, thread_id: str, *, run_id: Optional[str] = None) -> list[RemoteMessage]:
        self.calls.append(("list_messages", (thread_id, run_id)))
        messages = [m for m in self.messages[thread_id] if run_id is None or m.run_id == run_id]
        return sorted(messages, key=lambda m: m.created_at, reverse=True)

    async def create_file(self, filename: str, content, purpose: str) -> str:
        self.calls.append(("create_file", (filename, purpose)))
        if filename in self.failing_uploads:
            raise RemoteServiceError(f"create file failed: {filename} rejected")
        if filename in self.crashing_uploads:
            raise TypeError(f"unsupported content for {filename}")
        file_id = f"file-{filename}"
        self.uploaded[file_id] = content if isinstance(content, bytes) else b""
        return file_id

    async def retrieve_assistant(self, assistant_id: str) -> RemoteAssistant:
        self.calls.append(("retrieve_assistant", (assistant_id,)))
        return RemoteAssistant(id=assistant_id, file_ids=list(self.assistant_files.get(assistant_id, [])))

    async def update_assistant_files(self, assistant_id: str, file_ids: list[str]) -> RemoteAssistant:
        self.calls.append(("update_assistant_files", (assistant_id, tuple(file_ids))))
        self.assistant_files[assistant_id] = list(file_ids)
        return RemoteAssistant(id=assistant_id, file_ids=list(file_ids))


class RecordingSleep:
    def __init__(self) -> None:
        self.intervals: list[float] = []

    async def __call__(self, interval: float) -> None:
        self.intervals.append(interval)


@pytest.fixture
def fake_client_factory():
    return FakeAssistantClient


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def gateway_config(tmp_path) -> GatewayConfiguration:
    return GatewayConfiguration(
        assistant_id="asst_default",
        poll_interval=1.0,
        max_poll_attempts=30,
        chat_log_dir=str(tmp_path / "logs"),
        thread_db_path=str(tmp_path / "gateway.db"),
        thread_json_path=str(tmp_path / "threads" / "threads.json"),
    )
