"""Entry points used by the HTTP layer: threads, chat and file ingestion."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from src.config.configuration import GatewayConfiguration
from src.server.conversation.base import ConversationStore
from src.server.conversation.models import ConversationRecord

from .chat_log import ChatLogger
from .client import AssistantClient, RemoteMessage
from .errors import NotFoundError, TotalBatchFailure, ValidationError
from .file_filter import collect_upload_candidates
from .reconciler import AttachmentReconciler
from .run_poller import ChatReply, RunPoller, Sleep
from .threads import ThreadService
from .uploader import DirectorySource, RemoteFileUploader, SingleFileSource, UploadResult, UploadSource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SingleUploadResult:
    file_id: str
    filename: str
    assistant_id: str
    file_ids: list[str]


@dataclass(slots=True)
class BatchUploadResult:
    assistant_id: str
    candidates: int
    uploaded_ids: list[str]
    file_ids: list[str]
    failures: list[dict[str, str]] = field(default_factory=list)

    @property
    def uploaded(self) -> int:
        return len(self.uploaded_ids)


class AssistantGateway:
    def __init__(
        self,
        client: AssistantClient,
        store: ConversationStore,
        config: GatewayConfiguration,
        *,
        chat_logger: Optional[ChatLogger] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._config = config
        self.threads = ThreadService(client, store)
        self.poller = RunPoller(
            client,
            chat_logger,
            poll_interval=config.poll_interval,
            max_attempts=config.max_poll_attempts,
            sleep=sleep or asyncio.sleep,
        )
        self.uploader = RemoteFileUploader(client, purpose=config.upload_purpose)
        self.reconciler = AttachmentReconciler(client)

    @property
    def config(self) -> GatewayConfiguration:
        return self._config

    def resolve_assistant_id(self, assistant_id: Optional[str] = None) -> str:
        resolved = (assistant_id or "").strip() or self._config.assistant_id
        if not resolved:
            raise ValidationError("No assistant configured; set ASSISTANT_ID or pass assistant_id")
        return resolved

    async def new_thread(
        self,
        user_id: str,
        *,
        assistant_id: Optional[str] = None,
        fresh: bool = True,
    ) -> ConversationRecord:
        if fresh:
            return await self.threads.new_thread(user_id, assistant_id=assistant_id)
        return await self.threads.get_or_create(user_id, assistant_id=assistant_id)

    async def chat(self, thread_id: str, message: str, *, user_id: Optional[str] = None) -> ChatReply:
        thread_id = (thread_id or "").strip()
        message = (message or "").strip()
        if not thread_id or not message:
            raise ValidationError("Thread ID and message are required")

        conversation = await self._store.get_conversation_by_thread(thread_id)
        if conversation is None or (user_id is not None and conversation.user_id != user_id):
            raise NotFoundError(f"Thread {thread_id} not found")
        if conversation.archived:
            raise ValidationError("Conversation has been archived")

        assistant_id = self.resolve_assistant_id(conversation.assistant_id)

        async def _record_user_message(posted: RemoteMessage) -> None:
            await self._store.append_message(
                conversation_id=conversation.id,
                role="user",
                content=message,
                remote_message_id=posted.id,
            )

        reply = await self.poller.run(thread_id, message, assistant_id, on_message_posted=_record_user_message)
        await self._store.append_message(
            conversation_id=conversation.id,
            role="assistant",
            content=reply.text,
            remote_message_id=reply.message_id,
        )
        return reply

    async def attachments(self, assistant_id: Optional[str] = None) -> list[str]:
        assistant = await self._client.retrieve_assistant(self.resolve_assistant_id(assistant_id))
        return assistant.file_ids

    async def upload(
        self,
        source: UploadSource,
        *,
        user_id: str,
        assistant_id: Optional[str] = None,
    ) -> Union[SingleUploadResult, BatchUploadResult]:
        if isinstance(source, SingleFileSource):
            return await self.upload_single_file(
                source.data,
                source.filename,
                source.purpose,
                user_id=user_id,
                assistant_id=assistant_id,
            )
        if isinstance(source, DirectorySource):
            return await self.upload_directory(source.path, user_id=user_id, assistant_id=assistant_id)
        raise ValidationError("Unsupported upload source")

    async def upload_single_file(
        self,
        data: Union[bytes, Any],
        filename: str,
        purpose: Optional[str] = None,
        *,
        user_id: str,
        assistant_id: Optional[str] = None,
    ) -> SingleUploadResult:
        filename = (filename or "").strip()
        if not filename:
            raise ValidationError("Uploaded file has no name")
        if isinstance(data, (bytes, bytearray)) and len(data) > self._config.upload_max_file_bytes:
            raise ValidationError(
                f"{filename} is {len(data)} bytes; the limit is {self._config.upload_max_file_bytes} bytes"
            )
        resolved_assistant = self.resolve_assistant_id(assistant_id)
        purpose = purpose or self._config.upload_purpose

        result = await self.uploader.upload(filename, data, purpose)
        if not result.ok:
            raise TotalBatchFailure(f"Upload of {filename} failed: {result.error}")

        file_ids = await self.reconciler.reconcile(resolved_assistant, [result])
        await self._record_uploads(user_id, resolved_assistant, purpose, [result])
        return SingleUploadResult(
            file_id=result.file_id,
            filename=filename,
            assistant_id=resolved_assistant,
            file_ids=file_ids,
        )

    async def upload_directory(
        self,
        path: str,
        *,
        user_id: str,
        assistant_id: Optional[str] = None,
    ) -> BatchUploadResult:
        resolved_assistant = self.resolve_assistant_id(assistant_id)
        candidates = await asyncio.to_thread(
            collect_upload_candidates,
            path,
            self._config.upload_extensions,
            self._config.upload_max_file_bytes,
        )
        logger.info("Uploading %d files from %s to assistant %s", len(candidates), path, resolved_assistant)

        results: list[UploadResult] = []
        for candidate in candidates:
            results.append(await self.uploader.upload_candidate(candidate))

        succeeded = [result for result in results if result.ok]
        failures = [result.failure() for result in results if not result.ok]
        if not succeeded:
            raise TotalBatchFailure(f"All {len(results)} uploads from {path} failed")
        if failures:
            logger.warning("%d of %d uploads from %s failed", len(failures), len(results), path)

        file_ids = await self.reconciler.reconcile(resolved_assistant, succeeded)
        await self._record_uploads(user_id, resolved_assistant, self._config.upload_purpose, succeeded)
        return BatchUploadResult(
            assistant_id=resolved_assistant,
            candidates=len(candidates),
            uploaded_ids=[result.file_id for result in succeeded],
            file_ids=file_ids,
            failures=failures,
        )

    async def _record_uploads(
        self,
        user_id: str,
        assistant_id: str,
        purpose: str,
        results: list[UploadResult],
    ) -> None:
        for result in results:
            await self._store.record_file(
                user_id=user_id,
                remote_file_id=result.file_id,
                filename=result.source_name,
                purpose=purpose,
                size=result.size,
                assistant_id=assistant_id,
            )
