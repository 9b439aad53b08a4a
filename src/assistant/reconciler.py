from __future__ import annotations

import logging
from typing import Iterable

from .client import AssistantClient
from .uploader import UploadResult

logger = logging.getLogger(__name__)


def merge_file_ids(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    """Set union of both lists, keeping first-seen order."""
    return list(dict.fromkeys([*existing, *new]))


class AttachmentReconciler:
    """Merges uploaded file ids into an assistant's attachment list.

    The update is a plain read-modify-write: two batches racing on the same
    assistant can lose each other's ids.
    """

    def __init__(self, client: AssistantClient) -> None:
        self._client = client

    async def reconcile(self, assistant_id: str, results: Iterable[UploadResult]) -> list[str]:
        new_ids = [result.file_id for result in results if result.ok]
        if not new_ids:
            logger.info("No new files for assistant %s; attachment list unchanged", assistant_id)
            return []

        assistant = await self._client.retrieve_assistant(assistant_id)
        merged = merge_file_ids(assistant.file_ids, new_ids)
        await self._client.update_assistant_files(assistant_id, merged)
        logger.info(
            "Assistant %s now has %d attached files (%d new)",
            assistant_id,
            len(merged),
            len(merged) - len(assistant.file_ids),
        )
        return merged
