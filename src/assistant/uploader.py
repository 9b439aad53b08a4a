from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .client import AssistantClient
from .errors import GatewayError, ValidationError
from .file_filter import UploadCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SingleFileSource:
    filename: str
    data: Union[bytes, Any]
    purpose: str = "assistants"


@dataclass(frozen=True, slots=True)
class DirectorySource:
    path: str


UploadSource = Union[SingleFileSource, DirectorySource]


def resolve_upload_source(
    *,
    file: Optional[SingleFileSource] = None,
    directory: Optional[str] = None,
) -> UploadSource:
    """Pick the upload shape of a request; exactly one of the two must be given."""
    directory = directory.strip() if directory else None
    if file is not None and directory:
        raise ValidationError("Provide either a file or a directory, not both")
    if file is not None:
        return file
    if directory:
        return DirectorySource(path=directory)
    raise ValidationError("No file or directory provided")


@dataclass(frozen=True, slots=True)
class UploadResult:
    source_name: str
    file_id: Optional[str] = None
    error: Optional[str] = None
    size: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.file_id is not None

    def failure(self) -> dict[str, str]:
        return {"file": self.source_name, "error": self.error or "unknown error"}


class RemoteFileUploader:
    """Uploads one file per call. Failures are returned, never raised."""

    def __init__(self, client: AssistantClient, *, purpose: str = "assistants") -> None:
        self._client = client
        self._purpose = purpose

    async def upload(self, name: str, data: Union[bytes, Any], purpose: Optional[str] = None) -> UploadResult:
        size = len(data) if isinstance(data, (bytes, bytearray)) else None
        try:
            file_id = await self._client.create_file(name, data, purpose or self._purpose)
        except GatewayError as exc:
            logger.warning("Upload of %s failed: %s", name, exc.detail)
            return UploadResult(source_name=name, error=exc.detail)
        except Exception as exc:
            logger.exception("Unexpected error uploading %s", name)
            return UploadResult(source_name=name, error=f"unexpected error: {exc}")
        logger.info("Uploaded %s as %s", name, file_id)
        return UploadResult(source_name=name, file_id=file_id, size=size)

    async def upload_candidate(self, candidate: UploadCandidate, purpose: Optional[str] = None) -> UploadResult:
        try:
            data = await asyncio.to_thread(candidate.path.read_bytes)
        except OSError as exc:
            logger.warning("Could not read %s: %s", candidate.path, exc)
            return UploadResult(source_name=candidate.name, error=f"read failed: {exc}")
        return await self.upload(candidate.name, data, purpose)
