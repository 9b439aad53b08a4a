from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from src.config.configuration import DEFAULT_UPLOAD_EXTENSIONS, DEFAULT_UPLOAD_MAX_FILE_BYTES

from .errors import EmptyResultError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UploadCandidate:
    path: Path
    extension: str
    size: int

    @property
    def name(self) -> str:
        return self.path.name


def collect_upload_candidates(
    root: str | os.PathLike[str],
    extensions: Iterable[str] = DEFAULT_UPLOAD_EXTENSIONS,
    max_bytes: int = DEFAULT_UPLOAD_MAX_FILE_BYTES,
) -> list[UploadCandidate]:
    """Walk ``root`` recursively and return the files worth uploading.

    A file qualifies when its extension (compared case-insensitively) is in
    ``extensions`` and its size does not exceed ``max_bytes``. Symlinked
    directories are not descended into. The result is sorted by path.

    Raises:
        NotFoundError: ``root`` does not exist.
        ValidationError: ``root`` is not a directory.
        EmptyResultError: nothing under ``root`` qualifies.
    """
    root_path = Path(root).expanduser()
    if not root_path.exists():
        raise NotFoundError(f"Directory not found: {root}")
    if not root_path.is_dir():
        raise ValidationError(f"Not a directory: {root}")

    allowed = {ext.lower() for ext in extensions}
    candidates: list[UploadCandidate] = []
    skipped_size = 0

    for dirpath, dirnames, filenames in os.walk(root_path.resolve(), followlinks=False, onerror=_log_walk_error):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            extension = path.suffix.lower()
            if extension not in allowed:
                continue
            try:
                if not path.is_file():
                    continue
                size = path.stat().st_size
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", path, exc)
                continue
            if size > max_bytes:
                skipped_size += 1
                logger.info("Skipping %s: %d bytes exceeds limit of %d", path, size, max_bytes)
                continue
            candidates.append(UploadCandidate(path=path, extension=extension, size=size))

    if not candidates:
        raise EmptyResultError(f"No compatible files found in {root}")

    candidates.sort(key=lambda candidate: str(candidate.path))
    logger.debug(
        "Collected %d upload candidates under %s (%d skipped for size)",
        len(candidates),
        root_path,
        skipped_size,
    )
    return candidates


def _log_walk_error(error: OSError) -> None:
    logger.warning("Error reading directory %s: %s", error.filename, error)
