from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatLogger:
    """Append-only daily audit log of chat messages.

    One file per UTC day, ``chat-YYYY-MM-DD.log``, one line per message.
    """

    def __init__(self, log_dir: str | os.PathLike[str], *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._log_dir = Path(log_dir)
        self._clock = clock or _utc_now

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path_for(self, moment: datetime) -> Path:
        return self._log_dir / f"chat-{moment.strftime('%Y-%m-%d')}.log"

    async def append(self, role: str, text: str) -> None:
        moment = self._clock()
        timestamp = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        line = f"[{timestamp}] {role.upper()}: {text}\n"
        try:
            await asyncio.to_thread(self._write, self.path_for(moment), line)
        except OSError as exc:
            logger.warning("Failed to write chat log line: %s", exc)

    def _write(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # O_APPEND with a single write keeps concurrent lines intact.
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, line.encode("utf-8"))
        finally:
            os.close(fd)
