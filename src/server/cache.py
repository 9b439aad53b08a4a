from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


class ResponseCache:
    """Bounded key -> (value, expiry) store for cacheable GET responses.

    Expired entries are skipped on read and removed by a background sweep
    started with :meth:`start`. When full, the least recently written entry is
    evicted.
    """

    def __init__(
        self,
        *,
        ttl: float = 300.0,
        max_entries: int = 256,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self._sweeper: Optional[asyncio.Task[None]] = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        value, expiry = entry
        if expiry <= self._clock():
            self._entries.pop(key, None)
            return default
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (value, self._clock() + (self._ttl if ttl is None else ttl))
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, prefix: Optional[str] = None) -> int:
        if prefix is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expiry) in self._entries.items() if expiry <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="response-cache-sweeper")

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self.evict_expired()
            if removed:
                logger.debug("Evicted %d expired cache entries", removed)
