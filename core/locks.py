"""In-process keyed locks.

Serializes coroutines that touch the same truck or trip inside one worker
process. Cross-process exclusion comes from the database (unique partial
index and version compare-and-set), so these locks only narrow the window.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class KeyedLock:
    """A family of asyncio locks addressed by string keys."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def _acquire_slot(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        return lock

    def _release_slot(self, key: str) -> None:
        remaining = self._waiters.get(key, 1) - 1
        if remaining <= 0:
            self._waiters.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._waiters[key] = remaining

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Acquire every lock in ``keys``.

        Keys are taken in sorted order so two callers asking for overlapping
        sets can never deadlock.
        """
        ordered = sorted({k for k in keys if k})
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._acquire_slot(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_slot(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_slot(key)

    def __len__(self) -> int:
        return len(self._locks)
