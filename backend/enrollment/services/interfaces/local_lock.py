"""
In-process class lock - one asyncio.Lock per class.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from enrollment.core.exceptions import LockTimeout
from enrollment.services.interfaces.class_lock import ClassLock


class LocalClassLock(ClassLock):
    """
    Serializes admissions per class inside one event loop.

    Locks live in a weak-valued registry: an entry exists only while some
    task holds or waits on it, so idle classes cost nothing.

    Use when:
    - A single worker process serves the class
    - The store is embedded (SQLite) and has no row locks
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, class_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(class_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[class_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, class_id: UUID) -> AsyncIterator[None]:
        lock = self._lock_for(class_id)
        try:
            # A timed-out acquire never leaves the lock held
            async with asyncio.timeout(self.timeout):
                await lock.acquire()
        except TimeoutError as e:
            raise LockTimeout(class_id, self.timeout) from e
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, class_id: UUID) -> bool:
        lock = self._locks.get(class_id)
        return lock is not None and lock.locked()
