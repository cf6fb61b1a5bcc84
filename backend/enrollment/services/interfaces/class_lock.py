"""
Class lock strategy interface.
Allows swapping between in-process and distributed per-class mutual exclusion.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager
from uuid import UUID


class ClassLock(ABC):
    """
    Interface for per-class locking strategies.

    The admission controller holds the lock for one class across the whole
    check-then-insert transaction. Scope is exactly one class: holders for
    different classes never wait on each other.

    Implementations:
    - LocalClassLock: asyncio.Lock per class, single process
    - RedisClassLock: Redis lock per class, shared by every worker process
    """

    @abstractmethod
    def hold(self, class_id: UUID) -> AsyncContextManager[None]:
        """
        Acquire the lock for `class_id` for the duration of the block.

        Raises:
            LockTimeout: if the lock is not acquired within the configured
                timeout. The controller treats this as a transient error.
        """

    async def close(self) -> None:
        """Release any connections held by the strategy."""
