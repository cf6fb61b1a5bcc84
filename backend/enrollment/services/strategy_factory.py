"""
Class lock strategy factory.
Configures which per-class locking strategy the admission controller uses.
"""

from enrollment.core.config import Settings
from enrollment.infrastructure.redis_client import create_redis
from enrollment.services.interfaces.class_lock import ClassLock
from enrollment.services.interfaces.local_lock import LocalClassLock
from enrollment.services.redis_lock import RedisClassLock

LOCK_BACKENDS = ("local", "redis")


def get_class_lock(settings: Settings) -> ClassLock:
    """
    Build the configured class lock.

    Strategy selection via ADMISSION_LOCK_BACKEND:
    - local: one process owns admissions (development, embedded SQLite)
    - redis: several worker processes share admissions for the same classes
    """
    backend = settings.ADMISSION_LOCK_BACKEND.lower()

    if backend == "redis":
        return RedisClassLock(
            create_redis(settings.REDIS_URL),
            timeout=settings.ADMISSION_LOCK_TIMEOUT,
            ttl=settings.ADMISSION_LOCK_TTL,
        )
    if backend == "local":
        return LocalClassLock(timeout=settings.ADMISSION_LOCK_TIMEOUT)

    raise ValueError(
        f"Unknown ADMISSION_LOCK_BACKEND {settings.ADMISSION_LOCK_BACKEND!r}; "
        f"expected one of {', '.join(LOCK_BACKENDS)}"
    )
