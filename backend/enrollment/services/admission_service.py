"""
Admission controller: capacity-safe apply and cancel for scheduled classes.

CONCURRENCY STRATEGY: Per-class lock + row lock, with bounded retry
===================================================================

Problem:
  Two users apply for the last seat simultaneously.
  Both COUNT the class's applications (capacity - 1), both INSERT.
  Result: occupancy = capacity + 1.

Solution:
  Every operation that changes a class's occupancy runs as

  1. acquire the class lock (ClassLock: asyncio.Lock per class, or a Redis
     lock per class when several processes serve admissions)
  2. BEGIN
  3. SELECT ... FROM classes WHERE id = :class_id FOR UPDATE
  4. check start time, duplicate application, COUNT(applications) < capacity
  5. INSERT the application (or DELETE it, for cancel)
  6. COMMIT, release the lock

  The occupancy check and the insert therefore see no interleaved writer for
  the same class, while different classes never wait on each other.

  UNIQUE (user_id, class_id) is the final safety net: if two inserts for the
  same pair ever race past the duplicate check, the loser's IntegrityError is
  reported as AlreadyApplied.

  Transient failures (lock wait timeout, serialization failure, deadlock,
  SQLite busy) abort the transaction and rerun the whole operation up to
  ADMISSION_MAX_RETRIES times with exponential backoff, then surface as
  TransientConflict. Business rejections are never retried.

Ordering:
  No FIFO guarantee among concurrent applicants; whichever transaction gets
  the lock first is admitted first.
"""

import asyncio
import random
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from enrollment.core.exceptions import (
    AlreadyApplied,
    CapacityExceeded,
    ClassAlreadyStarted,
    DuplicateApplication,
    EnrollmentError,
    LockTimeout,
    TransientConflict,
)
from enrollment.core.logging import get_logger, log_context
from enrollment.core.metrics import (
    admission_latency,
    db_retries,
    record_admission,
    record_cancellation,
    record_db_operation,
)
from enrollment.db.base import utcnow
from enrollment.db.session import Database
from enrollment.models.application import Application
from enrollment.models.mclass import MClass
from enrollment.services import application_ledger, class_registry
from enrollment.services.interfaces.class_lock import ClassLock
from enrollment.services.notification_service import AdmissionNotice, NotificationDispatcher

logger = get_logger(__name__)

T = TypeVar("T")

MAX_RETRY_ATTEMPTS = 3

# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

# SQLite lock contention; everything else (missing table, unreadable file) is permanent
SQLITE_BUSY_ERRORS = ("SQLITE_BUSY", "SQLITE_LOCKED")
SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked")


def is_transient_db_error(error: DBAPIError) -> bool:
    """True only for lock contention and serialization conflicts."""
    if isinstance(error, IntegrityError):
        return False
    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    if not isinstance(error, OperationalError):
        return False

    errorname = getattr(orig, "sqlite_errorname", None)
    if errorname and errorname.startswith(SQLITE_BUSY_ERRORS):
        return True
    message = str(orig).lower()
    return any(text in message for text in SQLITE_BUSY_MESSAGES)


class AdmissionController:
    def __init__(
        self,
        database: Database,
        class_lock: ClassLock,
        notifier: Optional[NotificationDispatcher] = None,
        *,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        retry_backoff: float = 0.01,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.database = database
        self.class_lock = class_lock
        self.notifier = notifier or NotificationDispatcher()
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.clock = clock

    async def apply(self, class_id: UUID, user_id: UUID) -> Application:
        """
        Admit `user_id` to `class_id` if a seat is free.

        Raises:
            ClassNotFound, ClassAlreadyStarted, AlreadyApplied,
            CapacityExceeded, TransientConflict
        """
        start = time.perf_counter()
        try:
            application, mclass, occupancy = await self._serialized(
                class_id, "apply", lambda: self._admit(class_id, user_id)
            )
        except EnrollmentError as e:
            record_admission(e.code)
            logger.info(
                "admission_rejected",
                class_id=str(class_id),
                user_id=str(user_id),
                reason=e.code,
            )
            raise
        finally:
            admission_latency.observe(time.perf_counter() - start)

        record_admission("admitted")
        logger.info(
            "admission_granted",
            application_id=str(application.id),
            class_id=str(class_id),
            user_id=str(user_id),
            occupancy=occupancy,
            capacity=mclass.capacity,
        )

        # Only after COMMIT, and never awaited here
        self.notifier.dispatch(AdmissionNotice(
            application_id=application.id,
            user_id=user_id,
            class_id=class_id,
            class_title=mclass.title,
            class_start_at=mclass.start_at,
            class_end_at=mclass.end_at,
            applied_at=application.applied_at,
        ))
        return application

    async def cancel(self, class_id: UUID, user_id: UUID) -> None:
        """
        Withdraw `user_id` from `class_id`, freeing the seat.

        Raises:
            ClassNotFound, ClassAlreadyStarted, ApplicationNotFound,
            TransientConflict
        """
        try:
            await self._serialized(class_id, "cancel", lambda: self._withdraw(class_id, user_id))
        except EnrollmentError as e:
            record_cancellation(e.code)
            logger.info(
                "cancellation_rejected",
                class_id=str(class_id),
                user_id=str(user_id),
                reason=e.code,
            )
            raise

        record_cancellation("cancelled")
        logger.info("application_cancelled", class_id=str(class_id), user_id=str(user_id))

    async def remove_class(self, class_id: UUID) -> int:
        """Delete a class with all its applications; returns how many were removed."""
        return await self._serialized(class_id, "delete_class", lambda: self._remove(class_id))

    async def _admit(self, class_id: UUID, user_id: UUID) -> tuple[Application, MClass, int]:
        async with self.database.session() as session:
            try:
                async with session.begin():
                    mclass = await class_registry.get_class_for_update(session, class_id)

                    if mclass.start_at <= self.clock():
                        raise ClassAlreadyStarted(class_id)

                    if await application_ledger.exists(session, user_id, class_id):
                        raise AlreadyApplied(class_id, user_id)

                    occupancy = await application_ledger.count_for_class(session, class_id)
                    if occupancy >= mclass.capacity:
                        raise CapacityExceeded(class_id, mclass.capacity)

                    application = await application_ledger.create(session, user_id, class_id)
                    record_db_operation("write")
            except DuplicateApplication as e:
                raise AlreadyApplied(class_id, user_id) from e
            except IntegrityError as e:
                # Unique violation reported at COMMIT rather than at flush
                raise AlreadyApplied(class_id, user_id) from e

        return application, mclass, occupancy + 1

    async def _withdraw(self, class_id: UUID, user_id: UUID) -> None:
        async with self.database.session() as session:
            async with session.begin():
                mclass = await class_registry.get_class_for_update(session, class_id)
                if mclass.start_at <= self.clock():
                    raise ClassAlreadyStarted(class_id)
                await application_ledger.delete(session, user_id, class_id)
                record_db_operation("write")

    async def _remove(self, class_id: UUID) -> int:
        async with self.database.session() as session:
            async with session.begin():
                removed = await class_registry.delete_class(session, class_id)
                record_db_operation("write")
        return removed

    async def _serialized(
        self,
        class_id: UUID,
        operation: str,
        work: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run `work` holding the class lock, retrying transient failures.
        Business errors raised by `work` propagate on the first attempt.
        """
        error: Exception
        with log_context(operation=operation, class_id=str(class_id)):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    async with self.class_lock.hold(class_id):
                        return await work()
                except LockTimeout as e:
                    error, reason = e, "lock_timeout"
                except DBAPIError as e:
                    if not is_transient_db_error(e):
                        raise
                    error, reason = e, "serialization_conflict"

                db_retries.inc()
                record_db_operation("retry")
                logger.info("admission_retry", attempt=attempt, reason=reason)
                if attempt < self.max_attempts:
                    await asyncio.sleep(self._backoff(attempt))

            logger.warning("admission_busy", attempts=self.max_attempts)
        raise TransientConflict(
            "Class is busy due to high demand. Please try again.",
            class_id=str(class_id),
            operation=operation,
            attempts=self.max_attempts,
        ) from error

    def _backoff(self, attempt: int) -> float:
        return self.retry_backoff * (2 ** (attempt - 1)) + random.uniform(0, self.retry_backoff)
