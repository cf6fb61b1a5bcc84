"""
Class Enrollment Core - entry point for collaborators.

A capacity-safe class enrollment engine demonstrating:
- Per-class serialized admission (lock + row lock + bounded retry)
- Uniqueness-backed duplicate prevention
- Fire-and-forget notifications decoupled from the admission transaction
- Structured logging and Prometheus metrics

HTTP routing, authentication and e-mail delivery live in collaborators that
call the EnrollmentCore methods below.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from enrollment.core.config import Settings, get_settings
from enrollment.core.exceptions import InvalidRequest, PermissionDenied
from enrollment.core.logging import setup_logging, get_logger
from enrollment.db.session import Database
from enrollment.schemas.application import ApplicationRecord, ApplicationSummary
from enrollment.schemas.common import Actor, Page
from enrollment.schemas.mclass import ClassCreate, ClassResponse, Occupancy
from enrollment.services import application_ledger, class_registry
from enrollment.services.admission_service import AdmissionController
from enrollment.services.interfaces.class_lock import ClassLock
from enrollment.services.notification_service import NotificationDispatcher, NotificationSink
from enrollment.services.strategy_factory import get_class_lock

logger = get_logger(__name__)


class EnrollmentCore:
    """
    External interface of the enrollment engine.

    Writes that touch a class's occupancy (apply, cancel, delete_class) go
    through the AdmissionController; everything else is a plain read or a
    class creation.
    """

    def __init__(
        self,
        database: Database,
        class_lock: ClassLock,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        controller: Optional[AdmissionController] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database
        self.class_lock = class_lock
        self.notifier = notifier or NotificationDispatcher(enabled=self.settings.NOTIFICATIONS_ENABLED)
        self.controller = controller or AdmissionController(
            database,
            class_lock,
            self.notifier,
            max_attempts=self.settings.ADMISSION_MAX_RETRIES,
            retry_backoff=self.settings.ADMISSION_RETRY_BACKOFF,
        )

    # Admission

    async def apply(self, class_id: UUID, user_id: UUID) -> ApplicationRecord:
        application = await self.controller.apply(class_id, user_id)
        return ApplicationRecord.model_validate(application)

    async def cancel(self, class_id: UUID, user_id: UUID) -> None:
        await self.controller.cancel(class_id, user_id)

    async def has_applied(self, class_id: UUID, user_id: UUID) -> bool:
        """Check before retrying an apply whose outcome was lost to a timeout."""
        async with self.database.session() as session:
            return await application_ledger.exists(session, user_id, class_id)

    async def get_occupancy(self, class_id: UUID) -> Occupancy:
        async with self.database.session() as session:
            current, capacity = await class_registry.get_occupancy(session, class_id)
        return Occupancy(class_id=class_id, current=current, max=capacity)

    async def list_applications_for_class(
        self,
        class_id: UUID,
        page: int = 1,
        page_size: Optional[int] = None,
        actor: Optional[Actor] = None,
    ) -> Page[ApplicationSummary]:
        """Class roster, oldest application first. With an actor, only the host or an admin may read it."""
        page, page_size = self._page_params(page, page_size)
        async with self.database.session() as session:
            mclass = await class_registry.get_class(session, class_id)
            if actor is not None and not actor.is_admin and actor.user_id != mclass.host_id:
                raise PermissionDenied(
                    "Only admin or class host can view applications",
                    class_id=str(class_id),
                    user_id=str(actor.user_id),
                )
            applications, total = await application_ledger.list_for_class(session, class_id, page, page_size)

        items = [ApplicationSummary.without_class(a) for a in applications]
        return Page[ApplicationSummary].build(items, total, page, page_size)

    async def list_applications_for_user(
        self,
        user_id: UUID,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[ApplicationSummary]:
        page, page_size = self._page_params(page, page_size)
        async with self.database.session() as session:
            applications, total = await application_ledger.list_for_user(session, user_id, page, page_size)

        items = [ApplicationSummary.model_validate(a) for a in applications]
        return Page[ApplicationSummary].build(items, total, page, page_size)

    # Classes

    async def create_class(
        self,
        actor: Actor,
        data: ClassCreate,
        host_id: Optional[UUID] = None,
    ) -> ClassResponse:
        self._require_admin(actor, "create classes")
        async with self.database.session() as session:
            async with session.begin():
                mclass = await class_registry.create_class(
                    session, data, host_id or actor.user_id, now=self.controller.clock()
                )
        return ClassResponse.from_class(mclass, 0)

    async def get_class(self, class_id: UUID) -> ClassResponse:
        async with self.database.session() as session:
            mclass = await class_registry.get_class(session, class_id)
            occupancy = await application_ledger.count_for_class(session, class_id)
        return ClassResponse.from_class(mclass, occupancy)

    async def list_classes(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        include_expired: bool = False,
    ) -> Page[ClassResponse]:
        page, page_size = self._page_params(page, page_size)
        async with self.database.session() as session:
            rows, total = await class_registry.list_classes(
                session, page, page_size, include_expired, now=self.controller.clock()
            )
        items = [ClassResponse.from_class(mclass, occupancy) for mclass, occupancy in rows]
        return Page[ClassResponse].build(items, total, page, page_size)

    async def delete_class(self, actor: Actor, class_id: UUID) -> int:
        self._require_admin(actor, "delete classes")
        return await self.controller.remove_class(class_id)

    # Helpers

    def _page_params(self, page: int, page_size: Optional[int]) -> tuple[int, int]:
        if page_size is None:
            page_size = self.settings.DEFAULT_PAGE_SIZE
        if page < 1 or page_size < 1:
            raise InvalidRequest(
                "Page and page size must be positive integers",
                page=page,
                page_size=page_size,
            )
        return page, min(page_size, self.settings.MAX_PAGE_SIZE)

    @staticmethod
    def _require_admin(actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise PermissionDenied(f"Only admins can {action}", user_id=str(actor.user_id))


@asynccontextmanager
async def open_core(
    settings: Optional[Settings] = None,
    sink: Optional[NotificationSink] = None,
    create_schema: bool = False,
) -> AsyncIterator[EnrollmentCore]:
    """Core lifecycle: startup and shutdown hooks."""
    settings = settings or get_settings()
    setup_logging(settings)

    logger.info(
        "enrollment_core_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        lock_backend=settings.ADMISSION_LOCK_BACKEND,
    )

    database = Database.from_settings(settings)
    if create_schema:
        await database.create_all()

    class_lock = get_class_lock(settings)
    notifier = NotificationDispatcher(sink, enabled=settings.NOTIFICATIONS_ENABLED)
    core = EnrollmentCore(database, class_lock, notifier, settings)

    try:
        yield core
    finally:
        await notifier.drain(timeout=5)
        await class_lock.close()
        await database.dispose()
        logger.info("enrollment_core_shutdown")
