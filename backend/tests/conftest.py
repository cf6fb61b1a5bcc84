"""
Pytest fixtures for the database, the enrollment core and test data.

Each test gets a fresh schema on a throwaway SQLite file, or on the database
named by TEST_DATABASE_URL (e.g. a PostgreSQL test database).
"""

import os
import uuid
from datetime import datetime, timedelta
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from enrollment.core.config import Settings
from enrollment.db.base import utcnow
from enrollment.db.session import Database
from enrollment.main import EnrollmentCore
from enrollment.schemas.common import Actor
from enrollment.schemas.mclass import ClassCreate, ClassResponse
from enrollment.services.interfaces.local_lock import LocalClassLock
from enrollment.services.notification_service import (
    AdmissionNotice,
    NotificationDispatcher,
    NotificationSink,
)


class RecordingSink(NotificationSink):
    """Collects notices instead of delivering them."""

    def __init__(self):
        self.notices: list[AdmissionNotice] = []

    async def send(self, notice: AdmissionNotice) -> None:
        self.notices.append(notice)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        ADMISSION_LOCK_TIMEOUT=30.0,
        ADMISSION_MAX_RETRIES=3,
        ADMISSION_RETRY_BACKOFF=0.001,
    )


@pytest_asyncio.fixture
async def database(tmp_path, settings: Settings) -> AsyncGenerator[Database, None]:
    """Create tables, yield the handle, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'enrollment_test.db'}")
    db = Database.from_settings(settings, url=url)
    await db.drop_all()
    await db.create_all()

    yield db

    await db.drop_all()
    await db.dispose()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def core(database: Database, settings: Settings, sink: RecordingSink) -> AsyncGenerator[EnrollmentCore, None]:
    notifier = NotificationDispatcher(sink)
    enrollment_core = EnrollmentCore(
        database,
        LocalClassLock(timeout=settings.ADMISSION_LOCK_TIMEOUT),
        notifier,
        settings,
    )
    yield enrollment_core
    await notifier.drain(timeout=5)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=uuid.uuid4(), is_admin=True)


@pytest.fixture
def member() -> Actor:
    return Actor(user_id=uuid.uuid4(), is_admin=False)


def class_payload(
    capacity: int = 5,
    starts_in: timedelta = timedelta(days=7),
    duration: timedelta = timedelta(hours=2),
    title: str = "Intro to Watercolor",
    now: datetime | None = None,
) -> ClassCreate:
    start_at = (now or utcnow()) + starts_in
    return ClassCreate(
        title=title,
        description="Brushes provided",
        capacity=capacity,
        start_at=start_at,
        end_at=start_at + duration,
    )


@pytest.fixture
def make_class(core: EnrollmentCore, admin: Actor) -> Callable[..., Awaitable[ClassResponse]]:
    """Factory creating a class through the core as the admin."""

    async def _make(**kwargs) -> ClassResponse:
        return await core.create_class(admin, class_payload(**kwargs))

    return _make


@pytest_asyncio.fixture
async def small_class(make_class) -> ClassResponse:
    """A future class with 5 seats."""
    return await make_class(capacity=5)


def move_clock_past_start(core: EnrollmentCore, mclass: ClassResponse) -> None:
    """Pretend the class has started by advancing the controller's clock."""
    core.controller.clock = lambda: mclass.start_at + timedelta(minutes=1)
