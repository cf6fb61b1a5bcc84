"""
Fire-and-forget admission notifications.

The admission controller hands a notice to the dispatcher only after the
transaction has committed. The dispatcher runs the sink in a background task:
the apply call never waits for delivery, and a failing sink is logged and
counted but never reaches the caller.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_notification

logger = get_logger(__name__)


@dataclass(frozen=True)
class AdmissionNotice:
    """Everything a sink needs to tell a user they got a seat.

    Attributes:
        application_id: The admitted application.
        user_id: Recipient; the sink resolves contact details itself.
        class_id: The class applied to.
        class_title: Display title of the class.
        class_start_at: Scheduled start.
        class_end_at: Scheduled end.
        applied_at: Commit timestamp of the admission.
    """

    application_id: UUID
    user_id: UUID
    class_id: UUID
    class_title: str
    class_start_at: datetime
    class_end_at: datetime
    applied_at: datetime


class NotificationSink(ABC):
    """Delivery channel for admission notices (e-mail, push, ...)."""

    @abstractmethod
    async def send(self, notice: AdmissionNotice) -> None:
        """Deliver one notice. May raise; the dispatcher absorbs failures."""


class LoggingNotificationSink(NotificationSink):
    """Default sink: records the notice in the structured log."""

    async def send(self, notice: AdmissionNotice) -> None:
        logger.info(
            "application_notice",
            application_id=str(notice.application_id),
            user_id=str(notice.user_id),
            class_id=str(notice.class_id),
            class_title=notice.class_title,
            class_start_at=notice.class_start_at.isoformat(),
        )


class NotificationDispatcher:
    """Schedules sink deliveries as tasks and keeps them referenced until done."""

    def __init__(self, sink: Optional[NotificationSink] = None, enabled: bool = True):
        self.sink = sink or LoggingNotificationSink()
        self.enabled = enabled
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, notice: AdmissionNotice) -> Optional[asyncio.Task]:
        if not self.enabled:
            return None
        task = asyncio.create_task(self._deliver(notice))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, notice: AdmissionNotice) -> None:
        try:
            await self.sink.send(notice)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            record_notification(sent=False)
            logger.error(
                "notification_failed",
                application_id=str(notice.application_id),
                user_id=str(notice.user_id),
                error=str(e),
            )
            return
        record_notification(sent=True)
        logger.debug("notification_sent", application_id=str(notice.application_id))

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if not self._pending:
            return
        done, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            logger.warning("notifications_abandoned", count=len(still_pending))
