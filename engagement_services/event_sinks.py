"""
Event sinks that live outside the kernel.

LoggingEventSink writes each lifecycle notice as a structured log line.
BufferedEventSink holds notices for the length of one transaction so that
nothing is published for work that was rolled back.
"""

from __future__ import annotations

from engagement_kernel.domain.notices import EventSink, LifecycleNotice
from engagement_kernel.logging_config import get_logger

logger = get_logger("events")


class LoggingEventSink(EventSink):
    """Publishes notices to the ``engagement_kernel.events`` logger."""

    def publish(self, notice: LifecycleNotice) -> None:
        logger.info(
            "lifecycle_notice",
            extra={
                "notice": notice.name,
                "entity_type": notice.entity_type,
                "entity_id": str(notice.entity_id),
                "notice_project_id": str(notice.project_id),
                "notice_actor_id": str(notice.actor_id) if notice.actor_id else None,
                "from_status": notice.from_status,
                "to_status": notice.to_status,
                "occurred_at": notice.occurred_at,
                "attributes": dict(notice.attributes),
            },
        )


class BufferedEventSink(EventSink):
    """Collects notices until ``flush`` or ``discard``."""

    def __init__(self, target: EventSink):
        self._target = target
        self._pending: list[LifecycleNotice] = []

    def publish(self, notice: LifecycleNotice) -> None:
        self._pending.append(notice)

    @property
    def pending(self) -> tuple[LifecycleNotice, ...]:
        return tuple(self._pending)

    def flush(self) -> int:
        """Forward buffered notices in order; returns how many were sent."""
        pending, self._pending = self._pending, []
        for notice in pending:
            self._target.publish(notice)
        return len(pending)

    def discard(self) -> None:
        self._pending.clear()
