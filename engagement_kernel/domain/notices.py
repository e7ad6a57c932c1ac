"""
Lifecycle notices and the event sink port.

Responsibility:
    Every successful transition publishes a LifecycleNotice so that the chat,
    document and task-assignment collaborators can react without the kernel
    knowing about them.

Architecture position:
    Kernel > Domain.  The port (EventSink) and the two in-process sinks live
    here; sinks that do I/O live in engagement_services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class LifecycleNotice:
    """
    A fact about the lifecycle, named ``<entity>.<event>``.

    Examples: ``project.reviewed``, ``contract.signed``.
    """

    name: str
    entity_type: str
    entity_id: UUID
    project_id: UUID
    occurred_at: datetime
    actor_id: UUID | None = None
    from_status: str | None = None
    to_status: str | None = None
    attributes: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def create(
        cls,
        name: str,
        *,
        entity_id: UUID,
        project_id: UUID,
        occurred_at: datetime,
        actor_id: UUID | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        **attributes: Any,
    ) -> LifecycleNotice:
        return cls(
            name=name,
            entity_type=name.split(".", 1)[0],
            entity_id=entity_id,
            project_id=project_id,
            occurred_at=occurred_at,
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
            attributes=MappingProxyType(dict(attributes)),
        )


class EventSink(ABC):
    """Outbound port for lifecycle notices."""

    @abstractmethod
    def publish(self, notice: LifecycleNotice) -> None:
        ...


class NullEventSink(EventSink):
    """Discards every notice."""

    def publish(self, notice: LifecycleNotice) -> None:
        return None


class InMemoryEventSink(EventSink):
    """Keeps published notices in order.  Used by tests."""

    def __init__(self) -> None:
        self.notices: list[LifecycleNotice] = []

    def publish(self, notice: LifecycleNotice) -> None:
        self.notices.append(notice)

    def names(self) -> list[str]:
        return [n.name for n in self.notices]

    def named(self, name: str) -> list[LifecycleNotice]:
        return [n for n in self.notices if n.name == name]

    def clear(self) -> None:
        self.notices.clear()
