"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor for every service in the kernel layer:
    the caller's SQLAlchemy ``Session``, the injected ``Clock`` and the
    ``EventSink`` lifecycle notices are published to.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or roll back.  engagement_services owns commit and
      rollback, so a failed step leaves every record in its last consistent
      state.

Failure modes:
    - A subclass calling ``session.commit()`` would break the atomicity of
      multi-step operations such as sign -> mark_awaiting_payment.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from engagement_kernel.db.base import Base
from engagement_kernel.domain.clock import Clock, SystemClock
from engagement_kernel.domain.notices import EventSink, LifecycleNotice, NullEventSink

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a Session from the caller and uses ``session.flush()`` to
        persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing queries; those belong in
          ``engagement_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: EventSink | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.events = events or NullEventSink()

    def _lock(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        """
        Load ``entity_id`` fresh from the database, row-locked on PostgreSQL.

        SQLite ignores FOR UPDATE; the conditional update in apply_mutation
        still detects a lost race there.
        """
        stmt = (
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _publish(self, name: str, **fields: Any) -> None:
        notice = LifecycleNotice.create(name, occurred_at=self.clock.now(), **fields)
        self.events.publish(notice)
