"""
engagement_services.unit_of_work -- transaction ownership and Conflict retry.

Responsibility:
    Runs one public operation in its own transaction: opens a session,
    wires the kernel services onto it, commits on success and rolls back on
    failure.  An operation that loses a concurrency race is re-run from
    scratch in a fresh session, up to ``max_attempts`` times.  Lifecycle
    notices are buffered and only published after the commit.

Architecture position:
    Services -- the only layer that commits or rolls back.  Kernel services
    are constructed here and nowhere else in this package.

Invariants enforced:
    - Only ConcurrencyError (kind "Conflict") is retried; every other error
      propagates after one rollback with its kind intact.
    - Notices from a rolled-back attempt are discarded.

Failure modes:
    - ConcurrencyConflictError after ``max_attempts`` lost races.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from engagement_kernel.db.engine import session_scope
from engagement_kernel.domain.clock import Clock, SystemClock
from engagement_kernel.domain.documents import ContractRenderer
from engagement_kernel.domain.notices import EventSink, NullEventSink
from engagement_kernel.exceptions import ConcurrencyError, EngagementKernelError
from engagement_kernel.logging_config import get_logger
from engagement_kernel.selectors.project_selector import ProjectSelector
from engagement_kernel.services.contract_coordinator import ContractCoordinator
from engagement_kernel.services.deliverable_service import DeliverableService
from engagement_kernel.services.lifecycle_engine import LifecycleEngine
from engagement_kernel.services.member_service import MemberService
from engagement_kernel.services.payment_reconciler import PaymentReconciler
from engagement_kernel.services.task_service import TaskService
from engagement_services.event_sinks import BufferedEventSink

logger = get_logger("services.unit_of_work")

T = TypeVar("T")


class KernelServices:
    """
    Every kernel service bound to one session.

    A single LifecycleEngine is shared so that the contract coordinator and
    the payment reconciler drive the same engine instance.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        events: EventSink,
        renderer: ContractRenderer,
    ):
        self.session = session
        self.members = MemberService(session, clock, events)
        self.lifecycle = LifecycleEngine(session, clock, events)
        self.contracts = ContractCoordinator(
            session, renderer, clock, events, lifecycle=self.lifecycle
        )
        self.payments = PaymentReconciler(session, clock, events, lifecycle=self.lifecycle)
        self.tasks = TaskService(session, clock, events)
        self.deliverables = DeliverableService(session, clock, events)
        self.projects = ProjectSelector(session)


class UnitOfWork:
    """Runs callables against KernelServices inside a managed transaction."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        renderer: ContractRenderer,
        clock: Clock | None = None,
        events: EventSink | None = None,
        max_attempts: int = 3,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._session_factory = session_factory
        self._renderer = renderer
        self.clock = clock or SystemClock()
        self.events = events or NullEventSink()
        self.max_attempts = max_attempts

    def run(self, operation: str, fn: Callable[[KernelServices], T]) -> T:
        """
        Execute ``fn`` in a transaction, retrying on Conflict.

        Postconditions:
            - On return the transaction is committed and its notices
              published.
            - On raise the transaction is rolled back and no notice from it
              was published.
        """
        attempt = 0
        while True:
            attempt += 1
            buffer = BufferedEventSink(self.events)
            t0 = time.monotonic()
            try:
                with session_scope(self._session_factory) as session:
                    result = fn(KernelServices(session, self.clock, buffer, self._renderer))
            except ConcurrencyError as exc:
                buffer.discard()
                if attempt >= self.max_attempts:
                    logger.error(
                        "operation_conflict_exhausted",
                        extra={"operation": operation, "attempts": attempt},
                        exc_info=True,
                    )
                    raise
                logger.info(
                    "operation_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "error_code": exc.code,
                    },
                )
                continue
            except EngagementKernelError as exc:
                buffer.discard()
                logger.info(
                    "operation_rejected",
                    extra={
                        "operation": operation,
                        "error_code": exc.code,
                        "error_kind": exc.kind,
                    },
                )
                raise
            except Exception:
                buffer.discard()
                logger.error(
                    "operation_failed",
                    extra={"operation": operation, "attempt": attempt},
                    exc_info=True,
                )
                raise

            published = self._publish(operation, buffer)
            logger.debug(
                "operation_completed",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "notices": published,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    @staticmethod
    def _publish(operation: str, buffer: BufferedEventSink) -> int:
        # The transaction is already committed; a failing sink must not
        # turn a completed operation into an error for the caller.
        try:
            return buffer.flush()
        except Exception:
            logger.error(
                "notice_publish_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            return 0
