"""
Module: engagement_kernel.db.mutation
Responsibility: The single commit path for every change to a TrackedBase
    record.  Replaces implicit "stamp updated_at on save" hooks with one
    explicit function that stamps, versions and conditionally writes.
Architecture position: Kernel > DB.  Called by kernel services only.

Invariants enforced:
    - Per-record mutual exclusion: the UPDATE matches only when the row still
      carries the version (and, when given, the status) the caller observed.
      Two concurrent read-modify-write cycles on the same record can never
      both succeed.
    - Monotonic updated_at: each mutation stamps a time strictly greater than
      the previous stamp, even under a frozen test clock.

Failure modes:
    - ConcurrencyConflictError when zero rows match (status or version moved).
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from engagement_kernel.db.base import TrackedBase
from engagement_kernel.exceptions import ConcurrencyConflictError
from engagement_kernel.logging_config import get_logger

logger = get_logger("db.mutation")

_ONE_TICK = timedelta(microseconds=1)


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def next_timestamp(now: datetime, previous: datetime | None) -> datetime:
    """Return ``now`` unless it does not advance past ``previous``."""
    now = _aware(now)
    if previous is None:
        return now
    previous = _aware(previous)
    if now <= previous:
        return previous + _ONE_TICK
    return now


def apply_mutation(
    session: Session,
    record: TrackedBase,
    changes: dict[str, Any],
    *,
    now: datetime,
    expected_status: Any = None,
) -> None:
    """
    Atomically apply ``changes`` to ``record``.

    Preconditions:
        - ``record`` is persistent in ``session`` and carries the version the
          caller based its decision on.
        - ``changes`` names mapped columns only; it never contains
          ``updated_at`` or ``version``.

    Postconditions:
        - The row holds ``changes``, ``version + 1`` and a fresh ``updated_at``.
        - ``record`` is refreshed from the database.

    Raises:
        ConcurrencyConflictError: The row's version or status no longer
            matches what the caller observed.
    """
    model = type(record)
    observed_version = record.version
    stamp = next_timestamp(now, record.updated_at)

    stmt = (
        update(model)
        .where(model.id == record.id)
        .where(model.version == observed_version)
        .values(**changes, updated_at=stamp, version=observed_version + 1)
        .execution_options(synchronize_session=False)
    )
    if expected_status is not None:
        stmt = stmt.where(model.status == expected_status)

    result = session.execute(stmt)
    if result.rowcount != 1:
        logger.info(
            "conditional_update_conflict",
            extra={
                "table": model.__tablename__,
                "record_id": str(record.id),
                "observed_version": observed_version,
            },
        )
        raise ConcurrencyConflictError(model.__tablename__, str(record.id))

    session.refresh(record)
