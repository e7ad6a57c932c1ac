"""
Module: engagement_kernel.models.payment_receipt
Responsibility: Durable record of every payment notification the reconciler
    has acknowledged, keyed by the provider's idempotency token.
Architecture position: Kernel > Models.

Invariants enforced:
    - Exactly one receipt per (project_id, idempotency_token)
      (uq_receipt_project_token).  The constraint is what makes the
      check-and-record atomic under concurrent re-delivery.
    - project_id is deliberately NOT a foreign key: the receipt mirrors
      provider state and must be storable even when the referenced project
      cannot be found (it then waits in the review queue).

Failure modes:
    - IntegrityError on a second insert for the same key (reported upstream
      as a concurrency conflict and retried; the retry sees the duplicate).

Audit relevance:
    payload_hash ties the receipt to the exact notification body, and the
    NEEDS_REVIEW rows are the manual reconciliation work queue.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from engagement_kernel.db.base import TrackedBase, UUIDString
from engagement_kernel.db.types import enum_column
from engagement_kernel.domain.enums import PaymentOutcome, ReceiptStatus


class PaymentReceipt(TrackedBase):
    """An acknowledged payment notification."""

    __tablename__ = "payment_receipts"

    __table_args__ = (
        UniqueConstraint(
            "project_id", "idempotency_token", name="uq_receipt_project_token"
        ),
        Index("idx_receipt_status", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    idempotency_token: Mapped[str] = mapped_column(String(255), nullable=False)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    outcome: Mapped[PaymentOutcome] = mapped_column(
        enum_column(PaymentOutcome), nullable=False
    )

    payload_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[ReceiptStatus] = mapped_column(
        enum_column(ReceiptStatus), nullable=False
    )

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentReceipt {self.project_id}:{self.idempotency_token} {self.status.value}>"
