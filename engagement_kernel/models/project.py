"""
Module: engagement_kernel.models.project
Responsibility: ORM persistence for projects (the engagement aggregate) and
    their append-only deliverables.
Architecture position: Kernel > Models.  May import from db/, domain/enums.py,
    domain/values.py and exceptions.py only.

Invariants enforced:
    - status changes only through LifecycleEngine, which routes every write
      through db.mutation.apply_mutation (conditional on status + version).
    - status = IN_PROGRESS  =>  payment_status = PAID and the linked contract
      is SIGNED (enforced by the engine's guards, checked by
      engagement_kernel.invariants).
    - Projects are never deleted; CANCELLED is a terminal status.
    - Deliverables are append-only; only their approval verdict is set, once.

Failure modes:
    - ConcurrencyConflictError (from apply_mutation) when a concurrent writer
      moved status or version.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from engagement_kernel.db.base import TrackedBase, UUIDString
from engagement_kernel.db.types import enum_column
from engagement_kernel.domain.enums import PaymentStatus, ProjectStatus
from engagement_kernel.domain.values import Pricing


class Project(TrackedBase):
    """
    Client-submitted project moving through the engagement lifecycle.

    Contract:
        pricing columns are NULL until review; contractor_id is NULL until
        assignment; contract_id references the single non-rejected contract
        (NULL when none).

    Non-goals:
        - This model does NOT validate transitions; LifecycleEngine does.
    """

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_client", "client_id"),
        Index("idx_project_contractor", "contractor_id"),
        Index("idx_project_status", "status"),
    )

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    contractor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    questionnaire: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[ProjectStatus] = mapped_column(
        enum_column(ProjectStatus),
        nullable=False,
        default=ProjectStatus.PENDING,
    )

    # Pricing (absent until review)
    price_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    price_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    price_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    # Plain reference: contracts point back at projects, so no FK cycle here.
    contract_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def has_pricing(self) -> bool:
        return self.price_amount is not None and self.price_currency is not None

    @property
    def pricing(self) -> Pricing | None:
        """Stored price at the currency's minor-unit scale, or None before review."""
        if not self.has_pricing:
            return None
        return Pricing(self.price_amount, self.price_currency, self.price_notes or "")

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.status.value}>"


class Deliverable(TrackedBase):
    """
    Work product submitted by the contractor.

    approved is tri-state: None (not reviewed), True, False.
    """

    __tablename__ = "project_deliverables"

    __table_args__ = (
        Index("idx_deliverable_project", "project_id", "submitted_at"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    submitted_by_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)

    approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Deliverable {self.name} approved={self.approved}>"
