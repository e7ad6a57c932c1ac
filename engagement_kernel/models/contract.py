"""
Module: engagement_kernel.models.contract
Responsibility: ORM persistence for engagement contracts and their signature
    log.
Architecture position: Kernel > Models.  May import from db/, domain/enums.py
    and exceptions.py only.

Invariants enforced:
    - A contract references exactly one project, one client, one contractor.
    - Signatures are append-only and unique per (contract, member)
      (uq_contract_signature), which makes re-signing idempotent even when two
      requests from the same party race.
    - status = SIGNED only once both parties have a signature row.
    - A REJECTED contract is never revived; a new Contract row is created.

Failure modes:
    - IntegrityError on a duplicate signature (handled by ContractCoordinator).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from engagement_kernel.db.base import Base, TrackedBase, UUIDString
from engagement_kernel.db.types import enum_column
from engagement_kernel.domain.enums import ContractStatus


class Contract(TrackedBase):
    """
    Agreement between a project's client and contractor.

    Contract:
        file_path is the reference returned by the document collaborator when
        the contract was generated.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        Index("idx_contract_project", "project_id"),
        Index("idx_contract_status", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    contractor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)

    status: Mapped[ContractStatus] = mapped_column(
        enum_column(ContractStatus),
        nullable=False,
        default=ContractStatus.PENDING,
    )

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def party_ids(self) -> frozenset[UUID]:
        return frozenset({self.client_id, self.contractor_id})

    def __repr__(self) -> str:
        return f"<Contract {self.id} {self.status.value}>"


class ContractSignature(Base):
    """One party's signature on a contract.  Insert-only."""

    __tablename__ = "contract_signatures"

    __table_args__ = (
        UniqueConstraint("contract_id", "member_id", name="uq_contract_signature"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=False
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    signature: Mapped[str] = mapped_column(Text, nullable=False)

    signed_at: Mapped[datetime] = mapped_column(nullable=False)
