"""
DTOs -- immutable views handed across the kernel boundary.

Responsibility:
    Every public service and selector method returns one of these frozen
    dataclasses, never an ORM instance, so callers cannot mutate records
    behind the single commit path.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  ``from_model()`` class methods
    exist as boundary converters and are only invoked from the service and
    selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from uuid import UUID

from engagement_kernel.domain.enums import (
    ContractStatus,
    PaymentOutcome,
    PaymentStatus,
    ProjectStatus,
    ReceiptStatus,
    Role,
    TaskPriority,
    TaskStatus,
)
from engagement_kernel.domain.values import Pricing

if TYPE_CHECKING:
    from engagement_kernel.models.contract import Contract, ContractSignature
    from engagement_kernel.models.member import Member
    from engagement_kernel.models.payment_receipt import PaymentReceipt
    from engagement_kernel.models.project import Deliverable, Project
    from engagement_kernel.models.task import Task


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class MemberInfo:
    id: UUID
    display_name: str
    email: str
    role: Role
    is_active: bool

    @classmethod
    def from_model(cls, member: Member) -> MemberInfo:
        return cls(
            id=member.id,
            display_name=member.display_name,
            email=member.email,
            role=member.role,
            is_active=member.is_active,
        )


@dataclass(frozen=True)
class ProjectInfo:
    """
    Snapshot of a project.

    questionnaire is deep-frozen; pricing is None until review.
    """

    id: UUID
    client_id: UUID
    contractor_id: UUID | None
    title: str
    description: str
    questionnaire: MappingProxyType
    status: ProjectStatus
    pricing: Pricing | None
    payment_status: PaymentStatus
    contract_id: UUID | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    cancelled_at: datetime | None
    version: int

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_model(cls, project: Project) -> ProjectInfo:
        return cls(
            id=project.id,
            client_id=project.client_id,
            contractor_id=project.contractor_id,
            title=project.title,
            description=project.description,
            questionnaire=_freeze(dict(project.questionnaire or {})),
            status=project.status,
            pricing=project.pricing,
            payment_status=project.payment_status,
            contract_id=project.contract_id,
            cancellation_reason=project.cancellation_reason,
            created_at=project.created_at,
            updated_at=project.updated_at,
            completed_at=project.completed_at,
            cancelled_at=project.cancelled_at,
            version=project.version,
        )


@dataclass(frozen=True)
class SignatureInfo:
    member_id: UUID
    signed_at: datetime

    @classmethod
    def from_model(cls, signature: ContractSignature) -> SignatureInfo:
        return cls(member_id=signature.member_id, signed_at=signature.signed_at)


@dataclass(frozen=True)
class ContractInfo:
    id: UUID
    project_id: UUID
    client_id: UUID
    contractor_id: UUID
    status: ContractStatus
    file_path: str
    signatures: tuple[SignatureInfo, ...]
    rejection_reason: str | None
    created_at: datetime
    updated_at: datetime

    def signed_by(self, member_id: UUID) -> bool:
        return any(s.member_id == member_id for s in self.signatures)

    @property
    def client_signed(self) -> bool:
        return self.signed_by(self.client_id)

    @property
    def contractor_signed(self) -> bool:
        return self.signed_by(self.contractor_id)

    @classmethod
    def from_model(
        cls,
        contract: Contract,
        signatures: list[ContractSignature] | tuple[ContractSignature, ...] = (),
    ) -> ContractInfo:
        ordered = sorted(signatures, key=lambda s: s.signed_at)
        return cls(
            id=contract.id,
            project_id=contract.project_id,
            client_id=contract.client_id,
            contractor_id=contract.contractor_id,
            status=contract.status,
            file_path=contract.file_path,
            signatures=tuple(SignatureInfo.from_model(s) for s in ordered),
            rejection_reason=contract.rejection_reason,
            created_at=contract.created_at,
            updated_at=contract.updated_at,
        )


@dataclass(frozen=True)
class TaskInfo:
    id: UUID
    project_id: UUID
    sequence: int
    title: str
    description: str | None
    assignee_id: UUID | None
    due_date: date | None
    priority: TaskPriority
    status: TaskStatus

    @classmethod
    def from_model(cls, task: Task) -> TaskInfo:
        return cls(
            id=task.id,
            project_id=task.project_id,
            sequence=task.sequence,
            title=task.title,
            description=task.description,
            assignee_id=task.assignee_id,
            due_date=task.due_date,
            priority=task.priority,
            status=task.status,
        )


@dataclass(frozen=True)
class DeliverableInfo:
    id: UUID
    project_id: UUID
    name: str
    file_url: str
    submitted_by_id: UUID
    submitted_at: datetime
    approved: bool | None

    @classmethod
    def from_model(cls, deliverable: Deliverable) -> DeliverableInfo:
        return cls(
            id=deliverable.id,
            project_id=deliverable.project_id,
            name=deliverable.name,
            file_url=deliverable.file_url,
            submitted_by_id=deliverable.submitted_by_id,
            submitted_at=deliverable.submitted_at,
            approved=deliverable.approved,
        )


@dataclass(frozen=True)
class PaymentReceiptInfo:
    id: UUID
    project_id: UUID
    idempotency_token: str
    event_type: str
    outcome: PaymentOutcome
    status: ReceiptStatus
    attempts: int
    failure_message: str | None
    resolution_note: str | None
    applied_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, receipt: PaymentReceipt) -> PaymentReceiptInfo:
        return cls(
            id=receipt.id,
            project_id=receipt.project_id,
            idempotency_token=receipt.idempotency_token,
            event_type=receipt.event_type,
            outcome=receipt.outcome,
            status=receipt.status,
            attempts=receipt.attempts,
            failure_message=receipt.failure_message,
            resolution_note=receipt.resolution_note,
            applied_at=receipt.applied_at,
            created_at=receipt.created_at,
        )


@dataclass(frozen=True)
class PaymentStatusInfo:
    """What a client sees when polling a project's payment."""

    project_id: UUID
    payment_status: PaymentStatus
    amount: Decimal | None
    currency: str | None


@dataclass(frozen=True)
class PaymentIntentInfo:
    """Client-side handle for a payment created with the provider."""

    project_id: UUID
    intent_id: str
    client_secret: str
    amount_minor: int
    currency: str
