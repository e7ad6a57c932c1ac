"""
ProjectSelector -- read paths for projects and what hangs off them.

Every actor-facing method applies the VIEW_PROJECT rule: admins see all
projects, clients their own, contractors the ones they are assigned to.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from engagement_kernel.domain.access import Actor, Capability, Ownership, check_capability
from engagement_kernel.domain.dtos import (
    ContractInfo,
    DeliverableInfo,
    PaymentStatusInfo,
    ProjectInfo,
    TaskInfo,
)
from engagement_kernel.domain.enums import Role
from engagement_kernel.exceptions import ContractNotFoundError, ProjectNotFoundError
from engagement_kernel.models.contract import Contract, ContractSignature
from engagement_kernel.models.project import Deliverable, Project
from engagement_kernel.models.task import Task
from engagement_kernel.selectors.base import BaseSelector


def _ownership(project: Project) -> Ownership:
    return Ownership(
        entity_id=project.id,
        client_id=project.client_id,
        contractor_id=project.contractor_id,
    )


class ProjectSelector(BaseSelector[Project]):
    """Read-only project queries."""

    def _visible(self, actor: Actor, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        check_capability(actor, Capability.VIEW_PROJECT, _ownership(project))
        return project

    def _contract_info(self, contract: Contract) -> ContractInfo:
        signatures = self.session.execute(
            select(ContractSignature).where(ContractSignature.contract_id == contract.id)
        ).scalars()
        return ContractInfo.from_model(contract, list(signatures))

    def list_for_actor(self, actor: Actor) -> list[ProjectInfo]:
        """Projects visible to ``actor``, newest first."""
        stmt = select(Project)
        if actor.role == Role.CLIENT:
            stmt = stmt.where(Project.client_id == actor.id)
        elif actor.role == Role.CONTRACTOR:
            stmt = stmt.where(Project.contractor_id == actor.id)
        stmt = stmt.order_by(Project.created_at.desc(), Project.id)
        return [ProjectInfo.from_model(p) for p in self.session.execute(stmt).scalars()]

    def get_for_actor(self, actor: Actor, project_id: UUID) -> ProjectInfo:
        """Raises ProjectNotFoundError or ForbiddenError."""
        return ProjectInfo.from_model(self._visible(actor, project_id))

    def get(self, project_id: UUID) -> ProjectInfo:
        """Unchecked lookup for internal callers."""
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return ProjectInfo.from_model(project)

    def tasks_for_project(self, project_id: UUID) -> list[TaskInfo]:
        tasks = self.session.execute(
            select(Task).where(Task.project_id == project_id).order_by(Task.sequence)
        ).scalars()
        return [TaskInfo.from_model(t) for t in tasks]

    def deliverables_for_project(self, project_id: UUID) -> list[DeliverableInfo]:
        deliverables = self.session.execute(
            select(Deliverable)
            .where(Deliverable.project_id == project_id)
            .order_by(Deliverable.submitted_at, Deliverable.id)
        ).scalars()
        return [DeliverableInfo.from_model(d) for d in deliverables]

    def linked_contract(self, project_id: UUID) -> ContractInfo | None:
        """The contract the project currently references, unchecked."""
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        if project.contract_id is None:
            return None
        contract = self.session.get(Contract, project.contract_id)
        return self._contract_info(contract) if contract is not None else None

    def contract_for_project(self, actor: Actor, project_id: UUID) -> ContractInfo:
        """The project's active contract.  ContractNotFoundError when none."""
        project = self._visible(actor, project_id)
        if project.contract_id is None:
            raise ContractNotFoundError(str(project_id))
        contract = self.session.get(Contract, project.contract_id)
        if contract is None:
            raise ContractNotFoundError(str(project.contract_id))
        return self._contract_info(contract)

    def contracts_for_project(self, project_id: UUID) -> list[ContractInfo]:
        """Every contract ever generated for the project, rejected ones included."""
        contracts = self.session.execute(
            select(Contract)
            .where(Contract.project_id == project_id)
            .order_by(Contract.created_at, Contract.id)
        ).scalars()
        return [self._contract_info(c) for c in contracts]

    def contract(self, actor: Actor, contract_id: UUID) -> ContractInfo:
        contract = self.session.get(Contract, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        self._visible(actor, contract.project_id)
        return self._contract_info(contract)

    def payment_status(self, actor: Actor, project_id: UUID) -> PaymentStatusInfo:
        project = self._visible(actor, project_id)
        pricing = project.pricing
        return PaymentStatusInfo(
            project_id=project.id,
            payment_status=project.payment_status,
            amount=pricing.amount if pricing else None,
            currency=pricing.currency if pricing else None,
        )
