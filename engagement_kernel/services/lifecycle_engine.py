"""
LifecycleEngine -- sole owner of Project status.

Responsibility:
    Validates and applies every project status transition, and keeps the
    project consistent with its contract and payment record.  Transitions
    are looked up in PROJECT_WORKFLOW; an action with no edge out of the
    current status is rejected.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Called by the orchestrator for client/admin operations, by
    ContractCoordinator for ``mark_awaiting_payment`` and by PaymentReconciler
    for ``record_payment``.

Invariants enforced:
    - status = IN_PROGRESS  =>  payment_status = PAID and contract SIGNED.
    - status = AWAITING_PAYMENT  =>  contract SIGNED and not yet PAID.
    - COMPLETED and CANCELLED are terminal; a late payment never resurrects
      a cancelled project.
    - A FAILED notification never downgrades a PAID project.
    - Every write goes through apply_mutation (status + version guarded).

Failure modes:
    - ValidationError: empty submission fields, non-client submitter.
    - ProjectNotFoundError / MemberNotFoundError.
    - ForbiddenError: capability check denied.
    - InvalidTransitionError: no edge from the current status.
    - PreconditionFailedError: open tasks on complete, active contract on
      reassignment.
    - ConcurrencyConflictError: a concurrent writer won the race.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from engagement_kernel.db.mutation import apply_mutation
from engagement_kernel.domain.access import Actor, Capability, Ownership, check_capability
from engagement_kernel.domain.dtos import ProjectInfo
from engagement_kernel.domain.enums import (
    ContractStatus,
    PaymentOutcome,
    PaymentStatus,
    ProjectStatus,
    Role,
    TaskStatus,
)
from engagement_kernel.domain.lifecycle import PROJECT_WORKFLOW
from engagement_kernel.domain.values import Pricing
from engagement_kernel.exceptions import (
    ActiveContractExistsError,
    InvalidTransitionError,
    ProjectNotFoundError,
    TasksIncompleteError,
    ValidationError,
)
from engagement_kernel.logging_config import LogContext, get_logger
from engagement_kernel.models.contract import Contract
from engagement_kernel.models.project import Project
from engagement_kernel.models.task import Task
from engagement_kernel.services.base import BaseService
from engagement_kernel.services.member_service import MemberService

logger = get_logger("services.lifecycle")


def project_ownership(project: Project) -> Ownership:
    return Ownership(
        entity_id=project.id,
        client_id=project.client_id,
        contractor_id=project.contractor_id,
    )


class LifecycleEngine(BaseService[Project]):
    """
    Project state machine.

    Contract:
        Every public method returns a ProjectInfo snapshot taken after the
        write was flushed.  Nothing is committed here.
    """

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def lock_project(self, project_id: UUID) -> Project:
        """Load the project for update.  Raises ProjectNotFoundError."""
        project = self._lock(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _linked_contract(self, project: Project) -> Contract | None:
        if project.contract_id is None:
            return None
        return self.session.get(Contract, project.contract_id)

    # ------------------------------------------------------------------
    # Commit path
    # ------------------------------------------------------------------

    def _transition(
        self,
        project: Project,
        action: str,
        changes: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
        **attributes: Any,
    ) -> Project:
        transition = PROJECT_WORKFLOW.find_transition(project.status.value, action)
        if transition is None:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, action
            )

        from_status = project.status
        to_status = ProjectStatus(transition.to_state)
        apply_mutation(
            self.session,
            project,
            {"status": to_status, **(changes or {})},
            now=self.clock.now(),
            expected_status=from_status,
        )

        logger.info(
            "project_transitioned",
            extra={
                "project_id": str(project.id),
                "action": action,
                "from_status": from_status.value,
                "to_status": to_status.value,
                "version": project.version,
            },
        )
        if transition.notice:
            self._publish(
                transition.notice,
                entity_id=project.id,
                project_id=project.id,
                actor_id=actor_id,
                from_status=from_status.value,
                to_status=to_status.value,
                **attributes,
            )
        return project

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(
        self,
        client: Actor,
        title: str,
        description: str,
        questionnaire: dict,
    ) -> ProjectInfo:
        """
        Create a project in PENDING for ``client``.

        Raises:
            ValidationError: Actor is not a client, or a field is empty.
            MemberNotFoundError: The client is not a registered active client.
        """
        if client.role != Role.CLIENT:
            raise ValidationError("actor", "only clients submit projects")
        title = (title or "").strip()
        description = (description or "").strip()
        if not title:
            raise ValidationError("title", "must not be empty")
        if not description:
            raise ValidationError("description", "must not be empty")
        if not isinstance(questionnaire, dict) or not questionnaire:
            raise ValidationError("questionnaire", "must be a non-empty object")

        MemberService(self.session, self.clock).require_active(client.id, Role.CLIENT)

        now = self.clock.now()
        project = Project(
            client_id=client.id,
            title=title,
            description=description,
            questionnaire=dict(questionnaire),
            status=ProjectStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.session.add(project)
        self.session.flush()

        with LogContext.bind(project_id=project.id):
            logger.info("project_submitted", extra={"client_id": str(client.id)})
        self._publish(
            "project.submitted",
            entity_id=project.id,
            project_id=project.id,
            actor_id=client.id,
            to_status=ProjectStatus.PENDING.value,
        )
        return ProjectInfo.from_model(project)

    def review(self, actor: Actor, project_id: UUID, pricing: Pricing) -> ProjectInfo:
        """PENDING -> REVIEWED, setting pricing."""
        check_capability(actor, Capability.REVIEW_PROJECT, Ownership(entity_id=project_id))
        if not isinstance(pricing, Pricing):
            raise ValidationError("pricing", "must be a Pricing value")

        project = self.lock_project(project_id)
        self._transition(
            project,
            "review",
            {
                "price_amount": pricing.amount,
                "price_currency": pricing.currency,
                "price_notes": pricing.notes,
            },
            actor_id=actor.id,
            amount=str(pricing.amount),
            currency=pricing.currency,
        )
        return ProjectInfo.from_model(project)

    def assign_contractor(
        self,
        actor: Actor,
        project_id: UUID,
        contractor_id: UUID,
    ) -> ProjectInfo:
        """
        Set the project's contractor.  Status is unchanged.

        Raises:
            InvalidTransitionError: Project is terminal.
            MemberNotFoundError: contractor_id is not an active contractor.
            ActiveContractExistsError: A non-rejected contract already binds
                the current contractor.
        """
        check_capability(actor, Capability.ASSIGN_CONTRACTOR, Ownership(entity_id=project_id))
        project = self.lock_project(project_id)
        if project.status.is_terminal:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "assign_contractor"
            )
        MemberService(self.session, self.clock).require_active(contractor_id, Role.CONTRACTOR)

        if project.contractor_id == contractor_id:
            return ProjectInfo.from_model(project)

        contract = self._linked_contract(project)
        if contract is not None and contract.status != ContractStatus.REJECTED:
            raise ActiveContractExistsError(str(project.id), str(contract.id))

        previous = project.contractor_id
        apply_mutation(
            self.session,
            project,
            {"contractor_id": contractor_id},
            now=self.clock.now(),
            expected_status=project.status,
        )
        logger.info(
            "contractor_assigned",
            extra={
                "project_id": str(project.id),
                "contractor_id": str(contractor_id),
                "previous_contractor_id": str(previous) if previous else None,
            },
        )
        self._publish(
            "project.contractor_assigned",
            entity_id=project.id,
            project_id=project.id,
            actor_id=actor.id,
            contractor_id=str(contractor_id),
        )
        return ProjectInfo.from_model(project)

    def mark_awaiting_payment(self, project_id: UUID) -> ProjectInfo:
        """
        PENDING | REVIEWED -> AWAITING_PAYMENT once the contract is signed.

        A succeeded payment reconciled before the contract was fully signed
        is honoured here: the project continues straight to IN_PROGRESS.
        """
        project = self.lock_project(project_id)
        contract = self._linked_contract(project)
        if contract is None or contract.status != ContractStatus.SIGNED:
            raise InvalidTransitionError(
                "project",
                str(project.id),
                project.status.value,
                "mark_awaiting_payment",
                reason="contract is not signed",
            )

        self._transition(project, "mark_awaiting_payment", contract_id=str(contract.id))

        if project.payment_status == PaymentStatus.PAID:
            logger.info(
                "early_payment_applied",
                extra={"project_id": str(project.id)},
            )
            self._transition(project, "record_payment")
        return ProjectInfo.from_model(project)

    def record_payment(self, project_id: UUID, outcome: PaymentOutcome) -> ProjectInfo:
        """
        Apply a reconciled payment outcome.

        SUCCEEDED sets PAID and advances AWAITING_PAYMENT -> IN_PROGRESS; in
        any other status only payment_status changes.  FAILED sets FAILED
        unless the project is already PAID.
        """
        outcome = PaymentOutcome(outcome)
        project = self.lock_project(project_id)
        status_before = project.payment_status

        if outcome == PaymentOutcome.SUCCEEDED:
            if project.status == ProjectStatus.AWAITING_PAYMENT:
                self._transition(
                    project,
                    "record_payment",
                    {"payment_status": PaymentStatus.PAID},
                )
            elif project.payment_status != PaymentStatus.PAID:
                apply_mutation(
                    self.session,
                    project,
                    {"payment_status": PaymentStatus.PAID},
                    now=self.clock.now(),
                    expected_status=project.status,
                )
                logger.info(
                    "payment_recorded_without_transition",
                    extra={
                        "project_id": str(project.id),
                        "status": project.status.value,
                    },
                )
            else:
                logger.info(
                    "payment_already_recorded",
                    extra={"project_id": str(project.id)},
                )
                return ProjectInfo.from_model(project)
        else:
            if project.payment_status == PaymentStatus.PAID:
                logger.warning(
                    "payment_failure_after_paid_ignored",
                    extra={"project_id": str(project.id)},
                )
                return ProjectInfo.from_model(project)
            if project.payment_status != PaymentStatus.FAILED:
                apply_mutation(
                    self.session,
                    project,
                    {"payment_status": PaymentStatus.FAILED},
                    now=self.clock.now(),
                    expected_status=project.status,
                )

        self._publish(
            "project.payment_recorded",
            entity_id=project.id,
            project_id=project.id,
            outcome=outcome.value,
            payment_status=project.payment_status.value,
            previous_payment_status=status_before.value,
        )
        return ProjectInfo.from_model(project)

    def cancel(self, actor: Actor, project_id: UUID, reason: str | None = None) -> ProjectInfo:
        """Any non-terminal status -> CANCELLED.  Admin or owning client."""
        project = self.lock_project(project_id)
        check_capability(actor, Capability.CANCEL_PROJECT, project_ownership(project))
        reason = (reason or "").strip() or None
        self._transition(
            project,
            "cancel",
            {"cancellation_reason": reason, "cancelled_at": self.clock.now()},
            actor_id=actor.id,
            reason=reason,
        )
        return ProjectInfo.from_model(project)

    def complete(self, actor: Actor, project_id: UUID) -> ProjectInfo:
        """IN_PROGRESS -> COMPLETED once every task is completed."""
        check_capability(actor, Capability.COMPLETE_PROJECT, Ownership(entity_id=project_id))
        project = self.lock_project(project_id)
        if PROJECT_WORKFLOW.find_transition(project.status.value, "complete") is None:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "complete"
            )

        open_tasks = self.session.execute(
            select(func.count())
            .select_from(Task)
            .where(Task.project_id == project.id)
            .where(Task.status != TaskStatus.COMPLETED)
        ).scalar_one()
        if open_tasks:
            raise TasksIncompleteError(str(project.id), open_tasks)

        self._transition(
            project,
            "complete",
            {"completed_at": self.clock.now()},
            actor_id=actor.id,
        )
        return ProjectInfo.from_model(project)
