"""
engagement_services.engagement_orchestrator -- inbound interface.

Responsibility:
    One method per inbound operation.  Each takes an ``Actor`` from the
    access gate plus validated parameters, runs in its own transaction
    through UnitOfWork (with bounded Conflict retry) and returns a frozen DTO
    or raises a typed EngagementKernelError with its kind preserved.

Architecture position:
    Services -- top of the stack.  Composes the kernel services, the
    payment gateway and the contract renderer.  Constructed once per
    process with ``from_config``, or directly in tests.

Failure modes:
    - Every kernel error kind propagates unchanged after rollback.
    - ExternalFailureError from the payment gateway (no transaction is held
      open during the provider call).

Usage:
    orchestrator = EngagementOrchestrator.from_config(get_active_config())
    project = orchestrator.submit_project(client, "Logo", "A new logo", {...})
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from engagement_config.schema import EngagementConfig
from engagement_kernel.db.engine import get_session_factory, init_engine_from_url
from engagement_kernel.domain.access import Actor, Capability, check_capability
from engagement_kernel.domain.clock import Clock
from engagement_kernel.domain.documents import ContractRenderer
from engagement_kernel.domain.dtos import (
    ContractInfo,
    DeliverableInfo,
    MemberInfo,
    PaymentIntentInfo,
    PaymentReceiptInfo,
    PaymentStatusInfo,
    ProjectInfo,
    TaskInfo,
)
from engagement_kernel.domain.enums import PaymentOutcome, Role, TaskPriority, TaskStatus
from engagement_kernel.domain.notices import EventSink
from engagement_kernel.domain.values import Pricing
from engagement_kernel.exceptions import ExternalFailureError
from engagement_kernel.logging_config import LogContext, get_logger
from engagement_kernel.services.payment_reconciler import ReconcileResult
from engagement_services.document_renderer import FileContractRenderer
from engagement_services.event_sinks import LoggingEventSink
from engagement_services.payment_gateway import PaymentGateway, StripePaymentGateway
from engagement_services.unit_of_work import UnitOfWork

logger = get_logger("services.orchestrator")


def _bind(actor: Actor | None = None, **fields: Any):
    return LogContext.bind(
        correlation_id=str(uuid4()),
        actor_id=str(actor.id) if actor is not None else None,
        **fields,
    )


class EngagementOrchestrator:
    """Transaction-owning facade over the engagement kernel."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        renderer: ContractRenderer,
        payment_gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
        events: EventSink | None = None,
        max_attempts: int = 3,
    ):
        self.uow = UnitOfWork(
            session_factory,
            renderer,
            clock=clock,
            events=events,
            max_attempts=max_attempts,
        )
        self.payment_gateway = payment_gateway

    @classmethod
    def from_config(
        cls,
        config: EngagementConfig,
        clock: Clock | None = None,
        events: EventSink | None = None,
    ) -> EngagementOrchestrator:
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
            pool_timeout=config.database.pool_timeout,
        )
        return cls(
            session_factory=get_session_factory(),
            renderer=FileContractRenderer(config.documents.contracts_dir),
            payment_gateway=StripePaymentGateway(
                config.payments.api_key,
                max_network_retries=config.payments.max_network_retries,
            ),
            clock=clock,
            events=events or LoggingEventSink(),
            max_attempts=config.retry.max_attempts,
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def register_member(
        self,
        actor: Actor,
        display_name: str,
        email: str,
        role: Role,
    ) -> MemberInfo:
        with _bind(actor):
            check_capability(actor, Capability.REGISTER_MEMBER)
            return self.uow.run(
                "register_member",
                lambda k: k.members.register(display_name, email, role),
            )

    # ------------------------------------------------------------------
    # Project lifecycle
    # ------------------------------------------------------------------

    def submit_project(
        self,
        actor: Actor,
        title: str,
        description: str,
        questionnaire: dict,
    ) -> ProjectInfo:
        with _bind(actor):
            return self.uow.run(
                "submit_project",
                lambda k: k.lifecycle.submit(actor, title, description, questionnaire),
            )

    def review_project(self, actor: Actor, project_id: UUID, pricing: Pricing) -> ProjectInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "review_project",
                lambda k: k.lifecycle.review(actor, project_id, pricing),
            )

    def assign_contractor(
        self,
        actor: Actor,
        project_id: UUID,
        contractor_id: UUID,
    ) -> ProjectInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "assign_contractor",
                lambda k: k.lifecycle.assign_contractor(actor, project_id, contractor_id),
            )

    def cancel_project(
        self,
        actor: Actor,
        project_id: UUID,
        reason: str | None = None,
    ) -> ProjectInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "cancel_project",
                lambda k: k.lifecycle.cancel(actor, project_id, reason),
            )

    def complete_project(self, actor: Actor, project_id: UUID) -> ProjectInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "complete_project",
                lambda k: k.lifecycle.complete(actor, project_id),
            )

    def get_project(self, actor: Actor, project_id: UUID) -> ProjectInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "get_project",
                lambda k: k.projects.get_for_actor(actor, project_id),
            )

    def list_projects(self, actor: Actor) -> list[ProjectInfo]:
        with _bind(actor):
            return self.uow.run("list_projects", lambda k: k.projects.list_for_actor(actor))

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def generate_contract(self, actor: Actor, project_id: UUID) -> ContractInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "generate_contract",
                lambda k: k.contracts.generate(actor, project_id),
            )

    def send_contract(self, actor: Actor, contract_id: UUID) -> ContractInfo:
        with _bind(actor, contract_id=contract_id):
            return self.uow.run(
                "send_contract",
                lambda k: k.contracts.send(contract_id, actor=actor),
            )

    def sign_contract(self, actor: Actor, contract_id: UUID, signature: str) -> ContractInfo:
        with _bind(actor, contract_id=contract_id):
            return self.uow.run(
                "sign_contract",
                lambda k: k.contracts.sign(actor, contract_id, signature),
            )

    def reject_contract(
        self,
        actor: Actor,
        contract_id: UUID,
        reason: str | None = None,
    ) -> ContractInfo:
        with _bind(actor, contract_id=contract_id):
            return self.uow.run(
                "reject_contract",
                lambda k: k.contracts.reject(actor, contract_id, reason),
            )

    def get_contract(self, actor: Actor, project_id: UUID) -> ContractInfo:
        """The project's active contract."""
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "get_contract",
                lambda k: k.projects.contract_for_project(actor, project_id),
            )

    # ------------------------------------------------------------------
    # Work tracking
    # ------------------------------------------------------------------

    def create_task(
        self,
        actor: Actor,
        project_id: UUID,
        title: str,
        description: str | None = None,
        assignee_id: UUID | None = None,
        due_date: date | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> TaskInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "create_task",
                lambda k: k.tasks.create_task(
                    actor,
                    project_id,
                    title,
                    description=description,
                    assignee_id=assignee_id,
                    due_date=due_date,
                    priority=priority,
                ),
            )

    def update_task_status(self, actor: Actor, task_id: UUID, status: TaskStatus) -> TaskInfo:
        with _bind(actor):
            return self.uow.run(
                "update_task_status",
                lambda k: k.tasks.update_status(actor, task_id, status),
            )

    def list_tasks(self, actor: Actor, project_id: UUID) -> list[TaskInfo]:
        def _run(k):
            k.projects.get_for_actor(actor, project_id)
            return k.projects.tasks_for_project(project_id)

        with _bind(actor, project_id=project_id):
            return self.uow.run("list_tasks", _run)

    def submit_deliverable(
        self,
        actor: Actor,
        project_id: UUID,
        name: str,
        file_url: str,
    ) -> DeliverableInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "submit_deliverable",
                lambda k: k.deliverables.submit(actor, project_id, name, file_url),
            )

    def review_deliverable(
        self,
        actor: Actor,
        deliverable_id: UUID,
        approved: bool,
    ) -> DeliverableInfo:
        with _bind(actor):
            return self.uow.run(
                "review_deliverable",
                lambda k: k.deliverables.review(actor, deliverable_id, approved),
            )

    def list_deliverables(self, actor: Actor, project_id: UUID) -> list[DeliverableInfo]:
        def _run(k):
            k.projects.get_for_actor(actor, project_id)
            return k.projects.deliverables_for_project(project_id)

        with _bind(actor, project_id=project_id):
            return self.uow.run("list_deliverables", _run)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def create_payment_intent(self, actor: Actor, project_id: UUID) -> PaymentIntentInfo:
        """
        Ask the payment provider for a PaymentIntent for the project's price.

        The eligibility check runs in its own short transaction; the provider
        call happens after it, holding no locks.
        """
        if self.payment_gateway is None:
            raise ExternalFailureError("payment_provider", "no payment gateway configured")

        with _bind(actor, project_id=project_id):
            project = self.uow.run(
                "create_payment_intent",
                lambda k: k.payments.require_payable(actor, project_id),
            )
            pricing = project.pricing
            handle = self.payment_gateway.create_intent(
                project_id=project.id,
                client_id=project.client_id,
                amount_minor=pricing.minor_units,
                currency=pricing.currency,
            )
            return PaymentIntentInfo(
                project_id=project.id,
                intent_id=handle.intent_id,
                client_secret=handle.client_secret,
                amount_minor=pricing.minor_units,
                currency=pricing.currency,
            )

    def get_payment_status(self, actor: Actor, project_id: UUID) -> PaymentStatusInfo:
        with _bind(actor, project_id=project_id):
            return self.uow.run(
                "get_payment_status",
                lambda k: k.projects.payment_status(actor, project_id),
            )

    def reconcile_payment(
        self,
        project_id: UUID,
        token: str,
        outcome: PaymentOutcome,
        event_type: str,
        payload_hash: str | None = None,
    ) -> ReconcileResult:
        """Apply a verified provider notification exactly once."""
        with _bind(project_id=project_id, idempotency_token=token):
            return self.uow.run(
                "reconcile_payment",
                lambda k: k.payments.reconcile(
                    project_id, token, outcome, event_type, payload_hash
                ),
            )

    def queue_payment_for_review(
        self,
        project_id: UUID,
        token: str,
        outcome: PaymentOutcome,
        event_type: str,
        message: str,
        payload_hash: str | None = None,
    ) -> PaymentReceiptInfo:
        """Store a notification that could not be applied in the review queue."""
        with _bind(project_id=project_id, idempotency_token=token):
            return self.uow.run(
                "queue_payment_for_review",
                lambda k: k.payments.record_failure(
                    project_id, token, outcome, event_type, message, payload_hash
                ),
            )

    # ------------------------------------------------------------------
    # Manual reconciliation queue
    # ------------------------------------------------------------------

    def pending_payment_reviews(self, actor: Actor) -> list[PaymentReceiptInfo]:
        check_capability(actor, Capability.RECONCILE_PAYMENTS)
        with _bind(actor):
            return self.uow.run(
                "pending_payment_reviews",
                lambda k: k.payments.pending_review(),
            )

    def retry_payment(self, actor: Actor, project_id: UUID, token: str) -> PaymentReceiptInfo:
        """
        Re-apply a queued notification.

        Returns the receipt: APPLIED on success, still NEEDS_REVIEW with one
        more attempt on failure.  A receipt that cannot be retried at all
        (missing, not queued, limit reached) raises.
        """
        check_capability(actor, Capability.RECONCILE_PAYMENTS)
        with _bind(actor, project_id=project_id, idempotency_token=token):
            queued = self.uow.run(
                "retry_payment_check",
                lambda k: k.payments.check_retryable(project_id, token),
            )
            try:
                result = self.uow.run(
                    "retry_payment",
                    lambda k: k.payments.retry(project_id, token),
                )
            except Exception as exc:
                logger.error(
                    "payment_retry_failed",
                    extra={"attempts": queued.attempts + 1},
                    exc_info=True,
                )
                return self.queue_payment_for_review(
                    project_id,
                    token,
                    queued.outcome,
                    queued.event_type,
                    str(exc),
                )
            return result.receipt

    def resolve_payment(
        self,
        actor: Actor,
        project_id: UUID,
        token: str,
        note: str,
    ) -> PaymentReceiptInfo:
        check_capability(actor, Capability.RECONCILE_PAYMENTS)
        with _bind(actor, project_id=project_id, idempotency_token=token):
            return self.uow.run(
                "resolve_payment",
                lambda k: k.payments.resolve(project_id, token, note),
            )
