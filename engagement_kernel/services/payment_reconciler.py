"""
PaymentReconciler -- exactly-once application of payment notifications.

Responsibility:
    Matches an asynchronous payment notification to its project and applies
    it through LifecycleEngine.record_payment exactly once, however many
    times the provider re-delivers it.  Also owns the manual reconciliation
    queue: receipts whose application failed wait in NEEDS_REVIEW until an
    operator retries or resolves them.

Architecture position:
    Kernel > Services -- flush-only.  Called by the webhook handler through
    the orchestrator, which owns the transaction (and the fresh transaction
    used by ``record_failure`` after a rollback).

Invariants enforced:
    - One PaymentReceipt per (project_id, idempotency_token); the unique
      constraint decides between concurrent deliveries of the same token.
    - The receipt insert and the project update share one transaction, so a
      receipt marked APPLIED always has its effect on the project.
    - MAX_ATTEMPTS (10) bounds operator retries of one receipt.

Failure modes:
    - ConcurrencyConflictError: a concurrent delivery inserted the same
      receipt first (retrying finds it and reports DUPLICATE).
    - Anything LifecycleEngine.record_payment raises propagates unchanged.
    - PaymentReceiptNotFoundError / InvalidTransitionError /
      RetryLimitReachedError from retry() and resolve().

Audit relevance:
    Each receipt keeps the payload hash, attempt count, last failure message
    and operator resolution note.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from engagement_kernel.db.mutation import apply_mutation
from engagement_kernel.domain.access import Actor, Capability, check_capability
from engagement_kernel.domain.clock import Clock
from engagement_kernel.domain.dtos import PaymentReceiptInfo, ProjectInfo
from engagement_kernel.domain.enums import PaymentOutcome, ProjectStatus, ReceiptStatus
from engagement_kernel.domain.notices import EventSink
from engagement_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    PaymentReceiptNotFoundError,
    PreconditionFailedError,
    PricingMissingError,
    ProjectNotFoundError,
    RetryLimitReachedError,
    ValidationError,
)
from engagement_kernel.logging_config import LogContext, get_logger
from engagement_kernel.models.payment_receipt import PaymentReceipt
from engagement_kernel.models.project import Project
from engagement_kernel.services.base import BaseService
from engagement_kernel.services.lifecycle_engine import LifecycleEngine, project_ownership

logger = get_logger("services.payment_reconciler")

MAX_ATTEMPTS = 10

# Receipt key for verified notifications that carry no usable project reference.
UNROUTED_PROJECT_ID = UUID(int=0)


class ReconcileStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    QUEUED = "queued"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile() call."""

    status: ReconcileStatus
    receipt: PaymentReceiptInfo
    project: ProjectInfo | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.status == ReconcileStatus.DUPLICATE


def _receipt_key(project_id: UUID, token: str) -> str:
    return f"{project_id}:{token}"


class PaymentReconciler(BaseService[PaymentReceipt]):
    """Idempotent payment notification reconciliation."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        events: EventSink | None = None,
        lifecycle: LifecycleEngine | None = None,
    ):
        super().__init__(session, clock, events)
        self.lifecycle = lifecycle or LifecycleEngine(session, self.clock, self.events)

    def _find(self, project_id: UUID, token: str) -> PaymentReceipt | None:
        return self.session.execute(
            select(PaymentReceipt)
            .where(PaymentReceipt.project_id == project_id)
            .where(PaymentReceipt.idempotency_token == token)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require(self, project_id: UUID, token: str) -> PaymentReceipt:
        receipt = self._find(project_id, token)
        if receipt is None:
            raise PaymentReceiptNotFoundError(_receipt_key(project_id, token))
        return receipt

    # ------------------------------------------------------------------
    # Inbound notifications
    # ------------------------------------------------------------------

    def reconcile(
        self,
        project_id: UUID,
        token: str,
        outcome: PaymentOutcome,
        event_type: str,
        payload_hash: str | None = None,
    ) -> ReconcileResult:
        """
        Apply a verified notification once.

        Postconditions:
            - First sighting: receipt APPLIED and project updated, both
              flushed in the caller's transaction.
            - Any later sighting: nothing written, DUPLICATE returned.
            - UNROUTED_PROJECT_ID: receipt stored as NEEDS_REVIEW, QUEUED
              returned, no project touched.
        """
        if not token:
            raise ValidationError("idempotency_token", "must not be empty")
        outcome = PaymentOutcome(outcome)

        with LogContext.bind(project_id=project_id, idempotency_token=token):
            existing = self._find(project_id, token)
            if existing is not None:
                logger.info(
                    "payment_duplicate_ignored",
                    extra={"receipt_status": existing.status.value},
                )
                return ReconcileResult(
                    status=ReconcileStatus.DUPLICATE,
                    receipt=PaymentReceiptInfo.from_model(existing),
                )

            if project_id == UNROUTED_PROJECT_ID:
                queued = self.record_failure(
                    project_id,
                    token,
                    outcome,
                    event_type,
                    "notification carries no project reference",
                    payload_hash,
                )
                return ReconcileResult(status=ReconcileStatus.QUEUED, receipt=queued)

            now = self.clock.now()
            receipt = PaymentReceipt(
                project_id=project_id,
                idempotency_token=token,
                event_type=event_type,
                outcome=outcome,
                payload_hash=payload_hash,
                status=ReceiptStatus.APPLIED,
                attempts=1,
                applied_at=now,
                created_at=now,
                updated_at=now,
            )
            self.session.add(receipt)
            try:
                self.session.flush()
            except IntegrityError as exc:
                logger.info("payment_receipt_race_lost")
                raise ConcurrencyConflictError(
                    "payment_receipts", _receipt_key(project_id, token)
                ) from exc

            project = self.lifecycle.record_payment(project_id, outcome)
            logger.info(
                "payment_reconciled",
                extra={
                    "outcome": outcome.value,
                    "project_status": project.status.value,
                    "payment_status": project.payment_status.value,
                },
            )
            return ReconcileResult(
                status=ReconcileStatus.APPLIED,
                receipt=PaymentReceiptInfo.from_model(receipt),
                project=project,
            )

    def record_failure(
        self,
        project_id: UUID,
        token: str,
        outcome: PaymentOutcome,
        event_type: str,
        message: str,
        payload_hash: str | None = None,
    ) -> PaymentReceiptInfo:
        """
        Queue a notification whose application failed.

        Called in a fresh transaction after the failed one was rolled back.
        A receipt already in the queue has its attempt count bumped; an
        APPLIED receipt is left alone.
        """
        now = self.clock.now()
        receipt = self._find(project_id, token)

        if receipt is None:
            receipt = PaymentReceipt(
                project_id=project_id,
                idempotency_token=token,
                event_type=event_type,
                outcome=PaymentOutcome(outcome),
                payload_hash=payload_hash,
                status=ReceiptStatus.NEEDS_REVIEW,
                attempts=1,
                failure_message=message,
                created_at=now,
                updated_at=now,
            )
            self.session.add(receipt)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise ConcurrencyConflictError(
                    "payment_receipts", _receipt_key(project_id, token)
                ) from exc
        elif receipt.status == ReceiptStatus.NEEDS_REVIEW:
            apply_mutation(
                self.session,
                receipt,
                {"attempts": receipt.attempts + 1, "failure_message": message},
                now=now,
                expected_status=ReceiptStatus.NEEDS_REVIEW,
            )

        logger.warning(
            "payment_queued_for_review",
            extra={
                "project_id": str(project_id),
                "idempotency_token": token,
                "attempts": receipt.attempts,
                "receipt_status": receipt.status.value,
            },
        )
        return PaymentReceiptInfo.from_model(receipt)

    # ------------------------------------------------------------------
    # Manual reconciliation queue
    # ------------------------------------------------------------------

    def pending_review(self) -> list[PaymentReceiptInfo]:
        """Receipts waiting for an operator, oldest first."""
        receipts = self.session.execute(
            select(PaymentReceipt)
            .where(PaymentReceipt.status == ReceiptStatus.NEEDS_REVIEW)
            .order_by(PaymentReceipt.created_at, PaymentReceipt.id)
        ).scalars()
        return [PaymentReceiptInfo.from_model(r) for r in receipts]

    def check_retryable(self, project_id: UUID, token: str) -> PaymentReceiptInfo:
        """
        Raise unless the receipt can be retried.

        Raises:
            PaymentReceiptNotFoundError: No receipt for the key.
            InvalidTransitionError: Receipt is not NEEDS_REVIEW.
            RetryLimitReachedError: MAX_ATTEMPTS reached.
        """
        return PaymentReceiptInfo.from_model(self._retryable(project_id, token))

    def _retryable(self, project_id: UUID, token: str) -> PaymentReceipt:
        receipt = self._require(project_id, token)
        if project_id == UNROUTED_PROJECT_ID:
            raise PreconditionFailedError(
                _receipt_key(project_id, token),
                "notification has no project reference; resolve it instead",
            )
        if receipt.status != ReceiptStatus.NEEDS_REVIEW:
            raise InvalidTransitionError(
                "payment_receipt",
                _receipt_key(project_id, token),
                receipt.status.value,
                "retry",
            )
        if receipt.attempts >= MAX_ATTEMPTS:
            raise RetryLimitReachedError(_receipt_key(project_id, token), receipt.attempts)
        return receipt

    def retry(self, project_id: UUID, token: str) -> ReconcileResult:
        """
        Re-apply a NEEDS_REVIEW receipt.

        On failure the caller rolls back and calls ``record_failure`` with
        the same key, which bumps ``attempts``.
        """
        receipt = self._retryable(project_id, token)

        with LogContext.bind(project_id=project_id, idempotency_token=token):
            project = self.lifecycle.record_payment(project_id, receipt.outcome)
            apply_mutation(
                self.session,
                receipt,
                {
                    "status": ReceiptStatus.APPLIED,
                    "attempts": receipt.attempts + 1,
                    "applied_at": self.clock.now(),
                    "failure_message": None,
                },
                now=self.clock.now(),
                expected_status=ReceiptStatus.NEEDS_REVIEW,
            )
            logger.info("payment_retry_applied", extra={"attempts": receipt.attempts})

        return ReconcileResult(
            status=ReconcileStatus.APPLIED,
            receipt=PaymentReceiptInfo.from_model(receipt),
            project=project,
        )

    def resolve(self, project_id: UUID, token: str, note: str) -> PaymentReceiptInfo:
        """Close a NEEDS_REVIEW receipt without applying it."""
        note = (note or "").strip()
        if not note:
            raise ValidationError("note", "must not be empty")
        receipt = self._require(project_id, token)
        if receipt.status != ReceiptStatus.NEEDS_REVIEW:
            raise InvalidTransitionError(
                "payment_receipt",
                _receipt_key(project_id, token),
                receipt.status.value,
                "resolve",
            )
        apply_mutation(
            self.session,
            receipt,
            {"status": ReceiptStatus.RESOLVED, "resolution_note": note},
            now=self.clock.now(),
            expected_status=ReceiptStatus.NEEDS_REVIEW,
        )
        logger.info(
            "payment_receipt_resolved",
            extra={"project_id": str(project_id), "idempotency_token": token},
        )
        return PaymentReceiptInfo.from_model(receipt)

    # ------------------------------------------------------------------
    # Outbound payment requests
    # ------------------------------------------------------------------

    def require_payable(self, actor: Actor, project_id: UUID) -> ProjectInfo:
        """
        Check that ``actor`` may pay for the project now.

        Raises:
            ForbiddenError: Actor is not the owning client.
            InvalidTransitionError: Project is not AWAITING_PAYMENT.
            PricingMissingError: Project carries no pricing.
        """
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        check_capability(actor, Capability.PAY_PROJECT, project_ownership(project))
        if project.status != ProjectStatus.AWAITING_PAYMENT:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "create_payment_intent"
            )
        if not project.has_pricing:
            raise PricingMissingError(str(project.id))
        return ProjectInfo.from_model(project)
