"""
Tests for PaymentReconciler.

Covers exactly-once application per (project, token), duplicate detection,
the manual reconciliation queue (record_failure, retry, resolve, the
attempt limit) and the pay eligibility check used before creating a
payment intent.
"""

from uuid import uuid4

import pytest

from engagement_kernel.domain.enums import (
    PaymentOutcome,
    PaymentStatus,
    ProjectStatus,
    ReceiptStatus,
)
from engagement_kernel.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    PaymentReceiptNotFoundError,
    PreconditionFailedError,
    PricingMissingError,
    ProjectNotFoundError,
    RetryLimitReachedError,
    ValidationError,
)
from engagement_kernel.models.payment_receipt import PaymentReceipt
from engagement_kernel.services.payment_reconciler import (
    MAX_ATTEMPTS,
    UNROUTED_PROJECT_ID,
    ReconcileStatus,
)

SUCCEEDED = "payment_intent.succeeded"


class TestReconcile:
    def test_first_delivery_applies(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        result = payment_reconciler.reconcile(
            project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED, "abc123"
        )
        assert result.status == ReconcileStatus.APPLIED
        assert not result.is_duplicate
        assert result.project.status == ProjectStatus.IN_PROGRESS
        assert result.project.payment_status == PaymentStatus.PAID
        assert result.receipt.status == ReceiptStatus.APPLIED
        assert result.receipt.attempts == 1
        assert result.receipt.applied_at is not None

    def test_redelivery_is_duplicate(self, payment_reconciler, project_builder, session):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)

        for _ in range(3):
            result = payment_reconciler.reconcile(
                project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED
            )
            assert result.is_duplicate
            assert result.project is None

        assert session.query(PaymentReceipt).count() == 1

    def test_duplicate_does_not_touch_project(
        self, payment_reconciler, lifecycle_engine, project_builder, events
    ):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        version = lifecycle_engine.lock_project(project_id).version
        recorded = len(events.named("project.payment_recorded"))

        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        assert lifecycle_engine.lock_project(project_id).version == version
        assert len(events.named("project.payment_recorded")) == recorded

    def test_same_token_on_other_project_is_independent(
        self, payment_reconciler, project_builder
    ):
        first, _ = project_builder.awaiting_payment()
        second, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(first, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        result = payment_reconciler.reconcile(second, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        assert result.status == ReconcileStatus.APPLIED

    def test_failed_outcome(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        result = payment_reconciler.reconcile(
            project_id, "evt_f", PaymentOutcome.FAILED, "payment_intent.payment_failed"
        )
        assert result.project.payment_status == PaymentStatus.FAILED
        assert result.project.status == ProjectStatus.AWAITING_PAYMENT

    def test_empty_token_rejected(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        with pytest.raises(ValidationError):
            payment_reconciler.reconcile(project_id, "", PaymentOutcome.SUCCEEDED, SUCCEEDED)

    def test_unknown_project_propagates(self, payment_reconciler):
        with pytest.raises(ProjectNotFoundError):
            payment_reconciler.reconcile(uuid4(), "evt_x", PaymentOutcome.SUCCEEDED, SUCCEEDED)

    def test_duplicate_is_logged(self, payment_reconciler, project_builder, captured_logs):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        duplicates = [r for r in captured_logs() if r["message"] == "payment_duplicate_ignored"]
        assert len(duplicates) == 1
        assert duplicates[0]["idempotency_token"] == "evt_1"


class TestManualQueue:
    def test_record_failure_creates_needs_review(self, payment_reconciler):
        project_id = uuid4()
        receipt = payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "project not found"
        )
        assert receipt.status == ReceiptStatus.NEEDS_REVIEW
        assert receipt.attempts == 1
        assert receipt.failure_message == "project not found"
        assert [r.idempotency_token for r in payment_reconciler.pending_review()] == ["evt_q"]

    def test_record_failure_twice_bumps_attempts(self, payment_reconciler):
        project_id = uuid4()
        payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "first"
        )
        receipt = payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "second"
        )
        assert receipt.attempts == 2
        assert receipt.failure_message == "second"

    def test_record_failure_leaves_applied_receipt_alone(
        self, payment_reconciler, project_builder
    ):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        receipt = payment_reconciler.record_failure(
            project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED, "late failure"
        )
        assert receipt.status == ReceiptStatus.APPLIED
        assert payment_reconciler.pending_review() == []

    def test_queued_token_redelivery_is_duplicate(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "boom"
        )
        result = payment_reconciler.reconcile(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED
        )
        assert result.is_duplicate
        assert result.receipt.status == ReceiptStatus.NEEDS_REVIEW

    def test_retry_applies(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "db hiccup"
        )
        result = payment_reconciler.retry(project_id, "evt_q")
        assert result.receipt.status == ReceiptStatus.APPLIED
        assert result.receipt.attempts == 2
        assert result.receipt.failure_message is None
        assert result.project.status == ProjectStatus.IN_PROGRESS
        assert payment_reconciler.pending_review() == []

    def test_unrouted_notification_is_queued(self, payment_reconciler):
        result = payment_reconciler.reconcile(
            UNROUTED_PROJECT_ID, "evt_u", PaymentOutcome.SUCCEEDED, SUCCEEDED
        )
        assert result.status == ReconcileStatus.QUEUED
        assert result.project is None
        assert result.receipt.status == ReceiptStatus.NEEDS_REVIEW
        assert [r.idempotency_token for r in payment_reconciler.pending_review()] == ["evt_u"]

    def test_unrouted_receipt_cannot_be_retried(self, payment_reconciler):
        payment_reconciler.reconcile(
            UNROUTED_PROJECT_ID, "evt_u", PaymentOutcome.SUCCEEDED, SUCCEEDED
        )
        with pytest.raises(PreconditionFailedError):
            payment_reconciler.retry(UNROUTED_PROJECT_ID, "evt_u")
        receipt = payment_reconciler.resolve(UNROUTED_PROJECT_ID, "evt_u", "matched to invoice 42")
        assert receipt.status == ReceiptStatus.RESOLVED

    def test_retry_unknown_receipt(self, payment_reconciler):
        with pytest.raises(PaymentReceiptNotFoundError):
            payment_reconciler.retry(uuid4(), "evt_none")

    def test_retry_applied_receipt_is_invalid(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.reconcile(project_id, "evt_1", PaymentOutcome.SUCCEEDED, SUCCEEDED)
        with pytest.raises(InvalidTransitionError):
            payment_reconciler.retry(project_id, "evt_1")

    def test_retry_limit(self, payment_reconciler, project_builder):
        project_id, _ = project_builder.awaiting_payment()
        for n in range(MAX_ATTEMPTS):
            payment_reconciler.record_failure(
                project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, f"failure {n}"
            )
        with pytest.raises(RetryLimitReachedError) as exc_info:
            payment_reconciler.check_retryable(project_id, "evt_q")
        assert exc_info.value.attempts == MAX_ATTEMPTS

    def test_resolve_closes_without_applying(
        self, payment_reconciler, lifecycle_engine, project_builder
    ):
        project_id, _ = project_builder.awaiting_payment()
        payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "boom"
        )
        receipt = payment_reconciler.resolve(project_id, "evt_q", "refunded by hand")
        assert receipt.status == ReceiptStatus.RESOLVED
        assert receipt.resolution_note == "refunded by hand"
        assert lifecycle_engine.lock_project(project_id).status == ProjectStatus.AWAITING_PAYMENT
        with pytest.raises(InvalidTransitionError):
            payment_reconciler.retry(project_id, "evt_q")

    def test_resolve_requires_note(self, payment_reconciler):
        project_id = uuid4()
        payment_reconciler.record_failure(
            project_id, "evt_q", PaymentOutcome.SUCCEEDED, SUCCEEDED, "boom"
        )
        with pytest.raises(ValidationError):
            payment_reconciler.resolve(project_id, "evt_q", "  ")

    def test_pending_review_oldest_first(self, payment_reconciler, deterministic_clock):
        for token in ("evt_a", "evt_b", "evt_c"):
            deterministic_clock.tick()
            payment_reconciler.record_failure(
                uuid4(), token, PaymentOutcome.SUCCEEDED, SUCCEEDED, "boom"
            )
        assert [r.idempotency_token for r in payment_reconciler.pending_review()] == [
            "evt_a",
            "evt_b",
            "evt_c",
        ]


class TestRequirePayable:
    def test_owner_of_awaiting_project(self, payment_reconciler, project_builder, client):
        project_id, _ = project_builder.awaiting_payment()
        project = payment_reconciler.require_payable(client, project_id)
        assert project.pricing.minor_units == 50000

    def test_other_actor_forbidden(self, payment_reconciler, project_builder, admin, contractor):
        project_id, _ = project_builder.awaiting_payment()
        for actor in (admin, contractor):
            with pytest.raises(ForbiddenError):
                payment_reconciler.require_payable(actor, project_id)

    def test_wrong_status(self, payment_reconciler, project_builder, client):
        project_id = project_builder.reviewed()
        with pytest.raises(InvalidTransitionError):
            payment_reconciler.require_payable(client, project_id)

    def test_unknown_project(self, payment_reconciler, client):
        with pytest.raises(ProjectNotFoundError):
            payment_reconciler.require_payable(client, uuid4())

    def test_pricing_missing_error_is_precondition(self):
        assert PricingMissingError("x").kind == "PreconditionFailed"
