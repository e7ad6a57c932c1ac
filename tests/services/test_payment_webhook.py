"""
Tests for PaymentWebhookHandler.

Deliveries are signed exactly as the provider signs them, so signature
verification runs through the real ``stripe`` implementation.

Acknowledgment rules under test:
- 400 for a missing or bad signature, a stale timestamp, undecodable JSON
- 200 for everything verified: applied, duplicate, ignored, and internal
  failures (which land in the manual reconciliation queue)
"""

import json
import time
from uuid import uuid4

import pytest

from engagement_kernel.domain.enums import (
    PaymentOutcome,
    PaymentStatus,
    ProjectStatus,
    ReceiptStatus,
)
from engagement_kernel.models.payment_receipt import PaymentReceipt
from engagement_kernel.services.lifecycle_engine import LifecycleEngine
from engagement_kernel.services.payment_reconciler import UNROUTED_PROJECT_ID
from engagement_services.payment_webhook import AckStatus, PaymentWebhookHandler


def _receipts(session_factory) -> list[PaymentReceipt]:
    with session_factory() as s:
        return s.query(PaymentReceipt).all()


class TestSignature:
    def test_valid_delivery_applies(self, webhook_handler, make_delivery, flow, orchestrator):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id)

        ack = webhook_handler.handle_event(body, header)

        assert ack.status == AckStatus.ACCEPTED
        assert ack.http_status == 200
        assert ack.detail == "applied"
        project = orchestrator.get_project(flow.admin, project_id)
        assert project.status == ProjectStatus.IN_PROGRESS
        assert project.payment_status == PaymentStatus.PAID

    def test_str_body_accepted(self, webhook_handler, make_delivery, flow):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id)
        assert webhook_handler.handle_event(body.decode("utf-8"), header).is_accepted

    def test_wrong_secret_rejected(
        self, webhook_handler, make_delivery, flow, orchestrator, session_factory
    ):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id, secret="whsec_someone_else")

        ack = webhook_handler.handle_event(body, header)

        assert ack.status == AckStatus.REJECTED
        assert ack.http_status == 400
        assert _receipts(session_factory) == []
        project = orchestrator.get_project(flow.admin, project_id)
        assert project.status == ProjectStatus.AWAITING_PAYMENT

    def test_tampered_body_rejected(self, webhook_handler, make_delivery, flow):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id)
        tampered = body.replace(b"50000", b"1")
        assert webhook_handler.handle_event(tampered, header).http_status == 400

    def test_missing_header_rejected(self, webhook_handler, make_delivery, flow, captured_logs):
        project_id, _ = flow.awaiting_payment()
        body, _ = make_delivery("evt_1", project_id)

        ack = webhook_handler.handle_event(body, None)

        assert ack.http_status == 400
        assert ack.detail == "missing signature header"
        rejected = [r for r in captured_logs() if r["message"] == "webhook_rejected"]
        assert rejected[0]["reason"] == "missing signature header"

    def test_stale_timestamp_rejected(self, webhook_handler, make_delivery, flow):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id, timestamp=int(time.time()) - 3600)
        assert webhook_handler.handle_event(body, header).http_status == 400

    def test_garbage_header_rejected(self, webhook_handler, make_delivery, flow):
        project_id, _ = flow.awaiting_payment()
        body, _ = make_delivery("evt_1", project_id)
        assert webhook_handler.handle_event(body, "not-a-signature").http_status == 400

    def test_non_utf8_body_rejected(self, webhook_handler):
        ack = webhook_handler.handle_event(b"\xff\xfe\x00", "t=1,v1=abc")
        assert ack.http_status == 400

    def test_empty_secret_refused(self, orchestrator):
        with pytest.raises(ValueError):
            PaymentWebhookHandler(orchestrator, "")


class TestPayload:
    def test_malformed_json_rejected(self, webhook_handler, sign_body):
        body = "{not json"
        ack = webhook_handler.handle_event(body, sign_body(body))
        assert ack.http_status == 400
        assert ack.detail == "malformed JSON"

    def test_non_object_event_ignored(self, webhook_handler, sign_body):
        body = "[1, 2, 3]"
        ack = webhook_handler.handle_event(body, sign_body(body))
        assert ack.http_status == 200
        assert ack.detail == "ignored"

    def test_irrelevant_type_ignored(
        self, webhook_handler, make_delivery, flow, session_factory, captured_logs
    ):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id, event_type="customer.created")

        ack = webhook_handler.handle_event(body, header)

        assert ack.is_accepted
        assert ack.detail == "ignored"
        assert _receipts(session_factory) == []
        ignored = [r for r in captured_logs() if r["message"] == "webhook_event_ignored"]
        assert ignored[0]["event_type"] == "customer.created"

    def test_missing_project_metadata_is_queued(
        self, webhook_handler, make_delivery, orchestrator, admin, captured_logs
    ):
        body, header = make_delivery("evt_1", None)

        ack = webhook_handler.handle_event(body, header)

        assert ack.http_status == 200
        assert ack.detail == "queued for review"
        (queued,) = orchestrator.pending_payment_reviews(admin)
        assert queued.project_id == UNROUTED_PROJECT_ID
        assert queued.idempotency_token == "evt_1"
        assert queued.outcome == PaymentOutcome.SUCCEEDED
        assert any(r["message"] == "payment_unrouted" for r in captured_logs())

    def test_invalid_project_id_is_queued(
        self, webhook_handler, make_delivery, orchestrator, admin
    ):
        body, header = make_delivery("evt_1", "not-a-uuid")
        assert webhook_handler.handle_event(body, header).detail == "queued for review"
        (queued,) = orchestrator.pending_payment_reviews(admin)
        assert queued.project_id == UNROUTED_PROJECT_ID

    def test_unrouted_redelivery_is_duplicate(
        self, webhook_handler, make_delivery, session_factory
    ):
        body, header = make_delivery("evt_1", None)
        webhook_handler.handle_event(body, header)

        assert webhook_handler.handle_event(body, header).detail == "duplicate"
        (receipt,) = _receipts(session_factory)
        assert receipt.attempts == 1

    @pytest.mark.parametrize(
        "data",
        [
            ["oops"],
            "oops",
            {"object": ["oops"]},
            {"object": {"metadata": "abc"}},
            {"object": {"metadata": {"projectId": 42}}},
            {"object": {"metadata": {"projectId": ["x"]}}},
        ],
    )
    def test_odd_data_shapes_still_acknowledged(
        self, webhook_handler, sign_body, orchestrator, admin, data
    ):
        body = json.dumps({"id": "evt_x", "type": "payment_intent.succeeded", "data": data})

        ack = webhook_handler.handle_event(body, sign_body(body))

        assert ack.http_status == 200
        assert ack.detail == "queued for review"
        (queued,) = orchestrator.pending_payment_reviews(admin)
        assert queued.project_id == UNROUTED_PROJECT_ID

    def test_non_string_event_type_ignored(self, webhook_handler, sign_body):
        body = json.dumps({"id": "evt_x", "type": ["payment_intent.succeeded"]})
        ack = webhook_handler.handle_event(body, sign_body(body))
        assert ack.http_status == 200
        assert ack.detail == "ignored"

    def test_payment_failed_event(self, webhook_handler, make_delivery, flow, orchestrator):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery(
            "evt_f", project_id, event_type="payment_intent.payment_failed"
        )

        assert webhook_handler.handle_event(body, header).detail == "applied"
        project = orchestrator.get_project(flow.admin, project_id)
        assert project.payment_status == PaymentStatus.FAILED
        assert project.status == ProjectStatus.AWAITING_PAYMENT


class TestIdempotency:
    def test_redelivery_is_duplicate(
        self, webhook_handler, make_delivery, flow, orchestrator, session_factory, events
    ):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id)
        webhook_handler.handle_event(body, header)
        version = orchestrator.get_project(flow.admin, project_id).version

        for _ in range(3):
            ack = webhook_handler.handle_event(body, header)
            assert ack.http_status == 200
            assert ack.detail == "duplicate"

        assert len(_receipts(session_factory)) == 1
        assert orchestrator.get_project(flow.admin, project_id).version == version
        assert len(events.named("project.payment_recorded")) == 1

    def test_payload_hash_recorded(self, webhook_handler, make_delivery, flow, session_factory):
        project_id, _ = flow.awaiting_payment()
        body, header = make_delivery("evt_1", project_id)
        webhook_handler.handle_event(body, header)
        (receipt,) = _receipts(session_factory)
        assert receipt.idempotency_token == "evt_1"
        assert receipt.payload_hash is not None
        assert len(receipt.payload_hash) == 64


class TestInternalFailure:
    def test_failure_is_queued_and_acknowledged(
        self,
        webhook_handler,
        make_delivery,
        flow,
        orchestrator,
        monkeypatch,
        captured_logs,
    ):
        project_id, _ = flow.awaiting_payment()
        original = LifecycleEngine.record_payment
        calls = {"n": 0}

        def _flaky(self, project_id, outcome):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("database went away")
            return original(self, project_id, outcome)

        monkeypatch.setattr(LifecycleEngine, "record_payment", _flaky)
        body, header = make_delivery("evt_1", project_id)

        ack = webhook_handler.handle_event(body, header)

        assert ack.http_status == 200
        assert ack.detail == "queued for review"
        assert any(
            r["message"] == "payment_reconciliation_failed" and r["level"] == "ERROR"
            for r in captured_logs()
        )
        # The receipt insert was rolled back with the failed update.
        queued = orchestrator.pending_payment_reviews(flow.admin)
        assert [(r.idempotency_token, r.status) for r in queued] == [
            ("evt_1", ReceiptStatus.NEEDS_REVIEW)
        ]
        assert queued[0].failure_message == "database went away"
        project = orchestrator.get_project(flow.admin, project_id)
        assert project.status == ProjectStatus.AWAITING_PAYMENT

        receipt = orchestrator.retry_payment(flow.admin, project_id, "evt_1")
        assert receipt.status == ReceiptStatus.APPLIED
        assert orchestrator.get_project(flow.admin, project_id).status == (
            ProjectStatus.IN_PROGRESS
        )

    def test_unknown_project_is_queued(self, webhook_handler, make_delivery, orchestrator, admin):
        project_id = uuid4()
        body, header = make_delivery("evt_lost", project_id)

        ack = webhook_handler.handle_event(body, header)

        assert ack.detail == "queued for review"
        (queued,) = orchestrator.pending_payment_reviews(admin)
        assert queued.project_id == project_id
        assert queued.outcome == PaymentOutcome.SUCCEEDED

    def test_queue_failure_still_acknowledged(
        self, webhook_handler, make_delivery, orchestrator, monkeypatch, captured_logs
    ):
        def _broken(*args, **kwargs):
            raise RuntimeError("queue unavailable")

        monkeypatch.setattr(orchestrator, "queue_payment_for_review", _broken)
        body, header = make_delivery("evt_lost", uuid4())

        ack = webhook_handler.handle_event(body, header)

        assert ack.http_status == 200
        assert any(
            r["message"] == "payment_review_queue_failed" and r["level"] == "CRITICAL"
            for r in captured_logs()
        )
