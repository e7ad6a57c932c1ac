"""
engagement_services.payment_webhook -- inbound payment provider notifications.

Responsibility:
    Authenticates a raw webhook delivery with the shared secret, extracts
    ``(project_id, idempotency_token, outcome)`` and hands it to the
    orchestrator for exactly-once reconciliation.  Decides the
    acknowledgment the transport sends back to the provider.

Architecture position:
    Services -- transport-facing edge.  Holds no session; every database
    effect goes through EngagementOrchestrator.

Invariants enforced:
    - Nothing is recorded for a delivery whose signature does not verify.
    - Once verified, a delivery is always acknowledged: a failed state
      update is rolled back and the notification is stored in the manual
      reconciliation queue instead, so the provider stops re-sending it.

Failure modes:
    - Rejected (400): missing or invalid signature, stale timestamp,
      undecodable body.
    - Accepted (200): everything else, including ignored event types,
      notifications without a usable project reference (queued under
      UNROUTED_PROJECT_ID) and internal failures (logged at ERROR and
      queued).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

import stripe

from engagement_kernel.domain.enums import PaymentOutcome
from engagement_kernel.exceptions import WebhookSignatureError
from engagement_kernel.logging_config import LogContext, get_logger
from engagement_kernel.services.payment_reconciler import UNROUTED_PROJECT_ID, ReconcileStatus
from engagement_kernel.utils.hashing import hash_bytes

if TYPE_CHECKING:
    from engagement_config.schema import WebhookConfig
    from engagement_services.engagement_orchestrator import EngagementOrchestrator

logger = get_logger("payments.webhook")

EVENT_OUTCOMES: dict[str, PaymentOutcome] = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
}


def _project_id(event: dict[str, Any]) -> UUID | None:
    """``data.object.metadata.projectId`` as a UUID, or None if any level is off."""
    data = event.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None
    metadata = data_object.get("metadata") if isinstance(data_object, dict) else None
    raw = metadata.get("projectId") if isinstance(metadata, dict) else None
    if not isinstance(raw, str):
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


class AckStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class WebhookAck:
    """Body-less acknowledgment; ``detail`` is for logs only."""

    status: AckStatus
    http_status: int
    detail: str | None = None

    @classmethod
    def accepted(cls, detail: str | None = None) -> WebhookAck:
        return cls(AckStatus.ACCEPTED, 200, detail)

    @classmethod
    def rejected(cls, detail: str) -> WebhookAck:
        return cls(AckStatus.REJECTED, 400, detail)

    @property
    def is_accepted(self) -> bool:
        return self.status == AckStatus.ACCEPTED


@dataclass(frozen=True)
class PaymentNotification:
    project_id: UUID
    token: str
    outcome: PaymentOutcome
    event_type: str
    payload_hash: str


class PaymentWebhookHandler:
    """Verifies and dispatches payment provider webhook deliveries."""

    def __init__(
        self,
        orchestrator: EngagementOrchestrator,
        secret: str,
        tolerance_seconds: int = 300,
    ):
        if not secret:
            raise ValueError("webhook secret must not be empty")
        self.orchestrator = orchestrator
        self._secret = secret
        self.tolerance_seconds = tolerance_seconds

    @classmethod
    def from_config(
        cls,
        orchestrator: EngagementOrchestrator,
        config: WebhookConfig,
    ) -> PaymentWebhookHandler:
        return cls(orchestrator, config.secret, config.tolerance_seconds)

    def handle_event(self, raw_event: bytes | str, signature_header: str | None) -> WebhookAck:
        try:
            payload = self._verify(raw_event, signature_header)
        except WebhookSignatureError as exc:
            logger.warning("webhook_rejected", extra={"reason": exc.reason})
            return WebhookAck.rejected(exc.reason)

        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("webhook_rejected", extra={"reason": "malformed JSON"})
            return WebhookAck.rejected("malformed JSON")

        notification = self._extract(event, payload)
        if notification is None:
            return WebhookAck.accepted("ignored")

        with LogContext.bind(
            project_id=notification.project_id,
            idempotency_token=notification.token,
        ):
            return self._dispatch(notification)

    def _verify(self, raw_event: bytes | str, signature_header: str | None) -> str:
        if not signature_header:
            raise WebhookSignatureError("missing signature header")
        if isinstance(raw_event, bytes):
            try:
                raw_event = raw_event.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise WebhookSignatureError("body is not valid UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(
                raw_event,
                signature_header,
                self._secret,
                self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc) or "signature mismatch") from exc
        return raw_event

    def _extract(self, event: Any, payload: str) -> PaymentNotification | None:
        if not isinstance(event, dict):
            logger.warning("webhook_event_ignored", extra={"reason": "not an object"})
            return None

        event_type = event.get("type")
        outcome = EVENT_OUTCOMES.get(event_type) if isinstance(event_type, str) else None
        if outcome is None:
            logger.info("webhook_event_ignored", extra={"event_type": event_type})
            return None

        token = event.get("id")
        if not isinstance(token, str) or not token:
            logger.warning(
                "webhook_event_ignored",
                extra={"event_type": event_type, "reason": "missing event id"},
            )
            return None

        project_id = _project_id(event)
        if project_id is None:
            # Verified money movement that names no project: park it under
            # the unrouted key so an operator can match it by hand.
            logger.warning(
                "payment_unrouted",
                extra={
                    "event_type": event_type,
                    "idempotency_token": token,
                    "reason": "missing or invalid projectId metadata",
                },
            )
            project_id = UNROUTED_PROJECT_ID

        return PaymentNotification(
            project_id=project_id,
            token=token,
            outcome=outcome,
            event_type=event_type,
            payload_hash=hash_bytes(payload),
        )

    def _dispatch(self, notification: PaymentNotification) -> WebhookAck:
        try:
            result = self.orchestrator.reconcile_payment(
                notification.project_id,
                notification.token,
                notification.outcome,
                notification.event_type,
                notification.payload_hash,
            )
        except Exception as exc:
            logger.error(
                "payment_reconciliation_failed",
                extra={"event_type": notification.event_type, "error": str(exc)},
                exc_info=True,
            )
            self._queue(notification, str(exc))
            return WebhookAck.accepted("queued for review")

        if result.status == ReconcileStatus.QUEUED:
            return WebhookAck.accepted("queued for review")
        return WebhookAck.accepted(result.status.value)

    def _queue(self, notification: PaymentNotification, message: str) -> None:
        try:
            self.orchestrator.queue_payment_for_review(
                notification.project_id,
                notification.token,
                notification.outcome,
                notification.event_type,
                message,
                notification.payload_hash,
            )
        except Exception:
            # Still acknowledged; the provider's own dashboard keeps the event.
            logger.critical(
                "payment_review_queue_failed",
                extra={"event_type": notification.event_type},
                exc_info=True,
            )
