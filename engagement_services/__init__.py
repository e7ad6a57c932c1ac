"""
engagement_services -- Package init and public API.

Responsibility:
    Transaction-owning orchestration over the engagement kernel, plus the
    adapters for everything outside the process: payment provider, webhook
    deliveries, contract document storage and lifecycle notice publishing.

Architecture position:
    Services -- top of the stack.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        engagement_services/ -> engagement_kernel/   (allowed)
        engagement_services/ -> engagement_config/   (allowed)
        engagement_kernel/   -> engagement_services/ (FORBIDDEN)

Invariants enforced:
    - Only UnitOfWork commits or rolls back.
"""

from engagement_services.document_renderer import FileContractRenderer
from engagement_services.engagement_orchestrator import EngagementOrchestrator
from engagement_services.event_sinks import BufferedEventSink, LoggingEventSink
from engagement_services.payment_gateway import (
    PaymentGateway,
    PaymentIntentHandle,
    StripePaymentGateway,
)
from engagement_services.payment_webhook import (
    AckStatus,
    PaymentWebhookHandler,
    WebhookAck,
)
from engagement_services.unit_of_work import KernelServices, UnitOfWork

__all__ = [
    "AckStatus",
    "BufferedEventSink",
    "EngagementOrchestrator",
    "FileContractRenderer",
    "KernelServices",
    "LoggingEventSink",
    "PaymentGateway",
    "PaymentIntentHandle",
    "PaymentWebhookHandler",
    "StripePaymentGateway",
    "UnitOfWork",
    "WebhookAck",
]
