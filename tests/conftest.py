"""
Pytest fixtures for the engagement kernel test suite.

Provides:
- A SQLite database file per test (DATABASE_URL overrides it)
- Kernel services bound to one session, and an orchestrator
- Member factories and a project builder
- Structured log capture

Environment Variables:
- DATABASE_URL: optional database URL.  When set, the suite runs against
  that database instead of a temporary SQLite file.  Tables are dropped
  and recreated for every test.

Members are committed in their own short transaction.  Request member
fixtures before writing through ``session``: SQLite allows one writer at a
time and a second connection would wait for the test's open transaction.
"""

import hashlib
import hmac
import json
import logging
import os
import time
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from engagement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from engagement_kernel.domain.access import Actor
from engagement_kernel.domain.clock import DeterministicClock
from engagement_kernel.domain.documents import ContractDocument, ContractRenderer
from engagement_kernel.domain.enums import PaymentOutcome, Role
from engagement_kernel.domain.notices import InMemoryEventSink
from engagement_kernel.domain.values import Pricing
from engagement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from engagement_kernel.selectors.project_selector import ProjectSelector
from engagement_kernel.services.contract_coordinator import ContractCoordinator
from engagement_kernel.services.deliverable_service import DeliverableService
from engagement_kernel.services.lifecycle_engine import LifecycleEngine
from engagement_kernel.services.member_service import MemberService
from engagement_kernel.services.payment_reconciler import PaymentReconciler
from engagement_kernel.services.task_service import TaskService
from engagement_services.document_renderer import FileContractRenderer
from engagement_services.engagement_orchestrator import EngagementOrchestrator
from engagement_services.payment_gateway import PaymentGateway, PaymentIntentHandle
from engagement_services.payment_webhook import PaymentWebhookHandler


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture engagement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle_engine):
            lifecycle_engine.cancel(...)
            logs = captured_logs()
            assert any(r["message"] == "project_transitioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("engagement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Engine on a fresh database for each test."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'engagement.db'}"
    eng = init_engine_from_url(url, echo=False, pool_size=10, max_overflow=10)
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session whose work is rolled back at teardown unless committed."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def events() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def renderer(tmp_path) -> FileContractRenderer:
    return FileContractRenderer(tmp_path / "contracts")


class FailingRenderer(ContractRenderer):
    """Renderer whose storage is unavailable."""

    def __init__(self):
        self.calls = 0

    def render(self, document: ContractDocument) -> str:
        self.calls += 1
        raise OSError("contract storage unavailable")


class FakePaymentGateway(PaymentGateway):
    """Records intent requests instead of calling the provider."""

    def __init__(self):
        self.requests: list[dict] = []

    def create_intent(self, project_id, client_id, amount_minor, currency) -> PaymentIntentHandle:
        self.requests.append(
            {
                "project_id": project_id,
                "client_id": client_id,
                "amount_minor": amount_minor,
                "currency": currency,
            }
        )
        n = len(self.requests)
        return PaymentIntentHandle(intent_id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret")


@pytest.fixture
def failing_renderer() -> FailingRenderer:
    return FailingRenderer()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


# =============================================================================
# Members
# =============================================================================


@pytest.fixture
def make_member(session_factory, deterministic_clock):
    """Register and commit a member; returns the matching Actor."""
    counter = {"n": 0}

    def _make(role: Role, display_name: str | None = None) -> Actor:
        counter["n"] += 1
        name = display_name or f"{role.value.title()} {counter['n']}"
        with session_scope(session_factory) as s:
            info = MemberService(s, deterministic_clock).register(
                name, f"{role.value}{counter['n']}@example.com", role
            )
        return Actor(id=info.id, role=info.role)

    return _make


@pytest.fixture
def admin(make_member) -> Actor:
    return make_member(Role.ADMIN, "Avery Admin")


@pytest.fixture
def client(make_member) -> Actor:
    return make_member(Role.CLIENT, "Casey Client")


@pytest.fixture
def contractor(make_member) -> Actor:
    return make_member(Role.CONTRACTOR, "Riley Contractor")


# =============================================================================
# Kernel services on one session
# =============================================================================


@pytest.fixture
def lifecycle_engine(session, deterministic_clock, events) -> LifecycleEngine:
    return LifecycleEngine(session, deterministic_clock, events)


@pytest.fixture
def contract_coordinator(
    session, renderer, deterministic_clock, events, lifecycle_engine
) -> ContractCoordinator:
    return ContractCoordinator(
        session, renderer, deterministic_clock, events, lifecycle=lifecycle_engine
    )


@pytest.fixture
def payment_reconciler(
    session, deterministic_clock, events, lifecycle_engine
) -> PaymentReconciler:
    return PaymentReconciler(session, deterministic_clock, events, lifecycle=lifecycle_engine)


@pytest.fixture
def task_service(session, deterministic_clock, events) -> TaskService:
    return TaskService(session, deterministic_clock, events)


@pytest.fixture
def deliverable_service(session, deterministic_clock, events) -> DeliverableService:
    return DeliverableService(session, deterministic_clock, events)


@pytest.fixture
def project_selector(session) -> ProjectSelector:
    return ProjectSelector(session)


@pytest.fixture
def standard_pricing() -> Pricing:
    return Pricing.of(Decimal("500"), "USD", "Fixed fee")


class ProjectBuilder:
    """Drives a project through the lifecycle with the kernel services."""

    def __init__(self, lifecycle, contracts, payments, clock, admin, client, contractor, pricing):
        self.lifecycle = lifecycle
        self.contracts = contracts
        self.payments = payments
        self.clock = clock
        self.admin = admin
        self.client = client
        self.contractor = contractor
        self.pricing = pricing

    def pending(self, title: str = "Brand identity") -> UUID:
        self.clock.tick()
        project = self.lifecycle.submit(
            self.client,
            title,
            "Logo, palette and type system",
            {"industry": "coffee", "deadline_weeks": 6},
        )
        return project.id

    def reviewed(self) -> UUID:
        project_id = self.pending()
        self.lifecycle.review(self.admin, project_id, self.pricing)
        return project_id

    def assigned(self) -> UUID:
        project_id = self.reviewed()
        self.lifecycle.assign_contractor(self.admin, project_id, self.contractor.id)
        return project_id

    def contracted(self) -> tuple[UUID, UUID]:
        project_id = self.assigned()
        contract = self.contracts.generate(self.admin, project_id)
        return project_id, contract.id

    def awaiting_payment(self) -> tuple[UUID, UUID]:
        project_id, contract_id = self.contracted()
        self.contracts.sign(self.client, contract_id, "Casey Client")
        self.contracts.sign(self.contractor, contract_id, "Riley Contractor")
        return project_id, contract_id

    def in_progress(self, token: str = "evt_paid") -> tuple[UUID, UUID]:
        project_id, contract_id = self.awaiting_payment()
        self.payments.reconcile(
            project_id, token, PaymentOutcome.SUCCEEDED, "payment_intent.succeeded"
        )
        return project_id, contract_id


@pytest.fixture
def project_builder(
    lifecycle_engine,
    contract_coordinator,
    payment_reconciler,
    deterministic_clock,
    admin,
    client,
    contractor,
    standard_pricing,
) -> ProjectBuilder:
    return ProjectBuilder(
        lifecycle_engine,
        contract_coordinator,
        payment_reconciler,
        deterministic_clock,
        admin,
        client,
        contractor,
        standard_pricing,
    )


# =============================================================================
# Orchestrator
# =============================================================================


@pytest.fixture
def orchestrator(
    session_factory, renderer, payment_gateway, deterministic_clock, events
) -> EngagementOrchestrator:
    return EngagementOrchestrator(
        session_factory,
        renderer,
        payment_gateway=payment_gateway,
        clock=deterministic_clock,
        events=events,
        max_attempts=3,
    )


class OrchestratedFlow:
    """Drives a project through the lifecycle with the public interface."""

    def __init__(self, orchestrator, clock, admin, client, contractor, pricing):
        self.orchestrator = orchestrator
        self.clock = clock
        self.admin = admin
        self.client = client
        self.contractor = contractor
        self.pricing = pricing

    def reviewed(self) -> UUID:
        self.clock.tick()
        project = self.orchestrator.submit_project(
            self.client,
            "Brand identity",
            "Logo, palette and type system",
            {"industry": "coffee"},
        )
        self.orchestrator.review_project(self.admin, project.id, self.pricing)
        return project.id

    def contracted(self) -> tuple[UUID, UUID]:
        project_id = self.reviewed()
        self.orchestrator.assign_contractor(self.admin, project_id, self.contractor.id)
        contract = self.orchestrator.generate_contract(self.admin, project_id)
        return project_id, contract.id

    def awaiting_payment(self) -> tuple[UUID, UUID]:
        project_id, contract_id = self.contracted()
        self.orchestrator.sign_contract(self.client, contract_id, "Casey Client")
        self.orchestrator.sign_contract(self.contractor, contract_id, "Riley Contractor")
        return project_id, contract_id


@pytest.fixture
def flow(orchestrator, deterministic_clock, admin, client, contractor, standard_pricing):
    return OrchestratedFlow(
        orchestrator, deterministic_clock, admin, client, contractor, standard_pricing
    )


# =============================================================================
# Webhook deliveries
# =============================================================================

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def webhook_handler(orchestrator) -> PaymentWebhookHandler:
    return PaymentWebhookHandler(orchestrator, WEBHOOK_SECRET, tolerance_seconds=300)


@pytest.fixture
def sign_body():
    """Sign a raw body the way the provider does: HMAC-SHA256 over ``"{t}.{body}"``."""

    def _sign(body: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        t = timestamp if timestamp is not None else int(time.time())
        signature = hmac.new(
            secret.encode("utf-8"), f"{t}.{body}".encode("utf-8"), hashlib.sha256
        ).hexdigest()
        return f"t={t},v1={signature}"

    return _sign


@pytest.fixture
def make_delivery(sign_body):
    """
    Build a signed webhook delivery.

    Returns ``(raw_body, signature_header)`` for a payment_intent event.
    """

    def _make(
        event_id: str,
        project_id: UUID | str | None,
        event_type: str = "payment_intent.succeeded",
        secret: str = WEBHOOK_SECRET,
        timestamp: int | None = None,
    ) -> tuple[bytes, str]:
        metadata = {} if project_id is None else {"projectId": str(project_id)}
        body = json.dumps(
            {
                "id": event_id,
                "object": "event",
                "type": event_type,
                "data": {
                    "object": {
                        "id": f"pi_{event_id}",
                        "object": "payment_intent",
                        "amount": 50000,
                        "currency": "usd",
                        "metadata": metadata,
                    }
                },
            }
        )
        return body.encode("utf-8"), sign_body(body, secret, timestamp)

    return _make
