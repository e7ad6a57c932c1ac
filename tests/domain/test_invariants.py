"""
Tests for ``check_project_invariants`` and the lifecycle notice value type.

The checker is the oracle used by the property tests, so it is exercised
here against hand-built DTOs for both consistent and inconsistent states.
"""

from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from uuid import uuid4

import pytest

from engagement_kernel.domain.dtos import ContractInfo, ProjectInfo, SignatureInfo
from engagement_kernel.domain.enums import ContractStatus, PaymentStatus, ProjectStatus
from engagement_kernel.domain.notices import InMemoryEventSink, LifecycleNotice
from engagement_kernel.domain.values import Pricing
from engagement_kernel.invariants import KernelInvariant, check_project_invariants

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _project(status, payment_status=PaymentStatus.PENDING, contract_id=None):
    return ProjectInfo(
        id=uuid4(),
        client_id=uuid4(),
        contractor_id=uuid4(),
        title="t",
        description="d",
        questionnaire=MappingProxyType({"q": 1}),
        status=status,
        pricing=Pricing.of(Decimal("500"), "USD"),
        payment_status=payment_status,
        contract_id=contract_id,
        cancellation_reason=None,
        created_at=NOW,
        updated_at=NOW,
        completed_at=None,
        cancelled_at=None,
        version=1,
    )


def _contract(project, status):
    return ContractInfo(
        id=project.contract_id,
        project_id=project.id,
        client_id=project.client_id,
        contractor_id=project.contractor_id,
        status=status,
        file_path="contract.txt",
        signatures=(
            SignatureInfo(member_id=project.client_id, signed_at=NOW),
            SignatureInfo(member_id=project.contractor_id, signed_at=NOW),
        ),
        rejection_reason=None,
        created_at=NOW,
        updated_at=NOW,
    )


class TestCheckProjectInvariants:
    def test_pending_without_contract_is_consistent(self):
        assert check_project_invariants(_project(ProjectStatus.PENDING), None) == []

    def test_in_progress_paid_and_signed_is_consistent(self):
        project = _project(ProjectStatus.IN_PROGRESS, PaymentStatus.PAID, uuid4())
        assert check_project_invariants(project, _contract(project, ContractStatus.SIGNED)) == []

    def test_in_progress_unpaid_is_violation(self):
        project = _project(ProjectStatus.IN_PROGRESS, PaymentStatus.PENDING, uuid4())
        violations = check_project_invariants(project, _contract(project, ContractStatus.SIGNED))
        assert KernelInvariant.IN_PROGRESS_REQUIRES_PAYMENT in violations

    def test_in_progress_without_contract_is_violation(self):
        project = _project(ProjectStatus.IN_PROGRESS, PaymentStatus.PAID)
        assert check_project_invariants(project, None) == [
            KernelInvariant.IN_PROGRESS_REQUIRES_PAYMENT
        ]

    def test_awaiting_payment_with_unsigned_contract_is_violation(self):
        project = _project(ProjectStatus.AWAITING_PAYMENT, PaymentStatus.PENDING, uuid4())
        violations = check_project_invariants(project, _contract(project, ContractStatus.SENT))
        assert violations == [KernelInvariant.AWAITING_PAYMENT_REQUIRES_SIGNATURE]

    def test_linked_rejected_contract_is_violation(self):
        project = _project(ProjectStatus.REVIEWED, PaymentStatus.PENDING, uuid4())
        violations = check_project_invariants(project, _contract(project, ContractStatus.REJECTED))
        assert violations == [KernelInvariant.SINGLE_ACTIVE_CONTRACT]


class TestProjectInfo:
    def test_questionnaire_is_read_only(self):
        project = _project(ProjectStatus.PENDING)
        with pytest.raises(TypeError):
            project.questionnaire["q"] = 2

    def test_is_terminal(self):
        assert _project(ProjectStatus.CANCELLED).is_terminal
        assert not _project(ProjectStatus.IN_PROGRESS).is_terminal


class TestContractInfo:
    def test_party_signature_flags(self):
        project = _project(ProjectStatus.REVIEWED, contract_id=uuid4())
        contract = _contract(project, ContractStatus.SIGNED)
        assert contract.client_signed
        assert contract.contractor_signed
        assert not contract.signed_by(uuid4())


class TestLifecycleNotice:
    def test_entity_type_from_name(self):
        notice = LifecycleNotice.create(
            "contract.signed",
            entity_id=uuid4(),
            project_id=uuid4(),
            occurred_at=NOW,
            signer="client",
        )
        assert notice.entity_type == "contract"
        assert notice.attributes["signer"] == "client"
        with pytest.raises(TypeError):
            notice.attributes["signer"] = "x"

    def test_in_memory_sink(self):
        sink = InMemoryEventSink()
        for name in ("project.submitted", "project.reviewed", "project.submitted"):
            sink.publish(
                LifecycleNotice.create(
                    name, entity_id=uuid4(), project_id=uuid4(), occurred_at=NOW
                )
            )
        assert sink.names() == ["project.submitted", "project.reviewed", "project.submitted"]
        assert len(sink.named("project.submitted")) == 2
        sink.clear()
        assert sink.names() == []
