"""
Kernel Invariants Contract.

These invariants are structural law for the engagement lifecycle.  They are
enforced by the workflow guards in LifecycleEngine and ContractCoordinator,
by the conditional update in db.mutation, and by unique constraints.  No
configuration may relax them.

check_project_invariants() re-derives them from a project snapshot and its
linked contract; the property tests run it after every operation.
"""

from enum import Enum, unique

from engagement_kernel.domain.dtos import ContractInfo, ProjectInfo
from engagement_kernel.domain.enums import ContractStatus, PaymentStatus, ProjectStatus


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    IN_PROGRESS_REQUIRES_PAYMENT = "in_progress_requires_payment"
    """An in-progress project is paid and its contract is signed."""

    AWAITING_PAYMENT_REQUIRES_SIGNATURE = "awaiting_payment_requires_signature"
    """A project awaiting payment has a signed contract and is not yet paid."""

    SINGLE_ACTIVE_CONTRACT = "single_active_contract"
    """A project references at most one non-rejected contract."""

    TERMINAL_STATUS = "terminal_status"
    """Completed and cancelled projects never change status again."""

    EXACTLY_ONCE_PAYMENT = "exactly_once_payment"
    """A payment notification token is applied to project state once.
    Enforced by the (project_id, idempotency_token) unique constraint."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "engagement_services",
    "engagement_config",
)


def check_project_invariants(
    project: ProjectInfo,
    contract: ContractInfo | None,
) -> list[KernelInvariant]:
    """
    Return the invariants ``project`` violates (empty when consistent).

    ``contract`` is the contract referenced by ``project.contract_id``, or
    None when the project references none.
    """
    violations: list[KernelInvariant] = []
    contract_signed = contract is not None and contract.status == ContractStatus.SIGNED

    if project.status == ProjectStatus.IN_PROGRESS:
        if project.payment_status != PaymentStatus.PAID or not contract_signed:
            violations.append(KernelInvariant.IN_PROGRESS_REQUIRES_PAYMENT)

    if project.status == ProjectStatus.AWAITING_PAYMENT:
        if not contract_signed or project.payment_status == PaymentStatus.PAID:
            violations.append(KernelInvariant.AWAITING_PAYMENT_REQUIRES_SIGNATURE)

    if contract is not None:
        if contract.id != project.contract_id or contract.status == ContractStatus.REJECTED:
            violations.append(KernelInvariant.SINGLE_ACTIVE_CONTRACT)

    return violations
