"""
Project and contract lifecycle definitions.

Responsibility:
    Declares the only status edges the kernel may take.  LifecycleEngine and
    ContractCoordinator look transitions up here before writing; an action
    with no matching edge out of the current status is an invalid transition.

Architecture position:
    Kernel > Domain.  Pure data, zero I/O.

Invariants enforced:
    - COMPLETED and CANCELLED projects have no outgoing edges.
    - SIGNED and REJECTED contracts have no outgoing edges.
    - IN_PROGRESS is reachable only through the payment guard, which in turn
      requires AWAITING_PAYMENT, which requires a signed contract.
"""

from engagement_kernel.domain.enums import ContractStatus, ProjectStatus
from engagement_kernel.domain.workflow import Guard, Transition, Workflow

_P = ProjectStatus
_C = ContractStatus


PRICING_VALID = Guard(
    name="pricing_valid",
    description="Amount is non-negative and currency is an ISO 4217 code",
)
CONTRACT_SIGNED = Guard(
    name="contract_signed",
    description="The project's linked contract carries both signatures",
)
PAYMENT_SUCCEEDED = Guard(
    name="payment_succeeded",
    description="A succeeded payment notification has been reconciled",
)
TASKS_COMPLETED = Guard(
    name="tasks_completed",
    description="Every task on the project is completed",
)
BOTH_PARTIES_SIGNED = Guard(
    name="both_parties_signed",
    description="Client and contractor have each signed the contract",
)


def _cancel_edges() -> tuple[Transition, ...]:
    return tuple(
        Transition(status.value, _P.CANCELLED.value, "cancel", notice="project.cancelled")
        for status in _P
        if not status.is_terminal
    )


PROJECT_WORKFLOW = Workflow(
    name="project",
    description="Engagement lifecycle from submission to completion",
    initial_state=_P.PENDING.value,
    states=tuple(s.value for s in _P),
    transitions=(
        Transition(
            _P.PENDING.value,
            _P.REVIEWED.value,
            "review",
            guard=PRICING_VALID,
            notice="project.reviewed",
        ),
        Transition(
            _P.PENDING.value,
            _P.AWAITING_PAYMENT.value,
            "mark_awaiting_payment",
            guard=CONTRACT_SIGNED,
            notice="project.awaiting_payment",
        ),
        Transition(
            _P.REVIEWED.value,
            _P.AWAITING_PAYMENT.value,
            "mark_awaiting_payment",
            guard=CONTRACT_SIGNED,
            notice="project.awaiting_payment",
        ),
        Transition(
            _P.AWAITING_PAYMENT.value,
            _P.IN_PROGRESS.value,
            "record_payment",
            guard=PAYMENT_SUCCEEDED,
            notice="project.in_progress",
        ),
        Transition(
            _P.IN_PROGRESS.value,
            _P.COMPLETED.value,
            "complete",
            guard=TASKS_COMPLETED,
            notice="project.completed",
        ),
    )
    + _cancel_edges(),
    terminal_states=(_P.COMPLETED.value, _P.CANCELLED.value),
)


CONTRACT_WORKFLOW = Workflow(
    name="contract",
    description="Contract from generation to signature or rejection",
    initial_state=_C.PENDING.value,
    states=tuple(s.value for s in _C),
    transitions=(
        Transition(_C.PENDING.value, _C.SENT.value, "send", notice="contract.sent"),
        Transition(
            _C.PENDING.value,
            _C.SIGNED.value,
            "sign",
            guard=BOTH_PARTIES_SIGNED,
            notice="contract.signed",
        ),
        Transition(
            _C.SENT.value,
            _C.SIGNED.value,
            "sign",
            guard=BOTH_PARTIES_SIGNED,
            notice="contract.signed",
        ),
        Transition(_C.PENDING.value, _C.REJECTED.value, "reject", notice="contract.rejected"),
        Transition(_C.SENT.value, _C.REJECTED.value, "reject", notice="contract.rejected"),
    ),
    terminal_states=(_C.SIGNED.value, _C.REJECTED.value),
)
