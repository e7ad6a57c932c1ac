"""
Access -- the single capability check consumed by every kernel operation.

Responsibility:
    Maps (actor role, relationship to the entity) to allow/deny for each
    capability.  The access gate authenticates and supplies ``Actor``; this
    module only decides.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - One rule per capability.  Task updates in particular follow the same
      rule regardless of which operation performs them: admin, or the
      project's assigned contractor.

Failure modes:
    - ForbiddenError from check_capability() when the rule denies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from engagement_kernel.domain.enums import Role
from engagement_kernel.exceptions import ForbiddenError


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller as supplied by the access gate."""

    id: UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True, slots=True)
class Ownership:
    """Who owns or works on the entity a capability is checked against."""

    entity_id: UUID | None = None
    client_id: UUID | None = None
    contractor_id: UUID | None = None


class Capability(str, Enum):
    SUBMIT_PROJECT = "submit_project"
    REVIEW_PROJECT = "review_project"
    ASSIGN_CONTRACTOR = "assign_contractor"
    CANCEL_PROJECT = "cancel_project"
    COMPLETE_PROJECT = "complete_project"
    VIEW_PROJECT = "view_project"
    GENERATE_CONTRACT = "generate_contract"
    SEND_CONTRACT = "send_contract"
    SIGN_CONTRACT = "sign_contract"
    REJECT_CONTRACT = "reject_contract"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    SUBMIT_DELIVERABLE = "submit_deliverable"
    REVIEW_DELIVERABLE = "review_deliverable"
    PAY_PROJECT = "pay_project"
    REGISTER_MEMBER = "register_member"
    RECONCILE_PAYMENTS = "reconcile_payments"


# Grants per capability:
#   "admin"      -- any admin
#   "client"     -- any client (no ownership needed)
#   "owner"      -- the client owning the entity
#   "contractor" -- the contractor assigned to the entity
_ADMIN = "admin"
_CLIENT = "client"
_OWNER = "owner"
_CONTRACTOR = "contractor"

_RULES: dict[Capability, frozenset[str]] = {
    Capability.SUBMIT_PROJECT: frozenset({_CLIENT}),
    Capability.REVIEW_PROJECT: frozenset({_ADMIN}),
    Capability.ASSIGN_CONTRACTOR: frozenset({_ADMIN}),
    Capability.CANCEL_PROJECT: frozenset({_ADMIN, _OWNER}),
    Capability.COMPLETE_PROJECT: frozenset({_ADMIN}),
    Capability.VIEW_PROJECT: frozenset({_ADMIN, _OWNER, _CONTRACTOR}),
    Capability.GENERATE_CONTRACT: frozenset({_ADMIN}),
    Capability.SEND_CONTRACT: frozenset({_ADMIN}),
    Capability.SIGN_CONTRACT: frozenset({_OWNER, _CONTRACTOR}),
    Capability.REJECT_CONTRACT: frozenset({_ADMIN, _OWNER, _CONTRACTOR}),
    Capability.CREATE_TASK: frozenset({_ADMIN}),
    Capability.UPDATE_TASK: frozenset({_ADMIN, _CONTRACTOR}),
    Capability.SUBMIT_DELIVERABLE: frozenset({_CONTRACTOR}),
    Capability.REVIEW_DELIVERABLE: frozenset({_ADMIN, _OWNER}),
    Capability.PAY_PROJECT: frozenset({_OWNER}),
    Capability.REGISTER_MEMBER: frozenset({_ADMIN}),
    Capability.RECONCILE_PAYMENTS: frozenset({_ADMIN}),
}


def is_allowed(
    actor: Actor,
    capability: Capability,
    ownership: Ownership | None = None,
) -> bool:
    """Return True when ``actor`` holds ``capability`` over ``ownership``."""
    grants = _RULES[capability]
    ownership = ownership or Ownership()

    if _ADMIN in grants and actor.role == Role.ADMIN:
        return True
    if _CLIENT in grants and actor.role == Role.CLIENT:
        return True
    if (
        _OWNER in grants
        and actor.role == Role.CLIENT
        and ownership.client_id is not None
        and ownership.client_id == actor.id
    ):
        return True
    if (
        _CONTRACTOR in grants
        and actor.role == Role.CONTRACTOR
        and ownership.contractor_id is not None
        and ownership.contractor_id == actor.id
    ):
        return True
    return False


def check_capability(
    actor: Actor,
    capability: Capability,
    ownership: Ownership | None = None,
) -> None:
    """
    Raise unless ``actor`` holds ``capability``.

    Raises:
        ForbiddenError: The rule for ``capability`` denies this actor.
    """
    if not is_allowed(actor, capability, ownership):
        entity_id = None
        if ownership is not None and ownership.entity_id is not None:
            entity_id = str(ownership.entity_id)
        raise ForbiddenError(str(actor.id), capability.value, entity_id)
