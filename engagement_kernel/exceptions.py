"""
Typed Exception Hierarchy for the Engagement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every operation on a project, contract, task or payment receipt reports its
failure as a typed exception carrying:
  1. A ``code`` class attribute (machine-readable, API-safe)
  2. A ``kind`` class attribute naming the error category callers map to a
     transport status (ValidationError, NotFound, Forbidden, ...)
  3. Structured attributes (never parse the message string)

Example:
    try:
        orchestrator.complete_project(actor, project_id)
    except TasksIncompleteError as e:
        return {"error": e.code, "open_tasks": e.open_task_count}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EngagementKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidPricingError
    |
    +-- NotFoundError
    |   +-- ProjectNotFoundError
    |   +-- ContractNotFoundError
    |   +-- TaskNotFoundError
    |   +-- DeliverableNotFoundError
    |   +-- MemberNotFoundError
    |   +-- PaymentReceiptNotFoundError
    |
    +-- ForbiddenError
    |
    +-- InvalidTransitionError
    |
    +-- PreconditionFailedError
    |   +-- PricingMissingError
    |   +-- ContractorMissingError
    |   +-- ActiveContractExistsError
    |   +-- TasksIncompleteError
    |   +-- RetryLimitReachedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ExternalFailureError
    |
    +-- WebhookSignatureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind               | Code                        | When Raised
-------------------|-----------------------------|-------------------------------------
ValidationError    | VALIDATION_ERROR            | Missing/malformed input
                   | INVALID_PRICING             | Negative amount, unknown currency
NotFound           | PROJECT_NOT_FOUND           | Project id doesn't exist
                   | CONTRACT_NOT_FOUND          | Contract id doesn't exist
                   | TASK_NOT_FOUND              | Task id doesn't exist
                   | DELIVERABLE_NOT_FOUND       | Deliverable id doesn't exist
                   | MEMBER_NOT_FOUND            | Member missing or wrong role
                   | PAYMENT_RECEIPT_NOT_FOUND   | No receipt for (project, token)
Forbidden          | FORBIDDEN                   | Actor lacks capability on entity
InvalidTransition  | INVALID_TRANSITION          | Operation illegal from current status
PreconditionFailed | PRECONDITION_FAILED         | Related state missing
                   | PRICING_MISSING             | Contract requested before review
                   | CONTRACTOR_MISSING          | Contract requested before assignment
                   | ACTIVE_CONTRACT_EXISTS      | Non-rejected contract already linked
                   | TASKS_INCOMPLETE            | Completion with open tasks
                   | RETRY_LIMIT_REACHED         | Receipt retried MAX_ATTEMPTS times
Conflict           | CONFLICT                    | Conditional update lost a race (retry)
ExternalFailure    | EXTERNAL_FAILURE            | Renderer / payment provider failed
Rejected           | WEBHOOK_SIGNATURE_INVALID   | Webhook authenticity check failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFLICT IS THE ONLY RETRYABLE KIND:

    except ConcurrencyConflictError:
        retry_with_fresh_session()

2. MAP KIND TO TRANSPORT STATUS:

    except EngagementKernelError as e:
        return HTTP_STATUS_BY_KIND[e.kind], {"code": e.code}
"""


class EngagementKernelError(Exception):
    """
    Base exception for all engagement kernel errors.

    All subclasses carry a ``code`` and a ``kind`` class attribute.
    """

    code: str = "ENGAGEMENT_KERNEL_ERROR"
    kind: str = "Internal"
    retryable: bool = False


# Validation


class ValidationError(EngagementKernelError):
    """Malformed or missing input (caller's fault)."""

    code: str = "VALIDATION_ERROR"
    kind: str = "ValidationError"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidPricingError(ValidationError):
    """Pricing amount or currency is not acceptable."""

    code: str = "INVALID_PRICING"


# Not found


class NotFoundError(EngagementKernelError):
    """Referenced entity is absent."""

    code: str = "NOT_FOUND"
    kind: str = "NotFound"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.capitalize()} not found: {entity_id}")


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"
    entity_type: str = "project"


class ContractNotFoundError(NotFoundError):
    code: str = "CONTRACT_NOT_FOUND"
    entity_type: str = "contract"


class TaskNotFoundError(NotFoundError):
    code: str = "TASK_NOT_FOUND"
    entity_type: str = "task"


class DeliverableNotFoundError(NotFoundError):
    code: str = "DELIVERABLE_NOT_FOUND"
    entity_type: str = "deliverable"


class MemberNotFoundError(NotFoundError):
    """Member does not exist, is inactive, or does not hold the expected role."""

    code: str = "MEMBER_NOT_FOUND"
    entity_type: str = "member"


class PaymentReceiptNotFoundError(NotFoundError):
    code: str = "PAYMENT_RECEIPT_NOT_FOUND"
    entity_type: str = "payment receipt"


# Authorization


class ForbiddenError(EngagementKernelError):
    """Actor lacks the capability for this entity."""

    code: str = "FORBIDDEN"
    kind: str = "Forbidden"

    def __init__(self, actor_id: str, capability: str, entity_id: str | None = None):
        self.actor_id = actor_id
        self.capability = capability
        self.entity_id = entity_id
        target = f" on {entity_id}" if entity_id else ""
        super().__init__(f"Actor {actor_id} may not {capability}{target}")


# Lifecycle


class InvalidTransitionError(EngagementKernelError):
    """Operation is not legal from the entity's current status."""

    code: str = "INVALID_TRANSITION"
    kind: str = "InvalidTransition"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} "
            f"from status '{current_status}'{detail}"
        )


class PreconditionFailedError(EngagementKernelError):
    """Required related state is missing."""

    code: str = "PRECONDITION_FAILED"
    kind: str = "PreconditionFailed"

    def __init__(self, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Precondition failed for {entity_id}: {reason}")


class PricingMissingError(PreconditionFailedError):
    code: str = "PRICING_MISSING"

    def __init__(self, project_id: str):
        super().__init__(project_id, "project has no pricing")


class ContractorMissingError(PreconditionFailedError):
    code: str = "CONTRACTOR_MISSING"

    def __init__(self, project_id: str):
        super().__init__(project_id, "project has no assigned contractor")


class ActiveContractExistsError(PreconditionFailedError):
    code: str = "ACTIVE_CONTRACT_EXISTS"

    def __init__(self, project_id: str, contract_id: str):
        self.contract_id = contract_id
        super().__init__(project_id, f"contract {contract_id} is still active")


class TasksIncompleteError(PreconditionFailedError):
    code: str = "TASKS_INCOMPLETE"

    def __init__(self, project_id: str, open_task_count: int):
        self.open_task_count = open_task_count
        super().__init__(project_id, f"{open_task_count} task(s) not completed")


class RetryLimitReachedError(PreconditionFailedError):
    code: str = "RETRY_LIMIT_REACHED"

    def __init__(self, receipt_id: str, attempts: int):
        self.attempts = attempts
        super().__init__(receipt_id, f"retry limit reached after {attempts} attempt(s)")


# Concurrency


class ConcurrencyError(EngagementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    kind: str = "Conflict"
    retryable: bool = True


class ConcurrencyConflictError(ConcurrencyError):
    """A conditional update observed a status or version that moved underneath it."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent update conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# External collaborators


class ExternalFailureError(EngagementKernelError):
    """Downstream collaborator (document store, payment provider) failed."""

    code: str = "EXTERNAL_FAILURE"
    kind: str = "ExternalFailure"

    def __init__(self, collaborator: str, reason: str):
        self.collaborator = collaborator
        self.reason = reason
        super().__init__(f"{collaborator} failed: {reason}")


class WebhookSignatureError(EngagementKernelError):
    """Inbound webhook failed authenticity verification."""

    code: str = "WEBHOOK_SIGNATURE_INVALID"
    kind: str = "Rejected"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Webhook rejected: {reason}")
