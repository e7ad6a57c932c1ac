"""
Status and role vocabularies shared by models, domain and services.

Pure value definitions with zero I/O.  Models import from here so that the
ORM columns, the workflow definitions and the DTOs agree on one spelling.
"""

from enum import Enum


class Role(str, Enum):
    """Role supplied by the access gate for an authenticated actor."""

    CLIENT = "client"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


class ProjectStatus(str, Enum):
    """
    Project engagement status.

    State machine:
        PENDING -> REVIEWED -> AWAITING_PAYMENT -> IN_PROGRESS -> COMPLETED
        any non-terminal -> CANCELLED
        COMPLETED: terminal
        CANCELLED: terminal
    """

    PENDING = "pending"
    REVIEWED = "reviewed"
    AWAITING_PAYMENT = "awaiting_payment"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class ContractStatus(str, Enum):
    """
    Contract status.

    State machine:
        PENDING -> SENT -> SIGNED
        PENDING | SENT -> REJECTED
        SIGNED, REJECTED: terminal
    """

    PENDING = "pending"
    SENT = "sent"
    SIGNED = "signed"
    REJECTED = "rejected"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PaymentOutcome(str, Enum):
    """Outcome carried by a payment provider notification."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReceiptStatus(str, Enum):
    """
    Processing status of a payment receipt.

    APPLIED       -- the notification's effect is on the project.
    NEEDS_REVIEW  -- acknowledged to the provider but the state update failed;
                     waits in the manual reconciliation queue.
    RESOLVED      -- an operator closed the receipt without applying it.
    """

    APPLIED = "applied"
    NEEDS_REVIEW = "needs_review"
    RESOLVED = "resolved"
