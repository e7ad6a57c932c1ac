"""
Pure domain layer: enums, value objects, workflows, access rules, DTOs and
collaborator ports.  Nothing here touches the database.
"""

from engagement_kernel.domain.access import (
    Actor,
    Capability,
    Ownership,
    check_capability,
    is_allowed,
)
from engagement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from engagement_kernel.domain.documents import (
    ContractDocument,
    ContractParty,
    ContractRenderer,
)
from engagement_kernel.domain.dtos import (
    ContractInfo,
    DeliverableInfo,
    MemberInfo,
    PaymentIntentInfo,
    PaymentReceiptInfo,
    PaymentStatusInfo,
    ProjectInfo,
    SignatureInfo,
    TaskInfo,
)
from engagement_kernel.domain.enums import (
    ContractStatus,
    PaymentOutcome,
    PaymentStatus,
    ProjectStatus,
    ReceiptStatus,
    Role,
    TaskPriority,
    TaskStatus,
)
from engagement_kernel.domain.lifecycle import CONTRACT_WORKFLOW, PROJECT_WORKFLOW
from engagement_kernel.domain.notices import (
    EventSink,
    InMemoryEventSink,
    LifecycleNotice,
    NullEventSink,
)
from engagement_kernel.domain.values import Pricing
from engagement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Actor",
    "CONTRACT_WORKFLOW",
    "Capability",
    "Clock",
    "ContractDocument",
    "ContractInfo",
    "ContractParty",
    "ContractRenderer",
    "ContractStatus",
    "DeliverableInfo",
    "DeterministicClock",
    "EventSink",
    "Guard",
    "InMemoryEventSink",
    "LifecycleNotice",
    "MemberInfo",
    "NullEventSink",
    "Ownership",
    "PROJECT_WORKFLOW",
    "PaymentIntentInfo",
    "PaymentOutcome",
    "PaymentReceiptInfo",
    "PaymentStatus",
    "PaymentStatusInfo",
    "Pricing",
    "ProjectInfo",
    "ProjectStatus",
    "ReceiptStatus",
    "Role",
    "SignatureInfo",
    "SystemClock",
    "TaskInfo",
    "TaskPriority",
    "TaskStatus",
    "Transition",
    "Workflow",
    "check_capability",
    "is_allowed",
]
