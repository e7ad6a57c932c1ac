"""Kernel services.  Flush-only; the caller owns the transaction."""

from engagement_kernel.services.base import BaseService
from engagement_kernel.services.contract_coordinator import ContractCoordinator
from engagement_kernel.services.deliverable_service import DeliverableService
from engagement_kernel.services.lifecycle_engine import LifecycleEngine
from engagement_kernel.services.member_service import MemberService
from engagement_kernel.services.payment_reconciler import (
    MAX_ATTEMPTS,
    PaymentReconciler,
    ReconcileResult,
    ReconcileStatus,
    UNROUTED_PROJECT_ID,
)
from engagement_kernel.services.task_service import TaskService

__all__ = [
    "BaseService",
    "ContractCoordinator",
    "DeliverableService",
    "LifecycleEngine",
    "MAX_ATTEMPTS",
    "MemberService",
    "PaymentReconciler",
    "ReconcileResult",
    "ReconcileStatus",
    "TaskService",
    "UNROUTED_PROJECT_ID",
]
