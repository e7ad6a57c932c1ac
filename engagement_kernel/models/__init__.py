"""Domain models for the engagement kernel."""

from engagement_kernel.models.contract import Contract, ContractSignature
from engagement_kernel.models.member import Member
from engagement_kernel.models.payment_receipt import PaymentReceipt
from engagement_kernel.models.project import Deliverable, Project
from engagement_kernel.models.task import Task

__all__ = [
    "Contract",
    "ContractSignature",
    "Deliverable",
    "Member",
    "PaymentReceipt",
    "Project",
    "Task",
]
