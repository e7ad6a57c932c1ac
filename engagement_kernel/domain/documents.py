"""
Contract document port.

The kernel hands a ContractDocument to a ContractRenderer and stores the
returned file reference on the Contract.  Layout and storage are the
renderer's concern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from engagement_kernel.domain.values import Pricing


@dataclass(frozen=True)
class ContractParty:
    member_id: UUID
    display_name: str
    email: str


@dataclass(frozen=True)
class ContractDocument:
    """Everything a renderer needs to lay out one contract."""

    contract_id: UUID
    project_id: UUID
    project_title: str
    project_description: str
    pricing: Pricing
    client: ContractParty
    contractor: ContractParty
    generated_at: datetime


class ContractRenderer(ABC):
    """
    Produces a stored contract file.

    Contract:
        ``render`` returns an opaque file reference.  Any failure is raised;
        the caller maps it to ExternalFailureError and persists nothing.
    """

    @abstractmethod
    def render(self, document: ContractDocument) -> str:
        ...

    def discard(self, file_ref: str) -> None:
        """Remove a rendered file whose contract was never persisted."""
