"""
DeliverableService -- contractor submissions and their review.

Deliverables are append-only.  The approval verdict is tri-state
(None -> True | False) and is set exactly once.
"""

from __future__ import annotations

from uuid import UUID

from engagement_kernel.db.mutation import apply_mutation
from engagement_kernel.domain.access import Actor, Capability, check_capability
from engagement_kernel.domain.dtos import DeliverableInfo
from engagement_kernel.domain.enums import ProjectStatus
from engagement_kernel.exceptions import (
    DeliverableNotFoundError,
    InvalidTransitionError,
    ProjectNotFoundError,
    ValidationError,
)
from engagement_kernel.logging_config import get_logger
from engagement_kernel.models.project import Deliverable, Project
from engagement_kernel.services.base import BaseService
from engagement_kernel.services.lifecycle_engine import project_ownership

logger = get_logger("services.deliverable")


class DeliverableService(BaseService[Deliverable]):
    """Submits and reviews deliverables."""

    def submit(
        self,
        actor: Actor,
        project_id: UUID,
        name: str,
        file_url: str,
    ) -> DeliverableInfo:
        """Append a deliverable.  Only the assigned contractor, only while IN_PROGRESS."""
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        check_capability(actor, Capability.SUBMIT_DELIVERABLE, project_ownership(project))
        if project.status != ProjectStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "submit_deliverable"
            )

        name = (name or "").strip()
        file_url = (file_url or "").strip()
        if not name:
            raise ValidationError("name", "must not be empty")
        if not file_url:
            raise ValidationError("file_url", "must not be empty")

        now = self.clock.now()
        deliverable = Deliverable(
            project_id=project.id,
            name=name,
            file_url=file_url,
            submitted_by_id=actor.id,
            submitted_at=now,
            approved=None,
            created_at=now,
            updated_at=now,
        )
        self.session.add(deliverable)
        self.session.flush()

        logger.info(
            "deliverable_submitted",
            extra={"project_id": str(project.id), "deliverable_id": str(deliverable.id)},
        )
        self._publish(
            "deliverable.submitted",
            entity_id=deliverable.id,
            project_id=project.id,
            actor_id=actor.id,
        )
        return DeliverableInfo.from_model(deliverable)

    def review(self, actor: Actor, deliverable_id: UUID, approved: bool) -> DeliverableInfo:
        """Record the verdict.  A second review raises InvalidTransitionError."""
        if not isinstance(approved, bool):
            raise ValidationError("approved", "must be true or false")

        deliverable = self._lock(Deliverable, deliverable_id)
        if deliverable is None:
            raise DeliverableNotFoundError(str(deliverable_id))
        project = self.session.get(Project, deliverable.project_id)
        check_capability(actor, Capability.REVIEW_DELIVERABLE, project_ownership(project))

        if deliverable.approved is not None:
            verdict = "approved" if deliverable.approved else "rejected"
            raise InvalidTransitionError(
                "deliverable", str(deliverable.id), verdict, "review"
            )

        apply_mutation(
            self.session,
            deliverable,
            {"approved": approved, "reviewed_by_id": actor.id},
            now=self.clock.now(),
        )
        logger.info(
            "deliverable_reviewed",
            extra={"deliverable_id": str(deliverable.id), "approved": approved},
        )
        self._publish(
            "deliverable.reviewed",
            entity_id=deliverable.id,
            project_id=deliverable.project_id,
            actor_id=actor.id,
            approved=approved,
        )
        return DeliverableInfo.from_model(deliverable)
