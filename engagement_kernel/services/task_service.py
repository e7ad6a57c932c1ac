"""
TaskService -- work items on a project.

Responsibility:
    Creates tasks in creation order and moves them between statuses.  The
    lifecycle engine only reads tasks (for the completion rollup).

Invariants enforced:
    - One access rule for every task update: admin, or the contractor
      assigned to the task's project.
    - sequence is assigned max + 1 per project; the unique constraint turns
      a concurrent double-create into a Conflict.
    - Tasks of a terminal project are frozen.
    - Every task write holds the project row lock first, so a task cannot
      be added or reopened while the project is being completed.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from engagement_kernel.db.mutation import apply_mutation
from engagement_kernel.domain.access import Actor, Capability, check_capability
from engagement_kernel.domain.dtos import TaskInfo
from engagement_kernel.domain.enums import TaskPriority, TaskStatus
from engagement_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    MemberNotFoundError,
    ProjectNotFoundError,
    TaskNotFoundError,
    ValidationError,
)
from engagement_kernel.logging_config import get_logger
from engagement_kernel.models.member import Member
from engagement_kernel.models.project import Project
from engagement_kernel.models.task import Task
from engagement_kernel.services.base import BaseService
from engagement_kernel.services.lifecycle_engine import project_ownership

logger = get_logger("services.task")


class TaskService(BaseService[Task]):
    """Creates and updates project tasks."""

    def _lock_project(self, project_id: UUID) -> Project:
        # Serializes with LifecycleEngine.complete, which counts open tasks
        # under the same row lock.
        project = self._lock(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _get_task(self, task_id: UUID) -> Task:
        task = self._lock(Task, task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def create_task(
        self,
        actor: Actor,
        project_id: UUID,
        title: str,
        description: str | None = None,
        assignee_id: UUID | None = None,
        due_date: date | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> TaskInfo:
        project = self._lock_project(project_id)
        check_capability(actor, Capability.CREATE_TASK, project_ownership(project))
        if project.status.is_terminal:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "create_task"
            )

        title = (title or "").strip()
        if not title:
            raise ValidationError("title", "must not be empty")
        try:
            priority = TaskPriority(priority)
        except ValueError as e:
            raise ValidationError("priority", f"unknown priority {priority!r}") from e
        if assignee_id is not None:
            assignee = self.session.get(Member, assignee_id)
            if assignee is None or not assignee.is_active:
                raise MemberNotFoundError(str(assignee_id))

        last = self.session.execute(
            select(func.max(Task.sequence)).where(Task.project_id == project.id)
        ).scalar_one()
        now = self.clock.now()
        task = Task(
            project_id=project.id,
            sequence=(last or 0) + 1,
            title=title,
            description=description,
            assignee_id=assignee_id,
            due_date=due_date,
            priority=priority,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.session.add(task)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError("tasks", str(project.id)) from exc

        logger.info(
            "task_created",
            extra={
                "project_id": str(project.id),
                "task_id": str(task.id),
                "sequence": task.sequence,
            },
        )
        return TaskInfo.from_model(task)

    def update_status(self, actor: Actor, task_id: UUID, status: TaskStatus) -> TaskInfo:
        """Move a task to ``status``.  Setting the current status is a no-op."""
        try:
            status = TaskStatus(status)
        except ValueError as e:
            raise ValidationError("status", f"unknown task status {status!r}") from e

        found = self.session.get(Task, task_id)
        if found is None:
            raise TaskNotFoundError(str(task_id))
        project = self._lock_project(found.project_id)
        task = self._get_task(task_id)
        check_capability(actor, Capability.UPDATE_TASK, project_ownership(project))
        if project.status.is_terminal:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "update_task"
            )
        if task.status == status:
            return TaskInfo.from_model(task)

        previous = task.status
        apply_mutation(
            self.session,
            task,
            {"status": status},
            now=self.clock.now(),
            expected_status=previous,
        )
        logger.info(
            "task_status_changed",
            extra={
                "task_id": str(task.id),
                "project_id": str(project.id),
                "from_status": previous.value,
                "to_status": status.value,
            },
        )
        return TaskInfo.from_model(task)
