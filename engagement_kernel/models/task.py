"""
Module: engagement_kernel.models.task
Responsibility: ORM persistence for project tasks.  The lifecycle engine reads
    task status for the completion rollup; TaskService owns the writes.
Architecture position: Kernel > Models.

Invariants enforced:
    - A task belongs to exactly one project.
    - sequence is unique per project and follows creation order
      (uq_task_project_sequence).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from engagement_kernel.db.base import TrackedBase, UUIDString
from engagement_kernel.db.types import enum_column
from engagement_kernel.domain.enums import TaskPriority, TaskStatus


class Task(TrackedBase):
    """Unit of work inside a project."""

    __tablename__ = "tasks"

    __table_args__ = (
        UniqueConstraint("project_id", "sequence", name="uq_task_project_sequence"),
        Index("idx_task_assignee", "assignee_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    assignee_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=True
    )

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    priority: Mapped[TaskPriority] = mapped_column(
        enum_column(TaskPriority),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )

    status: Mapped[TaskStatus] = mapped_column(
        enum_column(TaskStatus),
        nullable=False,
        default=TaskStatus.PENDING,
    )

    def __repr__(self) -> str:
        return f"<Task {self.project_id}#{self.sequence} {self.status.value}>"
