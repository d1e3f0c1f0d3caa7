"""
Task model.

Tasks belong to one project and are optionally assigned to one user.
completed_at is set when the task enters DONE and cleared when it leaves.
Tasks are soft-deleted, and only while no time entries reference them.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TrackedBase, UUIDString
from timesheet_kernel.domain.values import Priority, TaskStatus


class Task(TrackedBase):
    __tablename__ = "tasks"

    __table_args__ = (
        Index("idx_task_project", "project_id"),
        Index("idx_task_assignee", "assigned_to_id"),
        Index("idx_task_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    assigned_to_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    status: Mapped[TaskStatus] = mapped_column(
        String(20),
        default=TaskStatus.TODO.value,
        nullable=False,
    )

    priority: Mapped[Priority] = mapped_column(
        String(10),
        default=Priority.MEDIUM.value,
        nullable=False,
    )

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    estimated_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Task {self.title} [{self.status}]>"
