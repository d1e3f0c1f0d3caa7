"""
Project and ProjectAssignment models.

A project belongs to exactly one area.  Each area may have one general
project (is_general=True), a catch-all for time that is not tied to
client work.  Projects are soft-deleted.

ProjectAssignment joins users to projects.  There is one row per
(project, user) pair; removing a member deactivates the row and assigning
again reactivates it, so "at most one active assignment" holds by
construction.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TimestampedBase, TrackedBase, UUIDString
from timesheet_kernel.domain.values import Priority, ProjectStatus


class Project(TrackedBase):
    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_area", "area_id"),
        Index("idx_project_area_general", "area_id", "is_general"),
        Index("idx_project_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    area_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("areas.id"),
        nullable=False,
    )

    status: Mapped[ProjectStatus] = mapped_column(
        String(20),
        default=ProjectStatus.ACTIVE.value,
        nullable=False,
    )

    priority: Mapped[Priority] = mapped_column(
        String(10),
        default=Priority.MEDIUM.value,
        nullable=False,
    )

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    estimated_hours: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 2),
        nullable=True,
    )

    is_general: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Project {self.name} [{self.status}]>"


class ProjectAssignment(TimestampedBase):
    __tablename__ = "project_assignments"

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_assignment"),
        Index("idx_assignment_user", "user_id", "is_active"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    assigned_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
