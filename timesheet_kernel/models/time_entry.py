"""
TimeEntry model -- hours one user logged on one task on one day.

Contract:
    At most one row per (user_id, project_id, task_id, date), enforced by
    uq_time_entry_identity.  The store relies on this constraint to turn a
    concurrent duplicate insert into a merge.

Guarantees:
    - date is a calendar day (no time-of-day, no timezone).
    - hours is Numeric(5, 2); the service keeps it within (0, 24].
    - time_period_id always points at the period containing date.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TimestampedBase, UUIDString


class TimeEntry(TimestampedBase):
    __tablename__ = "time_entries"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "project_id", "task_id", "date",
            name="uq_time_entry_identity",
        ),
        CheckConstraint("hours > 0 AND hours <= 24", name="ck_time_entry_hours"),
        Index("idx_time_entry_user_date", "user_id", "date"),
        Index("idx_time_entry_project", "project_id"),
        Index("idx_time_entry_period", "time_period_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    task_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tasks.id"),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    hours: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    time_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("time_periods.id"),
        nullable=False,
    )

    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<TimeEntry {self.user_id} {self.entry_date} {self.hours}h>"
