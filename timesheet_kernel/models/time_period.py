"""
TimePeriod model -- half-month reporting bucket.

Contract:
    One row per (year, month, period_number), enforced by
    uq_time_period_key.  Rows are created lazily the first time a time
    entry falls in them, or up front by an administrator.  start_date and
    end_date never change after creation.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TrackedBase
from timesheet_kernel.domain.periods import PeriodType


class TimePeriod(TrackedBase):
    __tablename__ = "time_periods"

    __table_args__ = (
        UniqueConstraint("year", "month", "period_number", name="uq_time_period_key"),
        CheckConstraint("period_number IN (1, 2)", name="ck_time_period_number"),
        CheckConstraint("start_date <= end_date", name="ck_time_period_dates"),
        Index("idx_time_period_dates", "start_date", "end_date"),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    period_number: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    period_type: Mapped[PeriodType] = mapped_column(
        "type",
        String(10),
        default=PeriodType.BIWEEKLY.value,
        nullable=False,
    )

    # Expected hours per person for the period
    reference_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<TimePeriod {self.year}-{self.month:02d} P{self.period_number}>"
