"""
Area model -- organizational unit owning users and projects.

Areas are soft-deleted (is_active=False); their projects keep pointing at
them so historical time entries stay attributable.
"""

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TimestampedBase


class Area(TimestampedBase):
    __tablename__ = "areas"

    __table_args__ = (
        UniqueConstraint("name", name="uq_area_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Area {self.name}>"
