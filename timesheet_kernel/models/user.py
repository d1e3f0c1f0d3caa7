"""
User model -- the people who log time.

Credentials and sessions are handled outside the kernel; only the fields
the authorization rules read (role, area) live here.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TimestampedBase, UUIDString
from timesheet_kernel.domain.principal import Role


class User(TimestampedBase):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        Index("idx_user_area", "area_id"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    role: Mapped[Role] = mapped_column(
        String(20),
        default=Role.COLABORADOR.value,
        nullable=False,
    )

    # Null for administrators and for collaborators restricted to assigned tasks
    area_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("areas.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.email} {self.role}>"
